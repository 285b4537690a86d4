"""Per-discipline rule tables and section layouts, in calculation-sheet order."""

from .base import Discipline, LayoutContext
from .bpp import BPPAlternate
from .civil import CivilSitework
from .demolition import Demolition
from .excavation import Excavation, RockExcavation
from .foundation import Foundation
from .soe import SupportOfExcavation
from .superstructure import Superstructure
from .waterproofing import Waterproofing

# Section order matters: later summary formulas reference earlier sections' totals.
DISCIPLINES = (
    Demolition,
    Excavation,
    RockExcavation,
    SupportOfExcavation,
    Foundation,
    Waterproofing,
    Superstructure,
    BPPAlternate,
    CivilSitework,
)


def default_disciplines():
    return [cls() for cls in DISCIPLINES]


__all__ = [
    "BPPAlternate",
    "CivilSitework",
    "DISCIPLINES",
    "Demolition",
    "Discipline",
    "Excavation",
    "Foundation",
    "LayoutContext",
    "RockExcavation",
    "Superstructure",
    "SupportOfExcavation",
    "Waterproofing",
    "default_disciplines",
]
