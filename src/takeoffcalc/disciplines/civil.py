"""Civil / Sitework: demolition of existing site features and proposed site work."""
from __future__ import annotations

import logging
import re
from dataclasses import replace
from typing import List, Optional, Sequence

from ..classifier import Rule, RuleTable, category_allows, claim, contains, normalize_text
from ..dimensions import assignment, convert_to_feet
from ..formulas import Literal, area_only, count_only, this
from ..grouping import by_subsection
from ..layout import SheetBuilder
from ..models import (
    CY,
    FT,
    HEIGHT,
    LENGTH,
    QTY,
    QTY_FINAL,
    SQ_FT,
    WIDTH,
    ClassifiedItem,
    ParsedDimensions,
    RawRow,
)
from ..tracker import UsedRowTracker
from .base import Cells, Discipline, LayoutContext

logger = logging.getLogger(__name__)

SECTION_LABEL = "Civil / Sitework"

DEMO = "Demo"
DEMO_ASPHALT = "Demo asphalt"
DEMO_CURB = "Demo curb"
DEMO_FENCE = "Demo fence"
DEMO_WALL = "Demo wall"
DEMO_PIPE = "Demo pipe"
DEMO_RAIL = "Demo rail"
DEMO_SIGN = "Demo sign"
DEMO_MANHOLE = "Demo manhole"
DEMO_HYDRANT = "Demo fire hydrant"
DEMO_POLE = "Demo utility pole"
DEMO_VALVE = "Demo valve"
DEMO_INLET = "Demo inlet"

EXCAVATION = "Excavation"
CONCRETE_PAVEMENT = "Concrete Pavement"
ASPHALT = "Asphalt"
PADS = "Pads"
SOIL_EROSION = "Soil Erosion"
FENCE = "Fence"
BOLLARD = "Concrete filled steel pipe bollard"

DEMO_SUBSECTIONS = (
    DEMO_ASPHALT,
    DEMO_CURB,
    DEMO_FENCE,
    DEMO_WALL,
    DEMO_PIPE,
    DEMO_RAIL,
    DEMO_SIGN,
    DEMO_MANHOLE,
    DEMO_HYDRANT,
    DEMO_POLE,
    DEMO_VALVE,
    DEMO_INLET,
)

# Typical sizes for removed site features; the takeoff only carries the run or area.
DEMO_ASPHALT_DEPTH = 0.25
DEMO_CURB_WIDTH = 0.67
DEMO_CURB_HEIGHT = 1.5
DEMO_FENCE_HEIGHT = 6.0
DEMO_WALL_WIDTH = 1.5
DEMO_WALL_HEIGHT = 3.5

DEFAULT_SLAB_INCHES = 6.0
DEFAULT_ASPHALT_INCHES = (4.5, 0.0)
SILT_FENCE_HEIGHT = 2.5

_DEMO_MARKERS = ("remove existing", "protect existing", "relocate existing")
_OTHER_MARKERS = ("proposed", "construction fence")
_THICK = re.compile(r"(\d+(?:\.\d+)?)\s*\"\s*thick", re.IGNORECASE)
_QTY = re.compile(r"\(\s*(\d+)\s*(?:no\.?|ea)?\s*\)", re.IGNORECASE)
_LAYER = r"(\d+(?:\.\d+)?)\s*\"\s*(?:thick\s+)?{}"
_ROUND = r"\((\d+(?:\.\d+)?)\s*\"\s*[∅Ø],\s*H\s*=\s*(\d+'\s*-?\s*\d+\")\)"
_BOLLARD = re.compile(_ROUND, re.IGNORECASE)
_FOOTING = re.compile(r"footing\s*" + _ROUND, re.IGNORECASE)


def is_demo(text: str) -> bool:
    if "(add/alt)" in text and "utility pole" in text:
        return False
    if any(marker in text for marker in _DEMO_MARKERS):
        return True
    return text.startswith("remove ") and ("wall" in text or "rail" in text)


def _demo(predicate):
    return lambda text: is_demo(text) and predicate(text)


def _proposed(predicate):
    return lambda text: not is_demo(text) and predicate(text)


def _demo_asphalt(text: str) -> bool:
    return "asphalt pavement" in text or ("remove" in text and "asphalt" in text and "curb" not in text)


def _demo_pole(text: str) -> bool:
    return "utility pole" in text or ("pole" in text and "hydrant" not in text)


def _proposed_fence(text: str) -> bool:
    return "construction fence" in text or "proposed guiderail" in text or (
        "proposed fence" in text and "height=" in text
    )


def _asphalt(text: str) -> bool:
    return (
        "full depth asphalt pavement" in text
        and "surface course" in text
        and "bpp " not in text
        and "- bpp" not in text
    )


# -- parsers -----------------------------------------------------------------------


def _thick_inches(text: str) -> Optional[float]:
    match = _THICK.search(text or "")
    return float(match.group(1)) if match else None


def _fixed(width: Optional[float] = None, height: Optional[float] = None):
    return lambda row: ParsedDimensions(width=width, height=height)


def _height(default: Optional[float] = None):
    def parse(row: RawRow) -> ParsedDimensions:
        return ParsedDimensions(height=assignment(row.description, "Height") or default)

    return parse


def _slab(row: RawRow) -> ParsedDimensions:
    inches = _thick_inches(row.description) or DEFAULT_SLAB_INCHES
    match = _QTY.search(row.description or "")
    return ParsedDimensions(
        height=inches / 12,
        qty=float(match.group(1)) if match else None,
        extras={"thick_in": inches},
    )


def _asphalt_layers(row: RawRow) -> ParsedDimensions:
    surface = re.search(_LAYER.format("surface"), row.description, re.IGNORECASE)
    base = re.search(_LAYER.format("base"), row.description, re.IGNORECASE)
    if surface and base:
        layers = (float(surface.group(1)), float(base.group(1)))
    else:
        layers = DEFAULT_ASPHALT_INCHES
    return ParsedDimensions(height=sum(layers) / 12, extras={"layers": layers})


def _bollard(row: RawRow) -> ParsedDimensions:
    text = row.description or ""
    post = _BOLLARD.search(text)
    footing = _FOOTING.search(text)
    if post is None:
        return ParsedDimensions(height=assignment(text, "H"))
    extras = {}
    if footing:
        extras = {
            "footing_diameter": float(footing.group(1)) / 12,
            "footing_height": convert_to_feet(footing.group(2)),
        }
    return ParsedDimensions(
        diameter=float(post.group(1)) / 12,
        height=convert_to_feet(post.group(2)),
        extras=extras,
    )


# -- group keys ----------------------------------------------------------------------


def _keyword_key(*pairs):
    def key(parsed: ParsedDimensions, row: RawRow) -> str:
        text = normalize_text(row.description)
        for needle, name in pairs:
            if needle in text:
                return name
        return "other"

    return key


_fence_key = _keyword_key(("chain link", "chain_link_vinyl"), ("vinyl", "chain_link_vinyl"), ("wood", "wood"))
_sign_key = _keyword_key(("row of sign", "row_of_signs"))
_inlet_key = _keyword_key(("protect", "protect"), ("remove", "remove"))
_site_fence_key = _keyword_key(
    ("construction fence", "construction_fence"),
    ("proposed fence", "proposed_fence"),
    ("guiderail", "guiderail"),
)


def _pipe_group(parsed: ParsedDimensions, row: RawRow) -> str:
    text = normalize_text(row.description)
    if "remove" in text and "pipe" in text:
        return "remove_pipe"
    return "protect" if "protect" in text else "other"


def _bollard_key(parsed: ParsedDimensions, row: RawRow) -> str:
    text = normalize_text(row.description)
    return "footing" if "footing" in text or parsed.get("footing_diameter") else "simple"


RULES = RuleTable(
    [
        Rule("civil_demo_asphalt", DEMO_ASPHALT, _demo(_demo_asphalt), _fixed(height=DEMO_ASPHALT_DEPTH)),
        Rule(
            "civil_demo_curb",
            DEMO_CURB,
            _demo(contains("curb")),
            _fixed(width=DEMO_CURB_WIDTH, height=DEMO_CURB_HEIGHT),
        ),
        Rule("civil_demo_fence", DEMO_FENCE, _demo(contains("fence")), _fixed(height=DEMO_FENCE_HEIGHT), _fence_key),
        Rule(
            "civil_demo_wall",
            DEMO_WALL,
            _demo(lambda text: "wall" in text and "stormwater" not in text),
            _fixed(width=DEMO_WALL_WIDTH, height=DEMO_WALL_HEIGHT),
        ),
        Rule(
            "civil_demo_pipe",
            DEMO_PIPE,
            _demo(contains("pipe", "hdpe", "rcp", "stormwater main")),
            key=_pipe_group,
        ),
        Rule("civil_demo_rail", DEMO_RAIL, _demo(contains("rail"))),
        Rule("civil_demo_sign", DEMO_SIGN, _demo(contains("sign")), key=_sign_key),
        Rule("civil_demo_manhole", DEMO_MANHOLE, _demo(contains("manhole"))),
        Rule("civil_demo_fire_hydrant", DEMO_HYDRANT, _demo(contains("fire hydrant"))),
        Rule("civil_demo_utility_pole", DEMO_POLE, _demo(_demo_pole)),
        Rule("civil_demo_valve", DEMO_VALVE, _demo(contains("valve"))),
        Rule("civil_demo_inlet", DEMO_INLET, _demo(contains("inlet")), key=_inlet_key),
        Rule("civil_fence", FENCE, _proposed(_proposed_fence), _height(), _site_fence_key),
        Rule(
            "civil_stabilized_entrance",
            SOIL_EROSION,
            _proposed(contains("stabilized construction entrance")),
            _slab,
            lambda parsed, row: "stabilized_entrance",
        ),
        Rule(
            "civil_silt_fence",
            SOIL_EROSION,
            _proposed(contains("silt fence")),
            _height(SILT_FENCE_HEIGHT),
            lambda parsed, row: "silt_fence",
        ),
        Rule(
            "civil_inlet_filter",
            SOIL_EROSION,
            _proposed(lambda text: "inlet filter" in text and "protection" not in text),
            key=lambda parsed, row: "inlet_filter",
        ),
        Rule("civil_transformer_pad", PADS, _proposed(contains("proposed transformer concrete pad")), _slab),
        Rule("civil_asphalt", ASPHALT, _proposed(_asphalt), _asphalt_layers),
        Rule(
            "civil_concrete_sidewalk",
            CONCRETE_PAVEMENT,
            _proposed(contains("proposed reinforced concrete sidewalk")),
            _slab,
        ),
        Rule("civil_bollard", BOLLARD, _proposed(contains("bollard")), _bollard, _bollard_key),
    ]
)

# Proposed items that also need an excavation row.
_EXCAVATED = {
    "civil_transformer_pad": "transformer_pad",
    "civil_concrete_sidewalk": "reinforced_sidewalk",
    "civil_asphalt": "asphalt",
}


# -- formulas ------------------------------------------------------------------------


def _demo_linear(item: ClassifiedItem) -> Cells:
    return {
        WIDTH: item.parsed.width,
        HEIGHT: item.parsed.height,
        FT: this.C,
        SQ_FT: this.I * this.H,
        CY: this.J * this.G / 27,
    }


def _run_area(item: ClassifiedItem) -> Cells:
    return {HEIGHT: item.parsed.height, FT: this.C, SQ_FT: this.I * this.H}


def _area(item: ClassifiedItem) -> Cells:
    thick = item.parsed.get("thick_in")
    return {
        HEIGHT: Literal(thick) / 12 if thick else item.parsed.height,
        SQ_FT: this.C,
        CY: this.J * this.H / 27,
    }


def _pad(item: ClassifiedItem) -> Cells:
    cells = _area(item)
    if item.parsed.qty is not None:
        cells[QTY] = item.parsed.qty
        cells[QTY_FINAL] = this.E
    return cells


def _asphalt_cells(item: ClassifiedItem) -> Cells:
    surface, base = item.parsed.get("layers", DEFAULT_ASPHALT_INCHES)
    height = (Literal(surface) + Literal(base)) / 12 if base else Literal(surface) / 12
    return {HEIGHT: height, **area_only()}


def _bollard_cells(item: ClassifiedItem) -> Cells:
    return {HEIGHT: item.parsed.height, QTY_FINAL: this.C}


def _excavation_cells(item: ClassifiedItem) -> Cells:
    if item.parsed.get("footing_diameter"):
        return {
            LENGTH: item.parsed.get("footing_diameter"),
            WIDTH: item.parsed.get("footing_diameter"),
            HEIGHT: item.parsed.get("footing_height"),
            SQ_FT: this.C * this.F * this.G,
            CY: this.J * this.H / 27,
        }
    return {HEIGHT: item.parsed.height, **area_only()}


def _fence(item: ClassifiedItem) -> Cells:
    if not item.parsed.height:
        return {FT: this.C}
    return _run_area(item)


def _count(item: ClassifiedItem) -> Cells:
    return count_only()


FORMULAS = {
    "civil_demo_asphalt": lambda item: {HEIGHT: item.parsed.height, **area_only()},
    "civil_demo_curb": _demo_linear,
    "civil_demo_wall": _demo_linear,
    "civil_demo_fence": _run_area,
    "civil_demo_pipe": lambda item: {FT: this.C},
    "civil_demo_rail": lambda item: {FT: this.C},
    "civil_demo_sign": _count,
    "civil_demo_manhole": _count,
    "civil_demo_fire_hydrant": _count,
    "civil_demo_utility_pole": _count,
    "civil_demo_valve": _count,
    "civil_demo_inlet": _count,
    "civil_fence": _fence,
    "civil_stabilized_entrance": _area,
    "civil_silt_fence": _run_area,
    "civil_inlet_filter": _count,
    "civil_transformer_pad": _pad,
    "civil_asphalt": _asphalt_cells,
    "civil_concrete_sidewalk": _area,
    "civil_bollard": _bollard_cells,
    "civil_excavation": _excavation_cells,
}


class CivilSitework(Discipline):
    """Existing-feature demolition first, then the proposed site work subsections.

    Pads, sidewalks, full depth asphalt and footed bollards are also shown once more in
    the Excavation subsection, from the same claimed row.
    """

    key = "civil"
    title = SECTION_LABEL
    labels = (SECTION_LABEL,)
    subsections = DEMO_SUBSECTIONS + (
        EXCAVATION,
        CONCRETE_PAVEMENT,
        ASPHALT,
        PADS,
        SOIL_EROSION,
        FENCE,
        BOLLARD,
    )
    rules = RULES
    formulas = FORMULAS

    def _gate(self, row: RawRow) -> bool:
        if (row.category or "").strip() and category_allows(row.category, self.labels):
            return True
        text = normalize_text(row.description)
        return is_demo(text) or any(marker in text for marker in _OTHER_MARKERS)

    def claim(self, rows: Sequence[RawRow], tracker: UsedRowTracker) -> List[ClassifiedItem]:
        items = claim(self.rules, rows, tracker, self.key, gate=self._gate)
        views = [
            replace(item, subsection=EXCAVATION, item_type="civil_excavation", group_key=_EXCAVATED[item.item_type])
            for item in items
            if item.item_type in _EXCAVATED
        ]
        views += [
            replace(item, subsection=EXCAVATION, item_type="civil_excavation", group_key="bollard")
            for item in items
            if item.item_type == "civil_bollard" and item.parsed.get("footing_diameter")
        ]
        logger.debug("%s claimed %d rows (%d excavation views)", self.title, len(items), len(views))
        return items + views

    def layout(self, builder: SheetBuilder, items: Sequence[ClassifiedItem], context: LayoutContext) -> None:
        if not items:
            return
        self.open_section(builder, context)
        demo_open = False
        for subsection, members in by_subsection(items, self.subsections).items():
            if subsection in DEMO_SUBSECTIONS and not demo_open:
                builder.subsection(DEMO)
                demo_open = True
            builder.subsection(subsection)
            for group in self.group(subsection, members):
                self.emit_group(builder, group, context)
            builder.blank()


__all__ = ["CivilSitework", "RULES", "is_demo"]
