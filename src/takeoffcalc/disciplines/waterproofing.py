"""Waterproofing membranes measured against foundation walls, pits and slabs."""
from __future__ import annotations

import re
from dataclasses import replace
from typing import Optional

from ..classifier import Rule, RuleTable, any_of, contains, starts
from ..dimensions import bracket_values, first_bracket_token
from ..formulas import this
from ..models import CY, FT, HEIGHT, SQ_FT, WIDTH, ClassifiedItem, ParsedDimensions, RawRow
from .base import Cells, Discipline

EXTERIOR_SIDE = "Exterior side"
NEGATIVE_SIDE = "Negative side"

EXTERIOR_ALLOWANCE = 2.0

_PIT_WALLS = {
    "deep_sewage": r"deep\s+sewage\s+ejector(?:\s+pit)?\s+wall",
    "elevator": r"(elev\.?|elevator)(?:\s+pit)?\s+wall",
    "detention": r"detention\s+tank\s+wall",
    "duplex_sewage": r"duplex\s+sewage\s+ejector(?:\s+pit)?\s+wall",
    "grease_trap": r"grease\s+trap(?:\s+pit)?\s+wall",
    "house_trap": r"house\s+trap(?:\s+pit)?\s+wall",
}
_VOLUME_PITS = ("elevator", "detention")

_NEGATIVE_SLABS = (
    r"house\s+trap(?:\s+pit)?\s+slab",
    r"grease\s+trap(?:\s+pit)?\s+slab",
    r"deep\s+sewage\s+ejector(?:\s+pit)?\s+slab",
    r"duplex\s+sewage\s+ejector(?:\s+pit)?\s+slab",
    r"detention\s+tank\s+lid\s+slab",
    r"detention\s+tank(?:\s+pit)?\s+slab",
    r"(elev\.?|elevator)(?:\s+pit)?\s+slab",
)


def _pit_kind(text: str) -> Optional[str]:
    for kind, pattern in _PIT_WALLS.items():
        if re.search(pattern, text, re.IGNORECASE):
            return kind
    return None


def _pit_wall(text: str) -> bool:
    return "slab" not in text and _pit_kind(text) is not None


def _negative_slab(text: str) -> bool:
    return "slab" in text and any(re.search(p, text) for p in _NEGATIVE_SLABS)


_EXTERIOR_WALL = any_of(
    starts("fw (", "fw(", "rw (", "rw("),
    contains("vehicle barrier wall (", "concrete liner wall (", "stem wall ("),
)


def _exterior(row: RawRow) -> ParsedDimensions:
    found = bracket_values(row.description)
    if len(found) < 2:
        return ParsedDimensions()
    return ParsedDimensions(width=found[0], height=found[1] + EXTERIOR_ALLOWANCE)


def _exterior_pit(row: RawRow) -> ParsedDimensions:
    parsed = _exterior(row)
    kind = _pit_kind(row.description)
    width = parsed.width if kind in _VOLUME_PITS else None
    return ParsedDimensions(width=width, height=parsed.height, extras={"pit": kind})


def _negative_wall(row: RawRow) -> ParsedDimensions:
    found = bracket_values(row.description)
    kind = _pit_kind(row.description)
    if len(found) < 2:
        return ParsedDimensions(extras={"pit": kind})
    width = found[0] if kind in _VOLUME_PITS else None
    return ParsedDimensions(width=width, height=found[1], extras={"pit": kind})


def _group_key(parsed: ParsedDimensions, row: RawRow) -> str:
    text = row.description.strip()
    if "slab" in text.lower():
        thick = re.search(r"(\d+)[\"']?\s*(?:typ\.?)?\s*$", text, re.IGNORECASE)
        if thick:
            return f"THICK_{thick.group(1)}"
    token = first_bracket_token(text)
    if token and "x" in text.lower():
        return f"DIM_{token}"
    return "OTHER"


RULES = RuleTable(
    [
        Rule("exterior_wall", EXTERIOR_SIDE, _EXTERIOR_WALL, _exterior, _group_key),
        Rule("exterior_pit_wall", EXTERIOR_SIDE, _pit_wall, _exterior_pit, _group_key),
        Rule("negative_slab", NEGATIVE_SIDE, _negative_slab, key=_group_key),
    ]
)


def _wall(item: ClassifiedItem) -> Cells:
    cells: Cells = {HEIGHT: item.parsed.height, FT: this.C, SQ_FT: this.H * this.I}
    if item.parsed.get("pit") in _VOLUME_PITS:
        cells[WIDTH] = item.parsed.width
        cells[CY] = this.J * this.G / 27
    return cells


FORMULAS = {
    "exterior_wall": lambda item: {HEIGHT: item.parsed.height, FT: this.C, SQ_FT: this.H * this.I},
    "exterior_pit_wall": _wall,
    "negative_wall": _wall,
    "negative_slab": lambda item: {SQ_FT: this.C},
}


class Waterproofing(Discipline):
    """Exterior-side and negative-side membranes.

    A pit wall is measured on both faces: once on the exterior side with a 2 ft
    allowance and once on the negative side at the bracket height.
    """

    key = "waterproofing"
    title = "Waterproofing"
    labels = ("Waterproofing",)
    subsections = (EXTERIOR_SIDE, NEGATIVE_SIDE)
    rules = RULES
    formulas = FORMULAS

    def claim(self, rows, tracker):
        items = super().claim(rows, tracker)
        negative = [
            replace(item, subsection=NEGATIVE_SIDE, item_type="negative_wall", parsed=_negative_wall(item.raw))
            for item in items
            if item.item_type == "exterior_pit_wall"
        ]
        return items + negative


__all__ = ["RULES", "Waterproofing"]
