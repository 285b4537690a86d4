from __future__ import annotations

import re

from ..classifier import Predicate, Rule, RuleTable, contains
from ..dimensions import bracket_values, extract_thickness, first_bracket_token
from ..formulas import area_only, this
from ..models import CY, HEIGHT, QTY_FINAL, SQ_FT, ParsedDimensions, RawRow
from .base import Discipline, dims

DEFAULT_SLAB_THICKNESS = 4 / 12

SOG = "Demo slab on grade"
ROG = "Demo Ramp on grade"
STRIP_FOOTING = "Demo strip footing"
FOUNDATION_WALL = "Demo foundation wall"
RETAINING_WALL = "Demo retaining wall"
ISOLATED_FOOTING = "Demo isolated footing"
STAIR = "Demo stair on grade"


def _slab(row: RawRow) -> ParsedDimensions:
    return ParsedDimensions(height=extract_thickness(row.description) or DEFAULT_SLAB_THICKNESS)


def _width_height(row: RawRow) -> ParsedDimensions:
    found = bracket_values(row.description)
    if len(found) < 2:
        return ParsedDimensions()
    return ParsedDimensions(width=found[0] or None, height=found[1] or None)


def _box(row: RawRow) -> ParsedDimensions:
    found = bracket_values(row.description)
    if len(found) < 3:
        return ParsedDimensions()
    return ParsedDimensions(length=found[0], width=found[1], height=found[2])


def _thickness_key(parsed: ParsedDimensions, row: RawRow) -> str:
    match = re.search(r"(\d+)[\"']?\s*thick", row.description, re.IGNORECASE)
    return f"THICK_{match.group(1)}" if match else "DEFAULT"


def _bracket_key(parsed: ParsedDimensions, row: RawRow) -> str:
    token = first_bracket_token(row.description)
    return f"DIM_{token}" if token else "DEFAULT"


def _demo(needle: str) -> Predicate:
    inner = contains(needle)
    return lambda text: text.startswith("demo ") and inner(text)


RULES = RuleTable(
    [
        Rule("demo_sog", SOG, _demo("demo sog"), _slab, _thickness_key),
        Rule("demo_rog", ROG, _demo("demo rog"), _slab, _thickness_key),
        Rule("demo_sf", STRIP_FOOTING, _demo("demo sf"), _width_height, _bracket_key),
        Rule("demo_fw", FOUNDATION_WALL, _demo("demo fw"), _width_height, _bracket_key),
        Rule("demo_rw", RETAINING_WALL, _demo("demo rw"), _width_height, _bracket_key),
        Rule("demo_isolated_footing", ISOLATED_FOOTING, _demo("demo isolated footing"), _box, _bracket_key),
        Rule("demo_stair", STAIR, _demo("demo stair"), _slab, _bracket_key),
    ]
)


def _area(item):
    return {HEIGHT: item.parsed.height, **area_only()}


def _strip(item):
    return {**dims(item.parsed, length=False), SQ_FT: this.C * this.G, CY: this.J * this.H / 27}


def _footing(item):
    return {
        **dims(item.parsed),
        SQ_FT: this.F * this.G * this.C,
        CY: this.J * this.H / 27,
        QTY_FINAL: this.C,
    }


class Demolition(Discipline):
    key = "demolition"
    title = "Demolition"
    labels = ("Demolition",)
    subsections = (SOG, ROG, STRIP_FOOTING, FOUNDATION_WALL, RETAINING_WALL, ISOLATED_FOOTING, STAIR)
    rules = RULES
    formulas = {
        "demo_sog": _area,
        "demo_rog": _area,
        "demo_stair": _area,
        "demo_sf": _strip,
        "demo_fw": _strip,
        "demo_rw": _strip,
        "demo_isolated_footing": _footing,
    }
