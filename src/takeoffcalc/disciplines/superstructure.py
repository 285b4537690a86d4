"""Superstructure concrete above grade."""
from __future__ import annotations

import re
from typing import Optional

from ..classifier import Rule, RuleTable, contains, excluding, matches
from ..dimensions import bracket_values, convert_to_feet, normalize_fractions
from ..formulas import Literal, area_only, box_volume, count_only, linear_to_area, this
from ..models import FT, HEIGHT, QTY, SQ_FT, WIDTH, ClassifiedItem, ParsedDimensions, RawRow
from .base import Cells, Discipline, dims

CIP_SLABS = "CIP Slabs"
BALCONY_SLAB = "Balcony slab"
TERRACE_SLAB = "Terrace slab"
PATCH_SLAB = "Patch slab"
SLAB_STEPS = "Slab steps"
LW_CONCRETE_FILL = "LW concrete fill"
SLAB_ON_METAL_DECK = "Slab on metal deck"
TOPPING_SLAB = "Topping slab"
THERMAL_BREAK = "Thermal break"
RAISED_SLAB = "Raised slab"
BUILT_UP_SLAB = "Built-up slab"
BUILTUP_RAMPS = "Builtup ramps"
BUILT_UP_STAIR = "Built-up stair"
CONCRETE_HANGER = "Concrete hanger"
SHEAR_WALLS = "Shear Walls"
PARAPET_WALLS = "Parapet walls"
COLUMNS = "Columns"
CONCRETE_POST = "Concrete post"
CONCRETE_ENCASEMENT = "Concrete encasement"
DROP_PANEL = "Drop panel"
BEAMS = "Beams"
CURBS = "Curbs"
CONCRETE_PAD = "Concrete pad"
NON_SHRINK_GROUT = "Non-shrink grout"
REPAIR_SCOPE = "Repair scope"

AREA, LINEAR, BOX, COUNT, RUN = "area", "linear", "box", "count", "run"

_EIGHT_INCH = Literal(8) / 12
_FLOOR_RANGE = re.compile(r"(\d+)(?:st|nd|rd|th)\s*fl\s*to\s*(\d+)(?:st|nd|rd|th)\s*fl", re.IGNORECASE)
_HEIGHT_KEY = re.compile(r"(?:height|ht\.?|h)\s*=\s*([^,\s]+)", re.IGNORECASE)
_PAD_COUNT = re.compile(r"\(\s*(\d+)\s*(?:no\.?|ea)?\s*\)", re.IGNORECASE)
_BEAM_MARK = re.compile(r"^'?\s*(\d+b-\d+|rb-\d+|bhb-\d+)", re.IGNORECASE)


def _inches_after(text: str, keyword: str) -> Optional[float]:
    match = re.search(re.escape(keyword) + r"\s*([0-9'\"\-.]+)", text, re.IGNORECASE)
    if not match:
        return None
    raw = match.group(1).strip()
    if not re.search(r"\d", raw):
        return None
    return convert_to_feet(raw if ("'" in raw or '"' in raw) else raw + '"')


def _any_inches(text: str) -> Optional[float]:
    match = re.search(r"(\d+(?:\.\d+)?)\s*\"", text)
    return float(match.group(1)) / 12.0 if match else None


def _height_key(text: str) -> Optional[float]:
    match = _HEIGHT_KEY.search(text)
    return convert_to_feet(match.group(1).strip()) if match else None


def _shape(shape: str, **fields) -> ParsedDimensions:
    extras = {"shape": shape}
    extras.update(fields.pop("extras", {}))
    return ParsedDimensions(extras=extras, **fields)


def _area(default: Optional[float] = None, keyword: Optional[str] = None):
    def parse(row: RawRow) -> ParsedDimensions:
        text = row.description
        height = _height_key(text)
        if height is None and keyword:
            height = _inches_after(text, keyword)
        if height is None:
            height = _any_inches(text)
        return _shape(AREA, height=height if height is not None else default)

    return parse


def _eight_inch(row: RawRow) -> ParsedDimensions:
    return _shape(AREA, extras={"height_expr": True})


def _slab_thickness(row: RawRow) -> ParsedDimensions:
    height = _inches_after(row.description, "slab")
    return _shape(AREA, height=height)


def _linear(row: RawRow) -> ParsedDimensions:
    found = bracket_values(row.description, last_with_x=True)
    if len(found) >= 2:
        return _shape(LINEAR, width=found[0], height=found[1])
    wide = re.search(r"([0-9'\"\-]+)\s*(?:wide|width)\s*,?\s*(?:height|ht|h)=([0-9'\"\-]+)", row.description, re.IGNORECASE)
    if wide:
        return _shape(LINEAR, width=convert_to_feet(wide.group(1)), height=convert_to_feet(wide.group(2)))
    return _shape(LINEAR)


def _slab_step(row: RawRow) -> ParsedDimensions:
    parsed = _linear(row)
    return _shape(LINEAR, width=parsed.width, height=parsed.height, qty=2)


def _box(row: RawRow) -> ParsedDimensions:
    found = bracket_values(row.description)
    if len(found) >= 3:
        return _shape(BOX, length=found[0], width=found[1], height=found[2])
    return _shape(BOX)


def _drop_panel(row: RawRow) -> ParsedDimensions:
    parsed = _box(row)
    if parsed.height is not None:
        return parsed
    height = _height_key(row.description)
    return _shape(AREA, height=height if height is not None else 0.67)


def _somd(row: RawRow) -> ParsedDimensions:
    """``4 1/2" LW concrete topping over 2" MD``: slab depth plus half the deck rib."""

    values = re.findall(r"(\d+(?:\.\d+)?(?:\s+\d+/\d+)?)\s*\"", normalize_fractions(row.description))
    if len(values) < 2:
        return _shape(AREA)
    first, second = (_inch_number(v) for v in values[:2])
    return _shape(AREA, extras={"somd": (first, second)})


def _inch_number(token: str) -> float:
    token = token.strip()
    mixed = re.match(r"(\d+)\s+(\d+)/(\d+)", token)
    if mixed:
        return int(mixed.group(1)) + int(mixed.group(2)) / int(mixed.group(3))
    return float(token)


def _thermal_break(row: RawRow) -> ParsedDimensions:
    floors = _FLOOR_RANGE.search(row.description)
    qty = None
    if floors and int(floors.group(2)) >= int(floors.group(1)):
        qty = int(floors.group(2)) - int(floors.group(1)) + 1
    return _shape(RUN, qty=qty)


def _built_up_stair(row: RawRow) -> ParsedDimensions:
    return _shape(BOX, length=3.0, extras={"stair": True})


def _pad(row: RawRow) -> ParsedDimensions:
    count = _PAD_COUNT.search(row.description)
    height = _inches_after(row.description, "pad")
    if height is None:
        height = _any_inches(row.description)
    return _shape(
        AREA,
        height=height if height is not None else 4 / 12,
        qty=float(count.group(1)) if count else None,
    )


def _repair(row: RawRow) -> ParsedDimensions:
    if "slab crack repair" in row.description.lower():
        return _shape(AREA, extras={"repair": True})
    return _shape(RUN)


def _count(row: RawRow) -> ParsedDimensions:
    return _shape(COUNT)


def _somd_key(parsed: ParsedDimensions, row: RawRow) -> str:
    pair = parsed.get("somd")
    if not pair:
        return "somd_other"
    return "somd_{:g}_{:g}".format(*pair)


def _cip_key(parsed: ParsedDimensions, row: RawRow) -> str:
    text = row.description.lower()
    if "roof" in text:
        return "roof"
    if parsed.get("height_expr") or (parsed.height is not None and abs(parsed.height - 8 / 12) < 0.001):
        return "slab8"
    return "slabVar"


_NOT_SUPER = ("detention tank lid slab", "duplex sewage ejector pit slab", "sump pump pit slab")


def _beam(text: str) -> bool:
    if any(n in text for n in ("secant pile", "core beam", "pile w/")):
        return False
    return bool(_BEAM_MARK.match(text)) and bool(re.search(r"\([^)]+x[^)]+\)", text))


def _plain_slab(text: str) -> bool:
    if not re.match(r"slab\s+[0-9'\"\-]", text):
        return False
    return not any(n in text for n in ("slab step", "patch slab", "topping slab", "overpour slab", "slab on "))


def _built_up_knee_wall(text: str) -> bool:
    return "knee wall" in text and ("builtup" in text or "built up" in text)


def _ramp_knee_wall(text: str) -> bool:
    return "knee wall" in text and "x" in text and bool(re.search(r"\)\s*\(\d+\)\s*$", text))


RULES = RuleTable(
    [
        Rule("slab_step", SLAB_STEPS, contains("slab step"), _slab_step),
        Rule(
            "lw_concrete_fill",
            LW_CONCRETE_FILL,
            contains("lw concrete fill", "light weight concrete fill"),
            _area(13 / 12, "concrete fill"),
        ),
        Rule("somd", SLAB_ON_METAL_DECK, contains("slab on metal deck", "somd"), _somd, _somd_key),
        Rule("cip_slab", CIP_SLABS, contains('cast in place slab 8"', 'cip slab 8"', 'roof slab 8"'), _eight_inch, _cip_key),
        Rule("balcony_slab", BALCONY_SLAB, contains("balcony slab"), _area(8 / 12, "slab")),
        Rule("terrace_slab", TERRACE_SLAB, contains("terrace slab"), _area(8 / 12, "slab")),
        Rule("cip_slab", CIP_SLABS, _plain_slab, _slab_thickness, _cip_key),
        Rule("cip_slab", CIP_SLABS, excluding(contains('slab 8"'), *_NOT_SUPER), _eight_inch, _cip_key),
        Rule("patch_slab", PATCH_SLAB, contains("patch slab"), _area(0.5)),
        Rule("topping_slab", TOPPING_SLAB, contains("topping slab", "overpour slab"), _area(2 / 12)),
        Rule("thermal_break", THERMAL_BREAK, contains("thermal break"), _thermal_break),
        Rule("built_up_knee_wall", BUILT_UP_SLAB, _built_up_knee_wall, _linear),
        Rule("concrete_hanger", CONCRETE_HANGER, contains("concrete hanger"), _box),
        Rule(
            "built_up_stair",
            BUILT_UP_STAIR,
            lambda t: "built up stairs" in t or ("built up stair" in t and "@" not in t),
            _built_up_stair,
        ),
        Rule("builtup_ramp", BUILTUP_RAMPS, contains("builtup ramp", "built up ramp"), _area(3 / 12, "ramp")),
        Rule("ramp_knee_wall", BUILTUP_RAMPS, _ramp_knee_wall, _linear),
        Rule("raised_knee_wall", RAISED_SLAB, lambda t: "knee wall" in t and "x" in t, _linear),
        Rule("raised_slab", RAISED_SLAB, contains("raised slab"), _area(4 / 12, "raised slab")),
        Rule("built_up_slab", BUILT_UP_SLAB, contains("builtup slab", "built up slab"), _area(3 / 12, "slab")),
        Rule("shear_wall", SHEAR_WALLS, contains("sw ", "shear wall", "concrete wall"), _linear),
        Rule("parapet_wall", PARAPET_WALLS, contains("parapet wall"), _linear),
        Rule(
            "columns",
            COLUMNS,
            lambda t: "as per takeoff count" in t or ("column" in t and "count" in t),
            _count,
        ),
        Rule("concrete_post", CONCRETE_POST, contains("concrete post"), _box),
        Rule("concrete_encasement", CONCRETE_ENCASEMENT, contains("concrete encasement"), _box),
        Rule("drop_panel", DROP_PANEL, contains("drop panel"), _drop_panel),
        Rule("beam", BEAMS, _beam, _linear),
        Rule("curb", CURBS, excluding(contains("curb"), "- bpp ", "existing"), _linear),
        Rule("concrete_pad", CONCRETE_PAD, excluding(matches(r"\bpads?\b"), "transformer"), _pad),
        Rule("non_shrink_grout", NON_SHRINK_GROUT, contains("non-shrink grout", "non shrink grout"), _count),
        Rule(
            "repair",
            REPAIR_SCOPE,
            contains("concrete wall crack repair", "slab crack repair", "column crack repair"),
            _repair,
        ),
    ]
)


def cells_for(item: ClassifiedItem) -> Cells:
    parsed = item.parsed
    shape = parsed.get("shape")
    if shape == AREA:
        height = parsed.height
        if parsed.get("height_expr"):
            height = _EIGHT_INCH
        elif parsed.get("somd"):
            first, second = parsed.get("somd")
            height = (Literal(first) + Literal(second) / 2) / 12
        if parsed.get("repair"):
            return {SQ_FT: this.C}
        cells: Cells = {HEIGHT: height, **area_only()}
        if parsed.qty is not None:
            cells[QTY] = parsed.qty
        return cells
    if shape == LINEAR:
        return {**dims(parsed, length=False, qty=True), **linear_to_area()}
    if shape == BOX:
        cells = {**dims(parsed), **box_volume()}
        if parsed.get("stair"):
            cells[WIDTH] = Literal(11) / 12
            cells[HEIGHT] = Literal(7) / 12
        return cells
    if shape == RUN:
        cells = {FT: this.C}
        if parsed.qty is not None:
            cells[QTY] = parsed.qty
        return cells
    if shape == COUNT:
        return count_only()
    return {}


class Superstructure(Discipline):
    key = "superstructure"
    title = "Superstructure"
    labels = ("Superstructure",)
    subsections = (
        CIP_SLABS,
        BALCONY_SLAB,
        TERRACE_SLAB,
        PATCH_SLAB,
        SLAB_STEPS,
        LW_CONCRETE_FILL,
        SLAB_ON_METAL_DECK,
        TOPPING_SLAB,
        THERMAL_BREAK,
        RAISED_SLAB,
        BUILT_UP_SLAB,
        BUILTUP_RAMPS,
        BUILT_UP_STAIR,
        CONCRETE_HANGER,
        SHEAR_WALLS,
        PARAPET_WALLS,
        COLUMNS,
        CONCRETE_POST,
        CONCRETE_ENCASEMENT,
        DROP_PANEL,
        BEAMS,
        CURBS,
        CONCRETE_PAD,
        NON_SHRINK_GROUT,
        REPAIR_SCOPE,
    )
    rules = RULES

    def cells(self, item: ClassifiedItem) -> Cells:
        return cells_for(item)


__all__ = ["RULES", "Superstructure", "cells_for"]
