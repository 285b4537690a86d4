"""Support of excavation (temporary shoring)."""
from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional, Sequence

from ..classifier import Rule, RuleTable, contains, excluding, matches
from ..dimensions import (
    assignment,
    at_label,
    bracket_values,
    convert_to_feet,
    extract_thickness,
    rock_socket,
    rolled_section_weight,
    round_up_to_5,
)
from ..formulas import area_only, at, roundup, this
from ..grouping import group_items
from ..layout import RowHandle, SheetBuilder
from ..models import (
    FT,
    HEIGHT,
    LENGTH,
    QTY,
    QTY_FINAL,
    SQ_FT,
    TAKEOFF,
    UNIT,
    WIDTH,
    CY,
    LBS,
    ClassifiedItem,
    Group,
    ParsedDimensions,
    RawRow,
)
from . import piles
from .base import Cells, Discipline, LayoutContext, dims

logger = logging.getLogger(__name__)

DRILLED_SOLDIER_PILE = "Drilled soldier pile"
HP_SOLDIER_PILE = "HP soldier pile"
PRIMARY_SECANT = "Primary secant piles"
SECONDARY_SECANT = "Secondary secant piles"
TANGENT = "Tangent piles"
SHEET_PILE = "Sheet pile"
TIMBER_LAGGING = "Timber lagging"
BACKPACKING = "Backpacking"
TIMBER_SHEETING = "Timber sheeting"
WALER = "Waler"
RAKER = "Raker"
UPPER_RAKER = "Upper Raker"
LOWER_RAKER = "Lower Raker"
STAND_OFF = "Stand off"
KICKER = "Kicker"
CHANNEL = "Channel"
ROLL_CHOCK = "Roll chock"
STUD_BEAM = "Stud beam"
INNER_CORNER_BRACE = "Inner corner brace"
KNEE_BRACE = "Knee brace"
SUPPORTING_ANGLE = "Supporting angle"
PARGING = "Parging"
HEEL_BLOCKS = "Heel blocks"
UNDERPINNING = "Underpinning"
SHIMS = "Shims"
ROCK_ANCHORS = "Rock anchors"
ROCK_BOLTS = "Rock bolts"
ANCHOR = "Anchor"
TIE_BACK = "Tie back"
RETENTION_PIERS = "Concrete soil retention piers"
GUIDE_WALL = "Guide wall"
DOWEL_BAR = "Dowel bar"
ROCK_PINS = "Rock pins"
SHOTCRETE = "Shotcrete"
PERMISSION_GROUTING = "Permission grouting"
BUTTONS = "Buttons"
ROCK_STABILIZATION = "Rock stabilization"
FORM_BOARD = "Form board"

RAKER_SLOPE_FACTOR = 1.15
ANCHOR_EXTRA_LENGTH = 5

_COUNT = re.compile(r"\((\d+)\)\s*no", re.IGNORECASE)
_PZ = re.compile(r"\bPZ[-\s]?(\d+(?:\.\d+)?)", re.IGNORECASE)
_SPACING = re.compile(r"@\s*(\d[0-9'\"\-./ ]*?)\s*o\.?\s*c", re.IGNORECASE)
_BACKPACKING = re.compile(r"w/\s*backpacking", re.IGNORECASE)


def _length_after(text: str, label: str) -> Optional[float]:
    match = re.search(label + r"\s*(?:length)?\s*[=:]?\s*(\d[0-9'\"\-./]*)", text, re.IGNORECASE)
    return convert_to_feet(match.group(1)) if match else None


def _count(text: str) -> Optional[float]:
    match = _COUNT.search(text)
    return float(match.group(1)) if match else None


# -- parsers ---------------------------------------------------------------------


def _drilled(row: RawRow) -> ParsedDimensions:
    return piles.parse_drilled(row.description)


def _hp(row: RawRow) -> ParsedDimensions:
    return piles.parse_hp(row.description)


def _height(row: RawRow) -> Optional[float]:
    height = assignment(row.description, "H")
    if height is None:
        height = assignment(row.description, "LF")
    return height


def _rounded_pile(row: RawRow) -> ParsedDimensions:
    height = _height(row)
    return ParsedDimensions(
        height=height,
        weight=rolled_section_weight(row.description),
        calculated_height=round_up_to_5(height) if height else None,
    )


def _sheet_pile(row: RawRow) -> ParsedDimensions:
    height = _height(row)
    match = _PZ.search(row.description)
    return ParsedDimensions(
        height=height,
        weight=float(match.group(1)) if match else None,
        calculated_height=round_up_to_5(height) if height else None,
    )


def _member(row: RawRow) -> ParsedDimensions:
    height = _height(row)
    return ParsedDimensions(
        height=height,
        calculated_height=height,
        weight=rolled_section_weight(row.description),
        qty=_count(row.description),
    )


def _box(row: RawRow) -> ParsedDimensions:
    found = bracket_values(row.description)
    if len(found) >= 3:
        return ParsedDimensions(length=found[0], width=found[1], height=found[2])
    if len(found) == 2:
        return ParsedDimensions(width=found[0], height=found[1])
    return ParsedDimensions()


def _shims(row: RawRow) -> ParsedDimensions:
    found = bracket_values(row.description)
    width = found[0] if found else extract_thickness(row.description)
    return ParsedDimensions(width=width)


def _anchor_lengths(row: RawRow) -> ParsedDimensions:
    free = _length_after(row.description, r"free")
    bond = _length_after(row.description, r"bond")
    return ParsedDimensions(extras={"free": free, "bond": bond})


def _rock_anchor(row: RawRow) -> ParsedDimensions:
    base = _anchor_lengths(row)
    free, bond = base.get("free"), base.get("bond")
    length = None
    if free or bond:
        length = round_up_to_5((free or 0.0) + (bond or 0.0)) + ANCHOR_EXTRA_LENGTH
    return ParsedDimensions(length=length, extras=base.extras)


def _rock_bolt(row: RawRow) -> ParsedDimensions:
    base = _anchor_lengths(row)
    spacing = _SPACING.search(row.description)
    bond = base.get("bond")
    return ParsedDimensions(
        length=(bond + ANCHOR_EXTRA_LENGTH) if bond is not None else None,
        extras={**base.extras, "spacing": convert_to_feet(spacing.group(1)) if spacing else None},
    )


def _tie_back(row: RawRow) -> ParsedDimensions:
    base = _anchor_lengths(row)
    free, bond = base.get("free"), base.get("bond")
    if free or bond:
        height = round_up_to_5((free or 0.0) + (bond or 0.0))
    else:
        raw = _height(row)
        height = round_up_to_5(raw) if raw else None
    return ParsedDimensions(calculated_height=height, extras=base.extras)


def _guide_wall(row: RawRow) -> ParsedDimensions:
    found = bracket_values(row.description)
    if len(found) >= 2:
        return ParsedDimensions(width=found[0], height=found[1])
    return ParsedDimensions(height=_height(row))


def _socketed(row: RawRow) -> ParsedDimensions:
    height = _height(row)
    socket = rock_socket(row.description)
    total = (height or 0.0) + (socket or 0.0)
    return ParsedDimensions(height=total or None, rock_socket=socket, qty=_count(row.description))


def _face(row: RawRow) -> ParsedDimensions:
    height = _height(row)
    if height is None:
        height = extract_thickness(row.description)
    width = extract_thickness(row.description) if height is not None else None
    return ParsedDimensions(height=height, width=width if width != height else None)


# -- group keys ------------------------------------------------------------------


def _drilled_key(parsed: ParsedDimensions, row: RawRow) -> str:
    return piles.drilled_soldier_key(parsed)


def _hp_key(parsed: ParsedDimensions, row: RawRow) -> str:
    return piles.hp_key(parsed)


def _at_key(parsed: ParsedDimensions, row: RawRow) -> str:
    return at_label(row.description) or "Other"


_SOLDIER = excluding(contains("soldier pile"), "supporting angle", "secant", "tangent", "timber")

RULES = RuleTable(
    [
        Rule("hp", HP_SOLDIER_PILE, lambda t: _SOLDIER(t) and bool(re.search(r"hp\s*\d+\s*x\s*\d+", t)), _hp, _hp_key),
        Rule("drilled", DRILLED_SOLDIER_PILE, _SOLDIER, _drilled, _drilled_key),
        Rule("primary_secant", PRIMARY_SECANT, contains("primary secant pile"), _rounded_pile),
        Rule("secondary_secant", SECONDARY_SECANT, contains("secondary secant pile"), _rounded_pile),
        Rule("tangent", TANGENT, contains("tangent pile"), _rounded_pile),
        Rule("sheet_pile", SHEET_PILE, contains("sheet pile"), _sheet_pile),
        Rule("timber_lagging", TIMBER_LAGGING, excluding(contains("timber lagging"), "supporting angle"), _member),
        Rule("timber_sheeting", TIMBER_SHEETING, contains("timber sheeting"), _member),
        Rule("supporting_angle", SUPPORTING_ANGLE, contains("supporting angle"), _member, _at_key),
        Rule("waler", WALER, contains("waler"), _member),
        Rule("upper_raker", UPPER_RAKER, contains("upper raker"), _member),
        Rule("lower_raker", LOWER_RAKER, contains("lower raker"), _member),
        Rule("raker", RAKER, excluding(contains("raker"), "upper", "lower"), _member),
        Rule("stand_off", STAND_OFF, contains("stand off"), _member),
        Rule("kicker", KICKER, contains("kicker"), _member),
        Rule("channel", CHANNEL, excluding(contains("channel"), "bollard"), _member),
        Rule("roll_chock", ROLL_CHOCK, contains("roll chock"), _member),
        Rule("stud_beam", STUD_BEAM, contains("stud beam"), _member),
        Rule("inner_corner_brace", INNER_CORNER_BRACE, contains("inner corner brace"), _member),
        Rule("knee_brace", KNEE_BRACE, contains("knee brace"), _member),
        Rule("parging", PARGING, contains("parging"), _member),
        Rule("heel_block", HEEL_BLOCKS, contains("heel block"), _box),
        Rule("underpinning", UNDERPINNING, contains("underpinning"), _box),
        Rule("shims", SHIMS, matches(r"\bshims?\b"), _shims),
        Rule("rock_anchor", ROCK_ANCHORS, contains("rock anchor"), _rock_anchor),
        Rule("rock_bolt", ROCK_BOLTS, contains("rock bolt"), _rock_bolt),
        Rule("anchor", ANCHOR, contains("anchor"), _tie_back),
        Rule("tie_back", TIE_BACK, contains("tie back", "tieback", "tie-back"), _tie_back),
        Rule("concrete_soil_retention_pier", RETENTION_PIERS, contains("concrete soil retention pier"), _box),
        Rule("guide_wall", GUIDE_WALL, contains("guide wall"), _guide_wall),
        Rule("dowel_bar", DOWEL_BAR, contains("dowel bar"), _socketed),
        Rule("rock_pin", ROCK_PINS, contains("rock pin"), _socketed),
        Rule("shotcrete", SHOTCRETE, contains("shotcrete"), _face),
        Rule("permission_grouting", PERMISSION_GROUTING, contains("permission grouting"), _face),
        Rule("button", BUTTONS, matches(r"\bbuttons?\b"), _box),
        Rule("rock_stabilization", ROCK_STABILIZATION, contains("rock stabilization"), _face),
        Rule("form_board", FORM_BOARD, contains("form board"), _face),
    ]
)


# -- formulas --------------------------------------------------------------------


def _weight(item: ClassifiedItem) -> float:
    return round(item.parsed.weight or 0.0, 3)


def _pile(item: ClassifiedItem) -> Cells:
    return {
        HEIGHT: item.parsed.calculated_height,
        FT: this.H * this.C,
        LBS: this.I * _weight(item),
        QTY_FINAL: this.C,
    }


def _secant(item: ClassifiedItem) -> Cells:
    return {HEIGHT: item.parsed.calculated_height, FT: this.H * this.C, QTY_FINAL: this.C}


def _sheet(item: ClassifiedItem) -> Cells:
    return {
        HEIGHT: item.parsed.calculated_height,
        FT: this.C,
        SQ_FT: this.I * this.H,
        LBS: this.J * _weight(item),
    }


def _face_area(item: ClassifiedItem) -> Cells:
    return {HEIGHT: item.parsed.height, FT: this.C, SQ_FT: this.I * this.H}


def _bracing(item: ClassifiedItem) -> Cells:
    return {FT: this.C, LBS: this.I * _weight(item), QTY_FINAL: this.E}


def _raker(item: ClassifiedItem) -> Cells:
    return {FT: this.C * RAKER_SLOPE_FACTOR, LBS: this.I * _weight(item), QTY_FINAL: this.E}


def _stiffener(item: ClassifiedItem) -> Cells:
    return {
        QTY: item.parsed.qty,
        HEIGHT: item.parsed.height,
        FT: this.C * this.H,
        LBS: this.I * _weight(item),
        QTY_FINAL: this.C,
    }


def _angle(item: ClassifiedItem) -> Cells:
    return {
        QTY: item.parsed.qty,
        HEIGHT: item.parsed.height,
        FT: this.H * this.E * this.C,
        LBS: this.I * _weight(item),
        QTY_FINAL: this.C * this.E,
    }


def _heel_block(item: ClassifiedItem) -> Cells:
    return {
        **dims(item.parsed),
        SQ_FT: this.C * this.H * this.G,
        CY: this.J * this.F / 27,
        QTY_FINAL: this.C,
    }


def _underpinning(item: ClassifiedItem) -> Cells:
    return {
        **dims(item.parsed),
        FT: this.F * this.C,
        SQ_FT: this.C * this.H * this.G,
        CY: this.J * this.F / 27,
        QTY_FINAL: this.C,
    }


def _rock_anchor_cells(item: ClassifiedItem) -> Cells:
    return {LENGTH: item.parsed.length, FT: this.F * this.C, QTY_FINAL: this.C}


def _rock_bolt_cells(item: ClassifiedItem) -> Cells:
    spacing = item.parsed.get("spacing")
    cells: Cells = {LENGTH: item.parsed.length, FT: this.F * this.E, QTY_FINAL: this.E}
    if spacing:
        cells[QTY] = roundup(this.C / spacing, 0) + 1
    return cells


def _tie_back_cells(item: ClassifiedItem) -> Cells:
    return {HEIGHT: item.parsed.calculated_height, FT: this.H * this.C, QTY_FINAL: this.C}


def _guide_wall_cells(item: ClassifiedItem) -> Cells:
    return {
        WIDTH: item.parsed.width,
        HEIGHT: item.parsed.height,
        FT: this.C,
        SQ_FT: this.I * this.G,
        CY: this.J * this.H / 27,
    }


def _dowel(item: ClassifiedItem) -> Cells:
    qty = item.parsed.qty if item.item_type == "dowel_bar" else 1
    return {
        QTY: qty,
        HEIGHT: item.parsed.height,
        FT: this.C * this.E * this.H,
        QTY_FINAL: this.C * this.E,
    }


def _shotcrete(item: ClassifiedItem) -> Cells:
    return {
        WIDTH: item.parsed.width,
        HEIGHT: item.parsed.height,
        FT: this.C,
        SQ_FT: this.C * this.H,
        CY: this.J * this.G / 27,
    }


def _grouting(item: ClassifiedItem) -> Cells:
    return {HEIGHT: item.parsed.height, FT: this.C, SQ_FT: this.C * this.H}


def _stabilization(item: ClassifiedItem) -> Cells:
    return {HEIGHT: item.parsed.height, **area_only()}


def _shim_cells(item: ClassifiedItem) -> Cells:
    return {WIDTH: item.parsed.width, FT: this.C, SQ_FT: this.I * this.G}


FORMULAS = {
    "hp": _pile,
    "drilled": _pile,
    "primary_secant": _secant,
    "tangent": _secant,
    "secondary_secant": _pile,
    "sheet_pile": _sheet,
    "timber_lagging": _face_area,
    "timber_sheeting": _face_area,
    "parging": _face_area,
    "waler": _bracing,
    "inner_corner_brace": _bracing,
    "stand_off": _bracing,
    "kicker": _bracing,
    "raker": _raker,
    "upper_raker": _raker,
    "lower_raker": _raker,
    "channel": _stiffener,
    "roll_chock": _stiffener,
    "stud_beam": _stiffener,
    "knee_brace": _stiffener,
    "supporting_angle": _angle,
    "heel_block": _heel_block,
    "concrete_soil_retention_pier": _heel_block,
    "button": _heel_block,
    "underpinning": _underpinning,
    "rock_anchor": _rock_anchor_cells,
    "rock_bolt": _rock_bolt_cells,
    "anchor": _tie_back_cells,
    "tie_back": _tie_back_cells,
    "guide_wall": _guide_wall_cells,
    "dowel_bar": _dowel,
    "rock_pin": _dowel,
    "shotcrete": _shotcrete,
    "permission_grouting": _grouting,
    "form_board": _grouting,
    "rock_stabilization": _stabilization,
    "shims": _shim_cells,
}


class SupportOfExcavation(Discipline):
    key = "soe"
    title = "SOE"
    labels = ("SOE", "Support of Excavation", "Shoring")
    subsections = (
        DRILLED_SOLDIER_PILE,
        HP_SOLDIER_PILE,
        PRIMARY_SECANT,
        SECONDARY_SECANT,
        TANGENT,
        SHEET_PILE,
        TIMBER_LAGGING,
        BACKPACKING,
        TIMBER_SHEETING,
        WALER,
        RAKER,
        UPPER_RAKER,
        LOWER_RAKER,
        STAND_OFF,
        KICKER,
        CHANNEL,
        ROLL_CHOCK,
        STUD_BEAM,
        INNER_CORNER_BRACE,
        KNEE_BRACE,
        SUPPORTING_ANGLE,
        PARGING,
        HEEL_BLOCKS,
        UNDERPINNING,
        SHIMS,
        ROCK_ANCHORS,
        ROCK_BOLTS,
        ANCHOR,
        TIE_BACK,
        RETENTION_PIERS,
        GUIDE_WALL,
        DOWEL_BAR,
        ROCK_PINS,
        SHOTCRETE,
        PERMISSION_GROUTING,
        BUTTONS,
        ROCK_STABILIZATION,
        FORM_BOARD,
    )
    rules = RULES
    formulas = FORMULAS

    def group(self, subsection: str, items: Sequence[ClassifiedItem]) -> List[Group]:
        if subsection == DRILLED_SOLDIER_PILE:
            groups = group_items(items, columns_of=self.columns_of, merged_key="DRILLED-MERGED")
            ordered = sorted(
                (g for g in groups if not g.merged), key=lambda g: piles.drilled_sort_key(g.members[0].parsed)
            )
            return ordered + [g for g in groups if g.merged]
        if subsection == HP_SOLDIER_PILE:
            groups = group_items(items, columns_of=self.columns_of, merged_key="HP-UNIQUE")
            unique = [g for g in groups if g.merged]
            rest = sorted(
                (g for g in groups if not g.merged),
                key=lambda g: g.members[0].parsed.calculated_height or 0.0,
            )
            return unique + rest
        if subsection == SUPPORTING_ANGLE:
            return group_items(items, columns_of=self.columns_of, merge_singletons=False)
        return group_items(items, columns_of=self.columns_of, key=lambda item: subsection)

    def layout(self, builder: SheetBuilder, items: Sequence[ClassifiedItem], context: LayoutContext) -> None:
        if not items:
            return
        self.open_section(builder, context)
        by_sub: Dict[str, List[ClassifiedItem]] = {}
        for item in items:
            by_sub.setdefault(item.subsection, []).append(item)

        lagging_sum: Optional[RowHandle] = None
        underpinning_sum: Optional[RowHandle] = None
        backpacking = any(_BACKPACKING.search(i.description) for i in by_sub.get(TIMBER_LAGGING, []))

        for subsection in self.subsections:
            if subsection == BACKPACKING:
                if backpacking and lagging_sum is not None:
                    builder.subsection(BACKPACKING)
                    builder.note(
                        "Backpacking",
                        {UNIT: "SQ FT", TAKEOFF: at(lagging_sum).J, SQ_FT: this.C},
                        item_type="backpacking",
                    )
                    builder.blank()
                continue
            members = by_sub.get(subsection)
            if not members:
                continue
            builder.subsection(subsection)
            last: Optional[RowHandle] = None
            for group in self.group(subsection, members):
                cells_for = self.cells
                if subsection == SHIMS:
                    cells_for = _referenced_shim_cells(underpinning_sum)
                _, last = self.emit_group(builder, group, context, cells_for)
            if subsection == TIMBER_LAGGING:
                lagging_sum = last
            elif subsection == UNDERPINNING:
                underpinning_sum = last
            builder.blank()


def _referenced_shim_cells(underpinning_sum: Optional[RowHandle]):
    def cells(item: ClassifiedItem) -> Cells:
        found = _shim_cells(item)
        if underpinning_sum is not None:
            found[FT] = at(underpinning_sum).I
        return found

    return cells


__all__ = ["RULES", "SupportOfExcavation"]
