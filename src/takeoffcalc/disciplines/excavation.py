"""Soil and rock excavation sections.

Both sections claim their own rows and additionally *peek* at foundation-shaped rows to
show excavation volumes for them. Peeked rows are never claimed here; Foundation (or SOE
for heel blocks) claims them in its own pass.
"""
from __future__ import annotations

import logging
import re
from dataclasses import replace
from typing import Dict, List, Optional, Sequence

from ..classifier import Rule, RuleTable, any_of, category_allows, contains, matches, normalize_text
from ..dimensions import assignment, bracket_values
from ..formulas import area_only, at, backfill_volume, roundup, sqrt, swell_excavation, this, total
from ..grouping import group_items
from ..layout import RowHandle, SheetBuilder
from ..models import (
    CY,
    FT,
    HEIGHT,
    LENGTH,
    QTY,
    SQ_FT,
    TAKEOFF,
    UNIT,
    WIDTH,
    ClassifiedItem,
    ParsedDimensions,
    RawRow,
)
from ..tracker import UsedRowTracker
from .base import Cells, Discipline, LayoutContext

logger = logging.getLogger(__name__)

EXCAVATION = "Excavation"
BACKFILL = "Backfill"
MUD_SLAB = "Mud slab"
LINE_DRILL = "Line drill"

PIPING_WIDTH = 3.0
PIPING_EXCAVATION_DEPTH = 2.5
PIPING_BACKFILL_DEPTH = 2.0
MUD_SLAB_WASTE = 1.2
SUMP_PIT_TAKEOFF = 2

_MUD_SLAB = re.compile(r"w/\s*(\d+(?:\.\d+)?)[\"']?\s*mud\s*slab", re.IGNORECASE)
_EXCLUDED = ("gravel", "rock excavation", "concrete pier")


def _excluded(text: str) -> bool:
    return any(word in text for word in _EXCLUDED)


# -- parsers ---------------------------------------------------------------------


def _piping(row: RawRow) -> ParsedDimensions:
    return ParsedDimensions(width=PIPING_WIDTH, height=PIPING_EXCAVATION_DEPTH)


def _first_as_width(row: RawRow) -> ParsedDimensions:
    found = bracket_values(row.description)
    return ParsedDimensions(width=found[0]) if found else ParsedDimensions()


def _plan(row: RawRow) -> ParsedDimensions:
    found = bracket_values(row.description)
    if len(found) >= 2:
        return ParsedDimensions(length=found[0], width=found[1])
    return ParsedDimensions()


def _depth(row: RawRow) -> ParsedDimensions:
    return ParsedDimensions(height=assignment(row.description, "H"))


def mud_slab_height(description: str) -> Optional[float]:
    match = _MUD_SLAB.search(description or "")
    return float(match.group(1)) / 12.0 if match else None


# Item-type resolution, most specific first.
TYPES = RuleTable(
    [
        Rule("underground_piping", EXCAVATION, contains("underground piping"), _piping),
        Rule("sf", EXCAVATION, matches(r"^sf\s*\("), _first_as_width),
        Rule("wf", EXCAVATION, matches(r"^wf-\d+\s*\("), _first_as_width),
        Rule("st", EXCAVATION, matches(r"^st-\d+\s*\("), _first_as_width),
        Rule("heel_block", EXCAVATION, contains("heel block"), _plan),
        Rule("pc", EXCAVATION, matches(r"^pc-\d+\s*\("), _plan),
        Rule("f", EXCAVATION, matches(r"^f-\d+\s*\("), _plan),
        Rule("exc", EXCAVATION, matches(r"^exc\s*\("), _depth),
        Rule("slope_exc", EXCAVATION, contains("slope exc"), _depth),
        Rule("exc_backfill", EXCAVATION, contains("exc & backfill", "excavation & backfill"), _depth),
        Rule("backfill", BACKFILL, matches(r"^backfill\s*\("), _depth),
        Rule("sewage_pit_slab", EXCAVATION, contains("duplex sewage ejector pit slab")),
    ]
)

_CLAIMS = any_of(
    matches(r"^exc\s*\("),
    contains("slope exc", "exc & backfill", "excavation & backfill", "underground piping"),
    matches(r"^backfill\s*\("),
)
_MIRRORS = any_of(
    matches(r"^(?:sf\s*\(|wf-\d+|st-\d+|pc-\d+|f-\d+\s*\()"),
    contains("heel block", "duplex sewage ejector pit slab"),
    matches(_MUD_SLAB.pattern),
)
_IN_BACKFILL = any_of(
    contains("underground piping", "slope exc", "exc & backfill", "excavation & backfill"),
    matches(r"^backfill\s*\("),
)


def claims_row(text: str) -> bool:
    return _CLAIMS(text) and not _excluded(text)


def mirrors_row(text: str) -> bool:
    return _MIRRORS(text) and not _excluded(text) and not _CLAIMS(text)


def _item(row: RawRow, subsection: str, claimed: bool, item_type: Optional[str] = None) -> Optional[ClassifiedItem]:
    rule = TYPES.match(row.description)
    if item_type is None and rule is None:
        return None
    parsed = rule.parser(row) if rule is not None else ParsedDimensions()
    resolved = item_type or rule.item_type
    if resolved == "mud_slab":
        parsed = ParsedDimensions(height=mud_slab_height(row.description))
    elif resolved == "underground_piping" and subsection == BACKFILL:
        parsed = replace(parsed, height=PIPING_BACKFILL_DEPTH)
    return ClassifiedItem(
        discipline="excavation",
        subsection=subsection,
        item_type=resolved,
        group_key=subsection.upper(),
        parsed=parsed,
        raw=row,
        claimed=claimed,
    )


def views(row: RawRow, claimed: bool) -> List[ClassifiedItem]:
    """Every subsection row one raw row produces in the Excavation section."""

    text = normalize_text(row.description)
    found: List[Optional[ClassifiedItem]] = []
    if not text.startswith("backfill"):
        found.append(_item(row, EXCAVATION, claimed))
    if claimed and _IN_BACKFILL(text):
        found.append(_item(row, BACKFILL, claimed))
    if _MUD_SLAB.search(text):
        found.append(_item(row, MUD_SLAB, claimed, item_type="mud_slab"))
    return [item for item in found if item is not None]


def aggregate_pit_slabs(items: Sequence[ClassifiedItem]) -> List[ClassifiedItem]:
    """Rows of identical sewage-pit-slab descriptions collapse into one with summed takeoff."""

    merged: List[ClassifiedItem] = []
    index: Dict[str, int] = {}
    for item in items:
        if item.item_type != "sewage_pit_slab":
            merged.append(item)
            continue
        position = index.get(item.description)
        if position is None:
            index[item.description] = len(merged)
            merged.append(item)
            continue
        first = merged[position]
        merged[position] = replace(first, takeoff=(first.quantity or 0.0) + (item.quantity or 0.0))
    return merged


# -- formulas --------------------------------------------------------------------

_SWELL = swell_excavation()
_BANK = backfill_volume()


def excavation_cells(item: ClassifiedItem) -> Cells:
    parsed = item.parsed
    kind = item.item_type
    backfill = item.subsection == BACKFILL
    cells: Cells = {}
    if parsed.length is not None:
        cells[LENGTH] = parsed.length
    if parsed.width is not None:
        cells[WIDTH] = parsed.width
    if parsed.height is not None:
        cells[HEIGHT] = parsed.height

    if kind == "mud_slab":
        cells.update({SQ_FT: this.C * MUD_SLAB_WASTE, **_BANK})
    elif kind in ("underground_piping", "sf", "wf", "st"):
        cells[SQ_FT] = this.C * this.G
        cells.update(_BANK if backfill else _SWELL)
    elif kind in ("heel_block", "pc", "f"):
        if (item.raw.unit or "").strip().upper() in ("", "EA"):
            cells.update({SQ_FT: this.F * this.G * this.C, **_SWELL})
    elif kind in ("exc", "slope_exc", "exc_backfill", "backfill"):
        cells[SQ_FT] = this.C
        cells.update(_BANK if backfill else _SWELL)
    elif kind == "sewage_pit_slab":
        cells.update({SQ_FT: this.C, **_SWELL})
    return cells


class Excavation(Discipline):
    key = "excavation"
    title = "Excavation"
    labels = ("Excavation",)
    subsections = (EXCAVATION, BACKFILL, MUD_SLAB)
    mirror_labels = ("Excavation", "Foundation", "SOE")

    def claim(self, rows: Sequence[RawRow], tracker: UsedRowTracker) -> List[ClassifiedItem]:
        items: List[ClassifiedItem] = []
        for row in rows:
            if tracker.is_used(row.source_index) or not category_allows(row.category, self.labels):
                continue
            if not claims_row(normalize_text(row.description)):
                continue
            tracker.mark_used(row.source_index, self.key)
            items.extend(views(row, claimed=True))
        return items

    def peek(self, rows: Sequence[RawRow]) -> List[ClassifiedItem]:
        items: List[ClassifiedItem] = []
        for row in rows:
            if not category_allows(row.category, self.mirror_labels):
                continue
            if mirrors_row(normalize_text(row.description)):
                items.extend(views(row, claimed=False))
        return items

    def cells(self, item: ClassifiedItem) -> Cells:
        return excavation_cells(item)

    def group(self, subsection, items):
        return group_items(aggregate_pit_slabs(items), columns_of=self.columns_of, merged_key=subsection.upper())

    def layout(self, builder: SheetBuilder, items: Sequence[ClassifiedItem], context: LayoutContext) -> None:
        if not items:
            return
        self.open_section(builder, context)
        ordered = sorted(items, key=lambda i: (self.subsections.index(i.subsection), i.raw.source_index))
        for subsection in self.subsections:
            members = [i for i in ordered if i.subsection == subsection]
            if not members:
                continue
            builder.subsection(subsection)
            last: Optional[RowHandle] = None
            for group in self.group(subsection, members):
                _, last = self.emit_group(builder, group, context)
            if subsection == EXCAVATION and last is not None:
                builder.blank()
                havg(builder, last)
            builder.blank()


def havg(builder: SheetBuilder, sum_row: RowHandle) -> RowHandle:
    """Average depth: swell-adjusted CY back to cubic feet over the excavated area."""

    ref = at(sum_row)
    return builder.note("Havg", {TAKEOFF: ref.L * 27 / ref.J}, item_type="havg")


# -- rock ------------------------------------------------------------------------------

ROCK_TYPES = RuleTable(
    [
        Rule("line_drilling", LINE_DRILL, contains("line drill"), _depth),
        Rule("rock_exc", EXCAVATION, contains("rock excavation"), _depth),
        Rule("concrete_pier", EXCAVATION, contains("concrete pier"), _plan),
        Rule("sewage_pit_slab", EXCAVATION, contains("duplex sewage ejector pit slab")),
    ]
)

_ROCK_CLAIMS = contains("rock excavation", "line drill")
_ROCK_MIRRORS = contains("concrete pier", "duplex sewage ejector pit slab")


def rock_cells(item: ClassifiedItem) -> Cells:
    parsed = item.parsed
    cells: Cells = {}
    if item.item_type == "concrete_pier":
        if parsed.length is not None:
            cells[LENGTH] = parsed.length
        if parsed.width is not None:
            cells[WIDTH] = parsed.width
        cells.update({SQ_FT: this.C * this.F * this.G, CY: this.J * this.H / 27})
    elif item.item_type in ("rock_exc", "sewage_pit_slab"):
        if parsed.height is not None:
            cells[HEIGHT] = parsed.height
        cells.update(area_only())
    elif item.item_type == "line_drilling":
        if parsed.height is not None:
            cells[HEIGHT] = parsed.height
        cells.update({QTY: roundup(this.H / 2, 0), FT: this.E * this.C})
    return cells


class RockExcavation(Discipline):
    key = "rock_excavation"
    title = "Rock Excavation"
    labels = ("Rock Excavation", "Excavation")
    subsections = (EXCAVATION, LINE_DRILL)
    mirror_labels = ("Rock Excavation", "Excavation", "Foundation")

    def _classify(self, row: RawRow, claimed: bool) -> Optional[ClassifiedItem]:
        item = ROCK_TYPES.classify(row, self.key, claimed=claimed)
        if item is None:
            return None
        return replace(item, group_key=item.subsection.upper())

    def claim(self, rows: Sequence[RawRow], tracker: UsedRowTracker) -> List[ClassifiedItem]:
        items: List[ClassifiedItem] = []
        for row in rows:
            if tracker.is_used(row.source_index) or not category_allows(row.category, self.labels):
                continue
            if not _ROCK_CLAIMS(normalize_text(row.description)):
                continue
            item = self._classify(row, claimed=True)
            if item is None:
                continue
            tracker.mark_used(row.source_index, self.key)
            items.append(item)
        return items

    def peek(self, rows: Sequence[RawRow]) -> List[ClassifiedItem]:
        items: List[ClassifiedItem] = []
        for row in rows:
            if not category_allows(row.category, self.mirror_labels):
                continue
            text = normalize_text(row.description)
            if _ROCK_MIRRORS(text) and not _ROCK_CLAIMS(text):
                item = self._classify(row, claimed=False)
                if item is not None:
                    items.append(item)
        return items

    def cells(self, item: ClassifiedItem) -> Cells:
        return rock_cells(item)

    def layout(self, builder: SheetBuilder, items: Sequence[ClassifiedItem], context: LayoutContext) -> None:
        if not items:
            return
        self.open_section(builder, context)
        rock = aggregate_pit_slabs(
            sorted((i for i in items if i.subsection == EXCAVATION), key=lambda i: i.raw.source_index)
        )
        drills = sorted((i for i in items if i.subsection == LINE_DRILL), key=lambda i: i.raw.source_index)

        builder.subsection(EXCAVATION)
        handles: List[RowHandle] = [builder.data(item, rock_cells(item)) for item in rock]
        sump = builder.note(
            "Sump pit",
            {TAKEOFF: SUMP_PIT_TAKEOFF, UNIT: "EA", SQ_FT: 16 * this.C, CY: 1.3 * this.C},
            item_type="sump_pit",
        )
        first = handles[0] if handles else sump
        rock_sum = builder.sum({SQ_FT: total(SQ_FT, (first, sump)), CY: total(CY, (first, sump))})
        context.record_sum(self.title, EXCAVATION, rock_sum)
        builder.blank()
        havg(builder, rock_sum)
        builder.blank()

        builder.subsection(LINE_DRILL)
        builder.note("", {QTY: "Lifts", HEIGHT: "Height"}, item_type="line_drill_header")
        rows: List[RowHandle] = []
        for item, handle in zip(rock, handles):
            ref = at(handle)
            if item.item_type == "concrete_pier":
                takeoff = (ref.G + ref.F) * 2 * ref.C
            elif item.item_type == "sewage_pit_slab":
                takeoff = sqrt(ref.C) * 4
            else:
                continue
            rows.append(
                builder.note(
                    item.description,
                    {TAKEOFF: takeoff, UNIT: "FT", HEIGHT: ref.H, QTY: roundup(this.H / 2, 0), FT: this.E * this.C},
                    item_type="line_drill_" + item.item_type,
                )
            )
        rows.append(
            builder.note("Sump pit", {TAKEOFF: at(sump).C * 8, UNIT: "FT", FT: this.C}, item_type="line_drill_sump_pit")
        )
        rows.extend(builder.data(item, rock_cells(item)) for item in drills)
        drill_sum = builder.sum({FT: total(FT, (rows[0], rows[-1])) * 2})
        context.record_sum(self.title, LINE_DRILL, drill_sum)
        builder.blank()


__all__ = [
    "BACKFILL",
    "EXCAVATION",
    "Excavation",
    "LINE_DRILL",
    "MUD_SLAB",
    "RockExcavation",
    "aggregate_pit_slabs",
    "claims_row",
    "excavation_cells",
    "havg",
    "mirrors_row",
    "mud_slab_height",
    "rock_cells",
    "views",
]
