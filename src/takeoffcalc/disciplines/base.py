from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from ..classifier import RuleTable, claim
from ..formulas import total
from ..grouping import by_subsection, group_items
from ..layout import RowHandle, SheetBuilder
from ..models import (
    DERIVED_COLUMNS,
    HEIGHT,
    LENGTH,
    QTY,
    WIDTH,
    ClassifiedItem,
    Group,
    ParsedDimensions,
    RawRow,
)
from ..tracker import UsedRowTracker

logger = logging.getLogger(__name__)

Cells = Dict[str, Any]
CellsFor = Callable[[ClassifiedItem], Cells]


def dims(parsed: ParsedDimensions, *, length: bool = True, width: bool = True, height: bool = True, qty: bool = False) -> Cells:
    cells: Cells = {}
    if qty and parsed.qty is not None:
        cells[QTY] = parsed.qty
    if length and parsed.length is not None:
        cells[LENGTH] = parsed.length
    if width and parsed.width is not None:
        cells[WIDTH] = parsed.width
    if height and parsed.height is not None:
        cells[HEIGHT] = parsed.height
    return cells


@dataclass
class LayoutContext:
    """Handles shared between sections while one calculation sheet is laid out."""

    calc_sheet: str
    section_rows: Dict[str, RowHandle] = field(default_factory=dict)
    sums: Dict[Tuple[str, str], List[RowHandle]] = field(default_factory=dict)

    def record_sum(self, section: str, subsection: str, handle: RowHandle) -> None:
        self.sums.setdefault((section, subsection), []).append(handle)


def sum_cells(group: Group, handles: Sequence[RowHandle]) -> Cells:
    """Sum-row formulas for ``group`` whose member rows are ``handles``."""

    if group.sum_spec is None or not handles:
        return {}
    cells: Cells = {}
    for column in group.sum_spec.columns:
        spans = group.sum_spec.spans.get(column)
        if spans:
            ranges = tuple((handles[first], handles[last]) for first, last in spans)
        else:
            ranges = ((handles[0], handles[-1]),)
        cells[column] = total(column, *ranges)
    return cells


class Discipline:
    """One section of the calculation sheet: a rule table plus its layout."""

    key = "discipline"
    title = ""
    labels: Tuple[str, ...] = ()
    subsections: Tuple[str, ...] = ()
    rules = RuleTable(())
    formulas: Mapping[str, CellsFor] = {}

    def claim(self, rows: Sequence[RawRow], tracker: UsedRowTracker) -> List[ClassifiedItem]:
        items = claim(self.rules, rows, tracker, self.key, labels=self.labels)
        logger.debug("%s claimed %d rows", self.title, len(items))
        return items

    def peek(self, rows: Sequence[RawRow]) -> List[ClassifiedItem]:
        return []

    def cells(self, item: ClassifiedItem) -> Cells:
        builder = self.formulas.get(item.item_type)
        if builder is None:
            return {}
        return builder(item)

    def columns_of(self, item: ClassifiedItem) -> Iterable[str]:
        return [c for c in self.cells(item) if c in DERIVED_COLUMNS]

    def group(self, subsection: str, items: Sequence[ClassifiedItem]) -> List[Group]:
        return group_items(items, columns_of=self.columns_of)

    def open_section(self, builder: SheetBuilder, context: LayoutContext, **cells: Any) -> RowHandle:
        handle = builder.section(self.title, **cells)
        builder.blank()
        context.section_rows[self.title] = handle
        return handle

    def emit_group(
        self,
        builder: SheetBuilder,
        group: Group,
        context: LayoutContext,
        cells_for: Optional[CellsFor] = None,
    ) -> Tuple[List[RowHandle], RowHandle]:
        cells_for = cells_for or self.cells
        handles = [builder.data(item, cells_for(item)) for item in group.members]
        handle = builder.sum(sum_cells(group, handles))
        context.record_sum(self.title, group.subsection, handle)
        return handles, handle

    def layout(self, builder: SheetBuilder, items: Sequence[ClassifiedItem], context: LayoutContext) -> None:
        if not items:
            return
        self.open_section(builder, context)
        for subsection, members in by_subsection(items, self.subsections).items():
            builder.subsection(subsection)
            for group in self.group(subsection, members):
                self.emit_group(builder, group, context)
            builder.blank()


__all__ = [
    "Cells",
    "Discipline",
    "LayoutContext",
    "dims",
    "sum_cells",
]
