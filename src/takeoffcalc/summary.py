"""Condensed client-facing view of the calculation sheet.

Every number on the summary sheet is a formula pointing back at a sum row of the
calculation sheet, so the two sheets can never disagree.
"""
from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from .errors import InvariantViolation
from .formulas import Expr, at, total
from .layout import RowHandle, SheetBuilder
from .models import DERIVED_COLUMNS, TAKEOFF, RowKind, Sheet

logger = logging.getLogger(__name__)

DEFAULT_SUMMARY_SHEET = "Summary"


@dataclass(frozen=True)
class SectionTotals:
    """Sum rows of one calculation-sheet section, grouped by subsection."""

    title: str
    subsections: Tuple[Tuple[str, Tuple[int, ...]], ...]
    concrete_row: Optional[int] = None


def sections_from_context(context, concrete_sections: Sequence[str] = ("Foundation",)) -> List[SectionTotals]:
    """Collect the recorded sum rows of a finished layout, in sheet order."""

    grouped: "OrderedDict[str, OrderedDict[str, List[int]]]" = OrderedDict()
    for (section, subsection), handles in context.sums.items():
        bucket = grouped.setdefault(section, OrderedDict()).setdefault(subsection, [])
        bucket.extend(h.row_number for h in handles)
    found: List[SectionTotals] = []
    for section, subsections in grouped.items():
        concrete = None
        if section in concrete_sections and section in context.section_rows:
            concrete = context.section_rows[section].row_number
        found.append(
            SectionTotals(
                title=section,
                subsections=tuple((name, tuple(rows)) for name, rows in subsections.items()),
                concrete_row=concrete,
            )
        )
    return found


def _reference(sheet: Sheet, column: str, rows: Sequence[int]) -> Optional[Expr]:
    present = [r for r in rows if sheet.row(r).cell(column) is not None]
    if not present:
        return None
    if len(present) == 1:
        return getattr(at(present[0], sheet=sheet.name), column)
    return total(column, *((r, r) for r in present), sheet=sheet.name)


def _check_sum_rows(sheet: Sheet, rows: Sequence[int]) -> None:
    for number in rows:
        try:
            kind = sheet.row(number).kind
        except KeyError as exc:
            raise InvariantViolation(f"summary references missing row {number} of {sheet.name}") from exc
        if kind != RowKind.SUM:
            raise InvariantViolation(f"{sheet.name} row {number} is {kind.value}, not a sum row")


def build_summary(sheet: Sheet, sections: Sequence[SectionTotals], name: str = DEFAULT_SUMMARY_SHEET) -> Sheet:
    builder = SheetBuilder(name)
    builder.header()
    for section in sections:
        builder.section(section.title)
        handles: List[RowHandle] = []
        columns: Dict[str, None] = {}
        for subsection, rows in section.subsections:
            _check_sum_rows(sheet, rows)
            cells = {}
            for column in DERIVED_COLUMNS:
                ref = _reference(sheet, column, rows)
                if ref is not None:
                    cells[column] = ref
                    columns[column] = None
            if cells:
                handles.append(builder.note(subsection, cells, item_type="summary"))
        if handles:
            cells = {column: total(column, (handles[0], handles[-1])) for column in columns}
            if section.concrete_row is not None:
                cells[TAKEOFF] = at(section.concrete_row, sheet=sheet.name).C
            builder.sum(cells, label=f"Total {section.title}")
        builder.blank()
    summary = builder.build()
    logger.debug("Summary sheet has %d rows over %d sections", len(summary), len(sections))
    return summary


__all__ = ["DEFAULT_SUMMARY_SHEET", "SectionTotals", "build_summary", "sections_from_context"]
