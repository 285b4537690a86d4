"""Takeoff rows in, formula-annotated workbook out.

``compile_takeoff`` is a pure function of its input rows: every run owns its own
tracker, layout context and sheet builders, and all intermediate state is passed along
as return values.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .disciplines import Discipline, LayoutContext, default_disciplines
from .layout import SheetBuilder
from .models import ClassifiedItem, RawRow, Workbook
from .summary import DEFAULT_SUMMARY_SHEET, build_summary, sections_from_context
from .tracker import UsedRowTracker

logger = logging.getLogger(__name__)

DEFAULT_CALC_SHEET = "Calculations Sheet"


@dataclass(frozen=True)
class CompileResult:
    workbook: Workbook
    unused_rows: Tuple[RawRow, ...]
    claims: Dict[int, str]
    items: Dict[str, Tuple[ClassifiedItem, ...]]

    @property
    def calc_sheet(self):
        return self.workbook.sheets[0]


class _Stages:
    def __init__(self) -> None:
        self.counter = 0

    def __call__(self, message: str, *args: object) -> None:
        self.counter += 1
        logger.info("[pipeline:%02d] " + message, self.counter, *args)


def claim_all(
    disciplines: Sequence[Discipline], rows: Sequence[RawRow], tracker: UsedRowTracker
) -> Dict[str, List[ClassifiedItem]]:
    """Run every claiming pass in section order."""

    claimed: Dict[str, List[ClassifiedItem]] = {}
    for discipline in disciplines:
        items = discipline.claim(rows, tracker)
        claimed[discipline.key] = list(items)
        logger.info("           %-28s %d rows", discipline.title, len({i.raw.source_index for i in items}))
    return claimed


def peek_all(disciplines: Sequence[Discipline], rows: Sequence[RawRow]) -> Dict[str, List[ClassifiedItem]]:
    """Run the read-only mirror passes; they never see or touch the tracker."""

    return {discipline.key: list(discipline.peek(rows)) for discipline in disciplines}


def layout_all(
    disciplines: Sequence[Discipline],
    items: Dict[str, List[ClassifiedItem]],
    calc_sheet_name: str,
) -> Tuple[SheetBuilder, LayoutContext]:
    builder = SheetBuilder(calc_sheet_name)
    builder.header()
    context = LayoutContext(calc_sheet=calc_sheet_name)
    for discipline in disciplines:
        discipline.layout(builder, items.get(discipline.key, []), context)
    return builder, context


def compile_takeoff(
    rows: Iterable[RawRow],
    *,
    calc_sheet_name: str = DEFAULT_CALC_SHEET,
    summary_sheet_name: str = DEFAULT_SUMMARY_SHEET,
    include_summary: bool = True,
    disciplines: Optional[Sequence[Discipline]] = None,
) -> CompileResult:
    """Classify, group and lay out ``rows`` into a calculation (and summary) sheet."""

    rows = list(rows)
    disciplines = list(disciplines) if disciplines is not None else default_disciplines()
    stage = _Stages()
    tracker = UsedRowTracker()

    stage("Claiming %d takeoff rows", len(rows))
    claimed = claim_all(disciplines, rows, tracker)

    stage("Mirroring foundation-shaped rows into excavation")
    peeked = peek_all(disciplines, rows)
    items: Dict[str, List[ClassifiedItem]] = {}
    for discipline in disciplines:
        items[discipline.key] = claimed[discipline.key] + peeked[discipline.key]
        if peeked[discipline.key]:
            logger.debug("%s mirrored %d rows", discipline.title, len(peeked[discipline.key]))

    stage("Grouping and laying out %s", calc_sheet_name)
    builder, context = layout_all(disciplines, items, calc_sheet_name)
    calc = builder.build()
    logger.info("           %d rows, %d sum rows", len(calc), sum(len(h) for h in context.sums.values()))

    sheets = [calc]
    if include_summary:
        stage("Building %s", summary_sheet_name)
        sheets.append(build_summary(calc, sections_from_context(context), summary_sheet_name))

    unused = tuple(tracker.unused_rows(rows))
    stage("Done: %d rows claimed, %d unused", len(tracker), len(unused))
    return CompileResult(
        workbook=Workbook(tuple(sheets)),
        unused_rows=unused,
        claims=tracker.claims(),
        items={key: tuple(value) for key, value in items.items()},
    )


__all__ = ["CompileResult", "DEFAULT_CALC_SHEET", "claim_all", "compile_takeoff", "layout_all", "peek_all"]
