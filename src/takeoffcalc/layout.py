"""Row assembly for one output sheet.

Rows are appended in display order and referenced through :class:`RowHandle` objects.
``build`` numbers the rows first and only then binds formulas, so a formula can point
at any handle it holds; the reference rules are checked while binding.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .errors import InvariantViolation
from .formulas import Expr, bind, formula_cell
from .models import (
    COLUMN_TITLES,
    ClassifiedItem,
    ESTIMATE,
    OutputRow,
    PARTICULARS,
    RAW_ROW,
    RowKind,
    Sheet,
    TAKEOFF,
    UNIT,
    ValueCell,
)

logger = logging.getLogger(__name__)


class RowHandle:
    """Opaque pointer to a row whose number is assigned by ``SheetBuilder.build``."""

    __slots__ = ("_builder", "_position")

    def __init__(self, builder: "SheetBuilder", position: int) -> None:
        self._builder = builder
        self._position = position

    @property
    def row_number(self) -> int:
        """Final row number; header is row 1."""

        return self._position + 1

    def __repr__(self) -> str:
        return f"RowHandle({self._builder.name!r}, row={self.row_number})"


@dataclass
class _PendingRow:
    kind: RowKind
    cells: Dict[str, Any]
    section: Optional[str]
    subsection: Optional[str]
    item_type: Optional[str] = None
    source_index: Optional[int] = None
    deferred: Dict[str, Expr] = field(default_factory=dict)


class SheetBuilder:
    def __init__(self, name: str) -> None:
        self.name = name
        self._rows: List[_PendingRow] = []
        self._section: Optional[str] = None
        self._subsection: Optional[str] = None
        self._built = False

    def __len__(self) -> int:
        return len(self._rows)

    def _append(self, kind: RowKind, cells: Mapping[str, Any], **meta: Any) -> RowHandle:
        if self._built:
            raise InvariantViolation(f"sheet {self.name!r} was already built")
        cleaned = {col: value for col, value in cells.items() if value is not None}
        self._rows.append(
            _PendingRow(kind, cleaned, self._section, self._subsection, **meta)
        )
        return RowHandle(self, len(self._rows) - 1)

    # -- row kinds -----------------------------------------------------------

    def header(self) -> RowHandle:
        return self._append(RowKind.HEADER, dict(COLUMN_TITLES))

    def blank(self) -> RowHandle:
        return self._append(RowKind.BLANK, {})

    def section(self, name: str, **cells: Any) -> RowHandle:
        self._section = name
        self._subsection = None
        return self._append(RowKind.SECTION, {ESTIMATE: name, **cells})

    def subsection(self, name: str) -> RowHandle:
        self._subsection = name
        return self._append(RowKind.SUBSECTION, {PARTICULARS: f"{name}:"})

    def data(self, item: ClassifiedItem, cells: Optional[Mapping[str, Any]] = None) -> RowHandle:
        base: Dict[str, Any] = {
            PARTICULARS: item.description,
            TAKEOFF: item.quantity,
            UNIT: item.raw.unit or None,
            RAW_ROW: item.raw.sheet_row,
        }
        base.update(cells or {})
        return self._append(
            RowKind.DATA,
            base,
            item_type=item.item_type,
            source_index=item.raw.source_index,
        )

    def sum(self, cells: Mapping[str, Any], label: Optional[str] = None) -> RowHandle:
        merged = dict(cells)
        if label:
            merged.setdefault(PARTICULARS, label)
        return self._append(RowKind.SUM, merged)

    def note(self, label: str, cells: Optional[Mapping[str, Any]] = None, item_type: Optional[str] = None) -> RowHandle:
        return self._append(RowKind.NOTE, {PARTICULARS: label, **(cells or {})}, item_type=item_type)

    def defer(self, handle: RowHandle, column: str, expr: Expr) -> None:
        """Queue a cell that may reference rows appended after ``handle``."""

        pending = self._rows[self._own(handle)]
        if column in pending.cells or column in pending.deferred:
            raise InvariantViolation(f"{self.name}!{column}{handle.row_number} is already set")
        pending.deferred[column] = expr

    # -- build ---------------------------------------------------------------

    def _own(self, handle: Any) -> int:
        if not isinstance(handle, RowHandle):
            raise InvariantViolation(f"{handle!r} is not a row handle")
        if handle._builder is not self:
            raise InvariantViolation(f"{handle!r} belongs to another sheet")
        return handle._position

    def _resolve(self, handle: Any) -> int:
        return self._own(handle) + 1

    def _check(self, kind: RowKind, own: int, refs: Tuple[int, ...], column: str, deferred: bool) -> None:
        total = len(self._rows)
        for ref in refs:
            if ref < 1 or ref > total:
                raise InvariantViolation(
                    f"{self.name}!{column}{own} references missing row {ref}"
                )
            if deferred:
                continue
            if kind == RowKind.SUM and ref >= own:
                raise InvariantViolation(
                    f"sum {self.name}!{column}{own} references row {ref}, not strictly above it"
                )
            if ref > own:
                raise InvariantViolation(
                    f"{self.name}!{column}{own} references later row {ref}"
                )

    def build(self) -> Sheet:
        """Number rows, then bind and validate every formula."""

        # pass 1: row numbers are positions; nothing is reordered after this point
        numbers = list(range(1, len(self._rows) + 1))
        self._built = True

        # pass 2: bind formulas against final numbers
        rows: List[OutputRow] = []
        for number, pending in zip(numbers, self._rows):
            cells: Dict[str, Any] = {}
            sources = [(col, value, False) for col, value in pending.cells.items()]
            sources += [(col, expr, True) for col, expr in pending.deferred.items()]
            for column, value, deferred in sources:
                if isinstance(value, Expr):
                    bound = bind(value, self._resolve, number)
                    cell = formula_cell(bound, deferred=deferred)
                    self._check(pending.kind, number, cell.referenced_rows, column, deferred)
                    cells[column] = cell
                else:
                    cells[column] = ValueCell(value)
            rows.append(
                OutputRow(
                    row_number=number,
                    kind=pending.kind,
                    cells=dict(sorted(cells.items())),
                    section=pending.section,
                    subsection=pending.subsection,
                    item_type=pending.item_type,
                    source_index=pending.source_index,
                )
            )
        logger.debug("Built sheet %s with %d rows", self.name, len(rows))
        return Sheet(self.name, tuple(rows))


__all__ = ["RowHandle", "SheetBuilder"]
