from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, Mapping, Optional, Tuple


# Capstone column letters.
ESTIMATE = "A"
PARTICULARS = "B"
TAKEOFF = "C"
UNIT = "D"
QTY = "E"
LENGTH = "F"
WIDTH = "G"
HEIGHT = "H"
FT = "I"
SQ_FT = "J"
LBS = "K"
CY = "L"
QTY_FINAL = "M"
RAW_ROW = "N"

COLUMNS: Tuple[str, ...] = tuple("ABCDEFGHIJKLMN")
COLUMN_TITLES: Dict[str, str] = {
    ESTIMATE: "Estimate",
    PARTICULARS: "Particulars",
    TAKEOFF: "Takeoff",
    UNIT: "Unit",
    QTY: "QTY",
    LENGTH: "Length",
    WIDTH: "Width",
    HEIGHT: "Height",
    FT: "FT",
    SQ_FT: "SQ FT",
    LBS: "LBS",
    CY: "CY",
    QTY_FINAL: "QTY",
    RAW_ROW: "Raw row #",
}
DERIVED_COLUMNS: Tuple[str, ...] = (FT, SQ_FT, LBS, CY, QTY_FINAL)


@dataclass(frozen=True)
class RawRow:
    """One takeoff line item as delivered by the ingestion collaborator."""

    description: str
    quantity: Optional[float]
    unit: str
    source_index: int
    category: Optional[str] = None

    @property
    def sheet_row(self) -> int:
        """Row number of the item in the source export (header on row 1)."""

        return self.source_index + 2


@dataclass(frozen=True)
class ParsedDimensions:
    """Decimal-feet dimensions decoded from a description.

    Every field is optional; ``extras`` carries item-type specific values such as
    sub-types, raw heights or spacing that do not warrant a named field.
    """

    length: Optional[float] = None
    width: Optional[float] = None
    height: Optional[float] = None
    diameter: Optional[float] = None
    thickness: Optional[float] = None
    embedment: Optional[float] = None
    rock_socket: Optional[float] = None
    weight: Optional[float] = None
    qty: Optional[float] = None
    calculated_height: Optional[float] = None
    extras: Mapping[str, Any] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        return self.extras.get(key, default)


EMPTY_DIMENSIONS = ParsedDimensions()


@dataclass(frozen=True)
class ClassifiedItem:
    discipline: str
    subsection: str
    item_type: str
    group_key: str
    parsed: ParsedDimensions
    raw: RawRow
    claimed: bool = True
    takeoff: Optional[float] = None

    @property
    def description(self) -> str:
        return self.raw.description

    @property
    def quantity(self) -> Optional[float]:
        if self.takeoff is not None:
            return self.takeoff
        return self.raw.quantity


@dataclass(frozen=True)
class SumRowSpec:
    """Which derived columns a group's sum row aggregates.

    ``spans`` optionally restricts a column to subsets of the member list, given as
    ``(first_index, last_index)`` pairs; columns not listed sum over every member row.
    """

    columns: Tuple[str, ...]
    spans: Mapping[str, Tuple[Tuple[int, int], ...]] = field(default_factory=dict)


@dataclass(frozen=True)
class Group:
    subsection: str
    group_key: str
    members: Tuple[ClassifiedItem, ...]
    sum_spec: Optional[SumRowSpec] = None
    merged: bool = False

    def __len__(self) -> int:
        return len(self.members)


class RowKind(str, Enum):
    HEADER = "header"
    SECTION = "section"
    SUBSECTION = "subsection-header"
    DATA = "data"
    SUM = "sum"
    NOTE = "note"
    BLANK = "blank"


@dataclass(frozen=True)
class ValueCell:
    value: Any


@dataclass(frozen=True)
class FormulaCell:
    """A bound formula: ``expr`` only references concrete row numbers."""

    expr: Any
    text: str
    referenced_rows: Tuple[int, ...] = ()
    sheet_refs: Tuple[str, ...] = ()
    deferred: bool = False

    @property
    def formula(self) -> str:
        return "=" + self.text


@dataclass(frozen=True)
class OutputRow:
    row_number: int
    kind: RowKind
    cells: Mapping[str, Any]
    section: Optional[str] = None
    subsection: Optional[str] = None
    item_type: Optional[str] = None
    source_index: Optional[int] = None

    def cell(self, column: str) -> Any:
        return self.cells.get(column)


@dataclass(frozen=True)
class Sheet:
    name: str
    rows: Tuple[OutputRow, ...]

    def __iter__(self) -> Iterator[OutputRow]:
        return iter(self.rows)

    def __len__(self) -> int:
        return len(self.rows)

    def row(self, number: int) -> OutputRow:
        if number < 1 or number > len(self.rows):
            raise KeyError(f"{self.name} has no row {number}")
        return self.rows[number - 1]

    def rows_of(self, kind: RowKind, section: Optional[str] = None) -> Tuple[OutputRow, ...]:
        return tuple(
            r for r in self.rows if r.kind == kind and (section is None or r.section == section)
        )


@dataclass(frozen=True)
class Workbook:
    sheets: Tuple[Sheet, ...]

    def sheet(self, name: str) -> Sheet:
        for sheet in self.sheets:
            if sheet.name == name:
                return sheet
        raise KeyError(name)

    @property
    def sheet_names(self) -> Tuple[str, ...]:
        return tuple(s.name for s in self.sheets)

    def value(self, sheet: str, column: str, row: int) -> float:
        """Numerically evaluate one cell, following formulas across sheets."""

        from .formulas import WorkbookEvaluator

        return WorkbookEvaluator(self).value(sheet, column, row)
