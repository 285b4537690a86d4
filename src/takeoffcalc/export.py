from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Sequence, Union

import pandas as pd
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter

from .models import COLUMNS, FormulaCell, RawRow, RowKind, Sheet, ValueCell, Workbook

logger = logging.getLogger(__name__)

UNUSED_SHEET = "Unused Rows"
UNUSED_COLUMNS = ["Raw row #", "Estimate", "Particulars", "Takeoff", "Unit"]

_WIDTHS = {"A": 24, "B": 60}
_BOLD_KINDS = (RowKind.HEADER, RowKind.SECTION, RowKind.SUBSECTION, RowKind.SUM)


def _cell_value(cell: Any) -> Any:
    if isinstance(cell, FormulaCell):
        return cell.formula
    if isinstance(cell, ValueCell):
        return cell.value
    return cell


def sheet_frame(sheet: Sheet) -> pd.DataFrame:
    """Columns A-N view of ``sheet``; frame row ``i`` is sheet row ``i + 1``."""

    records: List[Dict[str, Any]] = []
    for row in sheet:
        records.append({column: _cell_value(row.cell(column)) for column in COLUMNS})
    return pd.DataFrame.from_records(records, columns=list(COLUMNS))


def unused_frame(unused_rows: Sequence[RawRow]) -> pd.DataFrame:
    return pd.DataFrame(
        [
            {
                "Raw row #": row.sheet_row,
                "Estimate": row.category or "",
                "Particulars": row.description,
                "Takeoff": row.quantity,
                "Unit": row.unit,
            }
            for row in unused_rows
        ],
        columns=UNUSED_COLUMNS,
    )


def _style(worksheet, sheet: Sheet) -> None:
    for letter, width in _WIDTHS.items():
        worksheet.column_dimensions[letter].width = width
    for row in sheet:
        if row.kind in _BOLD_KINDS:
            for index in range(1, len(COLUMNS) + 1):
                worksheet.cell(row=row.row_number, column=index).font = Font(bold=True)
    worksheet.freeze_panes = "A2"


def write_workbook(workbook: Workbook, unused_rows: Sequence[RawRow], path: Union[str, Path]) -> Path:
    """Write every sheet plus the unused-row list; formulas stay live formulas."""

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        for sheet in workbook.sheets:
            sheet_frame(sheet).to_excel(writer, sheet_name=sheet.name, index=False, header=False)
            _style(writer.sheets[sheet.name], sheet)
        unused_frame(unused_rows).to_excel(writer, sheet_name=UNUSED_SHEET, index=False)
        unused_ws = writer.sheets[UNUSED_SHEET]
        for index, title in enumerate(UNUSED_COLUMNS, start=1):
            unused_ws.column_dimensions[get_column_letter(index)].width = 60 if title == "Particulars" else 14
    logger.debug("Wrote %s (%s)", path, ", ".join(workbook.sheet_names))
    return path


def write_unused_csv(unused_rows: Sequence[RawRow], path: Union[str, Path]) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    unused_frame(unused_rows).to_csv(path, index=False)
    return path


__all__ = ["UNUSED_SHEET", "sheet_frame", "unused_frame", "write_unused_csv", "write_workbook"]
