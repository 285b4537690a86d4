from collections import Counter

import pandas as pd

from .formulas import WorkbookEvaluator
from .models import CY, RowKind


def section_totals(result) -> pd.DataFrame:
    """Data rows and evaluated CY per calculation-sheet section."""

    sheet = result.calc_sheet
    evaluator = WorkbookEvaluator(result.workbook)
    rows = Counter(r.section for r in sheet.rows_of(RowKind.DATA))
    cy = Counter()
    for row in sheet.rows_of(RowKind.SUM):
        if row.cell(CY) is not None:
            cy[row.section] += evaluator.value(sheet.name, CY, row.row_number)
    sections = [s for s in dict.fromkeys(r.section for r in sheet) if s]
    return pd.DataFrame(
        {
            "SECTION": sections,
            "DATA_ROWS": [rows.get(s, 0) for s in sections],
            "CY": [round(cy.get(s, 0.0), 2) for s in sections],
        }
    )


def make_summary_text(result) -> str:
    totals = section_totals(result)
    unused = len(result.unused_rows)
    table = totals.to_string(index=False) if not totals.empty else "(no sections)"
    return (
        f"Takeoff rows claimed: {len(result.claims):,}; unused rows: {unused:,}.\n"
        f"Sections:\n{table}\n"
        "CY totals are evaluated from the sheet formulas; the workbook keeps the formulas.\n"
    )
