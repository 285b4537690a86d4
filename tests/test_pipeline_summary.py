from itertools import combinations

import pytest

from takeoffcalc import compile_takeoff
from takeoffcalc.errors import InvariantViolation
from takeoffcalc.models import CY, FT, TAKEOFF, FormulaCell, RowKind
from takeoffcalc.reporting import make_summary_text, section_totals
from takeoffcalc.summary import SectionTotals, build_summary

TAKEOFF_ROWS = [
    ("Demo SOG 6\" thick", 100.0, "SQ FT", "Demolition"),
    ("Exc (H=4'-0\")", 900.0, "SQ FT", None),
    ("Backfill (H=2'-0\")", 120.0, "SQ FT", None),
    ("Drilled soldier pile 9-5/8\" Øx0.545\" H=32'-6\"+ 7'-0\" RS", 6.0, "EA", None),
    ("Timber lagging (3\" thick) H=10'-0\"", 140.0, "SQ FT", None),
    ("SF (2'-0\"x1'-0\")", 10.0, "FT", None),
    ("GB-1 (2'-0\"x3'-0\")", 27.0, "FT", None),
    ("GB-1 (2'-0\"x3'-0\")", 13.0, "FT", None),
    ("SOG 6\"", 540.0, "SQ FT", None),
    ("FW (1'-0\"x10'-0\")", 80.0, "FT", "Waterproofing"),
    ("Patch slab", 50.0, "SQ FT", "Superstructure"),
    ("West Street - BPP Concrete sidewalk 4\" thick", 120.0, "SQ FT", None),
    ("Remove existing concrete curb", 60.0, "FT", "Civil / Sitework"),
    ("Unrecognised widget", 3.0, "EA", None),
]


@pytest.fixture
def takeoff_rows(make_row):
    return [make_row(d, q, u, category=c) for d, q, u, c in TAKEOFF_ROWS]


def test_every_row_is_claimed_at_most_once(takeoff_rows):
    result = compile_takeoff(takeoff_rows)
    claimed = {
        key: {i.raw.source_index for i in items if i.claimed} for key, items in result.items.items()
    }
    for (a, rows_a), (b, rows_b) in combinations(claimed.items(), 2):
        assert not rows_a & rows_b, (a, b)
    for key, indices in claimed.items():
        for index in indices:
            assert result.claims[index] == key

    assert [r.description for r in result.unused_rows] == ["Unrecognised widget"]
    assert result.claims[3] == "soe"
    assert result.claims[5] == "foundation"
    assert result.claims[9] == "waterproofing"


def test_mirrored_rows_are_never_claimed(takeoff_rows):
    result = compile_takeoff(takeoff_rows)
    mirrored = [i for i in result.items["excavation"] if not i.claimed]
    assert [i.raw.source_index for i in mirrored] == [5]
    assert result.claims[5] == "foundation"


def test_compile_is_idempotent(takeoff_rows):
    first = compile_takeoff(takeoff_rows)
    second = compile_takeoff(list(takeoff_rows))
    assert first.workbook == second.workbook
    assert first.unused_rows == second.unused_rows


def test_sections_follow_fixed_order(takeoff_rows):
    result = compile_takeoff(takeoff_rows)
    titles = [r.section for r in result.calc_sheet.rows_of(RowKind.SECTION)]
    assert titles == [
        "Demolition",
        "Excavation",
        "SOE",
        "Foundation",
        "Waterproofing",
        "Superstructure",
        "B.P.P. Alternate #2 scope",
        "Civil / Sitework",
    ]


def test_every_sum_row_only_looks_upwards(takeoff_rows):
    result = compile_takeoff(takeoff_rows)
    for row in result.calc_sheet.rows_of(RowKind.SUM):
        for cell in row.cells.values():
            if isinstance(cell, FormulaCell):
                assert cell.referenced_rows
                assert max(cell.referenced_rows) < row.row_number


def test_summary_sheet_points_back_at_sum_rows(takeoff_rows):
    result = compile_takeoff(takeoff_rows)
    calc = result.calc_sheet
    summary = result.workbook.sheet("Summary")
    assert result.workbook.sheet_names == ("Calculations Sheet", "Summary")

    notes = summary.rows_of(RowKind.NOTE)
    assert notes
    for note in notes:
        for cell in note.cells.values():
            if isinstance(cell, FormulaCell):
                assert cell.sheet_refs == (calc.name,)
                assert cell.text.startswith("'Calculations Sheet'!") or "SUM('Calculations Sheet'!" in cell.text

    (foundation_total,) = [r for r in summary.rows_of(RowKind.SUM) if r.section == "Foundation"]
    summary_cy = result.workbook.value(summary.name, CY, foundation_total.row_number)
    (section,) = calc.rows_of(RowKind.SECTION, "Foundation")
    assert summary_cy == pytest.approx(result.workbook.value(calc.name, TAKEOFF, section.row_number))
    assert result.workbook.value(summary.name, TAKEOFF, foundation_total.row_number) == pytest.approx(summary_cy)


def test_summary_can_be_skipped(takeoff_rows):
    result = compile_takeoff(takeoff_rows, include_summary=False, calc_sheet_name="Calc")
    assert result.workbook.sheet_names == ("Calc",)


def test_summary_rejects_rows_that_are_not_sum_rows(takeoff_rows):
    calc = compile_takeoff(takeoff_rows, include_summary=False).calc_sheet
    header_row = 1
    with pytest.raises(InvariantViolation):
        build_summary(calc, [SectionTotals("Foundation", (("Strip Footings", (header_row,)),))])
    with pytest.raises(InvariantViolation):
        build_summary(calc, [SectionTotals("Foundation", (("Strip Footings", (len(calc) + 5,)),))])


def test_reporting_totals(takeoff_rows):
    result = compile_takeoff(takeoff_rows)
    totals = section_totals(result)
    assert list(totals.columns) == ["SECTION", "DATA_ROWS", "CY"]
    foundation = totals.set_index("SECTION").loc["Foundation"]
    assert foundation["DATA_ROWS"] == 4
    assert foundation["CY"] > 0

    text = make_summary_text(result)
    assert "unused rows: 1" in text
    assert "Foundation" in text


def test_empty_takeoff_still_builds_a_header(make_row):
    result = compile_takeoff([])
    calc = result.calc_sheet
    assert len(calc) == 1
    assert calc.row(1).kind == RowKind.HEADER
    assert calc.row(1).cell(FT).value == "FT"
    assert result.unused_rows == ()
