import pytest

from takeoffcalc.errors import InvariantViolation
from takeoffcalc.formulas import (
    Literal,
    WorkbookEvaluator,
    area_only,
    at,
    backfill_volume,
    box_volume,
    linear_to_area,
    swell_excavation,
    formula_cell,
    referenced_rows,
    render,
    roundup,
    this,
    total,
)
from takeoffcalc.layout import SheetBuilder
from takeoffcalc.models import (
    CY,
    FT,
    HEIGHT,
    LBS,
    QTY_FINAL,
    PARTICULARS,
    RAW_ROW,
    SQ_FT,
    TAKEOFF,
    ClassifiedItem,
    FormulaCell,
    ParsedDimensions,
    RowKind,
    ValueCell,
    Workbook,
)


def _item(row, item_type="sog"):
    return ClassifiedItem(
        discipline="foundation",
        subsection="SOG",
        item_type=item_type,
        group_key="ALL",
        parsed=ParsedDimensions(),
        raw=row,
    )


def test_render_respects_precedence():
    assert render(this.J * this.H / 27, row=5) == "J5*H5/27"
    assert render((this.C + this.E) * 2, row=3) == "(C3+E3)*2"
    assert render(this.C - (this.E - this.F), row=3) == "C3-(E3-F3)"
    assert render(Literal(8) / 12) == "8/12"
    assert render(roundup(this.I, 0), row=2) == "ROUNDUP(I2,0)"


def test_render_sums_and_cross_sheet_refs():
    assert render(total("L", (4, 9))) == "SUM(L4:L9)"
    assert render(total("L", (4, 4), (7, 7))) == "SUM(L4,L7)"
    assert render(at(12, sheet="Calculations Sheet").L) == "'Calculations Sheet'!L12"
    assert render(at(12, sheet="Calc").L) == "Calc!L12"


def test_referenced_rows_ignore_other_sheets():
    expr = total("L", (4, 6)) + at(2, sheet="Other").C
    assert referenced_rows(expr) == (4, 5, 6)


def test_backwards_span_is_rejected():
    with pytest.raises(InvariantViolation):
        referenced_rows(total("L", (6, 4)))


def test_formula_cell_carries_text_and_rows():
    cell = formula_cell(at(3).C * at(3).G)
    assert cell.formula == "=C3*G3"
    assert cell.referenced_rows == (3,)


def test_builder_binds_handles_and_evaluates(make_row):
    builder = SheetBuilder("Calc")
    builder.header()
    builder.section("Foundation")
    first = builder.data(_item(make_row("SOG 6\"", 100.0)), {HEIGHT: 0.5, SQ_FT: this.C, CY: this.J * this.H / 27})
    second = builder.data(_item(make_row("SOG 6\"", 170.0)), {HEIGHT: 0.5, SQ_FT: this.C, CY: this.J * this.H / 27})
    builder.sum({SQ_FT: total(SQ_FT, (first, second)), CY: total(CY, (first, second))})
    sheet = builder.build()

    assert [r.kind for r in sheet] == [RowKind.HEADER, RowKind.SECTION, RowKind.DATA, RowKind.DATA, RowKind.SUM]
    data = sheet.row(3)
    assert data.cell(TAKEOFF) == ValueCell(100.0)
    assert data.cell(RAW_ROW) == ValueCell(2)
    assert data.cell(CY).formula == "=J3*H3/27"
    sum_row = sheet.row(5)
    assert sum_row.cell(CY).formula == "=SUM(L3:L4)"
    assert sum_row.cell(CY).referenced_rows == (3, 4)

    evaluator = WorkbookEvaluator(Workbook((sheet,)))
    assert evaluator.value("Calc", CY, 5) == pytest.approx(270 * 0.5 / 27)


def test_sum_row_may_not_reference_its_own_row(make_row):
    builder = SheetBuilder("Calc")
    builder.header()
    builder.data(_item(make_row("SOG")), {SQ_FT: this.C})
    builder.sum({SQ_FT: total(SQ_FT, (2, 3))})
    with pytest.raises(InvariantViolation):
        builder.build()


def test_data_row_forward_reference_is_rejected(make_row):
    builder = SheetBuilder("Calc")
    builder.header()
    builder.note("early", {FT: at(3).C})
    builder.data(_item(make_row("SOG")), {SQ_FT: this.C})
    with pytest.raises(InvariantViolation):
        builder.build()


def test_reference_to_missing_row_is_rejected():
    builder = SheetBuilder("Calc")
    builder.header()
    builder.note("dangling", {FT: at(40).C})
    with pytest.raises(InvariantViolation):
        builder.build()


def test_deferred_cell_may_reference_later_rows(make_row):
    builder = SheetBuilder("Calc")
    builder.header()
    section = builder.section("Foundation")
    item = builder.data(_item(make_row("SOG", 27.0)), {HEIGHT: 1, SQ_FT: this.C, CY: this.J * this.H / 27})
    closing = builder.sum({CY: total(CY, (item, item))})
    builder.defer(section, TAKEOFF, total(CY, (closing, closing)))
    sheet = builder.build()

    cell = sheet.row(2).cell(TAKEOFF)
    assert isinstance(cell, FormulaCell)
    assert cell.deferred is True
    assert cell.formula == "=SUM(L4)"
    assert Workbook((sheet,)).value("Calc", TAKEOFF, 2) == pytest.approx(1.0)


def test_defer_refuses_to_overwrite_a_cell():
    builder = SheetBuilder("Calc")
    handle = builder.section("Foundation")
    with pytest.raises(InvariantViolation):
        builder.defer(handle, "A", Literal(1))


def test_handles_from_another_builder_are_rejected(make_row):
    other = SheetBuilder("Other")
    foreign = other.data(_item(make_row("SOG")), {SQ_FT: this.C})
    builder = SheetBuilder("Calc")
    builder.note("x", {SQ_FT: at(foreign).J})
    with pytest.raises(InvariantViolation):
        builder.build()


def test_builder_cannot_be_reused_after_build():
    builder = SheetBuilder("Calc")
    builder.header()
    builder.build()
    with pytest.raises(InvariantViolation):
        builder.blank()


def test_evaluator_treats_division_by_zero_and_text_as_zero(make_row):
    builder = SheetBuilder("Calc")
    builder.header()
    builder.note("text", {TAKEOFF: "n/a", SQ_FT: this.C * 2, CY: this.C / this.J})
    sheet = builder.build()
    evaluator = WorkbookEvaluator(Workbook((sheet,)))
    assert evaluator.value("Calc", SQ_FT, 2) == 0.0
    assert evaluator.value("Calc", CY, 2) == 0.0
    assert sheet.row(2).cell(PARTICULARS) == ValueCell("text")


def test_derivation_shapes():
    def rendered(shape, row=4):
        return {column: render(expr, row=row) for column, expr in shape.items()}

    assert rendered(area_only()) == {SQ_FT: "C4", CY: "J4*H4/27"}
    assert rendered(linear_to_area()) == {FT: "C4", SQ_FT: "I4*H4", CY: "J4*G4/27"}
    assert rendered(box_volume()) == {SQ_FT: "C4*F4*G4", CY: "J4*H4/27", QTY_FINAL: "C4"}
    assert rendered(swell_excavation()) == {LBS: "J4*H4/27", CY: "K4*1.3"}
    assert "1.3" not in rendered(backfill_volume())[CY]
