import pytest

from takeoffcalc.disciplines.demolition import Demolition
from takeoffcalc.disciplines.soe import (
    BACKPACKING,
    DRILLED_SOLDIER_PILE,
    HP_SOLDIER_PILE,
    SHIMS,
    TIMBER_LAGGING,
    UNDERPINNING,
    SupportOfExcavation,
)
from takeoffcalc.disciplines.soe import RULES as SOE_RULES
from takeoffcalc.disciplines.superstructure import Superstructure
from takeoffcalc.disciplines.waterproofing import NEGATIVE_SIDE, EXTERIOR_SIDE, Waterproofing
from takeoffcalc.formulas import Literal, evaluate, render
from takeoffcalc.models import CY, FT, HEIGHT, LBS, LENGTH, QTY, QTY_FINAL, SQ_FT, TAKEOFF, WIDTH, RowKind
from takeoffcalc.pipeline import compile_takeoff
from takeoffcalc.tracker import UsedRowTracker

PILE = "Drilled soldier pile 9-5/8\" Øx0.545\" H=32'-6\"+ 7'-0\" RS"


def test_soe_rule_priority():
    assert SOE_RULES.match("Upper raker W12x26").item_type == "upper_raker"
    assert SOE_RULES.match("Raker W12x26").item_type == "raker"
    assert SOE_RULES.match("HP soldier pile HP12x63 H=30'-0\"").item_type == "hp"
    assert SOE_RULES.match(PILE).item_type == "drilled"
    assert SOE_RULES.match("Timber lagging w/ supporting angle").item_type == "supporting_angle"


def test_drilled_soldier_piles_share_a_sum_row(make_row):
    rows = [make_row(PILE, 3.0, "EA"), make_row(PILE, 4.0, "EA")]
    result = compile_takeoff(rows, include_summary=False)
    sheet = result.calc_sheet

    data = [r for r in sheet.rows_of(RowKind.DATA, "SOE") if r.item_type == "drilled"]
    assert [r.subsection for r in data] == [DRILLED_SOLDIER_PILE] * 2
    assert data[0].cell(HEIGHT).value == 40
    n = data[0].row_number
    assert data[0].cell(FT).formula == f"=H{n}*C{n}"
    assert data[0].cell(QTY_FINAL).formula == f"=C{n}"

    (total_row,) = [r for r in sheet.rows_of(RowKind.SUM, "SOE") if r.subsection == DRILLED_SOLDIER_PILE]
    assert total_row.cell(LBS).formula == f"=SUM(K{n}:K{n + 1})"
    weight = result.workbook.value(sheet.name, LBS, total_row.row_number)
    assert weight == pytest.approx(7 * 40 * 52.90, rel=1e-3)
    assert set(result.claims.values()) == {"soe"}


def test_pit_wall_is_measured_on_both_faces(make_row):
    row = make_row("Elevator pit wall (1'-0\"x8'-0\")", 30.0, "FT")
    tracker = UsedRowTracker()
    discipline = Waterproofing()
    items = discipline.claim([row], tracker)

    assert [i.subsection for i in items] == [EXTERIOR_SIDE, NEGATIVE_SIDE]
    assert {i.raw.source_index for i in items} == {row.source_index}
    exterior, negative = items
    assert exterior.parsed.height == pytest.approx(10.0)
    assert negative.parsed.height == pytest.approx(8.0)
    cells = discipline.cells(exterior)
    assert cells[WIDTH] == 1.0
    assert CY in cells
    assert len(tracker) == 1


def test_grease_trap_wall_has_no_volume(make_row):
    row = make_row("Grease trap wall (1'-0\"x4'-0\")", 12.0, "FT")
    items = Waterproofing().claim([row], UsedRowTracker())
    cells = Waterproofing().cells(items[0])
    assert CY not in cells
    assert cells[SQ_FT] is not None


def test_superstructure_area_items(make_row):
    discipline = Superstructure()
    patch, cip = discipline.claim(
        [make_row("Patch slab", 50.0, "SQ FT"), make_row('CIP slab 8"', 400.0, "SQ FT")], UsedRowTracker()
    )

    assert patch.item_type == "patch_slab"
    patch_cells = discipline.cells(patch)
    assert patch_cells[HEIGHT] == 0.5
    assert render(patch_cells[CY], row=7) == "J7*H7/27"

    assert cip.item_type == "cip_slab"
    assert discipline.cells(cip)[HEIGHT] == Literal(8) / 12


def test_superstructure_leaves_site_curbs_alone(make_row):
    rows = [make_row("West Street - BPP Concrete curb 6\" wide Height=1'-6\"", 20.0, "FT")]
    assert Superstructure().claim(rows, UsedRowTracker()) == []


def test_demolition_slab_defaults_to_four_inches(make_row):
    discipline = Demolition()
    thick, plain = discipline.claim(
        [make_row('Demo SOG 6" thick', 100.0, "SQ FT"), make_row("Demo SOG", 80.0, "SQ FT")], UsedRowTracker()
    )
    assert thick.parsed.height == pytest.approx(0.5)
    assert plain.parsed.height == pytest.approx(4 / 12)
    assert thick.group_key != plain.group_key
    assert discipline.cells(thick)[SQ_FT] is not None



def _soe_sum(sheet, subsection):
    (row,) = [r for r in sheet.rows_of(RowKind.SUM, "SOE") if r.subsection == subsection]
    return row


def test_backpacking_follows_lagging_only_when_requested(make_row):
    result = compile_takeoff([make_row("Timber lagging w/ backpacking H=10'-0\"", 140.0, "FT")], include_summary=False)
    sheet = result.calc_sheet
    lagging_sum = _soe_sum(sheet, TIMBER_LAGGING)

    (backpacking,) = [r for r in sheet.rows_of(RowKind.NOTE, "SOE") if r.item_type == "backpacking"]
    n = backpacking.row_number
    assert backpacking.subsection == BACKPACKING
    assert n > lagging_sum.row_number
    assert backpacking.cell(TAKEOFF).formula == f"=J{lagging_sum.row_number}"
    assert backpacking.cell(SQ_FT).formula == f"=C{n}"
    assert result.workbook.value(sheet.name, SQ_FT, n) == pytest.approx(140 * 10)

    plain = compile_takeoff([make_row("Timber lagging H=10'-0\"", 140.0, "FT")], include_summary=False)
    assert not [r for r in plain.calc_sheet.rows_of(RowKind.NOTE, "SOE") if r.item_type == "backpacking"]


def test_shims_take_their_length_from_underpinning(make_row):
    rows = [
        make_row("Underpinning (4'-0\"x3'-0\"x5'-0\")", 20.0, "FT"),
        make_row("Shims (1\")", 20.0, "FT"),
    ]
    result = compile_takeoff(rows, include_summary=False)
    sheet = result.calc_sheet
    workbook = result.workbook
    underpinning_sum = _soe_sum(sheet, UNDERPINNING)

    (shims,) = [r for r in sheet.rows_of(RowKind.DATA, "SOE") if r.item_type == "shims"]
    s = shims.row_number
    assert shims.cell(FT).formula == f"=I{underpinning_sum.row_number}"
    assert shims.cell(SQ_FT).formula == f"=I{s}*G{s}"

    shims_sum = _soe_sum(sheet, SHIMS)
    assert shims_sum.cell(FT).formula == f"=SUM(I{s})"
    assert shims_sum.cell(SQ_FT).formula == f"=SUM(J{s})"
    assert workbook.value(sheet.name, FT, shims_sum.row_number) == pytest.approx(4 * 20)
    assert workbook.value(sheet.name, SQ_FT, shims_sum.row_number) == pytest.approx(4 * 20 / 12)


def test_anchor_and_tie_back_lengths(make_row):
    rows = [
        make_row("Rock anchor free length=10'-0\" bond length=15'-0\"", 6.0, "EA"),
        make_row("Rock bolt bond length=12'-0\" @ 5'-0\" O.C.", 40.0, "FT"),
        make_row("Tie back free length=20'-0\" bond length=18'-0\"", 8.0, "EA"),
    ]
    discipline = SupportOfExcavation()
    anchor, bolt, tie_back = discipline.claim(rows, UsedRowTracker())

    assert anchor.item_type == "rock_anchor"
    cells = discipline.cells(anchor)
    assert cells[LENGTH] == 30
    assert render(cells[FT], row=4) == "F4*C4"
    assert render(cells[QTY_FINAL], row=4) == "C4"

    assert bolt.item_type == "rock_bolt"
    cells = discipline.cells(bolt)
    assert cells[LENGTH] == pytest.approx(17.0)
    assert render(cells[QTY], row=4) == "ROUNDUP(C4/5,0)+1"
    assert render(cells[FT], row=4) == "F4*E4"
    assert render(cells[QTY_FINAL], row=4) == "E4"

    assert tie_back.item_type == "tie_back"
    cells = discipline.cells(tie_back)
    assert cells[HEIGHT] == 40
    assert render(cells[FT], row=4) == "H4*C4"


def test_unique_hp_piles_come_first(make_row):
    rows = [
        make_row("HP soldier pile HP12x63 H=30'-0\"", 4.0, "EA"),
        make_row("HP soldier pile HP14x89 H=25'-0\"", 2.0, "EA"),
        make_row("HP soldier pile HP12x63 H=30'-0\"", 3.0, "EA"),
    ]
    discipline = SupportOfExcavation()
    items = discipline.claim(rows, UsedRowTracker())
    unique, shared = discipline.group(HP_SOLDIER_PILE, items)
    assert unique.group_key == "HP-UNIQUE"
    assert [m.raw.source_index for m in unique.members] == [1]
    assert [m.raw.source_index for m in shared.members] == [0, 2]

    result = compile_takeoff(rows, include_summary=False)
    data = [r for r in result.calc_sheet.rows_of(RowKind.DATA, "SOE") if r.item_type == "hp"]
    assert [r.source_index for r in data] == [1, 0, 2]


def test_slab_on_metal_deck_height_adds_half_the_rib(make_row):
    row = make_row("Slab on metal deck 4 1/2\" LW concrete topping over 2\" MD", 900.0, "SQ FT")
    discipline = Superstructure()
    (item,) = discipline.claim([row], UsedRowTracker())

    assert item.item_type == "somd"
    height = discipline.cells(item)[HEIGHT]
    assert render(height) == "(4.5+2/2)/12"
    assert evaluate(height, lambda sheet, column, row: 0.0) == pytest.approx(5.5 / 12)
