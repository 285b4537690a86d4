import pytest

from takeoffcalc.disciplines.bpp import ASPHALT, CURB, SIDEWALK, BPPAlternate, street_name
from takeoffcalc.disciplines.civil import EXCAVATION, CivilSitework, is_demo
from takeoffcalc.models import CY, FT, HEIGHT, QTY_FINAL, SQ_FT, WIDTH, RowKind
from takeoffcalc.pipeline import compile_takeoff
from takeoffcalc.tracker import UsedRowTracker

BPP = "B.P.P. Alternate #2 scope"
CIVIL = "Civil / Sitework"


def test_street_name():
    assert street_name("West Street - BPP Concrete sidewalk 4\" thick") == "West Street"
    assert street_name("Concrete sidewalk 4\" thick") is None


def test_bpp_rows_are_grouped_per_street(make_row):
    rows = [
        make_row("West Street - BPP Concrete sidewalk 4\" thick", 120.0, "SQ FT"),
        make_row("East Avenue - BPP Concrete curb 6\" wide Height=1'-6\"", 40.0, "FT"),
        make_row("West Street - BPP Full depth asphalt 2\" surface 4\" base", 300.0, "SQ FT"),
        make_row("Concrete sidewalk 4\" thick", 10.0, "SQ FT"),
    ]
    discipline = BPPAlternate()
    tracker = UsedRowTracker()
    items = discipline.claim(rows, tracker)

    assert [i.subsection for i in items] == [SIDEWALK, CURB, ASPHALT]
    assert list(discipline.streets(items)) == ["West Street", "East Avenue"]
    assert not tracker.is_used(rows[3].source_index)

    sidewalk, curb, asphalt = items
    assert sidewalk.parsed.height == pytest.approx(4 / 12)
    assert curb.parsed.width == pytest.approx(0.5)
    assert curb.parsed.height == pytest.approx(1.5)
    assert asphalt.parsed.height == pytest.approx(0.5)
    assert set(discipline.cells(curb)) >= {WIDTH, HEIGHT, FT, SQ_FT, CY}


def test_bpp_layout_nests_subsections_under_streets(make_row):
    rows = [
        make_row("West Street - BPP Concrete sidewalk 4\" thick", 120.0, "SQ FT", category=BPP),
        make_row("West Street - BPP Concrete sidewalk 4\" thick", 80.0, "SQ FT", category=BPP),
        make_row("East Avenue - BPP Expansion joint", 25.0, "FT", category=BPP),
    ]
    result = compile_takeoff(rows, include_summary=False)
    sheet = result.calc_sheet
    headers = [r.cell("B").value for r in sheet.rows_of(RowKind.SUBSECTION, BPP)]

    assert headers == ["West Street:", "Concrete sidewalk:", "East Avenue:", "Expansion joint:"]
    (sidewalk_sum, joint_sum) = sheet.rows_of(RowKind.SUM, BPP)
    expected = 200 * 4 / 12 / 27
    assert result.workbook.value(sheet.name, CY, sidewalk_sum.row_number) == pytest.approx(expected)
    assert result.workbook.value(sheet.name, FT, joint_sum.row_number) == pytest.approx(25.0)


def test_demo_markers():
    assert is_demo("remove existing asphalt pavement")
    assert is_demo("protect existing fire hydrant")
    assert is_demo("remove concrete wall")
    assert not is_demo("remove existing utility pole (add/alt)")
    assert not is_demo("proposed fence height=6'")


def test_civil_demo_defaults(make_row):
    rows = [
        make_row("Remove existing asphalt pavement", 500.0, "SQ FT"),
        make_row("Remove existing concrete curb", 60.0, "FT"),
        make_row("Remove existing chain link fence", 90.0, "FT"),
        make_row("Protect existing fire hydrant", 2.0, "EA"),
    ]
    discipline = CivilSitework()
    asphalt, curb, fence, hydrant = discipline.claim(rows, UsedRowTracker())

    assert asphalt.parsed.height == 0.25
    assert (curb.parsed.width, curb.parsed.height) == (0.67, 1.5)
    assert fence.parsed.height == 6.0
    assert fence.group_key == "chain_link_vinyl"
    assert QTY_FINAL in discipline.cells(hydrant)


def test_proposed_items_get_excavation_views(make_row):
    rows = [
        make_row("Proposed transformer concrete pad 8\" thick (2 no)", 64.0, "SQ FT", category=CIVIL),
        make_row("Proposed reinforced concrete sidewalk 6\" thick", 400.0, "SQ FT", category=CIVIL),
        make_row("Proposed silt fence", 200.0, "FT", category=CIVIL),
    ]
    discipline = CivilSitework()
    tracker = UsedRowTracker()
    items = discipline.claim(rows, tracker)

    views = [i for i in items if i.subsection == EXCAVATION]
    assert [v.raw.source_index for v in views] == [rows[0].source_index, rows[1].source_index]
    assert all(v.item_type == "civil_excavation" for v in views)
    assert len(tracker) == 3

    pad = next(i for i in items if i.item_type == "civil_transformer_pad")
    assert pad.parsed.qty == 2
    silt = next(i for i in items if i.item_type == "civil_silt_fence")
    assert silt.parsed.height == 2.5

    cells = discipline.cells(views[1])
    assert cells[HEIGHT] == pytest.approx(0.5)
    assert CY in cells


def test_footed_bollard_excavation_uses_footing_size(make_row):
    row = make_row(
        "Proposed concrete filled steel pipe bollard (6\" Ø, H=4'-0\") w/ footing (24\" Ø, H=3'-0\")",
        5.0,
        "EA",
        category=CIVIL,
    )
    discipline = CivilSitework()
    items = discipline.claim([row], UsedRowTracker())
    bollard, excavation = items

    assert bollard.parsed.diameter == pytest.approx(0.5)
    assert bollard.parsed.height == pytest.approx(4.0)
    assert excavation.subsection == EXCAVATION
    cells = discipline.cells(excavation)
    assert cells["F"] == cells["G"] == pytest.approx(2.0)
    assert cells[HEIGHT] == pytest.approx(3.0)


def test_civil_layout_opens_demo_block_first(make_row):
    rows = [
        make_row("Proposed silt fence", 200.0, "FT", category=CIVIL),
        make_row("Remove existing asphalt pavement", 500.0, "SQ FT", category=CIVIL),
    ]
    result = compile_takeoff(rows, include_summary=False)
    headers = [r.cell("B").value for r in result.calc_sheet.rows_of(RowKind.SUBSECTION, CIVIL)]
    assert headers == ["Demo:", "Demo asphalt:", "Soil Erosion:"]
