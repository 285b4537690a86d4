import pytest

from takeoffcalc.dimensions import (
    assignment,
    at_label,
    bracket_values,
    convert_to_feet,
    diameter_thickness,
    extract_thickness,
    normalize_unit,
    pipe_weight,
    rock_socket,
    round_up_to_5,
)
from takeoffcalc.disciplines.piles import parse_drilled


def test_convert_to_feet_handles_feet_inch_and_bare_tokens():
    assert convert_to_feet("27'-10\"") == pytest.approx(27.8333, abs=1e-4)
    assert convert_to_feet('22"') == pytest.approx(1.8333, abs=1e-4)
    assert convert_to_feet('9-5/8"') == pytest.approx(9.625 / 12)
    assert convert_to_feet("3.5") == 3.5
    assert convert_to_feet("") == 0.0
    assert convert_to_feet(None) == 0.0
    assert convert_to_feet("not a size") == 0.0


def test_unicode_fractions_are_normalized():
    assert convert_to_feet("4½\"") == pytest.approx(4.5 / 12)


def test_round_up_to_5():
    assert round_up_to_5(39.5) == 40
    assert round_up_to_5(40) == 40
    assert round_up_to_5(40.01) == 45
    assert round_up_to_5(None) == 0.0


def test_pipe_weight_matches_steel_formula():
    assert pipe_weight(9.625, 0.545) == pytest.approx(52.90, abs=0.05)
    assert pipe_weight(None, 0.5) is None


def test_drilled_pile_description_decodes_every_dimension():
    parsed = parse_drilled("9-5/8\" Øx0.545\" H=32'-6\"+ 7'-0\" RS")

    assert parsed.diameter == pytest.approx(9.625)
    assert parsed.thickness == pytest.approx(0.545)
    assert parsed.height == pytest.approx(32.5)
    assert parsed.rock_socket == pytest.approx(7.0)
    assert parsed.calculated_height == 40
    assert parsed.weight == pytest.approx(52.90, abs=0.05)
    assert parsed.get("pattern") == "RS"


def test_thickness_typed_without_decimal_point():
    assert diameter_thickness('9-5/8" Øx0545"') == (9.625, 0.545)


def test_bracket_values_and_assignments():
    assert bracket_values("SF (2'-0\"x1'-0\")") == [2.0, 1.0]
    assert bracket_values("FW (1'-0\"x10'-0\") (typ.)", last_with_x=True) == [1.0, 10.0]
    assert bracket_values("no brackets here") == []
    assert assignment("Exc (H=3'-6\")", "H") == pytest.approx(3.5)
    assert assignment("no height", "H") is None
    assert rock_socket("H=20' RS=5'-0\"") == pytest.approx(5.0)


def test_small_helpers():
    assert extract_thickness('Demo SOG 6" thick') == pytest.approx(0.5)
    assert at_label("Stairs on grade @ Stair A") == "Stair A"
    assert at_label("Stairs on grade") is None
    assert normalize_unit("sq ft") == "SQ FT"
    assert normalize_unit("lf") == "FT"
    assert normalize_unit("") == ""
    assert normalize_unit("Bags") == "Bags"
