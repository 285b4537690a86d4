from pathlib import Path
from types import SimpleNamespace

import pandas as pd
import pytest
from openpyxl import load_workbook

from takeoffcalc import cli
from takeoffcalc.api import CompileOptions, compile_file
from takeoffcalc.config import load_config
from takeoffcalc.errors import InputError
from takeoffcalc.export import UNUSED_SHEET, sheet_frame, write_workbook
from takeoffcalc.ingest import load_takeoff, rows_from_frame
from takeoffcalc.pipeline import compile_takeoff

CSV_TEXT = (
    "Estimate,Digitizer Item,Total,Units\n"
    ",\"Exc (H=4'-0\"\")\",900,SF\n"
    ",\"SF (2'-0\"\"x1'-0\"\")\",10,LF\n"
    ",Unrecognised widget,3,EA\n"
)


@pytest.fixture
def takeoff_csv(tmp_path: Path) -> Path:
    path = tmp_path / "takeoff.csv"
    path.write_text(CSV_TEXT, encoding="utf-8")
    return path


def test_load_config_defaults(tmp_path):
    cfg = load_config({}, None)
    assert cfg.input_path is None
    assert cfg.output_xlsx.name == "Takeoff_Calculations.xlsx"
    assert cfg.output_unused_csv.name == "Unused_Rows.csv"
    assert cfg.calc_sheet_name == "Calculations Sheet"
    assert cfg.summary_sheet_name == "Summary"
    assert cfg.include_summary is True
    assert cfg.verbose is False


def test_cli_arguments_override_environment(tmp_path):
    env = {
        "TAKEOFF_INPUT": str(tmp_path / "env.csv"),
        "TAKEOFF_SHEET": "2",
        "OUTPUT_DIR": str(tmp_path / "env_out"),
        "INCLUDE_SUMMARY": "yes",
        "CALC_SHEET_NAME": "Calc",
    }
    args = SimpleNamespace(
        input=str(tmp_path / "cli.xlsx"),
        sheet="Takeoff",
        output_dir=str(tmp_path / "cli_out"),
        output_xlsx=None,
        no_summary=True,
        verbose=True,
    )
    cfg = load_config(env, args)

    assert cfg.input_path == (tmp_path / "cli.xlsx").resolve()
    assert cfg.input_sheet == "Takeoff"
    assert cfg.output_xlsx == (tmp_path / "cli_out" / "Takeoff_Calculations.xlsx").resolve()
    assert cfg.include_summary is False
    assert cfg.verbose is True
    assert cfg.calc_sheet_name == "Calc"


def test_environment_values_are_parsed(tmp_path):
    cfg = load_config({"TAKEOFF_SHEET": "2", "INCLUDE_SUMMARY": "off", "VERBOSE": "1"}, None)
    assert cfg.input_sheet == 2
    assert cfg.include_summary is False
    assert cfg.verbose is True


def test_rows_from_frame_maps_headers_and_units():
    df = pd.DataFrame(
        {
            "Estimate": ["Foundation", None],
            "Digitizer Item": ["SOG 6\"", "Patch slab"],
            "Total": ["1,250", None],
            "Units": ["SF", "sq ft"],
        }
    )
    first, second = rows_from_frame(df)
    assert first.category == "Foundation"
    assert first.quantity == 1250.0
    assert first.unit == "SQ FT"
    assert first.sheet_row == 2
    assert second.category is None
    assert second.quantity is None
    assert second.source_index == 1


def test_missing_columns_raise_input_error(tmp_path):
    with pytest.raises(InputError):
        rows_from_frame(pd.DataFrame({"Item": ["x"], "Total": [1]}))
    with pytest.raises(InputError):
        load_takeoff(tmp_path / "missing.csv")


def test_load_takeoff_reads_csv(takeoff_csv):
    rows = load_takeoff(takeoff_csv)
    assert [r.description for r in rows] == ["Exc (H=4'-0\")", "SF (2'-0\"x1'-0\")", "Unrecognised widget"]
    assert [r.unit for r in rows] == ["SQ FT", "FT", "EA"]
    assert all(r.category is None for r in rows)


def test_workbook_keeps_live_formulas(tmp_path, takeoff_csv):
    result = compile_takeoff(load_takeoff(takeoff_csv))
    target = write_workbook(result.workbook, result.unused_rows, tmp_path / "out" / "calc.xlsx")

    book = load_workbook(target)
    assert book.sheetnames == ["Calculations Sheet", "Summary", UNUSED_SHEET]
    calc = book["Calculations Sheet"]
    assert calc["A1"].value == "Estimate"
    assert calc["N1"].value == "Raw row #"
    formulas = [c.value for row in calc.iter_rows() for c in row if isinstance(c.value, str) and c.value.startswith("=")]
    assert any(f.startswith("=SUM(") for f in formulas)
    assert book[UNUSED_SHEET]["C2"].value == "Unrecognised widget"

    frame = sheet_frame(result.calc_sheet)
    assert list(frame.columns) == list("ABCDEFGHIJKLMN")
    assert len(frame) == len(result.calc_sheet)


def test_main_writes_outputs(tmp_path, takeoff_csv, monkeypatch):
    for key in ("TAKEOFF_INPUT", "OUTPUT_DIR", "OUTPUT_XLSX", "OUTPUT_UNUSED_CSV", "INCLUDE_SUMMARY"):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setattr(cli, "load_dotenv", lambda *a, **k: False)

    rc = cli.main([str(takeoff_csv), "--output-dir", str(tmp_path / "out")])

    assert rc == 0
    assert (tmp_path / "out" / "Takeoff_Calculations.xlsx").exists()
    unused = pd.read_csv(tmp_path / "out" / "Unused_Rows.csv")
    assert unused["Particulars"].tolist() == ["Unrecognised widget"]


def test_main_returns_one_on_failure(tmp_path, monkeypatch):
    monkeypatch.delenv("TAKEOFF_INPUT", raising=False)
    monkeypatch.setattr(cli, "load_dotenv", lambda *a, **k: False)
    assert cli.main([str(tmp_path / "nope.csv"), "--output-dir", str(tmp_path)]) == 1
    assert cli.main(["--output-dir", str(tmp_path)]) == 1


def test_compile_file(tmp_path, takeoff_csv):
    paths = compile_file(CompileOptions(input_path=takeoff_csv, output_dir=tmp_path / "api", include_summary=False))
    assert paths["xlsx"].exists()
    assert paths["unused_csv"].exists()
    assert load_workbook(paths["xlsx"]).sheetnames == ["Calculations Sheet", UNUSED_SHEET]

    with pytest.raises(InputError):
        compile_file(CompileOptions(input_path=tmp_path / "missing.csv", output_dir=tmp_path / "api"))
