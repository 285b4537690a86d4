from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from types import SimpleNamespace
from typing import Mapping, Optional, Union

from .pipeline import DEFAULT_CALC_SHEET
from .summary import DEFAULT_SUMMARY_SHEET

_BOOLEAN_TRUE = {"1", "true", "yes", "on"}
_BOOLEAN_FALSE = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class Config:
    """Runtime configuration assembled from environment variables and CLI options."""

    base_dir: Path
    input_path: Optional[Path]
    input_sheet: Union[str, int, None]
    output_dir: Path
    output_xlsx: Path
    output_unused_csv: Path
    calc_sheet_name: str = DEFAULT_CALC_SHEET
    summary_sheet_name: str = DEFAULT_SUMMARY_SHEET
    include_summary: bool = True
    verbose: bool = False


def _to_path(value: object | None) -> Optional[Path]:
    if value is None:
        return None
    if isinstance(value, Path):
        return value.expanduser().resolve()
    text = str(value).strip()
    if not text:
        return None
    return Path(text).expanduser().resolve()


def _to_int(value: object | None) -> Optional[int]:
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    try:
        return int(float(text))
    except ValueError:
        return None


def _flag(value: object | None, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if not text:
        return default
    if text in _BOOLEAN_FALSE:
        return False
    return text in _BOOLEAN_TRUE


def _sheet(value: object | None) -> Union[str, int, None]:
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    if text.isdigit():
        return _to_int(text)
    return text


def _namespace(cli_args: object | None) -> SimpleNamespace:
    if cli_args is None:
        return SimpleNamespace()
    if isinstance(cli_args, SimpleNamespace):
        return cli_args
    if hasattr(cli_args, "__dict__"):
        return SimpleNamespace(**{k: v for k, v in vars(cli_args).items()})
    return SimpleNamespace()


def load_config(env: Mapping[str, str], cli_args: object | None = None) -> Config:
    """Build a runtime :class:`Config` from environment variables and CLI options."""

    base_dir = Path(__file__).resolve().parents[2]
    default_output_dir = (base_dir / "outputs").resolve()

    input_path = _to_path(env.get("TAKEOFF_INPUT"))
    input_sheet = _sheet(env.get("TAKEOFF_SHEET"))
    output_dir = _to_path(env.get("OUTPUT_DIR")) or default_output_dir
    output_xlsx = _to_path(env.get("OUTPUT_XLSX")) or (output_dir / "Takeoff_Calculations.xlsx").resolve()
    output_unused_csv = _to_path(env.get("OUTPUT_UNUSED_CSV")) or (output_dir / "Unused_Rows.csv").resolve()
    calc_sheet_name = (env.get("CALC_SHEET_NAME") or "").strip() or DEFAULT_CALC_SHEET
    summary_sheet_name = (env.get("SUMMARY_SHEET_NAME") or "").strip() or DEFAULT_SUMMARY_SHEET
    include_summary = _flag(env.get("INCLUDE_SUMMARY"), default=True)
    verbose = _flag(env.get("VERBOSE"))

    cli_ns = _namespace(cli_args)
    if getattr(cli_ns, "input", None):
        input_path = _to_path(cli_ns.input) or input_path
    if getattr(cli_ns, "sheet", None) is not None:
        input_sheet = _sheet(cli_ns.sheet)
    if getattr(cli_ns, "output_dir", None):
        output_dir = _to_path(cli_ns.output_dir) or output_dir
        output_xlsx = (output_dir / "Takeoff_Calculations.xlsx").resolve()
        output_unused_csv = (output_dir / "Unused_Rows.csv").resolve()
    if getattr(cli_ns, "output_xlsx", None):
        output_xlsx = _to_path(cli_ns.output_xlsx) or output_xlsx
    if getattr(cli_ns, "no_summary", False):
        include_summary = False
    if getattr(cli_ns, "verbose", False):
        verbose = bool(cli_ns.verbose)

    return Config(
        base_dir=base_dir,
        input_path=input_path,
        input_sheet=input_sheet,
        output_dir=output_dir,
        output_xlsx=output_xlsx,
        output_unused_csv=output_unused_csv,
        calc_sheet_name=calc_sheet_name,
        summary_sheet_name=summary_sheet_name,
        include_summary=include_summary,
        verbose=verbose,
    )


__all__ = ["Config", "load_config"]
