import argparse
import logging
import os
from pathlib import Path
from typing import Optional, Sequence

from dotenv import load_dotenv

from .config import Config
from .config import load_config as load_runtime_config
from .errors import InputError
from .export import write_unused_csv, write_workbook
from .ingest import load_takeoff
from .pipeline import compile_takeoff
from .reporting import make_summary_text

BASE_DIR = Path(__file__).resolve().parents[2]

logger = logging.getLogger(__name__)


def run(runtime_config: Optional[Config] = None) -> int:
    runtime_cfg = runtime_config or load_runtime_config(os.environ, None)
    stage_counter = 0

    if not logging.getLogger().handlers:
        logging.basicConfig(level=logging.INFO, format="%(message)s")

    def log_stage(message: str) -> None:
        nonlocal stage_counter
        stage_counter += 1
        logger.info("[run:%02d] %s", stage_counter, message)

    def log_detail(message: str) -> None:
        logger.info("       %s", message)

    input_path = runtime_cfg.input_path
    if input_path is None:
        raise InputError("No takeoff input given; pass a file or set TAKEOFF_INPUT")

    log_stage(f"Loading takeoff rows from {input_path}")
    rows = load_takeoff(input_path, runtime_cfg.input_sheet)
    log_detail(f"rows={len(rows):,}")

    log_stage("Compiling calculation workbook")
    result = compile_takeoff(
        rows,
        calc_sheet_name=runtime_cfg.calc_sheet_name,
        summary_sheet_name=runtime_cfg.summary_sheet_name,
        include_summary=runtime_cfg.include_summary,
    )

    log_stage("Writing outputs")
    out_xlsx = write_workbook(result.workbook, result.unused_rows, runtime_cfg.output_xlsx)
    out_unused = write_unused_csv(result.unused_rows, runtime_cfg.output_unused_csv)

    logger.info("\n%s", make_summary_text(result))
    if result.unused_rows:
        logger.info("Unused rows need manual review:")
        for row in result.unused_rows:
            logger.info(" - row %s: %s", row.sheet_row, row.description)
    logger.info("\nOutputs written:")
    logger.info(" - %s", out_xlsx)
    logger.info(" - %s", out_unused)
    return 0


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Compile a construction takeoff into a calculation workbook")
    parser.add_argument("input", nargs="?", help="Takeoff export (.xlsx or .csv)")
    parser.add_argument("--sheet", help="Sheet name or index in the takeoff workbook")
    parser.add_argument("--output-dir", help="Directory for generated outputs")
    parser.add_argument("--output-xlsx", help="Path of the generated workbook")
    parser.add_argument("--no-summary", action="store_true", help="Skip the summary sheet")
    parser.add_argument("-v", "--verbose", action="store_true", help="Increase logging verbosity")
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    load_dotenv(BASE_DIR / ".env")
    args = parse_args(argv)
    runtime_cfg = load_runtime_config(os.environ, args)
    log_level = logging.DEBUG if runtime_cfg.verbose else logging.INFO
    logging.basicConfig(level=log_level, format="%(message)s")
    try:
        return run(runtime_config=runtime_cfg)
    except Exception:
        logger.exception("Fatal error while compiling takeoff")
        return 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
