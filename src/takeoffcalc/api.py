from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Union

from .config import load_config
from .cli import run as run_pipeline


@dataclass
class CompileOptions:
    input_path: Path
    sheet: Union[str, int, None] = None
    output_dir: Optional[Path] = None
    output_xlsx: Optional[Path] = None
    include_summary: bool = True


def compile_file(options: CompileOptions) -> Dict[str, Path]:
    """Programmatic interface to compile one takeoff file and return artifact paths.

    Returns a dict with keys: xlsx, unused_csv.
    """
    import os

    env = dict(os.environ)
    env["TAKEOFF_INPUT"] = str(options.input_path)
    if options.sheet is not None:
        env["TAKEOFF_SHEET"] = str(options.sheet)
    if options.output_dir:
        env["OUTPUT_DIR"] = str(options.output_dir)
        env.pop("OUTPUT_XLSX", None)
        env.pop("OUTPUT_UNUSED_CSV", None)
    if options.output_xlsx:
        env["OUTPUT_XLSX"] = str(options.output_xlsx)
    env["INCLUDE_SUMMARY"] = "1" if options.include_summary else "0"

    cfg = load_config(env, None)
    rc = run_pipeline(runtime_config=cfg)
    if rc != 0:
        raise RuntimeError(f"Takeoff compile failed with code {rc}")
    return {
        "xlsx": cfg.output_xlsx,
        "unused_csv": cfg.output_unused_csv,
    }
