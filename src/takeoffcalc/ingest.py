"""Map a takeoff export (xlsx or csv) onto :class:`RawRow` objects."""
from __future__ import annotations

import logging
import math
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

import pandas as pd

from .dimensions import normalize_unit
from .errors import InputError
from .models import RawRow

logger = logging.getLogger(__name__)

DESCRIPTION_HEADERS = ("digitizer item", "particulars", "description")
QUANTITY_HEADERS = ("total", "takeoff", "quantity")
UNIT_HEADERS = ("units", "unit")
CATEGORY_HEADERS = ("estimate",)


def _find_column(columns: Iterable[object], candidates: Iterable[str]) -> Optional[object]:
    lookup: Dict[str, object] = {}
    for column in columns:
        lookup.setdefault(str(column).strip().lower(), column)
    for name in candidates:
        if name in lookup:
            return lookup[name]
    return None


def _to_quantity(value: object) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return None if math.isnan(float(value)) else float(value)
    text = str(value).replace(",", "").strip()
    if not text:
        return None
    try:
        return float(text)
    except ValueError:
        return None


def _to_text(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and math.isnan(value):
        return ""
    return str(value).strip()


def rows_from_frame(df: pd.DataFrame) -> List[RawRow]:
    """Convert a takeoff DataFrame to raw rows; ``source_index`` is the data-row position."""

    description_col = _find_column(df.columns, DESCRIPTION_HEADERS)
    quantity_col = _find_column(df.columns, QUANTITY_HEADERS)
    if description_col is None or quantity_col is None:
        raise InputError(
            "Takeoff table needs a description column (Digitizer Item/Particulars/Description) "
            "and a quantity column (Total/Takeoff/Quantity); found "
            + ", ".join(str(c) for c in df.columns)
        )
    unit_col = _find_column(df.columns, UNIT_HEADERS)
    category_col = _find_column(df.columns, CATEGORY_HEADERS)

    rows: List[RawRow] = []
    for index, record in enumerate(df.to_dict(orient="records")):
        category = _to_text(record.get(category_col)) if category_col is not None else ""
        rows.append(
            RawRow(
                description=_to_text(record.get(description_col)),
                quantity=_to_quantity(record.get(quantity_col)),
                unit=normalize_unit(_to_text(record.get(unit_col))) if unit_col is not None else "",
                source_index=index,
                category=category or None,
            )
        )
    return rows


def load_takeoff(path: Union[str, Path], sheet: Union[str, int, None] = None) -> List[RawRow]:
    """Read a takeoff export from ``.xlsx`` (openpyxl engine) or ``.csv``."""

    path = Path(path)
    if not path.exists():
        raise InputError(f"Takeoff file not found: {path}")
    if path.suffix.lower() in (".xlsx", ".xlsm"):
        df = pd.read_excel(path, sheet_name=sheet if sheet is not None else 0, engine="openpyxl")
    else:
        df = pd.read_csv(path)
    rows = rows_from_frame(df)
    logger.debug("Loaded %d takeoff rows from %s", len(rows), path)
    return rows


__all__ = ["load_takeoff", "rows_from_frame"]
