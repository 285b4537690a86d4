"""Decode engineering dimension notation embedded in takeoff descriptions.

Every helper here is best-effort: a description that matches no pattern yields
``None`` (or ``0.0`` for the low-level converters) and never raises.
"""
from __future__ import annotations

import logging
import math
import re
from typing import List, Optional, Tuple

logger = logging.getLogger(__name__)

PIPE_WEIGHT_FACTOR = 10.69

UNICODE_FRACTIONS = {
    "½": "1/2",
    "⅓": "1/3",
    "⅔": "2/3",
    "¼": "1/4",
    "¾": "3/4",
    "⅕": "1/5",
    "⅖": "2/5",
    "⅗": "3/5",
    "⅘": "4/5",
    "⅙": "1/6",
    "⅚": "5/6",
    "⅛": "1/8",
    "⅜": "3/8",
    "⅝": "5/8",
    "⅞": "7/8",
}

_UNICODE_AFTER_DIGIT = re.compile(r"(\d)\s*([" + "".join(UNICODE_FRACTIONS) + r"])")
_UNICODE_BARE = re.compile("[" + "".join(UNICODE_FRACTIONS) + "]")
_FRACTION = re.compile(r"^\s*(?:(\d+(?:\.\d+)?)\s*[-\s]\s*)?(\d+)\s*/\s*(\d+)\s*$")
_NUMBER = re.compile(r"-?\d+(?:\.\d+)?")
_BRACKET = re.compile(r"\(([^)]*)\)")
_THICKNESS = re.compile(r"(\d+(?:\.\d+)?)\s*([\"'])\s*thick", re.IGNORECASE)
_DIAMETER_THICKNESS = re.compile(
    r"(\d+(?:\.\d+)?(?:-\d+/\d+)?)\s*[\"']?\s*(?:[Øø∅Φ]|Ã˜)\s*x\s*([0-9.]+)",
    re.IGNORECASE,
)
_HP_SECTION = re.compile(r"HP\s*(\d+)\s*x\s*(\d+(?:\.\d+)?)", re.IGNORECASE)
_DIM_TOKEN = r"(\d[0-9'\"\-./ ]*?)(?=\s*(?:[,)+&]|RS\b|E\s*=|$|\s[A-Za-z(]))"
_ROCK_SOCKET_PLUS = re.compile(r"\+\s*" + _DIM_TOKEN + r"\s*RS\b", re.IGNORECASE)
_ROCK_SOCKET_ASSIGN = re.compile(r"\bRS\s*=\s*" + _DIM_TOKEN, re.IGNORECASE)
_AT_LABEL = re.compile(r"@\s*(.+?)\s*$")

_UNIT_ALIASES = {
    "SQFT": "SQ FT",
    "SQ FT": "SQ FT",
    "SQ.FT": "SQ FT",
    "SQ. FT": "SQ FT",
    "SQ.FT.": "SQ FT",
    "SF": "SQ FT",
    "FT": "FT",
    "LF": "FT",
    "LIN FT": "FT",
    "EA": "EA",
    "EACH": "EA",
    "NO": "EA",
    "NO.": "EA",
    "CY": "CY",
    "CU YD": "CY",
    "LBS": "LBS",
    "LB": "LBS",
    "TREADS": "Treads",
}


def normalize_fractions(text: str) -> str:
    """Rewrite vulgar fractions (``4½``) into the ``4-1/2`` form."""

    if not text:
        return ""
    text = _UNICODE_AFTER_DIGIT.sub(lambda m: f"{m.group(1)}-{UNICODE_FRACTIONS[m.group(2)]}", text)
    return _UNICODE_BARE.sub(lambda m: UNICODE_FRACTIONS[m.group(0)], text)


def _to_number(text: str) -> Optional[float]:
    text = (text or "").strip()
    if not text:
        return None
    frac = _FRACTION.match(text)
    if frac:
        whole = float(frac.group(1)) if frac.group(1) else 0.0
        denominator = float(frac.group(3))
        if denominator == 0:
            return None
        return whole + float(frac.group(2)) / denominator
    match = _NUMBER.search(text)
    if not match:
        return None
    return float(match.group(0))


def convert_to_feet(text: object) -> float:
    """Convert a feet-inch, inches-only or bare number token to decimal feet.

    ``27'-10"`` -> 27.8333, ``22"`` -> 1.8333, ``9-5/8"`` -> 0.8021, ``3.5`` -> 3.5.
    """

    if text is None:
        return 0.0
    if isinstance(text, (int, float)):
        return float(text)
    token = normalize_fractions(str(text)).strip()
    if not token:
        return 0.0
    if "'" in token:
        feet_part, _, inch_part = token.partition("'")
        feet = _to_number(feet_part) or 0.0
        inch_part = inch_part.replace('"', "").strip().lstrip("-").strip()
        inches = _to_number(inch_part) or 0.0
        return feet + inches / 12.0
    if '"' in token:
        inches = _to_number(token.replace('"', "")) or 0.0
        return inches / 12.0
    return _to_number(token) or 0.0


def round_up_to_5(value: Optional[float]) -> float:
    """Round ``value`` up to the next multiple of 5 (feet)."""

    if not value:
        return 0.0
    return float(math.ceil(round(value / 5.0, 9)) * 5)


def pipe_weight(diameter: Optional[float], thickness: Optional[float]) -> Optional[float]:
    """Steel pipe weight in lbs/ft: ``(diameter - thickness) * thickness * 10.69``."""

    if diameter is None or thickness is None:
        return None
    return (diameter - thickness) * thickness * PIPE_WEIGHT_FACTOR


def format_inches(value: Optional[float]) -> str:
    """Compact text for a measurement used inside group keys (``9.625``, ``32.5``, ``40``)."""

    if value is None:
        return "0"
    return format(round(value, 4), "g")


def round_key(value: Optional[float], digits: int = 2) -> str:
    if value is None:
        return "NONE"
    return f"{value:.{digits}f}"


def normalize_unit(unit: object) -> str:
    text = str(unit or "").strip()
    if not text:
        return ""
    key = re.sub(r"\s+", " ", text.upper())
    return _UNIT_ALIASES.get(key, _UNIT_ALIASES.get(key.replace(" ", ""), text))


def brackets(text: str) -> List[str]:
    """Return the contents of every ``(...)`` group in ``text``."""

    return [m.group(1) for m in _BRACKET.finditer(text or "")]


def bracket_values(text: str, *, last_with_x: bool = False) -> List[float]:
    """Split a bracketed ``L x W x H`` list into decimal feet.

    By default the first bracket is used. With ``last_with_x`` the last bracket that
    contains an ``x`` separator wins, which skips trailing notes like ``(typ.)``.
    """

    groups = brackets(normalize_fractions(text))
    if last_with_x:
        groups = [g for g in groups if re.search(r"x", g, re.IGNORECASE)]
        inner = groups[-1] if groups else None
    else:
        inner = groups[0] if groups else None
    if inner is None:
        return []
    parts = [p.strip().lstrip("'").strip() for p in re.split(r"x", inner, flags=re.IGNORECASE)]
    return [convert_to_feet(p) for p in parts if p]


def first_bracket_token(text: str) -> Optional[str]:
    groups = brackets(text)
    if not groups:
        return None
    head = re.split(r"x", groups[0], maxsplit=1, flags=re.IGNORECASE)[0].strip()
    return head or None


def extract_thickness(text: str) -> Optional[float]:
    match = _THICKNESS.search(normalize_fractions(text or ""))
    if not match:
        return None
    value = float(match.group(1))
    return value / 12.0 if match.group(2) == '"' else value


def inches_before(text: str, keyword: str) -> Optional[float]:
    """Feet value of an ``N"`` token immediately preceding ``keyword``."""

    pattern = re.compile(r"(\d+(?:\.\d+)?(?:-\d+/\d+)?)\s*[\"']?\s*" + keyword, re.IGNORECASE)
    match = pattern.search(normalize_fractions(text or ""))
    if not match:
        return None
    value = _to_number(match.group(1))
    return value / 12.0 if value is not None else None


def assignment(text: str, key: str) -> Optional[float]:
    """Decimal feet assigned to ``key`` in the description, e.g. ``H=32'-6"``."""

    pattern = re.compile(r"(?<![A-Za-z])" + re.escape(key) + r"\s*=\s*" + _DIM_TOKEN, re.IGNORECASE)
    match = pattern.search(normalize_fractions(text or ""))
    if not match:
        return None
    value = convert_to_feet(match.group(1).strip())
    return value if value or match.group(1).strip().startswith("0") else None


def rock_socket(text: str) -> Optional[float]:
    """Rock socket length from ``+ 7'-0" RS`` or ``RS=7'-0"``."""

    normalized = normalize_fractions(text or "")
    for pattern in (_ROCK_SOCKET_PLUS, _ROCK_SOCKET_ASSIGN):
        match = pattern.search(normalized)
        if match:
            return convert_to_feet(match.group(1).strip())
    return None


def _thickness_value(token: str) -> Optional[float]:
    token = token.strip().rstrip(".")
    if not token:
        return None
    if "." not in token and token.isdigit():
        value = int(token)
        if 100 <= value < 1000:
            # 0545 typed without the decimal point
            return value / 1000.0
        return float(value)
    try:
        return float(token)
    except ValueError:
        return None


def diameter_thickness(text: str) -> Optional[Tuple[float, float]]:
    """Decode ``9-5/8" Øx0.545"`` into ``(9.625, 0.545)`` inches."""

    match = _DIAMETER_THICKNESS.search(normalize_fractions(text or ""))
    if not match:
        return None
    diameter = _to_number(match.group(1))
    thickness = _thickness_value(match.group(2))
    if diameter is None or thickness is None:
        logger.debug("Diameter/thickness not decodable in %r", text)
        return None
    return diameter, thickness


def all_diameters(text: str) -> List[Tuple[float, Optional[float]]]:
    """Every ``d Ø`` occurrence; a bare diameter without ``x t`` has no thickness."""

    normalized = normalize_fractions(text or "")
    found: List[Tuple[float, Optional[float]]] = []
    for piece in normalized.split("&"):
        pair = diameter_thickness(piece)
        if pair:
            found.append(pair)
            continue
        bare = re.search(r"(\d+(?:\.\d+)?(?:-\d+/\d+)?)\s*[\"']?\s*(?:[Øø∅Φ]|Ã˜)", piece)
        if bare:
            value = _to_number(bare.group(1))
            if value is not None:
                found.append((value, None))
    return found


def hp_section(text: str) -> Optional[Tuple[float, float]]:
    match = _HP_SECTION.search(text or "")
    if not match:
        return None
    return float(match.group(1)), float(match.group(2))


def rolled_section_weight(text: str) -> Optional[float]:
    """Weight per foot from a ``W12x26`` / ``MC8x20`` / ``WT6x13`` designation."""

    match = re.search(r"(?:W|MC|WT)\d+(?:\.\d+)?x([0-9.]+)", text or "", re.IGNORECASE)
    if not match:
        return None
    try:
        return float(match.group(1))
    except ValueError:
        return None


def at_label(text: str) -> Optional[str]:
    """Text following ``@``, used as a grouping label."""

    match = _AT_LABEL.search(text or "")
    if not match:
        return None
    label = match.group(1).strip()
    return label or None


__all__ = [
    "PIPE_WEIGHT_FACTOR",
    "all_diameters",
    "assignment",
    "at_label",
    "bracket_values",
    "brackets",
    "convert_to_feet",
    "diameter_thickness",
    "extract_thickness",
    "first_bracket_token",
    "format_inches",
    "hp_section",
    "inches_before",
    "normalize_fractions",
    "normalize_unit",
    "pipe_weight",
    "rock_socket",
    "rolled_section_weight",
    "round_key",
    "round_up_to_5",
]
