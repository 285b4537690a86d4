"""Pile descriptions shared by the SOE and Foundation rule sets."""
from __future__ import annotations

from typing import Optional

from ..dimensions import (
    all_diameters,
    assignment,
    diameter_thickness,
    format_inches,
    hp_section,
    pipe_weight,
    rock_socket,
    round_up_to_5,
)
from ..models import ParsedDimensions

PATTERN_ORDER = {"E": 1, "E+RS": 2, "RS": 3, "H": 4}


def calculated_height(height: Optional[float], socket: Optional[float]) -> Optional[float]:
    """Embedded height plus rock socket, rounded up to the next 5 ft."""

    if not height:
        return None
    return round_up_to_5(height + (socket or 0.0))


def parse_drilled(description: str) -> ParsedDimensions:
    """Decode ``9-5/8" Øx0.545" H=32'-6"+ 7'-0" RS`` style pipe-pile descriptions."""

    pair = diameter_thickness(description)
    diameter, thickness = pair if pair else (None, None)
    height = assignment(description, "H")
    embedment = assignment(description, "E")
    socket = rock_socket(description)
    if embedment and socket:
        pattern = "E+RS"
    elif embedment:
        pattern = "E"
    elif socket:
        pattern = "RS"
    else:
        pattern = "H"
    weight = pipe_weight(diameter, thickness)
    return ParsedDimensions(
        diameter=diameter,
        thickness=thickness,
        height=height,
        embedment=embedment,
        rock_socket=socket,
        weight=round(weight, 3) if weight is not None else None,
        calculated_height=calculated_height(height, socket),
        extras={"pattern": pattern, "kind": "drilled"},
    )


def parse_hp(description: str) -> ParsedDimensions:
    section = hp_section(description)
    height = assignment(description, "H")
    return ParsedDimensions(
        height=height,
        weight=section[1] if section else None,
        calculated_height=round_up_to_5(height) if height else None,
        extras={"kind": "hp", "depth": section[0] if section else None},
    )


def parse_dual(description: str) -> ParsedDimensions:
    """Drilled pile with two pipe sections joined by ``&``."""

    base = parse_drilled(description)
    pairs = [p for p in all_diameters(description) if p[1] is not None]
    if len(pairs) < 2:
        return base
    (d1, t1), (d2, t2) = pairs[0], pairs[1]
    w1, w2 = pipe_weight(d1, t1), pipe_weight(d2, t2)
    extras = dict(base.extras)
    extras.update(
        dual=True,
        second_diameter=d2,
        second_thickness=t2,
        second_weight=round(w2, 3) if w2 is not None else None,
    )
    return ParsedDimensions(
        diameter=d1,
        thickness=t1,
        height=base.height,
        embedment=base.embedment,
        rock_socket=base.rock_socket,
        weight=round(w1, 3) if w1 is not None else None,
        calculated_height=base.calculated_height,
        extras=extras,
    )


def drilled_soldier_key(parsed: ParsedDimensions) -> str:
    embedment = round((parsed.embedment or 0.0) * 12)
    socket = round((parsed.rock_socket or 0.0) * 12)
    return "{}-{}-{}-{}-{}".format(
        format_inches(parsed.diameter),
        format_inches(parsed.thickness),
        parsed.get("pattern", "H"),
        embedment,
        socket,
    )


def hp_key(parsed: ParsedDimensions) -> str:
    return f"HP-{format_inches(parsed.height or 0.0)}"


def drilled_sort_key(parsed: ParsedDimensions):
    return (
        parsed.diameter or 0.0,
        parsed.thickness or 0.0,
        PATTERN_ORDER.get(parsed.get("pattern", "H"), 0),
    )


__all__ = [
    "PATTERN_ORDER",
    "calculated_height",
    "drilled_soldier_key",
    "drilled_sort_key",
    "hp_key",
    "parse_drilled",
    "parse_dual",
    "parse_hp",
]
