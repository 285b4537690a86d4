"""Foundation concrete: piles, footings, walls, pits, slabs and stairs on grade."""
from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional, Sequence

from ..classifier import Rule, RuleTable, contains, excluding, matches, starts
from ..dimensions import (
    assignment,
    at_label,
    bracket_values,
    convert_to_feet,
    diameter_thickness,
    hp_section,
    inches_before,
    pipe_weight,
    round_key,
    round_up_to_5,
)
from ..formulas import Literal, area_only, at, box_volume, linear_to_area, this, total
from ..grouping import group_items
from ..layout import RowHandle, SheetBuilder
from ..models import (
    CY,
    FT,
    HEIGHT,
    LBS,
    LENGTH,
    QTY_FINAL,
    SQ_FT,
    TAKEOFF,
    WIDTH,
    ClassifiedItem,
    Group,
    ParsedDimensions,
    RawRow,
    SumRowSpec,
)
from . import piles
from .base import Cells, Discipline, LayoutContext, dims, sum_cells

logger = logging.getLogger(__name__)

DRILLED_PILE = "Drilled foundation pile"
HELICAL_PILE = "Helical foundation pile"
DRIVEN_PILE = "Driven foundation pile"
STELCOR_PILE = "Stelcor drilled displacement pile"
CFA_PILE = "CFA pile"
MISC_PILES = "Piles"
PILE_CAPS = "Pile caps"
STRIP_FOOTINGS = "Strip Footings"
ISOLATED_FOOTINGS = "Isolated Footings"
PILASTER = "Pilaster"
GRADE_BEAMS = "Grade beams"
TIE_BEAM = "Tie beam"
STRAP_BEAMS = "Strap beams"
THICKENED_SLAB = "Thickened slab"
BUTTRESSES = "Buttresses"
PIER = "Pier"
CORBEL = "Corbel"
LINEAR_WALL = "Linear Wall"
FOUNDATION_WALL = "Foundation Wall"
RETAINING_WALLS = "Retaining walls"
BARRIER_WALL = "Barrier wall"
STEM_WALL = "Stem wall"
ELEVATOR_PIT = "Elevator Pit"
SERVICE_ELEVATOR_PIT = "Service elevator pit"
DETENTION_TANK = "Detention tank"
DUPLEX_SEWAGE_PIT = "Duplex sewage ejector pit"
DEEP_SEWAGE_PIT = "Deep sewage ejector pit"
SUMP_PUMP_PIT = "Sump pump pit"
GREASE_TRAP = "Grease trap"
HOUSE_TRAP = "House trap"
MAT_SLAB = "Mat slab"
MUD_SLAB = "Mud Slab"
SOG = "SOG"
STAIRS = "Stairs on grade Stairs"
ELECTRIC_CONDUIT = "Electric conduit"

STAIR_TREAD = Literal(11) / 12
STAIR_RISER = Literal(7) / 12
LANDING_THICKNESS = 0.67
STAIR_SLAB_FACTOR = 1.3
SUMP_PIT_AREA = 16
SWELL = 1.3

_INCHES = re.compile(r"(\d+(?:\.\d+)?)\s*\"")
_WIDE = re.compile(r"(\d+'-?\d*\")\s*wide", re.IGNORECASE)


def _influence(text: str) -> str:
    return "INFLU-" if "influence" in text.lower() else ""


def _height_token(text: str) -> Optional[float]:
    height = assignment(text, "H")
    if height is not None:
        return height
    match = _INCHES.search(text)
    return float(match.group(1)) / 12.0 if match else None


# -- predicates ------------------------------------------------------------------

_SOE_PILES = ("soldier pile", "secant pile", "tangent pile", "sheet pile")


def _drilled_pile(text: str) -> bool:
    return (
        ("drilled" in text and ("foundation pile" in text or "cassion pile" in text))
        or bool(re.search(r"\b(drilled|structural|foundation|fndt)\s+piles?\b", text))
    ) and not any(p in text for p in _SOE_PILES)


def _misc_pile(text: str) -> bool:
    if "pile" not in text or "pile cap" in text or any(p in text for p in _SOE_PILES):
        return False
    return _pile_structure(text) is not None


def _elevator_pit(text: str) -> bool:
    if "service elev" in text:
        return False
    if "elev. pit" in text or "elevator pit" in text or "sump pit" in text:
        return True
    return bool(re.search(r"(elev\.?|elevator)\s+(slab|mat|wall|slope|haunch|sump)", text))


def _service_elevator_pit(text: str) -> bool:
    if "sump pit @ service elevator" in text:
        return True
    if "service elev. pit" in text or "service elevator pit" in text:
        return True
    return bool(re.search(r"service\s+(elev\.?|elevator)\s+(slab|mat|wall|slope|haunch|sump)", text))


def _sump_pump_pit(text: str) -> bool:
    if "sump pump" in text and "pit" not in text:
        return bool(re.search(r"sump\s+pump\s+(slab|mat|wall|slope|haunch)", text))
    return "sump pump" in text


def _mat_slab(text: str) -> bool:
    return "mat" in text and ("haunch" in text or bool(re.search(r"mat(?:[-\s]+slab)?[-\s]*\d+", text)))


def _strap_beam(text: str) -> bool:
    return (text.startswith("st ") or bool(re.match(r"st\s*\(", text)) or "strap beam" in text) and not text.startswith("st-")


def _isolated_footing(text: str) -> bool:
    return (text.startswith("f-") or "footing" in text) and "foundation" not in text


# -- parsers ---------------------------------------------------------------------


def _drilled(row: RawRow) -> ParsedDimensions:
    if "&" in row.description:
        return piles.parse_dual(row.description)
    return piles.parse_drilled(row.description)


def _pipe_pile(kind: str):
    def parse(row: RawRow) -> ParsedDimensions:
        pair = diameter_thickness(row.description)
        height = assignment(row.description, "H")
        weight = pipe_weight(*pair) if pair else None
        return ParsedDimensions(
            diameter=pair[0] if pair else None,
            thickness=pair[1] if pair else None,
            height=height,
            weight=round(weight, 3) if weight is not None else None,
            calculated_height=round_up_to_5(height) if height else None,
            extras={"kind": kind},
        )

    return parse


def _driven(row: RawRow) -> ParsedDimensions:
    section = hp_section(row.description)
    height = assignment(row.description, "H")
    return ParsedDimensions(
        height=height,
        weight=section[1] if section else None,
        calculated_height=round_up_to_5(height) if height else None,
        extras={"kind": "driven", "hp": "HP{:g}x{:g}".format(*section) if section else None},
    )


def _cfa(row: RawRow) -> ParsedDimensions:
    height = assignment(row.description, "H")
    return ParsedDimensions(
        height=height,
        calculated_height=round_up_to_5(height) if height else None,
        extras={"kind": "cfa"},
    )


def _pile_structure(text: str) -> Optional[ParsedDimensions]:
    """Parse an unnamed pile by whichever known pile shape its description fits."""

    row = RawRow(text, None, "", -1)
    drilled = _drilled(row)
    if (drilled.diameter or drilled.get("dual")) and drilled.height:
        return drilled
    driven = _driven(row)
    if driven.get("hp") and driven.height:
        return driven
    helical = _pipe_pile("helical")(row)
    if helical.diameter and helical.height:
        return helical
    cfa = _cfa(row)
    if cfa.height:
        return cfa
    return None


def _misc(row: RawRow) -> ParsedDimensions:
    return _pile_structure(row.description) or ParsedDimensions()


def _box(row: RawRow) -> ParsedDimensions:
    found = bracket_values(row.description, last_with_x=True)
    if len(found) >= 3:
        return ParsedDimensions(length=found[0], width=found[1], height=found[2])
    return ParsedDimensions()


def _linear(row: RawRow) -> ParsedDimensions:
    found = bracket_values(row.description, last_with_x=True)
    if len(found) >= 2:
        return ParsedDimensions(width=found[0], height=found[1])
    return ParsedDimensions()


def _strip(row: RawRow) -> ParsedDimensions:
    text = row.description.lower().strip()
    variant = "ST" if text.startswith("st-") else "WF" if text.startswith("wf-") else "SF"
    found = _linear(row)
    return ParsedDimensions(width=found.width, height=found.height, extras={"variant": variant})


def _pit(row: RawRow) -> ParsedDimensions:
    text = row.description.lower()
    if "sump pit" in text and "sump pump" not in text:
        return ParsedDimensions(extras={"subtype": "sump_pit"})
    if "mat slab" in text:
        return ParsedDimensions(height=_height_token(row.description), extras={"subtype": "mat_slab"})
    if "mat" in text:
        return ParsedDimensions(height=_height_token(row.description), extras={"subtype": "mat"})
    if "slab" in text:
        subtype = "lid_slab" if "lid" in text else "slab"
        return ParsedDimensions(height=_height_token(row.description), extras={"subtype": subtype})
    if "wall" in text:
        found = _linear(row)
        return ParsedDimensions(width=found.width, height=found.height, extras={"subtype": "wall"})
    if "slope transition" in text or "haunch" in text:
        found = _linear(row)
        return ParsedDimensions(width=found.width, height=found.height, extras={"subtype": "slope_transition"})
    return ParsedDimensions(extras={"subtype": "other"})


def _mat(row: RawRow) -> ParsedDimensions:
    if "haunch" in row.description.lower():
        found = _linear(row)
        return ParsedDimensions(width=found.width, height=found.height, extras={"subtype": "haunch"})
    return ParsedDimensions(height=assignment(row.description, "H"), extras={"subtype": "mat"})


def _sog(row: RawRow) -> ParsedDimensions:
    text = row.description.lower()
    if "gravel backfill" in text:
        return ParsedDimensions(height=assignment(row.description, "H"), extras={"subtype": "gravel_backfill"})
    if "gravel" in text:
        return ParsedDimensions(extras={"subtype": "gravel"})
    if "geotextile filter fabric" in text:
        return ParsedDimensions(extras={"subtype": "geotextile"})
    if "step" in text:
        found = _linear(row)
        return ParsedDimensions(width=found.width, height=found.height, extras={"subtype": "sog_step"})
    match = _INCHES.search(row.description)
    prefix = "sog"
    for name in ("patio", "patch", "pressure"):
        if name in text:
            prefix = f"{name}_sog"
            break
    return ParsedDimensions(
        height=float(match.group(1)) / 12.0 if match else None,
        extras={"subtype": "sog_slab", "prefix": prefix},
    )


def _rog(row: RawRow) -> ParsedDimensions:
    match = _INCHES.search(row.description)
    return ParsedDimensions(
        height=float(match.group(1)) / 12.0 if match else None,
        extras={"subtype": "sog_slab", "prefix": "rog"},
    )


def _stairs(row: RawRow) -> ParsedDimensions:
    text = row.description.lower()
    if "landing" in text:
        return ParsedDimensions(extras={"subtype": "landings"})
    wide = _WIDE.search(row.description)
    return ParsedDimensions(
        width=convert_to_feet(wide.group(1)) if wide else None,
        height=inches_before(row.description, "riser"),
        extras={"subtype": "stairs"},
    )


# -- group keys ------------------------------------------------------------------


def _drilled_key(parsed: ParsedDimensions, row: RawRow) -> str:
    prefix = _influence(row.description) + ("DUAL" if parsed.get("dual") else "SINGLE")
    parts = []
    if parsed.height:
        parts.append(f"H{parsed.height:.2f}")
    if parsed.rock_socket:
        parts.append(f"RS{parsed.rock_socket:.2f}")
    return f"{prefix}-{'-'.join(parts)}" if parts else f"{prefix}-OTHER"


def _pipe_key(parsed: ParsedDimensions, row: RawRow) -> str:
    if parsed.diameter is None:
        return _influence(row.description) + "OTHER"
    return _influence(row.description) + f"{parsed.diameter:.3f}x{parsed.thickness:g}"


def _driven_key(parsed: ParsedDimensions, row: RawRow) -> str:
    return _influence(row.description) + (parsed.get("hp") or "OTHER")


def _cfa_key(parsed: ParsedDimensions, row: RawRow) -> str:
    return _influence(row.description) + "CFA"


def _misc_key(parsed: ParsedDimensions, row: RawRow) -> str:
    return parsed.get("kind", "other")


def _width_key(parsed: ParsedDimensions, row: RawRow) -> str:
    return round_key(parsed.width)


def _length_key(parsed: ParsedDimensions, row: RawRow) -> str:
    return round_key(parsed.length)


def _subtype_key(parsed: ParsedDimensions, row: RawRow) -> str:
    return parsed.get("subtype", "other")


def _mat_key(parsed: ParsedDimensions, row: RawRow) -> str:
    if parsed.get("subtype") == "haunch":
        return f"{round_key(parsed.width)}x{round_key(parsed.height)}"
    return f"H{round_key(parsed.height)}"


def _sog_key(parsed: ParsedDimensions, row: RawRow) -> str:
    subtype = parsed.get("subtype")
    if subtype == "sog_slab":
        height = round_key(parsed.height) if parsed.height is not None else "other"
        return f"{parsed.get('prefix', 'sog')}_{height}"
    if subtype == "sog_step":
        return f"{round_key(parsed.width)}x{round_key(parsed.height)}"
    return subtype or "other"


def _stairs_key(parsed: ParsedDimensions, row: RawRow) -> str:
    return at_label(row.description) or "NO_AT"


RULES = RuleTable(
    [
        Rule("stelcor", STELCOR_PILE, contains("stelcor"), _pipe_pile("stelcor"), _pipe_key),
        Rule("helical", HELICAL_PILE, lambda t: "helical" in t and "pile" in t, _pipe_pile("helical"), _pipe_key),
        Rule("driven", DRIVEN_PILE, lambda t: "driven" in t and "pile" in t, _driven, _driven_key),
        Rule("cfa", CFA_PILE, contains("cfa pile"), _cfa, _cfa_key),
        Rule("drilled", DRILLED_PILE, _drilled_pile, _drilled, _drilled_key),
        Rule("pile_cap", PILE_CAPS, lambda t: "pile cap" in t or t.startswith("pc-"), _box),
        Rule("service_elevator_pit", SERVICE_ELEVATOR_PIT, _service_elevator_pit, _pit, _subtype_key),
        Rule("elevator_pit", ELEVATOR_PIT, _elevator_pit, _pit, _subtype_key),
        Rule("detention_tank", DETENTION_TANK, contains("detention tank"), _pit, _subtype_key),
        Rule(
            "duplex_sewage_pit",
            DUPLEX_SEWAGE_PIT,
            matches(r"duplex sewage ejector (pit|slab|mat|wall|slope|haunch|sump)"),
            _pit,
            _subtype_key,
        ),
        Rule(
            "deep_sewage_pit",
            DEEP_SEWAGE_PIT,
            matches(r"(deep sewage )?ejector (slab|mat|wall|slope|haunch|sump|pit)"),
            _pit,
            _subtype_key,
        ),
        Rule("sump_pump_pit", SUMP_PUMP_PIT, _sump_pump_pit, _pit, _subtype_key),
        Rule("grease_trap", GREASE_TRAP, contains("grease trap"), _pit, _subtype_key),
        Rule("house_trap", HOUSE_TRAP, contains("house trap"), _pit, _subtype_key),
        Rule(
            "strip_footing",
            STRIP_FOOTINGS,
            lambda t: "strip footing" in t or "wall footing" in t or t.startswith(("sf", "st-", "wf-")),
            _strip,
            _width_key,
        ),
        Rule("grade_beam", GRADE_BEAMS, lambda t: "grade beam" in t or t.startswith("gb"), _linear, _width_key),
        Rule("tie_beam", TIE_BEAM, lambda t: "tie beam" in t or t.startswith("tb"), _linear, _width_key),
        Rule("strap_beam", STRAP_BEAMS, _strap_beam, _linear, _width_key),
        Rule("thickened_slab", THICKENED_SLAB, contains("thickened slab"), _linear, _width_key),
        Rule("buttress", BUTTRESSES, contains("buttress"), _box, _length_key),
        Rule("pier", PIER, starts("pier", "concrete pier"), _box, _length_key),
        Rule("corbel", CORBEL, contains("corbel"), _linear, _width_key),
        Rule("linear_wall", LINEAR_WALL, contains("linear wall", "liner wall"), _linear, _width_key),
        Rule(
            "foundation_wall",
            FOUNDATION_WALL,
            excluding(lambda t: "foundation wall" in t or "fndt wall" in t or t.startswith("fw"), "retaining"),
            _linear,
            _width_key,
        ),
        Rule("retaining_wall", RETAINING_WALLS, lambda t: "retaining wall" in t or t.startswith("rw"), _linear, _width_key),
        Rule("barrier_wall", BARRIER_WALL, contains("barrier wall", "vehicle barrier"), _linear, _width_key),
        Rule("stem_wall", STEM_WALL, contains("stem wall"), _linear, _width_key),
        Rule("isolated_footing", ISOLATED_FOOTINGS, _isolated_footing, _box),
        Rule("pilaster", PILASTER, contains("pilaster"), _box),
        Rule("mat_slab", MAT_SLAB, _mat_slab, _mat, _mat_key),
        Rule("mud_slab", MUD_SLAB, lambda t: t in ("mud slab", "mud mat")),
        Rule(
            "sog",
            SOG,
            excluding(contains("sog", "gravel", "geotextile filter fabric", "slab on grade"), "demo"),
            _sog,
            _sog_key,
        ),
        Rule("rog", SOG, excluding(matches(r"\brog\b|ramp on grade"), "demo"), _rog, _sog_key),
        Rule("stairs_on_grade", STAIRS, contains("stairs on grade", "landings on grade"), _stairs, _stairs_key),
        Rule(
            "electric_conduit",
            ELECTRIC_CONDUIT,
            contains("underground electric conduit", "electric conduit in slab", "trench drain", "perforated pipe"),
        ),
        Rule("misc_pile", MISC_PILES, _misc_pile, _misc, _misc_key),
    ]
)


# -- formulas --------------------------------------------------------------------


def _pile(item: ClassifiedItem) -> Cells:
    parsed = item.parsed
    cells: Cells = {HEIGHT: parsed.calculated_height, FT: this.H * this.C, QTY_FINAL: this.C}
    if parsed.get("dual"):
        cells[SQ_FT] = this.E * this.C
        if parsed.weight and parsed.get("second_weight"):
            cells[LBS] = this.I * parsed.weight + this.J * parsed.get("second_weight")
    elif parsed.weight:
        cells[LBS] = this.I * round(parsed.weight, 3)
    return cells


def _cfa_cells(item: ClassifiedItem) -> Cells:
    return {HEIGHT: item.parsed.calculated_height, FT: this.H * this.C, QTY_FINAL: this.C}


def _misc_cells(item: ClassifiedItem) -> Cells:
    if item.parsed.get("kind") == "cfa":
        return _cfa_cells(item)
    return _pile(item)


def _cap(item: ClassifiedItem) -> Cells:
    return {**dims(item.parsed), SQ_FT: this.C * this.H * this.G, CY: this.J * this.F / 27, QTY_FINAL: this.C}


def _footing(item: ClassifiedItem) -> Cells:
    return {**dims(item.parsed), **box_volume()}


def _strip_cells(item: ClassifiedItem) -> Cells:
    cells = {**dims(item.parsed, length=False), FT: this.C}
    if item.parsed.get("variant") == "ST":
        cells.update({SQ_FT: this.H * this.I, CY: this.J * this.G / 27})
    else:
        cells.update({SQ_FT: this.G * this.I, CY: this.J * this.H / 27})
    return cells


def _linear_cells(item: ClassifiedItem) -> Cells:
    return {**dims(item.parsed, length=False), **linear_to_area()}


def _buttress(item: ClassifiedItem) -> Cells:
    return {
        **dims(item.parsed),
        FT: this.H * this.C,
        SQ_FT: this.C * this.H * this.G,
        CY: this.J * this.F / 27,
        QTY_FINAL: this.C,
    }


def _slab(item: ClassifiedItem) -> Cells:
    return {HEIGHT: item.parsed.height, **area_only()}


def _pit_cells(item: ClassifiedItem) -> Cells:
    subtype = item.parsed.get("subtype")
    if subtype == "sump_pit":
        return {SQ_FT: SUMP_PIT_AREA * this.C, CY: this.C * SWELL, QTY_FINAL: this.C}
    if subtype in ("slab", "lid_slab", "mat", "mat_slab"):
        return _slab(item)
    if subtype in ("wall", "slope_transition"):
        return _linear_cells(item)
    return {}


def _mat_cells(item: ClassifiedItem) -> Cells:
    if item.parsed.get("subtype") == "haunch":
        return _linear_cells(item)
    return _slab(item)


def _sog_cells(item: ClassifiedItem) -> Cells:
    subtype = item.parsed.get("subtype")
    if subtype == "geotextile":
        return {SQ_FT: this.C}
    if subtype == "sog_step":
        return _linear_cells(item)
    return _slab(item)


def _stairs_cells(item: ClassifiedItem) -> Cells:
    if item.parsed.get("subtype") == "landings":
        return {HEIGHT: LANDING_THICKNESS, **area_only()}
    return {
        LENGTH: STAIR_TREAD,
        WIDTH: item.parsed.width,
        HEIGHT: item.parsed.height or STAIR_RISER,
        SQ_FT: this.C * this.G * this.F,
        CY: this.J * this.H / 27,
        QTY_FINAL: this.C,
    }


FORMULAS = {
    "drilled": _pile,
    "helical": _pile,
    "stelcor": _pile,
    "driven": _pile,
    "cfa": _cfa_cells,
    "misc_pile": _misc_cells,
    "pile_cap": _cap,
    "pilaster": _cap,
    "isolated_footing": _footing,
    "pier": _footing,
    "strip_footing": _strip_cells,
    "grade_beam": _linear_cells,
    "tie_beam": _linear_cells,
    "strap_beam": _linear_cells,
    "thickened_slab": _linear_cells,
    "corbel": _linear_cells,
    "linear_wall": _linear_cells,
    "foundation_wall": _linear_cells,
    "retaining_wall": _linear_cells,
    "barrier_wall": _linear_cells,
    "stem_wall": _linear_cells,
    "buttress": _buttress,
    "service_elevator_pit": _pit_cells,
    "elevator_pit": _pit_cells,
    "detention_tank": _pit_cells,
    "duplex_sewage_pit": _pit_cells,
    "deep_sewage_pit": _pit_cells,
    "sump_pump_pit": _pit_cells,
    "grease_trap": _pit_cells,
    "house_trap": _pit_cells,
    "mat_slab": _mat_cells,
    "mud_slab": lambda item: area_only(),
    "sog": _sog_cells,
    "rog": _sog_cells,
    "stairs_on_grade": _stairs_cells,
    "electric_conduit": lambda item: {FT: this.C},
}


def _stair_slab(stairs: RowHandle, has_width: bool) -> Cells:
    cells: Cells = {
        TAKEOFF: at(stairs).C * STAIR_SLAB_FACTOR,
        WIDTH: at(stairs).G,
        HEIGHT: LANDING_THICKNESS,
        FT: this.C,
        SQ_FT: this.I * this.H,
    }
    if has_width:
        cells[CY] = this.J * this.G / 27
    else:
        cells[LENGTH] = at(stairs).G
        cells[CY] = this.J * this.F / 27
    return cells


class Foundation(Discipline):
    key = "foundation"
    title = "Foundation"
    labels = ("Foundation",)
    subsections = (
        DRILLED_PILE,
        HELICAL_PILE,
        DRIVEN_PILE,
        STELCOR_PILE,
        CFA_PILE,
        MISC_PILES,
        PILE_CAPS,
        STRIP_FOOTINGS,
        ISOLATED_FOOTINGS,
        PILASTER,
        GRADE_BEAMS,
        TIE_BEAM,
        STRAP_BEAMS,
        THICKENED_SLAB,
        BUTTRESSES,
        PIER,
        CORBEL,
        LINEAR_WALL,
        FOUNDATION_WALL,
        RETAINING_WALLS,
        BARRIER_WALL,
        STEM_WALL,
        ELEVATOR_PIT,
        SERVICE_ELEVATOR_PIT,
        DETENTION_TANK,
        DUPLEX_SEWAGE_PIT,
        DEEP_SEWAGE_PIT,
        SUMP_PUMP_PIT,
        GREASE_TRAP,
        HOUSE_TRAP,
        MAT_SLAB,
        MUD_SLAB,
        SOG,
        STAIRS,
        ELECTRIC_CONDUIT,
    )
    rules = RULES
    formulas = FORMULAS

    def layout(self, builder: SheetBuilder, items: Sequence[ClassifiedItem], context: LayoutContext) -> None:
        if not items:
            return
        section = self.open_section(builder, context)
        concrete: List[RowHandle] = []
        by_sub: Dict[str, List[ClassifiedItem]] = {}
        for item in items:
            by_sub.setdefault(item.subsection, []).append(item)

        for subsection in self.subsections:
            members = by_sub.get(subsection)
            if not members:
                continue
            builder.subsection(subsection)
            if subsection == STAIRS:
                concrete.append(self._stairs(builder, members, context))
            else:
                for group in self.group(subsection, members):
                    _, handle = self.emit_group(builder, group, context)
                    if group.sum_spec is not None and CY in group.sum_spec.columns:
                        concrete.append(handle)
            builder.blank()

        if concrete:
            builder.defer(section, TAKEOFF, total(CY, *((h, h) for h in concrete)))

    def _stairs(
        self, builder: SheetBuilder, members: Sequence[ClassifiedItem], context: LayoutContext
    ) -> RowHandle:
        """Landings, stairs and derived stair-slab rows per flight, closed by one composite sum."""

        handles: List[RowHandle] = []
        slab_rows: List[int] = []
        stair_rows: List[int] = []
        for group in group_items(members, merge_singletons=False):
            ordered = sorted(group.members, key=lambda i: i.parsed.get("subtype") != "landings")
            for item in ordered:
                handle = builder.data(item, self.cells(item))
                handles.append(handle)
                if item.parsed.get("subtype") != "stairs":
                    continue
                stair_rows.append(len(handles) - 1)
                slab = builder.note(
                    "Stair slab", _stair_slab(handle, item.parsed.width is not None), item_type="stair_slab"
                )
                handles.append(slab)
                slab_rows.append(len(handles) - 1)

        spans = {}
        columns = [SQ_FT, CY]
        if slab_rows:
            spans[FT] = tuple((i, i) for i in slab_rows)
            columns.insert(0, FT)
        if stair_rows:
            spans[QTY_FINAL] = tuple((i, i) for i in stair_rows)
            columns.append(QTY_FINAL)
        composite = Group(
            subsection=STAIRS,
            group_key="STAIRS",
            members=tuple(members),
            sum_spec=SumRowSpec(columns=tuple(columns), spans=spans),
        )
        handle = builder.sum(sum_cells(composite, handles))
        context.record_sum(self.title, STAIRS, handle)
        return handle


__all__ = ["Foundation", "RULES"]
