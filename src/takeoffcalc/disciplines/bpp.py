"""B.P.P. Alternate #2 scope: street-by-street paving items.

Descriptions look like ``West Street - BPP Concrete sidewalk 4" thick``. Every street gets
its own block holding the paving subsections in a fixed order.
"""
from __future__ import annotations

import logging
import re
from collections import OrderedDict
from typing import Dict, List, Optional, Sequence

from ..classifier import Rule, RuleTable, category_allows, claim, contains, normalize_text
from ..dimensions import assignment
from ..formulas import Literal, this
from ..layout import SheetBuilder
from ..models import CY, FT, HEIGHT, SQ_FT, WIDTH, ClassifiedItem, ParsedDimensions, RawRow
from ..tracker import UsedRowTracker
from .base import Cells, Discipline, LayoutContext

logger = logging.getLogger(__name__)

SECTION_LABEL = "B.P.P. Alternate #2 scope"

SIDEWALK = "Concrete sidewalk"
DRIVEWAY = "Concrete driveway"
CURB = "Concrete curb"
FLUSH_CURB = "Concrete flush curb"
EXPANSION_JOINT = "Expansion joint"
ASPHALT = "Full depth asphalt pavement"

_STREET = re.compile(r"^(.+?)\s*-\s*BPP\s", re.IGNORECASE)
_INCHES_THICK = re.compile(r"(\d+(?:\.\d+)?)\s*\"\s*thick", re.IGNORECASE)
_INCHES_WIDE = re.compile(r"(\d+(?:\.\d+)?)\s*\"\s*wide", re.IGNORECASE)
_LAYER = r"(\d+(?:\.\d+)?)\s*\"\s*(?:thick\s+)?{}"


def street_name(description: str) -> Optional[str]:
    match = _STREET.match((description or "").strip())
    return match.group(1).strip() if match else None


def _bpp(*needles: str):
    inner = contains(*needles)
    return lambda text: _STREET.match(text) is not None and inner(text)


def _inches(pattern, text: str) -> Optional[float]:
    match = pattern.search(text or "")
    return float(match.group(1)) if match else None


def _layer(text: str, name: str) -> float:
    match = re.search(_LAYER.format(name), text or "", re.IGNORECASE)
    return float(match.group(1)) if match else 0.0


def _street_key(parsed: ParsedDimensions, row: RawRow) -> str:
    return street_name(row.description) or ""


def _slab(row: RawRow) -> ParsedDimensions:
    thick = _inches(_INCHES_THICK, row.description)
    return ParsedDimensions(
        height=thick / 12 if thick else None,
        extras={"street": street_name(row.description), "thick_in": thick},
    )


def _curb(row: RawRow) -> ParsedDimensions:
    wide = _inches(_INCHES_WIDE, row.description)
    height = assignment(row.description, "Height")
    if wide is None or height is None:
        return ParsedDimensions(extras={"street": street_name(row.description)})
    return ParsedDimensions(
        width=wide / 12, height=height, extras={"street": street_name(row.description), "wide_in": wide}
    )


def _asphalt(row: RawRow) -> ParsedDimensions:
    surface = _layer(row.description, "surface")
    base = _layer(row.description, "base")
    return ParsedDimensions(
        height=(surface + base) / 12,
        extras={
            "street": street_name(row.description),
            "surface_in": surface,
            "base_in": base,
            "gravel_in": _layer(row.description, "gravel"),
        },
    )


def _plain(row: RawRow) -> ParsedDimensions:
    return ParsedDimensions(extras={"street": street_name(row.description)})


RULES = RuleTable(
    [
        Rule("bpp_concrete_sidewalk", SIDEWALK, _bpp("bpp concrete sidewalk"), _slab, _street_key),
        Rule("bpp_concrete_driveway", DRIVEWAY, _bpp("bpp concrete driveway"), _slab, _street_key),
        Rule("bpp_concrete_flush_curb", FLUSH_CURB, _bpp("bpp concrete flush curb"), _curb, _street_key),
        Rule("bpp_concrete_curb", CURB, _bpp("bpp concrete curb", "bpp concrete drop curb"), _curb, _street_key),
        Rule("bpp_expansion_joint", EXPANSION_JOINT, _bpp("bpp expansion joint"), _plain, _street_key),
        Rule(
            "bpp_full_depth_asphalt",
            ASPHALT,
            _bpp("bpp full depth asphalt", "bpp asphalt", "bpp roadway"),
            _asphalt,
            _street_key,
        ),
    ]
)


def _slab_cells(item: ClassifiedItem) -> Cells:
    thick = item.parsed.get("thick_in")
    return {
        HEIGHT: Literal(thick) / 12 if thick else None,
        FT: this.C,
        SQ_FT: this.C,
        CY: this.J * this.H / 27,
    }


def _curb_cells(item: ClassifiedItem) -> Cells:
    wide = item.parsed.get("wide_in")
    return {
        WIDTH: Literal(wide) / 12 if wide else None,
        HEIGHT: item.parsed.height,
        FT: this.C,
        SQ_FT: this.I * this.H,
        CY: this.I * this.G / 27,
    }


def _asphalt_cells(item: ClassifiedItem) -> Cells:
    surface = item.parsed.get("surface_in", 0.0)
    base = item.parsed.get("base_in", 0.0)
    return {
        HEIGHT: (Literal(surface) + Literal(base)) / 12,
        FT: this.C,
        SQ_FT: this.C,
        CY: this.J * this.H / 27,
    }


FORMULAS = {
    "bpp_concrete_sidewalk": _slab_cells,
    "bpp_concrete_driveway": _slab_cells,
    "bpp_concrete_curb": _curb_cells,
    "bpp_concrete_flush_curb": _curb_cells,
    "bpp_expansion_joint": lambda item: {FT: this.C},
    "bpp_full_depth_asphalt": _asphalt_cells,
}


class BPPAlternate(Discipline):
    key = "bpp"
    title = SECTION_LABEL
    labels = (SECTION_LABEL,)
    subsections = (SIDEWALK, DRIVEWAY, CURB, FLUSH_CURB, EXPANSION_JOINT, ASPHALT)
    rules = RULES
    formulas = FORMULAS

    def _gate(self, row: RawRow) -> bool:
        return "- bpp " in normalize_text(row.description) or category_allows(row.category, self.labels)

    def claim(self, rows: Sequence[RawRow], tracker: UsedRowTracker) -> List[ClassifiedItem]:
        items = claim(self.rules, rows, tracker, self.key, gate=self._gate)
        logger.debug("%s claimed %d rows", self.title, len(items))
        return items

    def streets(self, items: Sequence[ClassifiedItem]) -> Dict[str, List[ClassifiedItem]]:
        found: "OrderedDict[str, List[ClassifiedItem]]" = OrderedDict()
        for item in items:
            found.setdefault(item.group_key, []).append(item)
        return found

    def layout(self, builder: SheetBuilder, items: Sequence[ClassifiedItem], context: LayoutContext) -> None:
        if not items:
            return
        self.open_section(builder, context)
        for street, members in self.streets(items).items():
            builder.subsection(street)
            for subsection in self.subsections:
                rows = [item for item in members if item.subsection == subsection]
                if not rows:
                    continue
                builder.subsection(subsection)
                for group in self.group(subsection, rows):
                    self.emit_group(builder, group, context)
                builder.blank()


__all__ = ["BPPAlternate", "RULES", "street_name"]
