"""Ordered rule tables and the claim/peek classification passes."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from .dimensions import normalize_fractions
from .models import ClassifiedItem, EMPTY_DIMENSIONS, ParsedDimensions, RawRow
from .tracker import UsedRowTracker

logger = logging.getLogger(__name__)

Predicate = Callable[[str], bool]
Parser = Callable[[RawRow], ParsedDimensions]
KeyFunc = Callable[[ParsedDimensions, RawRow], str]


def normalize_text(description: str) -> str:
    """Lower-cased, whitespace-collapsed description used by every predicate."""

    text = normalize_fractions(description or "")
    return re.sub(r"\s+", " ", text).strip().lower()


def _no_dimensions(row: RawRow) -> ParsedDimensions:
    return EMPTY_DIMENSIONS


def _single_group(parsed: ParsedDimensions, row: RawRow) -> str:
    return "ALL"


# -- predicate combinators -----------------------------------------------------


def contains(*needles: str) -> Predicate:
    return lambda text: any(n in text for n in needles)


def contains_all(*needles: str) -> Predicate:
    return lambda text: all(n in text for n in needles)


def starts(*prefixes: str) -> Predicate:
    return lambda text: text.startswith(prefixes)


def matches(pattern: str) -> Predicate:
    compiled = re.compile(pattern, re.IGNORECASE)
    return lambda text: bool(compiled.search(text))


def excluding(predicate: Predicate, *needles: str) -> Predicate:
    return lambda text: predicate(text) and not any(n in text for n in needles)


def any_of(*predicates: Predicate) -> Predicate:
    return lambda text: any(p(text) for p in predicates)


@dataclass(frozen=True)
class Rule:
    item_type: str
    subsection: str
    predicate: Predicate
    parser: Parser = _no_dimensions
    key: KeyFunc = _single_group


class RuleTable:
    """First-match-wins dispatcher over an ordered list of rules."""

    def __init__(self, rules: Sequence[Rule]):
        self.rules: Tuple[Rule, ...] = tuple(rules)

    def __len__(self) -> int:
        return len(self.rules)

    def __iter__(self):
        return iter(self.rules)

    def match(self, description: str) -> Optional[Rule]:
        text = normalize_text(description)
        if not text:
            return None
        for rule in self.rules:
            if rule.predicate(text):
                return rule
        return None

    def classify(self, row: RawRow, discipline: str, *, claimed: bool = True) -> Optional[ClassifiedItem]:
        rule = self.match(row.description)
        if rule is None:
            return None
        parsed = rule.parser(row)
        item = ClassifiedItem(
            discipline=discipline,
            subsection=rule.subsection,
            item_type=rule.item_type,
            group_key=rule.key(parsed, row),
            parsed=parsed,
            raw=row,
            claimed=claimed,
        )
        logger.debug("%s: %r -> %s/%s", discipline, row.description, rule.subsection, rule.item_type)
        return item


def category_allows(category: Optional[str], labels: Iterable[str]) -> bool:
    """A blank category is open to every discipline; otherwise it must name this one."""

    text = (category or "").strip().casefold()
    if not text:
        return True
    return any(text == label.strip().casefold() for label in labels)


def claim(
    table: RuleTable,
    rows: Iterable[RawRow],
    tracker: UsedRowTracker,
    discipline: str,
    *,
    labels: Sequence[str] = (),
    gate: Optional[Callable[[RawRow], bool]] = None,
) -> List[ClassifiedItem]:
    """Claiming pass: skips used rows and marks every row it classifies."""

    items: List[ClassifiedItem] = []
    for row in rows:
        if tracker.is_used(row.source_index):
            continue
        if gate is not None:
            if not gate(row):
                continue
        elif not category_allows(row.category, labels):
            continue
        item = table.classify(row, discipline)
        if item is None:
            continue
        tracker.mark_used(row.source_index, discipline)
        items.append(item)
    return items


def peek(
    table: RuleTable,
    rows: Iterable[RawRow],
    discipline: str,
    *,
    labels: Sequence[str] = (),
) -> List[ClassifiedItem]:
    """Read-only pass: classifies without consulting or touching any tracker."""

    items: List[ClassifiedItem] = []
    for row in rows:
        if not category_allows(row.category, labels):
            continue
        item = table.classify(row, discipline, claimed=False)
        if item is not None:
            items.append(item)
    return items


__all__ = [
    "Predicate",
    "Rule",
    "RuleTable",
    "any_of",
    "category_allows",
    "claim",
    "contains",
    "contains_all",
    "excluding",
    "matches",
    "normalize_text",
    "peek",
    "starts",
]
