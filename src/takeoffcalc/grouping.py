from __future__ import annotations

from collections import OrderedDict
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from .models import DERIVED_COLUMNS, ClassifiedItem, Group, SumRowSpec

ColumnsOf = Callable[[ClassifiedItem], Iterable[str]]


def sum_spec_for(members: Sequence[ClassifiedItem], columns_of: Optional[ColumnsOf]) -> Optional[SumRowSpec]:
    """Sum every derived column that at least one member row carries."""

    if columns_of is None:
        return None
    present = set()
    for item in members:
        present.update(columns_of(item))
    return SumRowSpec(columns=tuple(c for c in DERIVED_COLUMNS if c in present))


def group_items(
    items: Sequence[ClassifiedItem],
    *,
    columns_of: Optional[ColumnsOf] = None,
    merge_singletons: bool = True,
    merged_key: str = "MERGED",
    key: Callable[[ClassifiedItem], str] = lambda item: item.group_key,
) -> List[Group]:
    """Cluster ``items`` by key, keeping first-seen order.

    Groups with several members come first in first-seen order. All singleton groups are
    then gathered into one merged block so no sum row ever covers a single row.
    """

    buckets: "OrderedDict[str, List[ClassifiedItem]]" = OrderedDict()
    for item in items:
        buckets.setdefault(key(item), []).append(item)

    groups: List[Group] = []
    singles: List[ClassifiedItem] = []
    for group_key, members in buckets.items():
        if merge_singletons and len(members) == 1:
            singles.extend(members)
            continue
        groups.append(
            Group(
                subsection=members[0].subsection,
                group_key=group_key,
                members=tuple(members),
                sum_spec=sum_spec_for(members, columns_of),
            )
        )
    if singles:
        groups.append(
            Group(
                subsection=singles[0].subsection,
                group_key=merged_key,
                members=tuple(singles),
                sum_spec=sum_spec_for(singles, columns_of),
                merged=True,
            )
        )
    return groups


def by_subsection(items: Iterable[ClassifiedItem], order: Sequence[str]) -> Dict[str, List[ClassifiedItem]]:
    """Bucket items per subsection following ``order``; unknown subsections go last."""

    buckets: Dict[str, List[ClassifiedItem]] = {name: [] for name in order}
    for item in items:
        buckets.setdefault(item.subsection, []).append(item)
    return {name: members for name, members in buckets.items() if members}


__all__ = ["by_subsection", "group_items", "sum_spec_for"]
