from __future__ import annotations

from collections import Counter
from typing import Dict, Iterable, List, Optional

from .errors import InvariantViolation
from .models import RawRow


class UsedRowTracker:
    """Write-once record of which discipline claimed each raw row.

    One tracker belongs to one compile run; it is never shared between runs.
    """

    def __init__(self) -> None:
        self._owners: Dict[int, str] = {}

    def mark_used(self, index: int, owner: str) -> None:
        current = self._owners.get(index)
        if current is None:
            self._owners[index] = owner
            return
        if current != owner:
            raise InvariantViolation(
                f"row {index} already claimed by {current!r}, refused for {owner!r}"
            )

    def is_used(self, index: int) -> bool:
        return index in self._owners

    def owner(self, index: int) -> Optional[str]:
        return self._owners.get(index)

    def unused_rows(self, rows: Iterable[RawRow]) -> List[RawRow]:
        return [
            row
            for row in rows
            if (row.description or "").strip() and row.source_index not in self._owners
        ]

    def claims(self) -> Dict[int, str]:
        return dict(sorted(self._owners.items()))

    def stats(self) -> Dict[str, int]:
        counts = Counter(self._owners.values())
        return dict(sorted(counts.items()))

    def reset(self) -> None:
        self._owners.clear()

    def __len__(self) -> int:
        return len(self._owners)


__all__ = ["UsedRowTracker"]
