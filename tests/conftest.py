from __future__ import annotations

from typing import Callable, Optional

import pytest

from takeoffcalc.models import RawRow


@pytest.fixture
def make_row() -> Callable[..., RawRow]:
    counter = {"next": 0}

    def factory(
        description: str,
        quantity: Optional[float] = 10.0,
        unit: str = "FT",
        category: Optional[str] = None,
        index: Optional[int] = None,
    ) -> RawRow:
        if index is None:
            index = counter["next"]
        counter["next"] = max(counter["next"], index) + 1
        return RawRow(description=description, quantity=quantity, unit=unit, source_index=index, category=category)

    return factory
