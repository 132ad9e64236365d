from __future__ import annotations

from typing import FrozenSet


def load_stock_universe(symbols: str | None) -> FrozenSet[str]:
    """Parse a pipe-separated ticker list (``"AAPL|MSFT|BRK.B"``) into a set."""
    if not symbols:
        return frozenset()
    return frozenset(t.strip().upper() for t in symbols.split("|") if t.strip())
