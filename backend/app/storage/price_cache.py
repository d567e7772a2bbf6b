"""Price cache for fast access to latest prices.

Holds the latest accepted PriceTick for each symbol in memory. The ticker
feed is the only writer; the decision cycle and the position tracker read
through ``get_price`` / ``snapshot``. No history is kept: a new tick
overwrites the previous one for that symbol.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Iterable, Mapping

from core.models import PriceTick

logger = logging.getLogger(__name__)

class PriceCache:
    """Single-writer map of symbol -> latest PriceTick."""

    def __init__(self):
        self._ticks: dict[str, PriceTick] = {}

    def update(self, symbol: str, price: float, timestamp: datetime | None = None) -> PriceTick:
        """Store the latest price for a symbol and return the tick."""
        tick = PriceTick(
            symbol=symbol,
            price=price,
            timestamp=timestamp or datetime.now(timezone.utc),
        )
        self._ticks[symbol] = tick
        return tick

    def get(self, symbol: str) -> PriceTick | None:
        return self._ticks.get(symbol)

    def get_price(self, symbol: str) -> float | None:
        """Latest price for a symbol, or None if no tick has been accepted."""
        tick = self._ticks.get(symbol)
        return tick.price if tick else None

    def snapshot(self) -> Mapping[str, float]:
        """Read-only view of symbol -> price at this moment."""
        return MappingProxyType({s: t.price for s, t in self._ticks.items()})

    def retain(self, symbols: Iterable[str]) -> int:
        """Drop every symbol not in ``symbols``. Returns the number removed."""
        keep = set(symbols)
        removed = [s for s in self._ticks if s not in keep]
        for symbol in removed:
            del self._ticks[symbol]
        if removed:
            logger.debug(f"Dropped cached prices for {removed}")
        return len(removed)

    def clear(self) -> None:
        self._ticks.clear()

    def __contains__(self, symbol: str) -> bool:
        return symbol in self._ticks

    def __len__(self) -> int:
        return len(self._ticks)
