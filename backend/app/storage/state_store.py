"""Application state and its persistence port.

AppState is the explicit process state: watchlist, Params, interval and
the signal history with its stats. It is read once at startup and written
after each mutation through a StateStore. Two stores are provided:

- MemoryStateStore: keeps the last saved copy in memory (tests, dry runs)
- JsonFileStateStore: one JSON document on disk, replaced atomically
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
from pathlib import Path
from typing import Protocol

import orjson
from pydantic import BaseModel, Field, ValidationError

from core.models import BREAKOUT_PARAMS, LifecycleStats, Params, Signal

logger = logging.getLogger(__name__)

DEFAULT_WATCHLIST = ["BTCUSDT", "ETHUSDT", "SOLUSDT", "XRPUSDT", "DOGEUSDT"]
SUPPORTED_INTERVALS = ("1", "3", "5", "15")

QUOTE_ASSET = "USDT"
_SYMBOL_RE = re.compile(r"^[A-Z0-9]{3,15}$")


def normalize_symbol(raw: str) -> str | None:
    """Upper-case, append USDT when missing, validate. None if invalid."""
    symbol = raw.strip().upper()
    if not symbol:
        return None
    if not symbol.endswith(QUOTE_ASSET):
        symbol += QUOTE_ASSET
    if not _SYMBOL_RE.match(symbol):
        return None
    return symbol


class AppState(BaseModel):
    """Persisted process state."""

    watchlist: list[str] = Field(default_factory=lambda: list(DEFAULT_WATCHLIST))
    params: Params = BREAKOUT_PARAMS
    interval: str = "5"
    signals: list[Signal] = Field(default_factory=list)
    stats: LifecycleStats = Field(default_factory=LifecycleStats)

    def add_symbol(self, raw: str) -> str | None:
        """
        Add a symbol to the front of the watchlist.

        Returns:
            The normalized symbol if it was added, None if invalid or
            already watched
        """
        symbol = normalize_symbol(raw)
        if symbol is None or symbol in self.watchlist:
            return None
        self.watchlist.insert(0, symbol)
        return symbol

    def remove_symbol(self, symbol: str) -> bool:
        """Remove an exact symbol. Returns False if it was not watched."""
        if symbol not in self.watchlist:
            return False
        self.watchlist.remove(symbol)
        return True

    def set_interval(self, interval: str) -> None:
        if interval not in SUPPORTED_INTERVALS:
            raise ValueError(
                f"interval must be one of {SUPPORTED_INTERVALS}, got '{interval}'"
            )
        self.interval = interval


class StateStore(Protocol):
    """Persistence port for AppState."""

    async def load(self) -> AppState | None:
        """Return the saved state, or None when nothing was saved yet."""
        ...

    async def save(self, state: AppState) -> None:
        ...


class MemoryStateStore:
    """In-memory store. Saves a deep copy so later mutations don't leak in."""

    def __init__(self, initial: AppState | None = None):
        self._state = initial.model_copy(deep=True) if initial else None
        self.save_count = 0

    async def load(self) -> AppState | None:
        return self._state.model_copy(deep=True) if self._state else None

    async def save(self, state: AppState) -> None:
        self._state = state.model_copy(deep=True)
        self.save_count += 1


class JsonFileStateStore:
    """Store AppState as a single JSON file."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._lock = asyncio.Lock()

    async def load(self) -> AppState | None:
        if not self.path.exists():
            logger.info(f"No saved state at {self.path}, starting fresh")
            return None
        raw = await asyncio.to_thread(self.path.read_bytes)
        try:
            state = AppState.model_validate(orjson.loads(raw))
        except (orjson.JSONDecodeError, ValidationError) as e:
            logger.warning(f"Ignoring unreadable state file {self.path}: {e}")
            return None
        logger.info(
            f"Loaded state: {len(state.watchlist)} symbols, "
            f"{len(state.signals)} signals, interval={state.interval}"
        )
        return state

    async def save(self, state: AppState) -> None:
        data = orjson.dumps(state.model_dump(mode="json"), option=orjson.OPT_INDENT_2)
        async with self._lock:
            await asyncio.to_thread(self._write, data)

    def _write(self, data: bytes) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_name(self.path.name + ".tmp")
        tmp.write_bytes(data)
        os.replace(tmp, self.path)
