"""In-memory TTL cache of the latest MarketSnapshot per symbol.

Collapses redundant upstream requests when several timeframes need the
same symbol within one refresh window. Expiry is checked lazily on read;
there is no background sweep because the key space is the fixed symbol
universe.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Iterable

from core.models import MarketSnapshot, SnapshotSource

DEFAULT_TTL = 30.0  # seconds


@dataclass(frozen=True)
class CacheStats:
    hits: int
    misses: int
    expired: int
    size: int

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0


class MarketDataCache:
    """Latest snapshot per symbol with lazy TTL expiry.

    Parameters
    ----------
    ttl : float
        Seconds a snapshot stays servable after ``put``.
    clock : Callable[[], float]
        Monotonic time source, injectable for tests.
    """

    def __init__(self, ttl: float = DEFAULT_TTL, clock: Callable[[], float] = time.monotonic):
        if ttl <= 0:
            raise ValueError(f"ttl must be positive, got {ttl}")
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[str, tuple[float, MarketSnapshot]] = {}
        self._hits = 0
        self._misses = 0
        self._expired = 0

    def get(self, symbol: str) -> MarketSnapshot | None:
        """Return the cached snapshot tagged source=cache, or None if absent/expired."""
        entry = self._entries.get(symbol)
        if entry is None:
            self._misses += 1
            return None

        stored_at, snapshot = entry
        if self._clock() - stored_at >= self.ttl:
            del self._entries[symbol]
            self._expired += 1
            self._misses += 1
            return None

        self._hits += 1
        return snapshot.with_source(SnapshotSource.CACHE)

    def put(self, symbol: str, snapshot: MarketSnapshot) -> None:
        self._entries[symbol] = (self._clock(), snapshot)

    def missing(self, symbols: Iterable[str]) -> list[str]:
        """Symbols with no live entry. Does not touch hit/miss counters."""
        now = self._clock()
        result = []
        for symbol in symbols:
            entry = self._entries.get(symbol)
            if entry is None or now - entry[0] >= self.ttl:
                result.append(symbol)
        return result

    def clear(self) -> None:
        self._entries.clear()

    def stats(self) -> CacheStats:
        return CacheStats(
            hits=self._hits,
            misses=self._misses,
            expired=self._expired,
            size=len(self._entries),
        )

    def __len__(self) -> int:
        return len(self._entries)
