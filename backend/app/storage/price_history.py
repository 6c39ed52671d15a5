"""Rolling per-symbol price history.

The engine only ever appends accepted upstream snapshots and reads the
window back; it never prunes, reorders or deletes. Pruning to the size
bound is the store's own business.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections import deque
from typing import Protocol

from core.models import MarketSnapshot, PriceHistoryWindow, QualityTier, quality_tier

logger = logging.getLogger(__name__)

DEFAULT_MAX_POINTS = 200


class PriceHistoryStore(Protocol):
    """Read/append interface the engine depends on."""

    async def append(self, symbol: str, snapshot: MarketSnapshot) -> bool: ...

    async def read(self, symbol: str) -> PriceHistoryWindow: ...


class InMemoryPriceHistory:
    """Bounded in-memory history, one deque per symbol.

    Parameters
    ----------
    max_points : int
        Points kept per symbol. Older points are discarded (FIFO).
    """

    def __init__(self, max_points: int = DEFAULT_MAX_POINTS):
        if max_points < 1:
            raise ValueError(f"max_points must be >= 1, got {max_points}")
        self.max_points = max_points
        self._history: dict[str, deque[MarketSnapshot]] = {}
        self._rejected = 0
        self._lock = asyncio.Lock()

    @staticmethod
    def _is_valid(snapshot: MarketSnapshot) -> bool:
        return math.isfinite(snapshot.price) and snapshot.price > 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def append(self, symbol: str, snapshot: MarketSnapshot) -> bool:
        """Append a snapshot. Returns False if it was rejected.

        Rejects non-finite or non-positive prices, and snapshots that are
        not newer than the last stored point (repeats of the same quote).
        """
        if not self._is_valid(snapshot):
            self._rejected += 1
            logger.warning("History: rejected %s price %s", symbol, snapshot.price)
            return False

        async with self._lock:
            buf = self._history.get(symbol)
            if buf is None:
                buf = deque(maxlen=self.max_points)
                self._history[symbol] = buf
            if buf and snapshot.timestamp <= buf[-1].timestamp:
                self._rejected += 1
                return False
            buf.append(snapshot)
            return True

    async def read(self, symbol: str) -> PriceHistoryWindow:
        """Ordered window (oldest first); empty for an unknown symbol."""
        async with self._lock:
            buf = self._history.get(symbol)
            points = tuple(buf) if buf else ()
        return PriceHistoryWindow(symbol=symbol, points=points)

    async def tier(self, symbol: str) -> QualityTier:
        async with self._lock:
            return quality_tier(len(self._history.get(symbol, ())))

    async def summary(self) -> dict[str, dict]:
        """Per-symbol point count, tier and time span."""
        async with self._lock:
            return {
                symbol: {
                    "count": len(buf),
                    "tier": quality_tier(len(buf)).value,
                    "first": buf[0].timestamp.isoformat() if buf else None,
                    "last": buf[-1].timestamp.isoformat() if buf else None,
                }
                for symbol, buf in self._history.items()
            }

    @property
    def rejected_count(self) -> int:
        return self._rejected
