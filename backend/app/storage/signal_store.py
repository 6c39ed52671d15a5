"""Latest-signal store keyed by (symbol, timeframe).

Writes are sequence-guarded upserts: a result carrying a lower cycle
sequence than the stored one is dropped, so a late finisher from an older
cycle can never overwrite a newer signal. Readers get an explicit
fresh/stale/absent status, never a zero-valued placeholder.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Awaitable, Callable

from core.models import CalculatedSignal, SignalLookup, SignalStatus

logger = logging.getLogger(__name__)

# Type alias for publish callback
PublishCallback = Callable[[CalculatedSignal], Awaitable[object]]


@dataclass(frozen=True)
class _Entry:
    signal: CalculatedSignal
    sequence: int


class SignalStore:
    """In-memory latest-value store consumed by downstream readers.

    Parameters
    ----------
    stale_after : dict[str, float]
        Seconds after a signal's data timestamp at which signals of that
        timeframe are reported stale. Timeframes not listed never go stale.
    clock : Callable[[], float]
        Epoch-seconds time source, injectable for tests.
    """

    def __init__(
        self,
        stale_after: dict[str, float] | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.stale_after = dict(stale_after or {})
        self._clock = clock
        self._entries: dict[tuple[str, str], _Entry] = {}
        self._lock = threading.Lock()
        self._callbacks: list[PublishCallback] = []
        self._rejected_stale_writes = 0

    def on_publish(self, callback: PublishCallback) -> None:
        """Register callback for accepted signals.

        Note: Duplicate callbacks are ignored.
        """
        if callback not in self._callbacks:
            self._callbacks.append(callback)

    def upsert(self, signal: CalculatedSignal, sequence: int) -> bool:
        """Store ``signal`` unless a higher sequence is already stored.

        Equal sequences replace (recomputation within the same cycle).

        Returns:
            True if the signal was stored
        """
        key = signal.key
        with self._lock:
            current = self._entries.get(key)
            if current is not None and sequence < current.sequence:
                self._rejected_stale_writes += 1
                logger.debug(
                    "Dropped %s %s from cycle %d (stored cycle %d)",
                    signal.symbol, signal.timeframe, sequence, current.sequence,
                )
                return False
            self._entries[key] = _Entry(signal=signal, sequence=sequence)
            return True

    async def publish(self, signal: CalculatedSignal, sequence: int) -> bool:
        """Upsert, then notify callbacks if the signal was accepted."""
        if not self.upsert(signal, sequence):
            return False

        for callback in self._callbacks:
            try:
                await callback(signal)
            except Exception as e:
                logger.error(f"Signal publish callback error: {e}")
        return True

    def _status(self, entry: _Entry, now: float) -> SignalStatus:
        # Age counts from the data timestamp, not from when the entry was stored.
        limit = self.stale_after.get(entry.signal.timeframe)
        if limit is not None and now - entry.signal.timestamp.timestamp() > limit:
            return SignalStatus.STALE
        return SignalStatus.FRESH

    def get_signal(self, symbol: str, timeframe: str) -> SignalLookup:
        with self._lock:
            entry = self._entries.get((symbol, timeframe))
        if entry is None:
            return SignalLookup(symbol=symbol, timeframe=timeframe, status=SignalStatus.ABSENT)

        return SignalLookup(
            symbol=symbol,
            timeframe=timeframe,
            status=self._status(entry, self._clock()),
            signal=entry.signal,
            as_of=entry.signal.timestamp,
        )

    def get_all_signals(self, timeframe: str) -> list[CalculatedSignal]:
        """Latest signal of every symbol for a timeframe, sorted by symbol."""
        with self._lock:
            entries = [e for (_, tf), e in self._entries.items() if tf == timeframe]
        return [e.signal for e in sorted(entries, key=lambda e: e.signal.symbol)]

    def get_all_lookups(self, timeframe: str) -> list[SignalLookup]:
        """Like get_all_signals, with freshness status per entry."""
        with self._lock:
            symbols = sorted(s for (s, tf) in self._entries if tf == timeframe)
        return [self.get_signal(s, timeframe) for s in symbols]

    def sequence_of(self, symbol: str, timeframe: str) -> int | None:
        with self._lock:
            entry = self._entries.get((symbol, timeframe))
        return entry.sequence if entry else None

    @property
    def rejected_stale_writes(self) -> int:
        return self._rejected_stale_writes

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
