"""Market snapshot resolution: cache, then gated upstream, then history.

This is the only component that talks to the upstream API, and every call
it makes goes through ``AdaptiveRateLimiter.try_acquire`` first and reports
its outcome back.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Sequence

from app.clients import CoinMarketCapClient, UpstreamError
from app.storage import MarketDataCache, PriceHistoryStore
from core.models import (
    Absent,
    AbsentReason,
    ErrorKind,
    FetchFailed,
    MarketSnapshot,
    Resolved,
    SnapshotResult,
    SnapshotSource,
)
from core.rate_limiter import AdaptiveRateLimiter, AdmissionReason

logger = logging.getLogger(__name__)

_ABSENT_REASONS = {
    AdmissionReason.CIRCUIT_OPEN: AbsentReason.CIRCUIT_OPEN,
    AdmissionReason.BUDGET_EXCEEDED: AbsentReason.BUDGET_EXCEEDED,
}


@dataclass
class PrefetchResult:
    """Outcome of one cycle's batch prefetch."""

    fetched: int = 0
    # Symbols whose batch failed upstream; not retried until the next cycle.
    failed: dict[str, ErrorKind] = field(default_factory=dict)


class MarketDataService:
    """Resolve the latest snapshot for a symbol with the least upstream pressure."""

    def __init__(
        self,
        client: CoinMarketCapClient,
        limiter: AdaptiveRateLimiter,
        cache: MarketDataCache,
        history: PriceHistoryStore,
    ):
        self.client = client
        self.limiter = limiter
        self.cache = cache
        self.history = history
        self._outcomes: Counter[str] = Counter()

    async def _accept(self, snapshot: MarketSnapshot) -> None:
        """Cache an upstream snapshot and append it to history."""
        self.cache.put(snapshot.symbol, snapshot)
        await self.history.append(snapshot.symbol, snapshot)

    async def _from_history(self, symbol: str) -> MarketSnapshot | None:
        window = await self.history.read(symbol)
        latest = window.latest
        if latest is None:
            return None
        return latest.with_source(SnapshotSource.HISTORY)

    async def prefetch(self, symbols: Sequence[str]) -> PrefetchResult:
        """Fetch every cache-missing symbol in as few upstream calls as possible.

        One admission per batch. Stops at the first rejection or failure.
        After an upstream failure, the failed batch and every batch not yet
        attempted are reported in ``failed`` so the cycle does not retry them
        symbol by symbol.
        """
        result = PrefetchResult()
        missing = self.cache.missing(symbols)
        if not missing:
            return result

        batch_size = self.client.MAX_BATCH
        for start in range(0, len(missing), batch_size):
            batch = missing[start:start + batch_size]
            admission = self.limiter.try_acquire()
            if not admission.admitted:
                logger.debug(
                    "Prefetch of %d symbols not admitted: %s", len(batch), admission.reason.value
                )
                break

            try:
                quotes = await self.client.get_latest_quotes(batch)
            except UpstreamError as e:
                self.limiter.record_failure(e.kind)
                logger.warning("Prefetch of %d symbols failed: %s", len(batch), e)
                result.failed = {s: e.kind for s in missing[start:]}
                break
            except Exception:
                self.limiter.record_failure()
                raise

            self.limiter.record_success()
            for snapshot in quotes.values():
                await self._accept(snapshot)
            result.fetched += len(quotes)

        logger.debug("Prefetched %d/%d missing symbols", result.fetched, len(missing))
        return result

    async def resolve(
        self,
        symbol: str,
        upstream_failure: ErrorKind | None = None,
    ) -> SnapshotResult:
        """
        Resolve a snapshot for ``symbol``.

        Preference order: market cache, rate-limited upstream call, latest
        price history point. When ``upstream_failure`` is set (the symbol's
        batch already failed this cycle) the upstream is not called again.

        Returns:
            Resolved, Absent (nothing available, not an error) or FetchFailed
            (upstream failed and no history to stand in)
        """
        cached = self.cache.get(symbol)
        if cached is not None:
            self._outcomes["cache"] += 1
            return Resolved(cached)

        if upstream_failure is not None:
            fallback = await self._from_history(symbol)
            if fallback is not None:
                self._outcomes["history"] += 1
                return Resolved(fallback)
            self._outcomes["failed"] += 1
            return FetchFailed(symbol, upstream_failure, "batch failed this cycle")

        admission = self.limiter.try_acquire()
        if not admission.admitted:
            logger.debug("Upstream call for %s not admitted: %s", symbol, admission.reason.value)
            fallback = await self._from_history(symbol)
            if fallback is not None:
                self._outcomes["history"] += 1
                return Resolved(fallback)
            self._outcomes["absent"] += 1
            return Absent(symbol, _ABSENT_REASONS[admission.reason])

        if admission.throttled:
            logger.info("Upstream call for %s admitted in throttle band", symbol)

        try:
            quotes = await self.client.get_latest_quotes([symbol])
        except UpstreamError as e:
            self.limiter.record_failure(e.kind)
            logger.warning("Upstream quote for %s failed: %s", symbol, e)
            fallback = await self._from_history(symbol)
            if fallback is not None:
                self._outcomes["history"] += 1
                return Resolved(fallback)
            self._outcomes["failed"] += 1
            return FetchFailed(symbol, e.kind, e.message)
        except Exception:
            self.limiter.record_failure()
            raise

        self.limiter.record_success()
        snapshot = quotes.get(symbol)
        if snapshot is None:
            fallback = await self._from_history(symbol)
            if fallback is not None:
                self._outcomes["history"] += 1
                return Resolved(fallback)
            self._outcomes["absent"] += 1
            return Absent(symbol, AbsentReason.NOT_LISTED)

        await self._accept(snapshot)
        self._outcomes["upstream"] += 1
        return Resolved(snapshot)

    def stats(self) -> dict[str, int]:
        """Resolution outcome counts (cache, upstream, history, absent, failed)."""
        return dict(self._outcomes)
