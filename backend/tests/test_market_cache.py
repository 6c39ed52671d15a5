"""Tests for the in-memory market data cache."""

from datetime import datetime, timezone

import pytest

from app.storage import MarketDataCache
from core.models import MarketSnapshot, SnapshotSource

TS = datetime(2024, 6, 1, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def snapshot(symbol="BTC/USDT", price=65000.0) -> MarketSnapshot:
    return MarketSnapshot(symbol=symbol, price=price, timestamp=TS)


class TestMarketDataCache:
    """Tests for TTL semantics and statistics."""

    def test_miss_on_empty(self):
        cache = MarketDataCache(ttl=30)
        assert cache.get("BTC/USDT") is None
        assert cache.stats().misses == 1

    def test_hit_is_tagged_as_cache(self):
        cache = MarketDataCache(ttl=30, clock=FakeClock())
        cache.put("BTC/USDT", snapshot())

        hit = cache.get("BTC/USDT")
        assert hit is not None
        assert hit.price == 65000.0
        assert hit.source == SnapshotSource.CACHE

    def test_expires_lazily(self):
        clock = FakeClock()
        cache = MarketDataCache(ttl=30, clock=clock)
        cache.put("BTC/USDT", snapshot())

        clock.now += 29
        assert cache.get("BTC/USDT") is not None
        assert len(cache) == 1

        clock.now += 1
        assert cache.get("BTC/USDT") is None
        assert len(cache) == 0
        assert cache.stats().expired == 1

    def test_put_replaces_and_refreshes(self):
        clock = FakeClock()
        cache = MarketDataCache(ttl=30, clock=clock)
        cache.put("BTC/USDT", snapshot(price=1.0))
        clock.now += 20
        cache.put("BTC/USDT", snapshot(price=2.0))
        clock.now += 20

        assert cache.get("BTC/USDT").price == 2.0

    def test_missing(self):
        clock = FakeClock()
        cache = MarketDataCache(ttl=30, clock=clock)
        cache.put("BTC/USDT", snapshot())
        cache.put("ETH/USDT", snapshot("ETH/USDT", 3000.0))
        clock.now += 40
        cache.put("SOL/USDT", snapshot("SOL/USDT", 150.0))

        assert cache.missing(["BTC/USDT", "SOL/USDT", "XRP/USDT"]) == ["BTC/USDT", "XRP/USDT"]
        # missing() does not count as lookups
        assert cache.stats().hits == 0
        assert cache.stats().misses == 0

    def test_hit_rate(self):
        cache = MarketDataCache(ttl=30, clock=FakeClock())
        cache.put("BTC/USDT", snapshot())
        cache.get("BTC/USDT")
        cache.get("BTC/USDT")
        cache.get("BTC/USDT")
        cache.get("ETH/USDT")

        stats = cache.stats()
        assert stats.hits == 3
        assert stats.misses == 1
        assert stats.hit_rate == pytest.approx(0.75)

    def test_invalid_ttl(self):
        with pytest.raises(ValueError, match="ttl"):
            MarketDataCache(ttl=0)
