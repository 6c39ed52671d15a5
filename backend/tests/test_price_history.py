"""Tests for the in-memory price history collaborator."""

from datetime import datetime, timedelta, timezone

import pytest

from app.storage import InMemoryPriceHistory
from core.models import MarketSnapshot, QualityTier

T0 = datetime(2024, 6, 1, tzinfo=timezone.utc)


def snap(i: int, price: float | None = None, symbol: str = "BTC/USDT") -> MarketSnapshot:
    return MarketSnapshot(
        symbol=symbol,
        price=100.0 + i if price is None else price,
        timestamp=T0 + timedelta(minutes=i),
    )


class TestInMemoryPriceHistory:
    """Tests for append/read semantics."""

    @pytest.mark.asyncio
    async def test_read_unknown_symbol_is_empty(self):
        history = InMemoryPriceHistory()
        window = await history.read("BTC/USDT")
        assert len(window) == 0
        assert window.tier == QualityTier.INSUFFICIENT

    @pytest.mark.asyncio
    async def test_append_preserves_order(self):
        history = InMemoryPriceHistory()
        for i in range(5):
            assert await history.append("BTC/USDT", snap(i)) is True

        window = await history.read("BTC/USDT")
        assert window.closes == [100.0, 101.0, 102.0, 103.0, 104.0]

    @pytest.mark.asyncio
    async def test_bounded_window(self):
        history = InMemoryPriceHistory(max_points=200)
        for i in range(250):
            await history.append("BTC/USDT", snap(i))

        window = await history.read("BTC/USDT")
        assert len(window) == 200
        assert window.closes[0] == 150.0
        assert window.tier == QualityTier.EXCELLENT

    @pytest.mark.asyncio
    async def test_tier_progression(self):
        history = InMemoryPriceHistory()
        for i in range(19):
            await history.append("BTC/USDT", snap(i))
        assert await history.tier("BTC/USDT") == QualityTier.INSUFFICIENT

        await history.append("BTC/USDT", snap(19))
        assert await history.tier("BTC/USDT") == QualityTier.BASIC

    @pytest.mark.asyncio
    @pytest.mark.parametrize("price", [0.0, -5.0, float("nan"), float("inf")])
    async def test_rejects_invalid_prices(self, price):
        history = InMemoryPriceHistory()
        assert await history.append("BTC/USDT", snap(0, price=price)) is False
        assert len(await history.read("BTC/USDT")) == 0
        assert history.rejected_count == 1

    @pytest.mark.asyncio
    async def test_rejects_repeated_or_older_quotes(self):
        history = InMemoryPriceHistory()
        await history.append("BTC/USDT", snap(5))

        assert await history.append("BTC/USDT", snap(5)) is False
        assert await history.append("BTC/USDT", snap(3)) is False
        assert len(await history.read("BTC/USDT")) == 1

    @pytest.mark.asyncio
    async def test_read_returns_snapshot_not_live_view(self):
        history = InMemoryPriceHistory()
        await history.append("BTC/USDT", snap(0))
        window = await history.read("BTC/USDT")
        await history.append("BTC/USDT", snap(1))
        assert len(window) == 1

    @pytest.mark.asyncio
    async def test_summary(self):
        history = InMemoryPriceHistory()
        for i in range(3):
            await history.append("ETH/USDT", snap(i, symbol="ETH/USDT"))

        summary = await history.summary()
        assert summary["ETH/USDT"]["count"] == 3
        assert summary["ETH/USDT"]["tier"] == "insufficient"
        assert summary["ETH/USDT"]["first"] == T0.isoformat()

    def test_invalid_size(self):
        with pytest.raises(ValueError, match="max_points"):
            InMemoryPriceHistory(max_points=0)
