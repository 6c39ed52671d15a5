"""Data storage layer."""

from app.storage.market_cache import CacheStats, MarketDataCache
from app.storage.price_history import InMemoryPriceHistory, PriceHistoryStore
from app.storage.signal_store import SignalStore
from app.storage import cache
from app.storage import signal_cache

__all__ = [
    "CacheStats",
    "MarketDataCache",
    "InMemoryPriceHistory",
    "PriceHistoryStore",
    "SignalStore",
    "cache",
    "signal_cache",
]
