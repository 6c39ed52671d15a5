"""Business services."""

from app.services.market_data import MarketDataService, PrefetchResult
from app.services.scheduler import (
    CycleReport,
    SignalScheduler,
    SymbolOutcome,
    TimeframeStatus,
)

__all__ = [
    "MarketDataService",
    "PrefetchResult",
    "CycleReport",
    "SignalScheduler",
    "SymbolOutcome",
    "TimeframeStatus",
]
