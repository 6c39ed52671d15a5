"""Core data models (pure, no I/O)."""

from core.models.config import (
    DEFAULT_CADENCE,
    TIMEFRAME_MINUTES,
    TIMEFRAMES,
    RateLimitConfig,
    RiskMultipliers,
    SignalConfig,
    TimeframeSchedule,
    default_schedules,
)
from core.models.market import (
    Absent,
    AbsentReason,
    ErrorKind,
    FetchFailed,
    MarketSnapshot,
    PriceHistoryWindow,
    QualityTier,
    Resolved,
    SnapshotResult,
    SnapshotSource,
    quality_tier,
)
from core.models.signal import (
    BollingerBands,
    CalculatedSignal,
    IndicatorSet,
    MACDResult,
    SignalDirection,
    SignalLookup,
    SignalStatus,
)
from core.models.symbols import (
    SYMBOL_MAPPINGS,
    SymbolCategory,
    SymbolMapping,
    get_symbol_mapping,
    is_symbol_supported,
    tracked_symbols,
)

__all__ = [
    "DEFAULT_CADENCE",
    "TIMEFRAME_MINUTES",
    "TIMEFRAMES",
    "RateLimitConfig",
    "RiskMultipliers",
    "SignalConfig",
    "TimeframeSchedule",
    "default_schedules",
    "Absent",
    "AbsentReason",
    "ErrorKind",
    "FetchFailed",
    "MarketSnapshot",
    "PriceHistoryWindow",
    "QualityTier",
    "Resolved",
    "SnapshotResult",
    "SnapshotSource",
    "quality_tier",
    "BollingerBands",
    "CalculatedSignal",
    "IndicatorSet",
    "MACDResult",
    "SignalDirection",
    "SignalLookup",
    "SignalStatus",
    "SYMBOL_MAPPINGS",
    "SymbolCategory",
    "SymbolMapping",
    "get_symbol_mapping",
    "is_symbol_supported",
    "tracked_symbols",
]
