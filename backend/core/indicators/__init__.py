"""Technical indicators (pure math, no I/O)."""

from core.indicators.indicators import (
    ema,
    sma,
    rsi,
    macd,
    bollinger_bands,
    bb_position,
    true_range,
    atr,
    volatility,
    IndicatorCalculator,
)

__all__ = [
    "ema",
    "sma",
    "rsi",
    "macd",
    "bollinger_bands",
    "bb_position",
    "true_range",
    "atr",
    "volatility",
    "IndicatorCalculator",
]
