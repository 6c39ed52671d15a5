"""Indicator and signal data models."""

from __future__ import annotations

import math
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, model_validator

from core.models.market import QualityTier


class SignalDirection(str, Enum):
    """Directional call for a (symbol, timeframe)."""

    LONG = "LONG"
    SHORT = "SHORT"
    NEUTRAL = "NEUTRAL"


class MACDResult(BaseModel):
    """MACD line, signal line and histogram at the latest bar."""

    model_config = ConfigDict(frozen=True)

    macd_line: float = 0.0
    signal_line: float = 0.0
    histogram: float = 0.0


class BollingerBands(BaseModel):
    """Bollinger band levels at the latest bar."""

    model_config = ConfigDict(frozen=True)

    upper: float
    middle: float
    lower: float


class IndicatorSet(BaseModel):
    """Indicators computed for one (symbol, timeframe) in one cycle."""

    model_config = ConfigDict(frozen=True)

    rsi: float
    macd: MACDResult
    bollinger_bands: BollingerBands
    atr: float
    bb_position: float
    volatility: float = 0.0

    def values(self) -> list[float]:
        """Flatten every numeric field, used for finiteness checks."""
        return [
            self.rsi,
            self.macd.macd_line,
            self.macd.signal_line,
            self.macd.histogram,
            self.bollinger_bands.upper,
            self.bollinger_bands.middle,
            self.bollinger_bands.lower,
            self.atr,
            self.bb_position,
            self.volatility,
        ]

    def is_finite(self) -> bool:
        return all(math.isfinite(v) for v in self.values())


class CalculatedSignal(BaseModel):
    """Directional signal with risk levels for one (symbol, timeframe).

    Superseded, never merged, by the next cycle's signal for the same key.
    """

    model_config = ConfigDict(frozen=True)

    symbol: str
    timeframe: str
    direction: SignalDirection
    confidence: float
    strength: float
    price: float
    entry_price: float
    stop_loss: float
    take_profit: float
    indicators: IndicatorSet
    timestamp: datetime
    confluence_score: float = 0.0
    risk_reward: float = 0.0
    data_quality: QualityTier = QualityTier.INSUFFICIENT
    degraded: bool = False

    @model_validator(mode="after")
    def _validate(self):
        if not 0.0 <= self.confidence <= 100.0:
            raise ValueError(f"confidence out of range: {self.confidence}")
        if self.direction == SignalDirection.LONG:
            if not self.stop_loss < self.entry_price < self.take_profit:
                raise ValueError(
                    f"LONG levels out of order: sl={self.stop_loss} "
                    f"entry={self.entry_price} tp={self.take_profit}"
                )
        elif self.direction == SignalDirection.SHORT:
            if not self.take_profit < self.entry_price < self.stop_loss:
                raise ValueError(
                    f"SHORT levels out of order: tp={self.take_profit} "
                    f"entry={self.entry_price} sl={self.stop_loss}"
                )
        return self

    @property
    def key(self) -> tuple[str, str]:
        return (self.symbol, self.timeframe)

    @property
    def risk_amount(self) -> float:
        """Distance from entry to stop loss."""
        return abs(self.entry_price - self.stop_loss)

    @property
    def reward_amount(self) -> float:
        """Distance from entry to take profit."""
        return abs(self.take_profit - self.entry_price)


# =============================================================================
# Downstream lookup
# =============================================================================

class SignalStatus(str, Enum):
    """Freshness of a stored signal as seen by a reader."""

    FRESH = "fresh"
    STALE = "stale"
    ABSENT = "absent"


class SignalLookup(BaseModel):
    """Result of reading a signal: never a zero-valued stand-in."""

    model_config = ConfigDict(frozen=True)

    symbol: str
    timeframe: str
    status: SignalStatus
    signal: CalculatedSignal | None = None
    as_of: datetime | None = None

    @property
    def is_absent(self) -> bool:
        return self.status == SignalStatus.ABSENT
