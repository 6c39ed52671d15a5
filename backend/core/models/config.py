"""Engine configuration models and timeframe tables."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, model_validator

# Ordered shortest to longest.
TIMEFRAMES: tuple[str, ...] = ("1m", "5m", "15m", "30m", "1h", "4h", "1d", "3d", "1w", "1M")

TIMEFRAME_MINUTES: dict[str, int] = {
    "1m": 1,
    "5m": 5,
    "15m": 15,
    "30m": 30,
    "1h": 60,
    "4h": 240,
    "1d": 1440,
    "3d": 4320,
    "1w": 10080,
    "1M": 43200,
}

# How many base ticks between two cycles of a timeframe.
DEFAULT_CADENCE: dict[str, int] = {
    "1m": 1,
    "5m": 2,
    "15m": 3,
    "30m": 5,
    "1h": 10,
    "4h": 30,
    "1d": 60,
    "3d": 120,
    "1w": 240,
    "1M": 720,
}

# Shorter timeframes are noisier and get discounted.
DEFAULT_CONFIDENCE_MULTIPLIERS: dict[str, float] = {
    "1m": 0.80,
    "5m": 0.85,
    "15m": 0.90,
    "30m": 0.95,
    "1h": 1.00,
    "4h": 1.10,
    "1d": 1.15,
    "3d": 1.20,
    "1w": 1.25,
    "1M": 1.30,
}


class RiskMultipliers(BaseModel):
    """ATR multiples for stop loss and take profit."""

    model_config = ConfigDict(frozen=True)

    stop_loss: float
    take_profit: float

    @model_validator(mode="after")
    def _validate(self):
        if self.stop_loss <= 0 or self.take_profit <= 0:
            raise ValueError("ATR multipliers must be positive")
        return self


DEFAULT_RISK_MULTIPLIERS: dict[str, RiskMultipliers] = {
    "1m": RiskMultipliers(stop_loss=1.0, take_profit=1.5),
    "5m": RiskMultipliers(stop_loss=1.2, take_profit=1.8),
    "15m": RiskMultipliers(stop_loss=1.5, take_profit=2.2),
    "30m": RiskMultipliers(stop_loss=1.8, take_profit=2.5),
    "1h": RiskMultipliers(stop_loss=2.0, take_profit=3.0),
    "4h": RiskMultipliers(stop_loss=2.5, take_profit=3.5),
    "1d": RiskMultipliers(stop_loss=3.0, take_profit=4.0),
    "3d": RiskMultipliers(stop_loss=3.5, take_profit=4.5),
    "1w": RiskMultipliers(stop_loss=4.0, take_profit=5.0),
    "1M": RiskMultipliers(stop_loss=4.5, take_profit=5.5),
}


class RateLimitConfig(BaseModel):
    """Upstream call budget and circuit breaker parameters."""

    model_config = ConfigDict(frozen=True)

    monthly_budget: int = 110_000
    # Fixed per-minute budget; None derives it from the remaining monthly budget.
    per_minute_override: int | None = None
    throttle_threshold: float = 0.95
    emergency_threshold: float = 0.99
    recovery_interval: float = 15.0  # seconds
    failure_threshold: int = 5

    @model_validator(mode="after")
    def _validate(self):
        if self.monthly_budget <= 0:
            raise ValueError("monthly_budget must be positive")
        if self.per_minute_override is not None and self.per_minute_override <= 0:
            raise ValueError("per_minute_override must be positive")
        if not 0 < self.throttle_threshold <= self.emergency_threshold:
            raise ValueError(
                "thresholds must satisfy 0 < throttle_threshold <= emergency_threshold"
            )
        if self.recovery_interval <= 0:
            raise ValueError("recovery_interval must be positive")
        if self.failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        return self


class SignalConfig(BaseModel):
    """Rule parameters for turning indicators into a directional signal."""

    model_config = ConfigDict(frozen=True)

    # Indicator periods
    rsi_period: int = 14
    macd_fast: int = 12
    macd_slow: int = 26
    macd_signal: int = 9
    bb_period: int = 20
    bb_std_mult: float = 2.0
    atr_period: int = 14

    # Classification thresholds
    rsi_oversold: float = 30.0
    rsi_overbought: float = 70.0
    bb_lower_pct: float = 20.0
    bb_upper_pct: float = 80.0

    # Direction rule
    min_signal_difference: int = 2
    min_confluence: int = 3
    # |24h change| above this adds one vote to the leading side
    volatility_confirmation_pct: float = 3.0

    # Confidence
    confidence_base: float = 65.0
    confidence_per_vote: float = 5.0
    confidence_per_change_pct: float = 2.0
    confidence_floor: float = 30.0
    confidence_ceiling: float = 95.0
    confidence_multipliers: dict[str, float] = DEFAULT_CONFIDENCE_MULTIPLIERS

    # Risk levels
    risk_multipliers: dict[str, RiskMultipliers] = DEFAULT_RISK_MULTIPLIERS
    neutral_factor: float = 0.5
    # Used when ATR is zero or missing, as a fraction of price
    fallback_atr_pct: float = 0.02

    # Degraded mode
    synthetic_points: int = 50

    @model_validator(mode="after")
    def _validate(self):
        if not 0 <= self.confidence_floor <= self.confidence_ceiling <= 100:
            raise ValueError(
                "confidence band must satisfy 0 <= floor <= ceiling <= 100, "
                f"got [{self.confidence_floor}, {self.confidence_ceiling}]"
            )
        if self.macd_fast >= self.macd_slow:
            raise ValueError("macd_fast must be shorter than macd_slow")
        if not 0 < self.neutral_factor <= 1:
            raise ValueError("neutral_factor must be in (0, 1]")
        if self.fallback_atr_pct <= 0:
            raise ValueError("fallback_atr_pct must be positive")
        if self.synthetic_points < 2:
            raise ValueError("synthetic_points must be >= 2")
        return self

    def confidence_multiplier(self, timeframe: str) -> float:
        return self.confidence_multipliers.get(timeframe, 1.0)

    def risk_for(self, timeframe: str) -> RiskMultipliers:
        return self.risk_multipliers.get(timeframe, DEFAULT_RISK_MULTIPLIERS["1h"])


class TimeframeSchedule(BaseModel):
    """Cadence of one timeframe relative to the scheduler's base tick."""

    model_config = ConfigDict(frozen=True)

    timeframe: str
    every: int = 1
    enabled: bool = True

    @model_validator(mode="after")
    def _validate(self):
        if self.timeframe not in TIMEFRAME_MINUTES:
            raise ValueError(
                f"unknown timeframe '{self.timeframe}', expected one of {TIMEFRAMES}"
            )
        if self.every < 1:
            raise ValueError(f"{self.timeframe}: every must be >= 1, got {self.every}")
        return self

    def interval(self, base_interval: float) -> float:
        """Seconds between two cycles."""
        return base_interval * self.every


def default_schedules() -> list[TimeframeSchedule]:
    return [TimeframeSchedule(timeframe=tf, every=DEFAULT_CADENCE[tf]) for tf in TIMEFRAMES]
