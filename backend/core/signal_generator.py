"""Rule-based signal derivation from indicators.

This module is pure business logic with no I/O dependencies. Given a
snapshot and the symbol's price history it returns the same
CalculatedSignal every time: there is no randomness and the signal
timestamp is taken from the snapshot, not the wall clock.
"""

import logging
import math
from dataclasses import dataclass

import numpy as np
from pydantic import ValidationError

from core.indicators import IndicatorCalculator
from core.models import (
    CalculatedSignal,
    IndicatorSet,
    MarketSnapshot,
    PriceHistoryWindow,
    QualityTier,
    SignalConfig,
    SignalDirection,
)

logger = logging.getLogger(__name__)

MAX_STRENGTH = 80.0
STRENGTH_FACTOR = 0.8
# Base confidence is always clamped to this band before timeframe scaling.
BASE_CONFIDENCE_MIN = 30.0
BASE_CONFIDENCE_MAX = 95.0
# Synthetic high/low band, as a fraction of |24h change|.
SYNTHETIC_BAND_FACTOR = 0.025
SYNTHETIC_MIN_CHANGE_PCT = 0.1


class InvalidSignalError(ValueError):
    """Indicator output or risk levels violate a numeric invariant."""


@dataclass(frozen=True)
class PriceSeries:
    """OHLC-style input for the indicator calculator (oldest first)."""

    highs: list[float]
    lows: list[float]
    closes: list[float]
    degraded: bool = False


@dataclass(frozen=True)
class Votes:
    """Bullish/bearish indicator tally."""

    bullish: int
    bearish: int

    @property
    def difference(self) -> int:
        return self.bullish - self.bearish


def _clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


# =============================================================================
# Indicator inputs
# =============================================================================

def series_from_history(window: PriceHistoryWindow, snapshot: MarketSnapshot) -> PriceSeries:
    """Build indicator inputs from accumulated snapshots.

    Snapshots carry a single price, so each bar's high/low is the max/min of
    its own close and the previous one. The current snapshot is appended
    locally when it is newer than the last history point.
    """
    closes = window.closes
    latest = window.latest
    if latest is None or snapshot.timestamp > latest.timestamp:
        closes = closes + [snapshot.price]

    highs = [closes[0]]
    lows = [closes[0]]
    for prev, cur in zip(closes, closes[1:]):
        highs.append(max(prev, cur))
        lows.append(min(prev, cur))
    return PriceSeries(highs=highs, lows=lows, closes=closes)


def synthetic_series(snapshot: MarketSnapshot, points: int = 50) -> PriceSeries:
    """Deterministic stand-in series for symbols without enough history.

    A straight line from the price implied 24h ago to the current price,
    with a high/low band proportional to the 24h move.
    """
    price = snapshot.price
    change = snapshot.change_24h
    start = price / (1 + change / 100) if change > -100 else price

    closes = np.linspace(start, price, points)
    band = max(abs(change), SYNTHETIC_MIN_CHANGE_PCT) / 100 * SYNTHETIC_BAND_FACTOR
    highs = closes * (1 + band)
    lows = closes * (1 - band)
    return PriceSeries(
        highs=highs.tolist(),
        lows=lows.tolist(),
        closes=closes.tolist(),
        degraded=True,
    )


# =============================================================================
# SignalGenerator class
# =============================================================================

class SignalGenerator:
    """
    Derive a directional signal with confidence and risk levels.

    Rule:
    - RSI < 30 bullish, RSI > 70 bearish
    - MACD histogram > 0 bullish, < 0 bearish
    - Band position < 20% bullish, > 80% bearish
    - |24h change| above the confirmation threshold adds one vote to the
      leading side
    - LONG when bullish - bearish >= 2 and bullish >= 3, SHORT mirrored,
      otherwise NEUTRAL

    Confidence:
    - 65 + 5 * |difference| + 2 * |24h change|, clamped to [30, 95]
    - scaled by the timeframe multiplier, clamped to the configured band

    Risk levels:
    - LONG: stop = entry - ATR * stop_mult, target = entry + ATR * target_mult
    - SHORT: mirrored
    - NEUTRAL: entry +/- ATR * stop_mult * neutral_factor
    """

    def __init__(self, config: SignalConfig | None = None):
        self.config = config or SignalConfig()
        self.indicator_calc = IndicatorCalculator(
            rsi_period=self.config.rsi_period,
            macd_fast=self.config.macd_fast,
            macd_slow=self.config.macd_slow,
            macd_signal=self.config.macd_signal,
            bb_period=self.config.bb_period,
            bb_std_mult=self.config.bb_std_mult,
            atr_period=self.config.atr_period,
        )

    def build_series(self, snapshot: MarketSnapshot, window: PriceHistoryWindow) -> PriceSeries:
        """History when it reaches the basic tier, synthetic series otherwise."""
        if window.tier == QualityTier.INSUFFICIENT:
            return synthetic_series(snapshot, self.config.synthetic_points)
        return series_from_history(window, snapshot)

    def count_votes(self, indicators: IndicatorSet, change_24h: float) -> Votes:
        """Classify each indicator and tally the bullish/bearish votes."""
        cfg = self.config
        bullish = 0
        bearish = 0

        if indicators.rsi < cfg.rsi_oversold:
            bullish += 1
        elif indicators.rsi > cfg.rsi_overbought:
            bearish += 1

        if indicators.macd.histogram > 0:
            bullish += 1
        elif indicators.macd.histogram < 0:
            bearish += 1

        if indicators.bb_position < cfg.bb_lower_pct:
            bullish += 1
        elif indicators.bb_position > cfg.bb_upper_pct:
            bearish += 1

        if abs(change_24h) > cfg.volatility_confirmation_pct:
            if bullish > bearish:
                bullish += 1
            elif bearish > bullish:
                bearish += 1

        return Votes(bullish=bullish, bearish=bearish)

    def decide_direction(self, votes: Votes) -> SignalDirection:
        cfg = self.config
        if votes.difference >= cfg.min_signal_difference and votes.bullish >= cfg.min_confluence:
            return SignalDirection.LONG
        if -votes.difference >= cfg.min_signal_difference and votes.bearish >= cfg.min_confluence:
            return SignalDirection.SHORT
        return SignalDirection.NEUTRAL

    def calculate_confidence(self, votes: Votes, change_24h: float, timeframe: str) -> float:
        cfg = self.config
        base = (
            cfg.confidence_base
            + cfg.confidence_per_vote * abs(votes.difference)
            + cfg.confidence_per_change_pct * abs(change_24h)
        )
        base = _clamp(base, BASE_CONFIDENCE_MIN, BASE_CONFIDENCE_MAX)
        scaled = base * cfg.confidence_multiplier(timeframe)
        return _clamp(scaled, cfg.confidence_floor, cfg.confidence_ceiling)

    def calculate_risk_levels(
        self,
        direction: SignalDirection,
        entry_price: float,
        atr_value: float,
        timeframe: str,
    ) -> tuple[float, float]:
        """
        Calculate stop loss and take profit prices.

        A non-positive ATR falls back to a fixed fraction of price so the
        levels stay strictly ordered around entry.

        Returns:
            Tuple of (stop_loss, take_profit)
        """
        if not atr_value > 0:
            atr_value = entry_price * self.config.fallback_atr_pct

        mult = self.config.risk_for(timeframe)
        if direction == SignalDirection.LONG:
            return (
                entry_price - atr_value * mult.stop_loss,
                entry_price + atr_value * mult.take_profit,
            )
        if direction == SignalDirection.SHORT:
            return (
                entry_price + atr_value * mult.stop_loss,
                entry_price - atr_value * mult.take_profit,
            )

        distance = atr_value * mult.stop_loss * self.config.neutral_factor
        return entry_price - distance, entry_price + distance

    def derive(
        self,
        snapshot: MarketSnapshot,
        window: PriceHistoryWindow,
        timeframe: str,
    ) -> CalculatedSignal:
        """
        Compute the signal for one (symbol, timeframe).

        Raises:
            InvalidSignalError: non-finite price or indicator output, or risk
                levels that violate the direction's ordering.
        """
        if not (math.isfinite(snapshot.price) and snapshot.price > 0):
            raise InvalidSignalError(f"{snapshot.symbol}: invalid price {snapshot.price}")

        series = self.build_series(snapshot, window)
        indicators = self.indicator_calc.calculate(
            series.highs, series.lows, series.closes, price=snapshot.price
        )
        if not indicators.is_finite():
            raise InvalidSignalError(
                f"{snapshot.symbol} {timeframe}: non-finite indicators {indicators.values()}"
            )

        change_24h = snapshot.change_24h if math.isfinite(snapshot.change_24h) else 0.0
        votes = self.count_votes(indicators, change_24h)
        direction = self.decide_direction(votes)
        confidence = self.calculate_confidence(votes, change_24h, timeframe)
        stop_loss, take_profit = self.calculate_risk_levels(
            direction, snapshot.price, indicators.atr, timeframe
        )

        if direction == SignalDirection.NEUTRAL:
            risk_reward = 1.0
        else:
            mult = self.config.risk_for(timeframe)
            risk_reward = mult.take_profit / mult.stop_loss

        try:
            return CalculatedSignal(
                symbol=snapshot.symbol,
                timeframe=timeframe,
                direction=direction,
                confidence=confidence,
                strength=min(MAX_STRENGTH, confidence * STRENGTH_FACTOR),
                price=snapshot.price,
                entry_price=snapshot.price,
                stop_loss=stop_loss,
                take_profit=take_profit,
                indicators=indicators,
                timestamp=snapshot.timestamp,
                confluence_score=min(100.0, abs(votes.difference) * 15.0 + 30.0),
                risk_reward=risk_reward,
                data_quality=window.tier,
                degraded=series.degraded,
            )
        except ValidationError as e:
            raise InvalidSignalError(f"{snapshot.symbol} {timeframe}: {e}") from e
