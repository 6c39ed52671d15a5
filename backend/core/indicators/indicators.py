"""Technical indicators for signal generation.

Pure NumPy implementations over ordered float series (oldest first).
None of these functions raise on short input: each one degrades to a
documented default so a scheduler cycle can always proceed.
"""

from typing import Sequence

import numpy as np

from core.models.signal import BollingerBands, IndicatorSet, MACDResult

# Band width used when there is not enough history for a real Bollinger band.
FALLBACK_BAND_PCT = 0.02


def _to_array(values: Sequence[float]) -> np.ndarray:
    return np.asarray(values, dtype=np.float64)


# =============================================================================
# Moving averages
# =============================================================================

def ema(values: Sequence[float], period: int) -> list[float]:
    """
    Calculate Exponential Moving Average.

    Seeded with the first value, so every input point has an output point.

    Args:
        values: Sequence of values
        period: EMA period

    Returns:
        List of EMA values (same length as input)
    """
    arr = _to_array(values)
    if arr.size == 0:
        return []

    alpha = 2.0 / (period + 1)
    result = np.empty_like(arr)
    result[0] = arr[0]
    for i in range(1, len(arr)):
        result[i] = arr[i] * alpha + result[i - 1] * (1 - alpha)

    return result.tolist()


def sma(values: Sequence[float], period: int) -> list[float]:
    """
    Calculate Simple Moving Average.

    Args:
        values: Sequence of values
        period: SMA period

    Returns:
        List of SMA values (NaN until `period` points are available)
    """
    arr = _to_array(values)
    if len(arr) < period:
        return [float("nan")] * len(arr)

    result = np.empty_like(arr)
    result[:period - 1] = np.nan
    window_sums = np.convolve(arr, np.ones(period), mode="valid")
    result[period - 1:] = window_sums / period
    return result.tolist()


# =============================================================================
# Oscillators
# =============================================================================

def rsi(closes: Sequence[float], period: int = 14) -> float:
    """
    Calculate the latest Relative Strength Index with Wilder smoothing.

    Returns 50 when fewer than `period + 1` points are available, and also
    for a perfectly flat series (no gains, no losses). A series with gains
    and no losses returns 100.
    """
    arr = _to_array(closes)
    if len(arr) < period + 1:
        return 50.0

    deltas = np.diff(arr)
    gains = np.where(deltas > 0, deltas, 0.0)
    losses = np.where(deltas < 0, -deltas, 0.0)

    avg_gain = float(np.mean(gains[:period]))
    avg_loss = float(np.mean(losses[:period]))
    for i in range(period, len(deltas)):
        avg_gain = (avg_gain * (period - 1) + gains[i]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i]) / period

    if avg_loss == 0:
        return 50.0 if avg_gain == 0 else 100.0

    rs = avg_gain / avg_loss
    return 100.0 - 100.0 / (1.0 + rs)


def macd(
    closes: Sequence[float],
    fast: int = 12,
    slow: int = 26,
    signal_period: int = 9,
) -> MACDResult:
    """
    Calculate MACD at the latest bar.

    macd_line = EMA(fast) - EMA(slow), signal_line = EMA(macd_line, signal_period),
    histogram = macd_line - signal_line. All zero when fewer than `slow`
    points are available.
    """
    if len(closes) < slow:
        return MACDResult()

    fast_ema = np.asarray(ema(closes, fast))
    slow_ema = np.asarray(ema(closes, slow))
    macd_series = fast_ema - slow_ema
    signal_series = ema(macd_series, signal_period)

    macd_line = float(macd_series[-1])
    signal_line = float(signal_series[-1])
    return MACDResult(
        macd_line=macd_line,
        signal_line=signal_line,
        histogram=macd_line - signal_line,
    )


# =============================================================================
# Volatility
# =============================================================================

def bollinger_bands(
    closes: Sequence[float],
    period: int = 20,
    std_mult: float = 2.0,
) -> BollingerBands:
    """
    Calculate Bollinger Bands at the latest bar.

    middle = SMA(period), upper/lower = middle +/- population std * std_mult.
    With fewer than `period` points, returns a +/-2% band around the last price.
    """
    arr = _to_array(closes)
    if arr.size == 0:
        return BollingerBands(upper=0.0, middle=0.0, lower=0.0)

    if len(arr) < period:
        last = float(arr[-1])
        return BollingerBands(
            upper=last * (1 + FALLBACK_BAND_PCT),
            middle=last,
            lower=last * (1 - FALLBACK_BAND_PCT),
        )

    window = arr[-period:]
    middle = float(np.mean(window))
    std = float(np.std(window))
    return BollingerBands(
        upper=middle + std * std_mult,
        middle=middle,
        lower=middle - std * std_mult,
    )


def bb_position(price: float, bands: BollingerBands) -> float:
    """Position of price within the band in percent (0 = lower, 100 = upper).

    Unclamped: prices outside the band map below 0 or above 100.
    A zero-width band returns 50.
    """
    width = bands.upper - bands.lower
    if width <= 0:
        return 50.0
    return (price - bands.lower) / width * 100.0


def true_range(
    highs: Sequence[float],
    lows: Sequence[float],
    closes: Sequence[float],
) -> list[float]:
    """
    Calculate True Range.

    TR = max(high - low, abs(high - prev_close), abs(low - prev_close))

    The first bar has no previous close and uses high - low.
    """
    h = _to_array(highs)
    l = _to_array(lows)
    c = _to_array(closes)
    n = min(len(h), len(l), len(c))
    if n == 0:
        return []

    h, l, c = h[-n:], l[-n:], c[-n:]
    tr = np.empty(n, dtype=np.float64)
    tr[0] = h[0] - l[0]
    if n > 1:
        prev_close = c[:-1]
        tr[1:] = np.maximum.reduce([
            h[1:] - l[1:],
            np.abs(h[1:] - prev_close),
            np.abs(l[1:] - prev_close),
        ])
    return tr.tolist()


def atr(
    highs: Sequence[float],
    lows: Sequence[float],
    closes: Sequence[float],
    period: int = 14,
) -> float:
    """
    Calculate the latest Average True Range.

    Simple mean of the trailing `period` true ranges (bars with a previous
    close only). Returns 0 with fewer than two bars.
    """
    tr = true_range(highs, lows, closes)
    if len(tr) < 2:
        return 0.0
    trailing = tr[1:][-period:]
    return float(np.mean(trailing))


def volatility(closes: Sequence[float]) -> float:
    """Population standard deviation of bar-to-bar returns, in percent."""
    arr = _to_array(closes)
    if len(arr) < 2:
        return 0.0
    prev = arr[:-1]
    with np.errstate(divide="ignore", invalid="ignore"):
        returns = np.where(prev != 0, np.diff(arr) / prev, 0.0)
    return float(np.std(returns) * 100.0)


# =============================================================================
# IndicatorCalculator class
# =============================================================================

class IndicatorCalculator:
    """Calculator for the full indicator set used by signal derivation."""

    def __init__(
        self,
        rsi_period: int = 14,
        macd_fast: int = 12,
        macd_slow: int = 26,
        macd_signal: int = 9,
        bb_period: int = 20,
        bb_std_mult: float = 2.0,
        atr_period: int = 14,
    ):
        self.rsi_period = rsi_period
        self.macd_fast = macd_fast
        self.macd_slow = macd_slow
        self.macd_signal = macd_signal
        self.bb_period = bb_period
        self.bb_std_mult = bb_std_mult
        self.atr_period = atr_period

    def calculate(
        self,
        highs: Sequence[float],
        lows: Sequence[float],
        closes: Sequence[float],
        price: float | None = None,
    ) -> IndicatorSet:
        """
        Calculate all indicators for the latest bar.

        Args:
            highs: High prices (oldest first)
            lows: Low prices
            closes: Close prices
            price: Price used for band position; defaults to the last close

        Returns:
            IndicatorSet for the latest bar
        """
        if price is None:
            price = float(closes[-1]) if len(closes) else 0.0

        bands = bollinger_bands(closes, self.bb_period, self.bb_std_mult)
        return IndicatorSet(
            rsi=rsi(closes, self.rsi_period),
            macd=macd(closes, self.macd_fast, self.macd_slow, self.macd_signal),
            bollinger_bands=bands,
            atr=atr(highs, lows, closes, self.atr_period),
            bb_position=bb_position(price, bands),
            volatility=volatility(closes),
        )
