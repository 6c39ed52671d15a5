"""Redis mirror of the latest signal per (symbol, timeframe).

Lets out-of-process consumers (dashboard, Monte Carlo) read signals
without talking to the engine. Writes are best-effort; the in-memory
SignalStore is the source of truth.

Data structure:
- signal:{symbol}:{timeframe} -> JSON serialized CalculatedSignal
- signals:{timeframe} -> Set of symbols with a signal for that timeframe
"""

from __future__ import annotations

import logging

import orjson
from pydantic import ValidationError

from app.storage import cache
from core.models import CalculatedSignal

logger = logging.getLogger(__name__)

# Longest cadence is 720 base ticks; keep mirrored signals around for a day.
SIGNAL_TTL = 86400


def _signal_key(symbol: str, timeframe: str) -> str:
    """Get the cache key for a signal."""
    return f"{cache.KEY_PREFIX_SIGNAL}{symbol}:{timeframe}"


def _timeframe_set_key(timeframe: str) -> str:
    """Get the cache key for a timeframe's symbol set."""
    return f"{cache.KEY_PREFIX_SIGNALS}{timeframe}"


def _serialize_signal(signal: CalculatedSignal) -> bytes:
    """Serialize a CalculatedSignal to JSON bytes."""
    return orjson.dumps(signal.model_dump(mode="json"))


def _deserialize_signal(data: bytes) -> CalculatedSignal | None:
    """Deserialize JSON bytes to a CalculatedSignal."""
    try:
        return CalculatedSignal.model_validate(orjson.loads(data))
    except (orjson.JSONDecodeError, ValidationError) as e:
        logger.warning("Failed to deserialize signal: %s", e)
        return None


async def save_signal(signal: CalculatedSignal) -> bool:
    """Mirror a published signal.

    Returns:
        True if mirrored successfully
    """
    if not cache.is_cache_available():
        return False

    data = _serialize_signal(signal)
    if not await cache.set(_signal_key(signal.symbol, signal.timeframe), data, ttl=SIGNAL_TTL):
        return False

    await cache.sadd(_timeframe_set_key(signal.timeframe), signal.symbol)
    logger.debug("Mirrored signal %s %s", signal.symbol, signal.timeframe)
    return True


async def load_signal(symbol: str, timeframe: str) -> CalculatedSignal | None:
    """Read a mirrored signal, or None if missing or Redis is unavailable."""
    if not cache.is_cache_available():
        return None

    data = await cache.get(_signal_key(symbol, timeframe))
    if data is None:
        return None

    return _deserialize_signal(data)


async def load_signals(timeframe: str) -> list[CalculatedSignal]:
    """Read every mirrored signal for a timeframe, sorted by symbol."""
    if not cache.is_cache_available():
        return []

    symbols = sorted(await cache.smembers(_timeframe_set_key(timeframe)))
    if not symbols:
        return []

    values = await cache.mget([_signal_key(s, timeframe) for s in symbols])
    signals = []
    for data in values:
        if data is None:
            continue  # expired
        signal = _deserialize_signal(data)
        if signal is not None:
            signals.append(signal)
    return signals
