"""Redis connection and primitives for the signal mirror.

Every helper degrades to a no-op result when Redis is unavailable: the
in-memory signal store stays authoritative and Redis is only a read-side
copy for out-of-process consumers.

Uses raw bytes on the wire; callers serialize with orjson.
"""

from __future__ import annotations

import logging

import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool

from app.config import get_settings

logger = logging.getLogger(__name__)

# Global connection pool
_pool: ConnectionPool | None = None
_client: redis.Redis | None = None


# =============================================================================
# Key prefixes for different data types
# =============================================================================

KEY_PREFIX_SIGNAL = "signal:"        # Latest signal: signal:{symbol}:{timeframe}
KEY_PREFIX_SIGNALS = "signals:"      # Symbols with a signal: signals:{timeframe}


# =============================================================================
# Connection management
# =============================================================================

async def init_cache(redis_url: str | None = None) -> bool:
    """Initialize Redis connection pool.

    Returns:
        True if Redis answered a ping
    """
    global _pool, _client

    if _client is not None:
        return True

    url = redis_url or get_settings().redis_url
    _pool = ConnectionPool.from_url(
        url,
        max_connections=10,
        decode_responses=False,
    )
    _client = redis.Redis(connection_pool=_pool)

    try:
        await _client.ping()
        logger.info("Redis connected: %s", url)
        return True
    except redis.RedisError as e:
        logger.warning("Redis connection failed: %s. Signal mirror disabled.", e)
        await _pool.disconnect()
        _client = None
        _pool = None
        return False


async def close_cache() -> None:
    """Close Redis connection pool."""
    global _pool, _client

    if _client is not None:
        await _client.aclose()
        _client = None

    if _pool is not None:
        await _pool.disconnect()
        _pool = None

    logger.info("Redis connection closed")


def is_cache_available() -> bool:
    """Check if cache is available."""
    return _client is not None


# =============================================================================
# Basic operations
# =============================================================================

async def get(key: str) -> bytes | None:
    """Get a raw value, or None if missing or Redis is unavailable."""
    if _client is None:
        return None

    try:
        return await _client.get(key)
    except redis.RedisError as e:
        logger.warning("Redis GET error: %s", e)
        return None


async def set(
    key: str,
    value: bytes,
    ttl: int | None = None,
) -> bool:
    """Set a raw value.

    Args:
        key: Cache key
        value: Raw bytes to store
        ttl: Time-to-live in seconds (None for no expiry)

    Returns:
        True if successful, False otherwise
    """
    if _client is None:
        return False

    try:
        if ttl:
            await _client.setex(key, ttl, value)
        else:
            await _client.set(key, value)
        return True
    except redis.RedisError as e:
        logger.warning("Redis SET error: %s", e)
        return False


async def mget(keys: list[str]) -> list[bytes | None]:
    """Get multiple raw values at once (None for missing keys)."""
    if _client is None or not keys:
        return [None] * len(keys)

    try:
        return await _client.mget(keys)
    except redis.RedisError as e:
        logger.warning("Redis MGET error: %s", e)
        return [None] * len(keys)


# =============================================================================
# Set operations
# =============================================================================

async def sadd(key: str, *members: str) -> int:
    """Add members to a set. Returns the number added."""
    if _client is None:
        return 0

    try:
        return await _client.sadd(key, *members)
    except redis.RedisError as e:
        logger.warning("Redis SADD error: %s", e)
        return 0


async def smembers(key: str) -> set[str]:
    """Get all members of a set (empty if not found)."""
    if _client is None:
        return set()

    try:
        result = await _client.smembers(key)
        return {m.decode() if isinstance(m, bytes) else m for m in result}
    except redis.RedisError as e:
        logger.warning("Redis SMEMBERS error: %s", e)
        return set()
