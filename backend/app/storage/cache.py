"""Redis cache layer for hot data.

The market streaming job publishes the latest price per symbol to Redis
(``price:{symbol}`` -> JSON ``{price, timestamp}``) with a short TTL. This
service only reads it, falling back to the database on a miss.

Uses orjson for fast deserialization. Every operation degrades to a miss
when Redis is unavailable.
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

KEY_PREFIX_PRICE = "price:"          # Latest price: price:{symbol}


def price_key(symbol: str) -> str:
    """Get the cache key for a symbol's price."""
    return f"{KEY_PREFIX_PRICE}{symbol}"


# =============================================================================
# Connection management
# =============================================================================

async def init_cache() -> None:
    """Initialize Redis connection pool."""
    global _pool, _client

    if _client is not None:
        return

    settings = get_settings()
    _pool = ConnectionPool.from_url(
        settings.redis_url,
        max_connections=10,
        decode_responses=False,  # We handle decoding ourselves with orjson
    )
    _client = redis.Redis(connection_pool=_pool)

    # Test connection
    try:
        await _client.ping()
        logger.info(f"Redis connected: {settings.redis_url}")
    except redis.RedisError as e:
        logger.warning(f"Redis connection failed: {e}. Cache will be disabled.")
        _client = None
        _pool = None


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
# Batch operations
# =============================================================================

async def mget(keys: list[str]) -> list[bytes | None]:
    """Get multiple values at once.

    Args:
        keys: List of cache keys

    Returns:
        List of values (None for missing keys)
    """
    if _client is None or not keys:
        return [None] * len(keys)

    try:
        return await _client.mget(keys)
    except redis.RedisError as e:
        logger.warning(f"Redis MGET error: {e}")
        return [None] * len(keys)


# =============================================================================
# Health check
# =============================================================================

async def get_info() -> dict:
    """Get Redis server info.

    Returns:
        Dict with server info or a disconnected status
    """
    if _client is None:
        return {"status": "disconnected"}

    try:
        info = await _client.info()
        return {
            "status": "connected",
            "redis_version": info.get("redis_version"),
            "connected_clients": info.get("connected_clients"),
            "used_memory_human": info.get("used_memory_human"),
        }
    except redis.RedisError as e:
        return {"status": "error", "error": str(e)}
