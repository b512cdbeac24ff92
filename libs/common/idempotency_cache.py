"""Short-lived idempotency cache for payment lookups.

The cache only ever speeds up reads. Every operation is best-effort: a Redis
outage is logged and reported as a miss (``get``) or ``False`` (``set`` /
``delete``), never raised. Callers must fall back to the ledger on a miss.

Usage:
    from libs.common.idempotency_cache import RedisIdempotencyCache, payment_cache_key

    cache = RedisIdempotencyCache()
    await cache.set(payment_cache_key(payment.id), payload, ttl_seconds=86400)
"""

import json
import uuid
from typing import Any, Optional, Protocol

from libs.common.logging import get_logger
from libs.common.redis import get_redis

logger = get_logger(__name__)

PAYMENT_KEY_PREFIX = "payment:"


def payment_cache_key(payment_id: uuid.UUID | str) -> str:
    return f"{PAYMENT_KEY_PREFIX}{payment_id}"


class IdempotencyCache(Protocol):
    async def get(self, key: str) -> Optional[dict[str, Any]]: ...

    async def set(self, key: str, value: dict[str, Any], ttl_seconds: int) -> bool: ...

    async def delete(self, key: str) -> bool: ...


class RedisIdempotencyCache:
    """Redis-backed cache storing JSON documents under string keys."""

    async def get(self, key: str) -> Optional[dict[str, Any]]:
        try:
            redis = await get_redis()
            raw = await redis.get(key)
        except Exception as e:
            logger.warning(f"Cache read failed for {key}: {e}")
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning(f"Discarding undecodable cache entry {key}")
            return None

    async def set(self, key: str, value: dict[str, Any], ttl_seconds: int) -> bool:
        try:
            redis = await get_redis()
            await redis.set(key, json.dumps(value, default=str), ex=ttl_seconds)
            logger.debug(f"Cached {key} for {ttl_seconds}s")
            return True
        except Exception as e:
            logger.warning(f"Failed to cache {key}: {e}")
            return False

    async def delete(self, key: str) -> bool:
        try:
            redis = await get_redis()
            await redis.delete(key)
            return True
        except Exception as e:
            logger.warning(f"Failed to delete {key}: {e}")
            return False


async def cache_get(
    cache: Optional[IdempotencyCache], key: str
) -> Optional[dict[str, Any]]:
    """Read through an optional cache; any failure counts as a miss."""
    if cache is None:
        return None
    try:
        return await cache.get(key)
    except Exception as e:
        logger.warning(f"Cache read failed for {key}: {e}")
        return None


async def cache_set(
    cache: Optional[IdempotencyCache],
    key: str,
    value: dict[str, Any],
    ttl_seconds: int,
) -> bool:
    """Write through an optional cache without ever raising."""
    if cache is None:
        return False
    try:
        return await cache.set(key, value, ttl_seconds)
    except Exception as e:
        logger.warning(f"Failed to cache {key}: {e}")
        return False


async def cache_delete(cache: Optional[IdempotencyCache], key: str) -> bool:
    """Drop an entry from an optional cache without ever raising."""
    if cache is None:
        return False
    try:
        return await cache.delete(key)
    except Exception as e:
        logger.warning(f"Failed to delete {key}: {e}")
        return False


_default_cache = RedisIdempotencyCache()


def get_idempotency_cache() -> IdempotencyCache:
    """FastAPI dependency returning the shared Redis-backed cache."""
    return _default_cache
