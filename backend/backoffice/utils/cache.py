"""Redis caching utilities for the back-office.

Provides a decorator for caching the invoice statistics projections and a
pattern-based invalidation helper called after every invoice mutation.
Uses Redis so the cache is shared across backend instances.

With `CACHE_ENABLED=false` (tests, local runs without Redis) the
decorator is a pass-through and invalidation is a no-op.
"""

import functools
import hashlib
import json
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Optional, get_type_hints

import redis.asyncio as redis

from backoffice.config import settings

logger = logging.getLogger(__name__)

# Global Redis connection pool
_redis_client: Optional[redis.Redis] = None


async def get_redis() -> redis.Redis:
    """Get or create Redis client connection."""
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=50,
        )
    return _redis_client


async def close_redis():
    """Close Redis connection (call on app shutdown)."""
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None


def cache_key(**kwargs) -> str:
    """Deterministic hash of the keyword arguments of a cached call."""
    if not kwargs:
        return "default"
    key_data = json.dumps(kwargs, sort_keys=True)
    return hashlib.md5(key_data.encode()).hexdigest()


def _key_value(value):
    if isinstance(value, (int, str, bool, float, type(None))):
        return value
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    return None


def cached(ttl: int | None = None, prefix: str = "cache"):
    """Decorator to cache the result of an async function in Redis.

    Only keyword arguments with simple values take part in the key;
    positional arguments (the session) are ignored.  The wrapped function
    must return a Pydantic model or a list of them; its return annotation
    is used to rebuild the value on a cache hit.

    Cache keys: {prefix}:{function_name}:{kwargs_hash}
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            if not settings.cache_enabled:
                return await func(*args, **kwargs)

            key_kwargs = {}
            for k, v in kwargs.items():
                simple = _key_value(v)
                if simple is not None:
                    key_kwargs[k] = simple
            key = f"{prefix}:{func.__name__}:{cache_key(**key_kwargs)}"

            try:
                redis_client = await get_redis()
                cached_value = await redis_client.get(key)
                if cached_value:
                    logger.debug("Cache HIT: %s", key)
                    return _restore(func, json.loads(cached_value))
                logger.debug("Cache MISS: %s", key)

                result = await func(*args, **kwargs)
                if isinstance(result, list):
                    serialized = [item.model_dump(mode="json") for item in result]
                else:
                    serialized = result.model_dump(mode="json")
                await redis_client.setex(key, ttl or settings.stats_cache_ttl, json.dumps(serialized))
                return result

            except redis.RedisError as e:
                # If Redis fails, log and continue without caching
                logger.warning("Redis error (falling back to uncached): %s", e)
                return await func(*args, **kwargs)

        return wrapper

    return decorator


def _restore(func: Callable, payload):
    """Rebuild the Pydantic return value of `func` from its JSON form."""
    model = get_type_hints(func).get("return")
    item_model = getattr(model, "__args__", (None,))[0]
    if isinstance(payload, list) and item_model is not None:
        return [item_model.model_validate(item) for item in payload]
    return model.model_validate(payload)


async def invalidate_cache(pattern: str):
    """Invalidate cache keys matching a pattern (e.g. "invoice-stats:*")."""
    if not settings.cache_enabled:
        return
    try:
        redis_client = await get_redis()
        keys = []
        async for key in redis_client.scan_iter(match=pattern):
            keys.append(key)

        if keys:
            await redis_client.delete(*keys)
            logger.info("Invalidated %d cache keys matching %s", len(keys), pattern)
    except redis.RedisError as e:
        logger.warning("Failed to invalidate cache: %s", e)
