"""
Caching utilities for the stock list
Uses Redis (django-redis) when configured, otherwise Django's local memory cache
"""
from django.conf import settings
from django.core.cache import cache
import hashlib
import logging

logger = logging.getLogger(__name__)

STOCK_LIST_PREFIX = "stock_list"


def make_cache_key(prefix, *args, **kwargs):
    """Generate a unique cache key from arguments"""
    # Convert args and kwargs to a stable string representation
    key_data = f"{prefix}:{args}:{sorted(kwargs.items())}"
    # Hash it to keep key length reasonable
    key_hash = hashlib.md5(key_data.encode()).hexdigest()
    return f"{prefix}:{key_hash}"


def get_cached_stock_list(filters_dict):
    """
    Get cached stock list for the given filters/page
    Returns tuple: (cached_data, cache_key)
    """
    cache_key = make_cache_key(STOCK_LIST_PREFIX, **filters_dict)
    try:
        return cache.get(cache_key), cache_key
    except Exception as e:
        logger.warning(f"Cache unavailable, proceeding without cache: {e}")
        return None, cache_key


def cache_stock_list(cache_key, data, ttl=None):
    """Cache stock list data"""
    if ttl is None:
        ttl = getattr(settings, 'STOCK_LIST_CACHE_TTL', 180)
    try:
        cache.set(cache_key, data, ttl)
        logger.debug(f"Cached stock list: {cache_key}")
    except Exception as e:
        logger.warning(f"Unable to cache stock list: {e}")


def invalidate_cache_pattern(pattern):
    """
    Invalidate all cache keys matching a pattern
    Uses Redis SCAN when the default cache is django-redis; other backends
    cannot enumerate keys, so the whole cache is cleared instead.
    """
    try:
        from django_redis import get_redis_connection
        redis_conn = get_redis_connection("default")
    except NotImplementedError:
        cache.clear()
        logger.info(f"Cache backend cannot match patterns, cleared cache for: {pattern}")
        return

    try:
        keys = []
        cursor = 0
        while True:
            cursor, partial_keys = redis_conn.scan(cursor, match=f"*{pattern}*", count=100)
            keys.extend(partial_keys)
            if cursor == 0:
                break

        if keys:
            redis_conn.delete(*keys)
            logger.info(f"Invalidated {len(keys)} cache keys matching pattern: {pattern}")
    except Exception as e:
        logger.warning(f"Could not invalidate cache pattern {pattern}: {str(e)}")


def invalidate_stock_cache():
    """Invalidate all stock-list cache entries"""
    invalidate_cache_pattern(STOCK_LIST_PREFIX)
