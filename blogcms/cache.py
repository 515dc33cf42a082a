import json
import logging
from typing import Optional

import redis

from .config import settings

logger = logging.getLogger(__name__)

redis_client = redis.Redis.from_url(settings.REDIS_URL, decode_responses=True)
CACHE_EXPIRE = settings.CACHE_EXPIRE_SECONDS

PUBLISHED_LIST_PREFIX = "published_list_"
POST_CACHE_PREFIX = "post_cache_"


def published_list_key(**params) -> str:
    parts = [f"{name}={params[name]}" for name in sorted(params) if params[name] is not None]
    return PUBLISHED_LIST_PREFIX + "&".join(parts)


def post_key(identifier) -> str:
    return f"{POST_CACHE_PREFIX}{identifier}"


def get_json(key: str) -> Optional[dict]:
    try:
        cached_data = redis_client.get(key)
    except redis.RedisError as exc:
        logger.warning("Cache read failed for %s: %s", key, exc)
        return None
    if cached_data:
        return json.loads(cached_data)
    return None


def set_json(key: str, payload) -> None:
    try:
        redis_client.setex(key, CACHE_EXPIRE, json.dumps(payload))
    except redis.RedisError as exc:
        logger.warning("Cache write failed for %s: %s", key, exc)


def clear_post_cache(*identifiers) -> None:
    """Drop cached single-post reads for the given ids/slugs and every cached published listing."""
    try:
        keys = [post_key(i) for i in identifiers if i is not None]
        keys.extend(redis_client.keys(f"{PUBLISHED_LIST_PREFIX}*"))
        if keys:
            redis_client.delete(*keys)
            logger.debug("Invalidated %d cache keys", len(keys))
    except redis.RedisError as exc:
        logger.warning("Cache invalidation failed: %s", exc)
