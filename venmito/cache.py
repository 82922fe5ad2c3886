# venmito/cache.py
from __future__ import annotations

import json
import logging
from typing import Any, Optional

from redis import Redis
from redis.exceptions import RedisError

from .settings import Settings

logger = logging.getLogger(__name__)


def redis_client(settings: Settings) -> Optional[Redis]:
    if not settings.CACHE_ENABLED:
        logger.info("Cache disabled")
        return None
    return Redis.from_url(settings.REDIS_URL, decode_responses=True)


def key(prefix: str, *parts: Any) -> str:
    # namespaced keys, e.g., venmito:dashboard:popular-items:7
    return f"{prefix}:" + ":".join(str(p).strip(":") for p in parts if p is not None)


def get_json(r: Optional[Redis], k: str):
    if r is None:
        return None
    try:
        v = r.get(k)
    except RedisError as e:
        logger.warning("Cache read failed key=%r: %s", k, e)
        return None
    if not v:
        logger.debug("Cache MISS key=%r", k)
        return None
    try:
        obj = json.loads(v)
    except ValueError as e:
        logger.warning("Cache ERROR decoding key=%r: %s", k, e)
        return None
    logger.debug("Cache HIT key=%r", k)
    return obj


def set_json(r: Optional[Redis], k: str, value, ttl: int | None = None) -> None:
    if r is None:
        return
    data = json.dumps(value, separators=(",", ":"), default=str)
    try:
        if ttl:
            r.setex(k, ttl, data)
        else:
            r.set(k, data)
    except RedisError as e:
        logger.warning("Cache write failed key=%r: %s", k, e)
        return
    logger.debug("Cache SET key=%r ttl=%s bytes=%d", k, ttl, len(data))


def delete_prefix(r: Optional[Redis], prefix: str) -> int:
    if r is None:
        return 0
    patt = prefix + "*"
    count = 0
    try:
        pipe = r.pipeline()
        for kk in r.scan_iter(match=patt, count=1000):
            pipe.delete(kk)
            count += 1
        pipe.execute()
    except RedisError as e:
        logger.warning("Cache prefix delete failed prefix=%r: %s", prefix, e)
        return 0
    logger.info("Cache cleared prefix=%r deleted=%d", prefix, count)
    return count
