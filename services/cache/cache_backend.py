# services/cache/cache_backend.py
"""
Two-level JSON cache for upstream market data (quotes, symbol search).

  L1: process-local dict with a short TTL
  L2: Redis (Upstash) shared across instances, only when UPSTASH_REDIS_URL is set

A cache failure never fails a request: Redis errors are logged and treated
as misses.
"""
from __future__ import annotations

import json
import logging
import os
import time
from typing import Any, Dict, List, Optional, Tuple, Union

import redis

logger = logging.getLogger(__name__)

JsonValue = Union[Dict[str, Any], List[Any], str, int, float, bool, None]

DEFAULT_TTL_SEC = int(os.getenv("CACHE_DEFAULT_TTL_SEC", "60"))
LOCAL_CACHE_TTL_SEC = int(os.getenv("CACHE_LOCAL_TTL_SEC", "60"))

# isolates app + env, e.g. "captrack:prod:"
REDIS_PREFIX = os.getenv("REDIS_PREFIX", "captrack:")

UPSTASH_REDIS_URL = os.getenv("UPSTASH_REDIS_URL")

# key -> (expires_at_epoch, payload)
_LOCAL: Dict[str, Tuple[float, JsonValue]] = {}

_redis_client: Optional[redis.Redis] = None


def get_redis_client() -> Optional[redis.Redis]:
    """Lazy init; None when Redis is not configured."""
    global _redis_client
    if _redis_client is not None or not UPSTASH_REDIS_URL:
        return _redis_client

    try:
        _redis_client = redis.from_url(
            UPSTASH_REDIS_URL,
            decode_responses=True,
            socket_timeout=2,
            socket_connect_timeout=2,
        )
    except (redis.RedisError, ValueError):
        logger.warning("redis client init failed; running with local cache only", exc_info=True)
        _redis_client = None

    return _redis_client


def _norm_key(key: str) -> str:
    return (key or "").strip().upper()


def _redis_key(k: str) -> str:
    return f"{REDIS_PREFIX}{k}"


def _ttl(ttl_seconds: Optional[int]) -> int:
    return int(ttl_seconds) if ttl_seconds and ttl_seconds > 0 else DEFAULT_TTL_SEC


def _local_get(k: str, now: float) -> Optional[JsonValue]:
    hit = _LOCAL.get(k)
    if not hit:
        return None
    expires_at, payload = hit
    if now <= expires_at:
        return payload
    _LOCAL.pop(k, None)
    return None


def clear_local_cache() -> None:
    _LOCAL.clear()


def cache_get(key: str) -> Optional[JsonValue]:
    return cache_get_many([key]).get(_norm_key(key))


def cache_set(key: str, payload: JsonValue, ttl_seconds: int = DEFAULT_TTL_SEC) -> None:
    cache_set_many({key: payload}, ttl_seconds=ttl_seconds)


def cache_get_many(keys: List[str]) -> Dict[str, Optional[JsonValue]]:
    """
    Bulk read-through. Result is keyed by the NORMALIZED (upper-cased) key;
    misses map to None.
    """
    out: Dict[str, Optional[JsonValue]] = {}
    misses: List[str] = []
    now = time.time()

    for key in keys:
        k = _norm_key(key)
        if not k:
            continue
        hit = _local_get(k, now)
        out[k] = hit
        if hit is None:
            misses.append(k)

    r = get_redis_client()
    if not misses or r is None:
        return out

    try:
        raws = r.mget([_redis_key(k) for k in misses])
    except redis.RedisError:
        logger.warning("redis mget failed for %d keys", len(misses), exc_info=True)
        return out

    for k, raw in zip(misses, raws):
        if not isinstance(raw, (str, bytes, bytearray)):
            continue
        try:
            payload: JsonValue = json.loads(raw)
        except ValueError:
            continue
        out[k] = payload
        _LOCAL[k] = (now + LOCAL_CACHE_TTL_SEC, payload)

    return out


def cache_set_many(kv: Dict[str, JsonValue], ttl_seconds: int = DEFAULT_TTL_SEC) -> None:
    """Bulk write-through: local TTL is min(LOCAL_CACHE_TTL_SEC, ttl), Redis TTL is ttl."""
    if not kv:
        return

    ttl = _ttl(ttl_seconds)
    expires_at = time.time() + min(LOCAL_CACHE_TTL_SEC, ttl)

    normalized = {_norm_key(k): v for k, v in kv.items() if _norm_key(k)}
    for k, payload in normalized.items():
        _LOCAL[k] = (expires_at, payload)

    r = get_redis_client()
    if r is None or not normalized:
        return

    try:
        pipe = r.pipeline(transaction=False)
        for k, payload in normalized.items():
            pipe.setex(_redis_key(k), ttl, json.dumps(payload, separators=(",", ":")))
        pipe.execute()
    except redis.RedisError:
        logger.warning("redis write failed for %d keys", len(normalized), exc_info=True)
