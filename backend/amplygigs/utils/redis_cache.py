import json
import logging
import os
import random
from typing import Any, Iterable, Optional

import redis

from amplygigs.core.config import settings

logger = logging.getLogger(__name__)

_redis_client: Optional[redis.Redis] = None


class _NullRedis:
    """No-op Redis client used when Redis is disabled.

    Mirrors the small surface used here so callers never need a guard.
    """

    def get(self, key: str):
        return None

    def setex(self, key: str, expire: int, value: str):
        return None

    def scan_iter(self, pattern: str):
        return iter(())

    def delete(self, *keys: str):
        return 0

    def close(self):
        return None


def get_redis_client() -> redis.Redis:
    global _redis_client
    if _redis_client is None:
        url = (settings.REDIS_URL or "").strip()
        if os.getenv("PYTEST_RUN") == "1" or not url or url.lower() in {"none", "disabled", "false", "0"}:
            _redis_client = _NullRedis()  # type: ignore[assignment]
            return _redis_client
        _redis_client = redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=float(os.getenv("REDIS_CONNECT_TIMEOUT", "0.5")),
            socket_timeout=float(os.getenv("REDIS_SOCKET_TIMEOUT", "0.5")),
        )
    return _redis_client


BOOKINGS_LIST_KEY_PREFIX = "bookings:list"


def _apply_jitter(expire: int) -> int:
    """Return a TTL with a small random jitter to prevent cache stampedes."""
    return expire + random.randint(0, max(1, expire // 10))


def _bookings_key(user_id: str) -> str:
    return f"{BOOKINGS_LIST_KEY_PREFIX}:{user_id}"


def get_cached_bookings(user_id: str) -> Any | None:
    """Return the cached booking list for ``user_id`` or ``None`` on a miss."""
    client = get_redis_client()
    try:
        data = client.get(_bookings_key(user_id))
    except redis.exceptions.RedisError as exc:
        logger.warning("Redis unavailable: %s", exc)
        return None
    if not data:
        return None
    try:
        return json.loads(data)
    except ValueError as exc:
        logger.warning("Could not decode bookings cache for %s: %s", user_id, exc)
        return None


def cache_bookings(user_id: str, data: Any, expire: Optional[int] = None) -> None:
    client = get_redis_client()
    ttl = _apply_jitter(expire if expire is not None else settings.BOOKINGS_CACHE_TTL)
    try:
        client.setex(_bookings_key(user_id), ttl, json.dumps(data, default=str))
    except redis.exceptions.RedisError as exc:
        logger.warning("Could not cache bookings: %s", exc)


def invalidate_bookings_cache(user_ids: Iterable[str]) -> int:
    """Drop cached booking lists for every user in ``user_ids``."""
    client = get_redis_client()
    keys = [_bookings_key(uid) for uid in {u for u in user_ids if u}]
    if not keys:
        return 0
    try:
        return int(client.delete(*keys) or 0)
    except redis.exceptions.RedisError as exc:
        logger.warning("Could not clear bookings cache: %s", exc)
        return 0


def close_redis_client() -> None:
    """Close the global Redis client if it was created."""
    global _redis_client
    if _redis_client is not None:
        _redis_client.close()
        _redis_client = None
