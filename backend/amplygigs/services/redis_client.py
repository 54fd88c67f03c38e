from typing import Any

from redis import asyncio as aioredis

from amplygigs.core.config import REDIS_URL


class _AsyncNullRedis:
    async def publish(self, *args: Any, **kwargs: Any) -> int:
        return 0

    async def aclose(self) -> None:
        return None


def _build_client() -> Any:
    url = (REDIS_URL or "").strip()
    if not url or not url.lower().startswith(("redis://", "rediss://")):
        return _AsyncNullRedis()
    return aioredis.from_url(
        url,
        decode_responses=True,
        socket_connect_timeout=2,
        socket_timeout=5,
        health_check_interval=30,
        retry_on_timeout=True,
    )


redis = _build_client()

__all__ = ["redis"]
