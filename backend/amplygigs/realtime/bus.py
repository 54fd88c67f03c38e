"""Cross-instance fan-out over Redis pub/sub.

Every in-process broadcast is mirrored to ``ws-topic:<topic>`` so sockets
held by other API instances see the same events. Disabled unless
``WS_BUS_ENABLED`` is set.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from typing import Any, Awaitable, Callable

from amplygigs.services.redis_client import redis as _redis_client

logger = logging.getLogger(__name__)

_WS_BUS_ENABLED = os.getenv("WS_BUS_ENABLED", "0").lower() in {"1", "true", "yes"}
TOPIC_PREFIX = "ws-topic:"


def bus_enabled() -> bool:
    return _WS_BUS_ENABLED and hasattr(_redis_client, "pubsub")


async def publish_topic(topic: str, envelope: dict[str, Any]) -> None:
    """Publish an envelope to ws-topic:<topic>; a no-op when the bus is off."""
    if not bus_enabled():
        return
    env = dict(envelope)
    env.setdefault("v", 1)
    env.setdefault("topic", topic)
    try:
        await _redis_client.publish(f"{TOPIC_PREFIX}{topic}", json.dumps(env, separators=(",", ":")))
    except Exception as exc:
        # Delivery is best effort; the local fan-out already happened.
        logger.warning("Bus publish failed for %s: %s", topic, exc)


def _decode(data: Any) -> dict[str, Any]:
    if isinstance(data, (bytes, bytearray)):
        data = data.decode("utf-8")
    try:
        payload = json.loads(data)
    except (TypeError, ValueError):
        return {"payload": str(data)}
    return payload if isinstance(payload, dict) else {"payload": payload}


_consumer_task: asyncio.Task | None = None


async def start_pattern_consumer(
    pattern: str,
    handler: Callable[[str, dict[str, Any]], Awaitable[None]],
) -> None:
    """PSUBSCRIBE to ``pattern`` and dispatch decoded payloads to ``handler``.

    The handler receives (topic_without_prefix, envelope_dict).
    """
    global _consumer_task
    if not bus_enabled() or _consumer_task is not None:
        return
    pubsub = _redis_client.pubsub()
    await pubsub.psubscribe(pattern)

    async def _loop() -> None:
        try:
            async for msg in pubsub.listen():
                if not isinstance(msg, dict) or msg.get("type") != "pmessage":
                    continue
                topic = str(msg.get("channel")).removeprefix(TOPIC_PREFIX)
                try:
                    await handler(topic, _decode(msg.get("data")))
                except Exception:
                    logger.exception("Bus handler failed for %s", topic)
        finally:
            await pubsub.aclose()

    _consumer_task = asyncio.create_task(_loop())


async def stop_pattern_consumer() -> None:
    global _consumer_task
    task, _consumer_task = _consumer_task, None
    if task is None:
        return
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


__all__ = [
    "bus_enabled",
    "publish_topic",
    "start_pattern_consumer",
    "stop_pattern_consumer",
]
