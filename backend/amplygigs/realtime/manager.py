from __future__ import annotations

import asyncio
import logging
import os
from typing import Any, Dict, Set

from fastapi import WebSocket

from . import bus

logger = logging.getLogger(__name__)

SEND_TIMEOUT = 5.0
INSTANCE_ID = os.getenv("INSTANCE_ID", "inst-" + os.urandom(4).hex())


class ConnectionManager:
    """Topic based fan-out to in-process WebSocket connections."""

    def __init__(self) -> None:
        self.topic_sockets: Dict[str, Set[WebSocket]] = {}

    def subscribe(self, topic: str, ws: WebSocket) -> None:
        self.topic_sockets.setdefault(topic, set()).add(ws)

    def unsubscribe(self, topic: str, ws: WebSocket) -> None:
        conns = self.topic_sockets.get(topic)
        if not conns:
            return
        conns.discard(ws)
        if not conns:
            del self.topic_sockets[topic]

    def subscribers(self, topic: str) -> int:
        return len(self.topic_sockets.get(topic, ()))

    async def broadcast_topic(self, topic: str, data: dict[str, Any], publish: bool = True) -> None:
        for ws in list(self.topic_sockets.get(topic, set())):
            try:
                await asyncio.wait_for(ws.send_json(data), timeout=SEND_TIMEOUT)
            except Exception as exc:
                logger.info("Dropping socket on %s: %s", topic, exc)
                self.unsubscribe(topic, ws)
        if publish:
            await bus.publish_topic(topic, {**data, "origin": INSTANCE_ID})


manager = ConnectionManager()


class NotificationsManager:
    async def broadcast(self, user_id: str, data: dict[str, Any]) -> None:
        await manager.broadcast_topic(f"notifications:{user_id}", data)


notifications_manager = NotificationsManager()


async def dispatch_bus_message(topic: str, data: dict[str, Any]) -> None:
    """Deliver a message published by another instance to local sockets."""
    if data.get("origin") == INSTANCE_ID:
        return
    await manager.broadcast_topic(topic, data, publish=False)


async def ensure_bus_started() -> None:
    await bus.start_pattern_consumer(f"{bus.TOPIC_PREFIX}*", dispatch_bus_message)
