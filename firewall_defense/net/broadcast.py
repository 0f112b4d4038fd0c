"""Broadcast channel: publish to a topic, subscribe for fan-out."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Any, AsyncIterator

import redis.asyncio as redis
from redis.exceptions import RedisError

from firewall_defense.errors import BroadcastFailure
from firewall_defense.game import protocol

logger = logging.getLogger(__name__)


class RedisBroadcaster:
    def __init__(self, client: redis.Redis):
        self.client = client

    async def publish(self, topic: str, payload: dict[str, Any]) -> int:
        try:
            receivers = await self.client.publish(topic, protocol.dumps(payload))
        except RedisError as e:
            raise BroadcastFailure(f"publish to {topic} failed: {e}") from e
        logger.debug("published %s to %s (%d subscribers)", payload.get("type"), topic, receivers)
        return receivers

    async def subscribe(self, topic: str) -> AsyncIterator[str]:
        pubsub = self.client.pubsub(ignore_subscribe_messages=True)
        await pubsub.subscribe(topic)
        logger.info("subscribed to %s", topic)
        try:
            async for msg in pubsub.listen():
                if msg.get("type") == "message":
                    yield msg["data"]
        finally:
            await pubsub.unsubscribe(topic)
            await pubsub.aclose()


class MemoryBroadcaster:
    """In-process fan-out; keeps a short history of what was published."""

    def __init__(self, history: int = 100):
        self._queues: dict[str, set[asyncio.Queue]] = {}
        self.history: deque[tuple[str, dict[str, Any]]] = deque(maxlen=history)

    async def publish(self, topic: str, payload: dict[str, Any]) -> int:
        text = protocol.dumps(payload)
        self.history.append((topic, payload))
        queues = self._queues.get(topic, set())
        for q in queues:
            q.put_nowait(text)
        return len(queues)

    def messages(self, msg_type: str | None = None) -> list[dict[str, Any]]:
        return [p for _, p in self.history if msg_type is None or p.get("type") == msg_type]

    async def subscribe(self, topic: str) -> AsyncIterator[str]:
        q: asyncio.Queue = asyncio.Queue()
        self._queues.setdefault(topic, set()).add(q)
        try:
            while True:
                yield await q.get()
        finally:
            self._queues.get(topic, set()).discard(q)
