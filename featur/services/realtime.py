"""
Featur — Conversation change notifications

Live message subscriptions are full-snapshot: a subscriber is told *that* a
conversation changed and re-reads the whole ordered message list.  The hub
therefore only carries conversation ids, never message payloads.

Two implementations share the same interface:

``LocalConversationHub``
    In-process fan-out over ``asyncio.Queue``; enough for a single worker
    and for tests.

``RedisConversationHub``
    Redis pub/sub so that a message sent through one worker wakes the
    subscribers attached to every other worker.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog

logger = structlog.get_logger("featur.realtime")

_CHANNEL_PREFIX = "featur:conversation:"


async def _drain(queue: asyncio.Queue) -> AsyncIterator[str]:
    while True:
        conversation_id = await queue.get()
        # Collapse a burst of notifications into one re-read.
        while not queue.empty():
            queue.get_nowait()
        yield conversation_id


class LocalConversationHub:
    """In-process notification fan-out."""

    def __init__(self) -> None:
        self._subscribers: dict[str, set[asyncio.Queue]] = defaultdict(set)

    async def publish(self, conversation_id: str) -> None:
        queues = list(self._subscribers.get(conversation_id, ()))
        for queue in queues:
            queue.put_nowait(conversation_id)
        logger.debug(
            "conversation_change_published",
            conversation_id=conversation_id,
            subscribers=len(queues),
        )

    @asynccontextmanager
    async def listen(self, conversation_id: str) -> AsyncIterator[AsyncIterator[str]]:
        """Register a subscriber for the lifetime of the ``async with`` block
        and yield an async iterator of change notifications."""
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers[conversation_id].add(queue)
        try:
            yield _drain(queue)
        finally:
            self._subscribers[conversation_id].discard(queue)
            if not self._subscribers[conversation_id]:
                del self._subscribers[conversation_id]

    def subscriber_count(self, conversation_id: str) -> int:
        return len(self._subscribers.get(conversation_id, ()))


class RedisConversationHub:
    """Redis pub/sub backed fan-out (``redis.asyncio`` client)."""

    def __init__(self, redis_client) -> None:
        self._redis = redis_client

    @staticmethod
    def channel_for(conversation_id: str) -> str:
        return f"{_CHANNEL_PREFIX}{conversation_id}"

    async def publish(self, conversation_id: str) -> None:
        receivers = await self._redis.publish(
            self.channel_for(conversation_id), conversation_id
        )
        logger.debug(
            "conversation_change_published",
            conversation_id=conversation_id,
            subscribers=receivers,
        )

    @asynccontextmanager
    async def listen(self, conversation_id: str) -> AsyncIterator[AsyncIterator[str]]:
        channel = self.channel_for(conversation_id)
        pubsub = self._redis.pubsub()
        await pubsub.subscribe(channel)
        try:
            yield self._iter_messages(pubsub)
        finally:
            await pubsub.unsubscribe(channel)
            await pubsub.aclose()

    @staticmethod
    async def _iter_messages(pubsub) -> AsyncIterator[str]:
        async for message in pubsub.listen():
            if message.get("type") != "message":
                continue
            data = message.get("data")
            yield data.decode("utf-8") if isinstance(data, bytes) else data


# ── Process-wide hub ─────────────────────────────────────────────────────────

_hub: LocalConversationHub | RedisConversationHub = LocalConversationHub()


def get_hub() -> LocalConversationHub | RedisConversationHub:
    """Return the hub the running process publishes to (FastAPI dependency)."""
    return _hub


def set_hub(hub: LocalConversationHub | RedisConversationHub) -> None:
    global _hub
    _hub = hub
