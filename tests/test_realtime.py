"""Tests for the conversation change hubs and the store retry policy."""
import asyncio

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError
from unittest.mock import AsyncMock, MagicMock, patch

from featur.services.realtime import LocalConversationHub, RedisConversationHub
from featur.utils.retry import is_transient_store_error, store_retry


class TestLocalHub:
    """In-process fan-out."""

    async def test_publish_reaches_listener(self):
        """A listener registered on a conversation is woken by a publish."""
        hub = LocalConversationHub()
        async with hub.listen("c1") as changes:
            await hub.publish("c1")
            received = await asyncio.wait_for(changes.__anext__(), timeout=1)
        assert received == "c1"

    async def test_other_conversations_not_notified(self):
        """Publishing elsewhere does not wake the listener."""
        hub = LocalConversationHub()
        async with hub.listen("c1") as changes:
            await hub.publish("c2")
            with pytest.raises(asyncio.TimeoutError):
                await asyncio.wait_for(changes.__anext__(), timeout=0.05)

    async def test_burst_is_coalesced(self):
        """Several publishes before a read collapse into one notification."""
        hub = LocalConversationHub()
        async with hub.listen("c1") as changes:
            for _ in range(5):
                await hub.publish("c1")
            await asyncio.wait_for(changes.__anext__(), timeout=1)
            with pytest.raises(asyncio.TimeoutError):
                await asyncio.wait_for(changes.__anext__(), timeout=0.05)

    async def test_listener_unregistered_on_exit(self):
        """Leaving the block removes the subscriber."""
        hub = LocalConversationHub()
        async with hub.listen("c1"):
            assert hub.subscriber_count("c1") == 1
        assert hub.subscriber_count("c1") == 0
        await hub.publish("c1")


class TestRedisHub:
    """Redis pub/sub fan-out with a mocked client."""

    async def test_publish_uses_channel(self):
        """Publishes go to the per-conversation channel."""
        client = MagicMock()
        client.publish = AsyncMock(return_value=2)
        hub = RedisConversationHub(client)

        await hub.publish("c1")

        client.publish.assert_awaited_once_with("featur:conversation:c1", "c1")

    async def test_listen_yields_messages_and_cleans_up(self):
        """Only ``message`` frames are yielded; the pubsub is closed afterwards."""
        frames = [
            {"type": "subscribe", "data": 1},
            {"type": "message", "data": b"c1"},
        ]

        async def _listen():
            for frame in frames:
                yield frame

        pubsub = MagicMock()
        pubsub.subscribe = AsyncMock()
        pubsub.unsubscribe = AsyncMock()
        pubsub.aclose = AsyncMock()
        pubsub.listen = _listen
        client = MagicMock()
        client.pubsub.return_value = pubsub
        hub = RedisConversationHub(client)

        async with hub.listen("c1") as changes:
            received = await changes.__anext__()

        assert received == "c1"
        pubsub.subscribe.assert_awaited_once_with("featur:conversation:c1")
        pubsub.unsubscribe.assert_awaited_once_with("featur:conversation:c1")
        pubsub.aclose.assert_awaited_once()


class TestStoreRetry:
    """Transient-error retry around idempotent writes."""

    def test_transient_classification(self):
        """Operational errors are transient; integrity errors are not."""
        assert is_transient_store_error(OperationalError("SELECT 1", {}, Exception("reset")))
        assert not is_transient_store_error(IntegrityError("INSERT", {}, Exception("dup")))
        assert not is_transient_store_error(ValueError("nope"))

    async def test_retries_then_succeeds(self):
        """A transient failure is retried until the write goes through."""
        calls = []

        async def flaky():
            calls.append(1)
            if len(calls) < 2:
                raise OperationalError("INSERT", {}, Exception("database is locked"))
            return "ok"

        with patch("featur.utils.retry.wait_exponential", return_value=lambda rs: 0):
            async for attempt in store_retry():
                with attempt:
                    result = await flaky()

        assert result == "ok"
        assert len(calls) == 2

    async def test_gives_up_and_reraises(self):
        """After the configured attempts the original error propagates."""
        calls = []

        async def always_fails():
            calls.append(1)
            raise OperationalError("INSERT", {}, Exception("database is locked"))

        with patch("featur.utils.retry.wait_exponential", return_value=lambda rs: 0):
            with pytest.raises(OperationalError):
                async for attempt in store_retry():
                    with attempt:
                        await always_fails()

        assert len(calls) == 3

    async def test_non_transient_not_retried(self):
        """Integrity errors fail immediately."""
        calls = []

        async def conflict():
            calls.append(1)
            raise IntegrityError("INSERT", {}, Exception("duplicate key"))

        with pytest.raises(IntegrityError):
            async for attempt in store_retry():
                with attempt:
                    await conflict()

        assert len(calls) == 1
