"""Tests for MessageDispatcher — dispatch bookkeeping, partial failure,
reconciliation and live snapshots."""
import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError
from unittest.mock import AsyncMock, MagicMock, patch

from featur.models import Match, Message, pair_key
from featur.services.conversation_service import ConversationResolver
from featur.services.message_service import MessageDispatcher
from featur.services.realtime import LocalConversationHub
from featur.services.swipe_service import SwipeRecorder


@pytest.fixture
def hub():
    return LocalConversationHub()


@pytest.fixture
def dispatcher(hub):
    return MessageDispatcher(hub=hub)


@pytest.fixture
async def conversation_id(db_session, alice_and_bob):
    result = await ConversationResolver().get_or_create_conversation("alice", "bob", db_session)
    return result["conversation"]["id"]


async def _load(db_session, conversation_id):
    return await ConversationResolver().load_conversation(conversation_id, db_session)


class TestSendMessage:
    """Message append plus conversation bookkeeping."""

    async def test_matched_pair_chat(self, dispatcher, db_session, alice_and_bob):
        """Matched users open a chat, B says hello: preview set, A has 1 unread."""
        recorder = SwipeRecorder()
        await recorder.record_swipe("alice", "bob", "like", db_session)
        await recorder.record_swipe("bob", "alice", "like", db_session)

        resolved = await ConversationResolver().get_or_create_conversation(
            "alice", "bob", db_session
        )
        assert resolved["created"] is True
        assert resolved["conversation"]["unread_count"] == {"alice": 0, "bob": 0}
        conversation_id = resolved["conversation"]["id"]

        result = await dispatcher.send_message(conversation_id, "bob", "alice", "hello", db_session)

        assert result["status"] == "sent"
        assert result["conversation_synced"] is True
        assert result["match_marked"] is True

        conversation = await _load(db_session, conversation_id)
        assert conversation.last_message == "hello"
        assert conversation.unread_count == {"alice": 1, "bob": 0}

        match = await db_session.get(Match, pair_key("alice", "bob"), populate_existing=True)
        assert match.has_messaged is True

    async def test_unread_increments_by_one_per_message(self, dispatcher, db_session, conversation_id):
        """Each message bumps only the recipient's counter, by exactly one."""
        await dispatcher.send_message(conversation_id, "bob", "alice", "one", db_session)
        await dispatcher.send_message(conversation_id, "bob", "alice", "two", db_session)
        await dispatcher.send_message(conversation_id, "alice", "bob", "three", db_session)

        conversation = await _load(db_session, conversation_id)
        assert conversation.unread_count == {"alice": 2, "bob": 1}
        assert conversation.last_message == "three"

    async def test_without_match_still_sends(self, dispatcher, db_session, conversation_id):
        """No match row: message and preview still land, match_marked is False."""
        result = await dispatcher.send_message(conversation_id, "alice", "bob", "hi", db_session)

        assert result["status"] == "sent"
        assert result["conversation_synced"] is True
        assert result["match_marked"] is False

    async def test_older_message_keeps_newer_preview(self, dispatcher, db_session, conversation_id):
        """A late-arriving older message does not move the preview back."""
        now = datetime.now(timezone.utc)
        await dispatcher.send_message(
            conversation_id, "bob", "alice", "newer", db_session, sent_at=now + timedelta(seconds=5)
        )
        await dispatcher.send_message(
            conversation_id, "alice", "bob", "older", db_session, sent_at=now + timedelta(seconds=1)
        )

        conversation = await _load(db_session, conversation_id)
        assert conversation.last_message == "newer"
        assert conversation.unread_count == {"alice": 1, "bob": 1}

    @pytest.mark.parametrize("sender,recipient,content,reason", [
        ("", "alice", "hi", "empty_id"),
        ("bob", "", "hi", "empty_id"),
        ("bob", "alice", "   ", "empty_content"),
        ("bob", "bob", "hi", "not_a_participant"),
        ("mallory", "alice", "hi", "not_a_participant"),
    ])
    async def test_invalid_input_writes_nothing(
        self, dispatcher, db_session, conversation_id, sender, recipient, content, reason
    ):
        """Validation failures are reported, never raised."""
        result = await dispatcher.send_message(conversation_id, sender, recipient, content, db_session)

        assert result["status"] == "invalid"
        assert result["reason"] == reason
        assert await db_session.scalar(select(func.count()).select_from(Message)) == 0

    async def test_unknown_conversation(self, dispatcher, db_session, alice_and_bob):
        """Sending into a missing conversation reports not_found."""
        result = await dispatcher.send_message("alice__zed", "alice", "zed", "hi", db_session)
        assert result["status"] == "not_found"

    async def test_sync_failure_keeps_message(self, hub, db_session, conversation_id):
        """A failed preview/unread update is reported but the message stays."""
        detector = MagicMock()
        detector.mark_match_as_messaged = AsyncMock(return_value=False)
        dispatcher = MessageDispatcher(match_detector=detector, hub=hub)

        failure = OperationalError("UPDATE conversations", {}, Exception("database is locked"))
        with patch.object(db_session, "execute", AsyncMock(side_effect=failure)):
            result = await dispatcher.send_message(conversation_id, "bob", "alice", "hello", db_session)

        assert result["status"] == "sent"
        assert result["conversation_synced"] is False

        stored = await dispatcher.fetch_messages(conversation_id, db_session)
        assert [m["content"] for m in stored] == ["hello"]
        conversation = await _load(db_session, conversation_id)
        assert conversation.last_message is None
        assert conversation.unread_count["alice"] == 0


class TestReconcile:
    """Rebuilding denormalized fields from the message log."""

    async def test_reconcile_repairs_drift(self, hub, db_session, conversation_id):
        """After a failed sync, reconcile restores preview and unread counts."""
        detector = MagicMock()
        detector.mark_match_as_messaged = AsyncMock(return_value=False)
        dispatcher = MessageDispatcher(match_detector=detector, hub=hub)

        failure = OperationalError("UPDATE conversations", {}, Exception("database is locked"))
        with patch.object(db_session, "execute", AsyncMock(side_effect=failure)):
            await dispatcher.send_message(conversation_id, "bob", "alice", "hello", db_session)

        result = await dispatcher.reconcile_conversation(conversation_id, db_session)

        assert result["status"] == "reconciled"
        assert result["conversation"]["last_message"] == "hello"
        assert result["conversation"]["unread_count"] == {"alice": 1, "bob": 0}

    async def test_reconcile_is_idempotent(self, dispatcher, db_session, conversation_id):
        """Running reconcile on a consistent conversation changes nothing."""
        await dispatcher.send_message(conversation_id, "bob", "alice", "hello", db_session)
        await dispatcher.send_message(conversation_id, "alice", "bob", "hey", db_session)

        first = await dispatcher.reconcile_conversation(conversation_id, db_session)
        second = await dispatcher.reconcile_conversation(conversation_id, db_session)

        assert first["conversation"] == second["conversation"]
        assert first["conversation"]["unread_count"] == {"alice": 1, "bob": 1}
        assert first["conversation"]["last_message"] == "hey"

    async def test_reconcile_unknown(self, dispatcher, db_session):
        """Missing conversations report not_found."""
        result = await dispatcher.reconcile_conversation("nobody__nothing", db_session)
        assert result["status"] == "not_found"


class TestFetchAndSubscribe:
    """Message history and full-snapshot subscriptions."""

    async def test_fetch_newest_first_with_limit(self, dispatcher, db_session, conversation_id):
        """History is newest first and respects the limit."""
        base = datetime.now(timezone.utc)
        for i in range(3):
            await dispatcher.send_message(
                conversation_id, "bob", "alice", f"m{i}", db_session,
                sent_at=base + timedelta(seconds=i),
            )

        messages = await dispatcher.fetch_messages(conversation_id, db_session, limit=2)
        assert [m["content"] for m in messages] == ["m2", "m1"]

    async def test_subscription_delivers_full_snapshots(
        self, hub, dispatcher, db_session, session_factory, conversation_id
    ):
        """Initial snapshot on subscribe, then the whole ordered list after each send."""
        await dispatcher.send_message(conversation_id, "bob", "alice", "first", db_session)

        stream = dispatcher.subscribe(conversation_id, session_factory)
        initial = await asyncio.wait_for(stream.__anext__(), timeout=5)
        assert [m["content"] for m in initial] == ["first"]
        assert hub.subscriber_count(conversation_id) == 1

        await dispatcher.send_message(conversation_id, "alice", "bob", "second", db_session)
        update = await asyncio.wait_for(stream.__anext__(), timeout=5)
        assert [m["content"] for m in update] == ["first", "second"]

        await stream.aclose()
        assert hub.subscriber_count(conversation_id) == 0

    async def test_notify_failure_does_not_fail_send(self, db_session, conversation_id):
        """A broken hub is logged; the send still succeeds."""
        broken_hub = MagicMock()
        broken_hub.publish = AsyncMock(side_effect=ConnectionError("redis down"))
        dispatcher = MessageDispatcher(hub=broken_hub)

        result = await dispatcher.send_message(conversation_id, "bob", "alice", "hello", db_session)

        assert result["status"] == "sent"
        broken_hub.publish.assert_awaited_once_with(conversation_id)
