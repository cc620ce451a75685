"""Tests for ConversationResolver — find-or-create, inbox listing, read state."""
import asyncio

import pytest
from sqlalchemy import func, select

from featur.models import Conversation, ConversationParticipant, Message, pair_key
from featur.services.conversation_service import ConversationResolver


@pytest.fixture
def resolver():
    return ConversationResolver()


class TestResolve:
    """get_or_create_conversation."""

    async def test_creates_with_zero_unread(self, resolver, db_session, alice_and_bob):
        """First resolution creates the conversation with both counters at 0."""
        result = await resolver.get_or_create_conversation("alice", "bob", db_session)

        assert result["status"] == "resolved"
        assert result["created"] is True
        conversation = result["conversation"]
        assert conversation["id"] == pair_key("alice", "bob")
        assert conversation["participant_ids"] == ["alice", "bob"]
        assert conversation["unread_count"] == {"alice": 0, "bob": 0}
        assert conversation["last_message"] is None
        assert conversation["is_group_chat"] is False

    async def test_sequential_resolutions_share_id(self, resolver, db_session, alice_and_bob):
        """Resolving from either side returns the same conversation."""
        first = await resolver.get_or_create_conversation("alice", "bob", db_session)
        second = await resolver.get_or_create_conversation("bob", "alice", db_session)

        assert second["created"] is False
        assert first["conversation"]["id"] == second["conversation"]["id"]
        count = await db_session.scalar(select(func.count()).select_from(Conversation))
        assert count == 1

    async def test_interleaved_resolutions_share_id(self, session_factory, make_user):
        """Two concurrent resolutions create one conversation."""
        await make_user("alice")
        await make_user("bob")

        async def resolve(a, b):
            async with session_factory() as session:
                return await ConversationResolver().get_or_create_conversation(a, b, session)

        first, second = await asyncio.gather(resolve("alice", "bob"), resolve("bob", "alice"))

        assert first["conversation"]["id"] == second["conversation"]["id"]
        assert [first["created"], second["created"]].count(True) == 1
        async with session_factory() as session:
            conversations = await session.scalar(select(func.count()).select_from(Conversation))
            participants = await session.scalar(
                select(func.count()).select_from(ConversationParticipant)
            )
        assert conversations == 1
        assert participants == 2

    async def test_overlapping_ids_get_separate_conversations(self, resolver, db_session, make_user):
        """A pair never resolves to another pair's conversation."""
        for uid in ("a", "b__c", "a__b", "c"):
            await make_user(uid)

        first = await resolver.get_or_create_conversation("a", "b__c", db_session)
        second = await resolver.get_or_create_conversation("a__b", "c", db_session)

        assert first["created"] is True
        assert second["created"] is True
        assert first["conversation"]["id"] != second["conversation"]["id"]
        assert sorted(second["conversation"]["participant_ids"]) == ["a__b", "c"]
        assert second["conversation"]["unread_count"] == {"a__b": 0, "c": 0}
        count = await db_session.scalar(select(func.count()).select_from(Conversation))
        assert count == 2

    @pytest.mark.parametrize("user_id,other_id,reason", [
        ("alice", "", "empty_user_id"),
        ("", "bob", "empty_user_id"),
        ("alice", "alice", "single_participant"),
    ])
    async def test_rejects_single_participant(self, resolver, db_session, user_id, other_id, reason):
        """Requests naming fewer than two participants are rejected."""
        result = await resolver.get_or_create_conversation(user_id, other_id, db_session)

        assert result["status"] == "invalid"
        assert result["reason"] == reason
        count = await db_session.scalar(select(func.count()).select_from(Conversation))
        assert count == 0


class TestListAndRead:
    """Inbox listing and mark-as-read."""

    async def test_list_orders_by_recent_activity(self, resolver, db_session, make_user, alice_and_bob):
        """Most recently active conversation first, with the other profile attached."""
        await make_user("carol")
        await resolver.get_or_create_conversation("alice", "bob", db_session)
        await resolver.get_or_create_conversation("alice", "carol", db_session)

        items = await resolver.list_conversations("alice", db_session)

        assert [i["id"] for i in items] == [
            pair_key("alice", "carol"),
            pair_key("alice", "bob"),
        ]
        assert set(items[0]["participant_profiles"]) == {"carol"}
        bob_items = await resolver.list_conversations("bob", db_session)
        assert [i["id"] for i in bob_items] == [pair_key("alice", "bob")]
        assert set(bob_items[0]["participant_profiles"]) == {"alice"}

    async def test_mark_as_read(self, resolver, db_session, alice_and_bob):
        """Zeroes the reader's counter and stamps their unread messages."""
        resolved = await resolver.get_or_create_conversation("alice", "bob", db_session)
        conversation_id = resolved["conversation"]["id"]
        db_session.add_all([
            Message(conversation_id=conversation_id, sender_id="bob", recipient_id="alice", content="hi"),
            Message(conversation_id=conversation_id, sender_id="alice", recipient_id="bob", content="hey"),
        ])
        participant = await db_session.get(ConversationParticipant, (conversation_id, "alice"))
        participant.unread_count = 1
        await db_session.commit()

        result = await resolver.mark_as_read(conversation_id, "alice", db_session)

        assert result["status"] == "read"
        assert result["messages_marked"] == 1
        conversation = await resolver.load_conversation(conversation_id, db_session)
        assert conversation.unread_count == {"alice": 0, "bob": 0}
        unread_to_bob = await db_session.scalar(
            select(func.count()).select_from(Message).where(
                Message.recipient_id == "bob", Message.read_at.is_(None)
            )
        )
        assert unread_to_bob == 1

    async def test_mark_as_read_non_participant(self, resolver, db_session, alice_and_bob):
        """A user outside the conversation gets not_found."""
        resolved = await resolver.get_or_create_conversation("alice", "bob", db_session)
        result = await resolver.mark_as_read(resolved["conversation"]["id"], "mallory", db_session)
        assert result["status"] == "not_found"
