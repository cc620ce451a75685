"""
Featur — Two-party conversation resolution

A direct conversation's id is ``pair_key(a, b)``, so resolving a pair is a
point read followed, only when absent, by a conditional insert of the
conversation and its two participant rows.  Sequential or interleaved
resolutions of the same pair therefore always return the same id.
"""

from __future__ import annotations

from typing import Any

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from featur.database import insert_if_absent, utcnow
from featur.models.conversation import Conversation, ConversationParticipant, Message
from featur.models.match import pair_key
from featur.services.profile_service import ProfileService, profile_to_dict
from featur.utils.retry import store_retry

logger = structlog.get_logger("featur.conversation_service")


def conversation_to_dict(conversation: Conversation) -> dict[str, Any]:
    return {
        "id": conversation.id,
        "participant_ids": list(conversation.participant_ids or []),
        "last_message": conversation.last_message,
        "last_message_at": (
            conversation.last_message_at.isoformat() if conversation.last_message_at else None
        ),
        "unread_count": conversation.unread_count,
        "is_group_chat": bool(conversation.is_group_chat),
        "group_name": conversation.group_name,
        "created_at": conversation.created_at.isoformat() if conversation.created_at else None,
    }


class ConversationResolver:
    """Find-or-create for direct conversations plus inbox queries."""

    def __init__(self, profile_service: ProfileService | None = None) -> None:
        self.profile_service = profile_service or ProfileService()

    async def get_or_create_conversation(
        self,
        user_id: str,
        other_user_id: str,
        db_session: AsyncSession,
    ) -> dict:
        """Return the conversation between the two users, creating it with
        zeroed unread counters if it does not exist yet.

        A request naming only one participant (empty or identical ids) is
        rejected before touching the store.
        """
        log = logger.bind(user_id=user_id, other_user_id=other_user_id)

        if not user_id or not other_user_id:
            log.warning("resolve_conversation_invalid", reason="empty_user_id")
            return {"status": "invalid", "reason": "empty_user_id", "conversation": None}
        if user_id == other_user_id:
            log.warning("resolve_conversation_invalid", reason="single_participant")
            return {"status": "invalid", "reason": "single_participant", "conversation": None}

        conversation_id = pair_key(user_id, other_user_id)
        conversation = await self.load_conversation(conversation_id, db_session)
        created = False

        if conversation is None:
            created = await self._create_if_absent(
                conversation_id, user_id, other_user_id, db_session
            )
            conversation = await self.load_conversation(conversation_id, db_session)

        log.info(
            "conversation_created" if created else "conversation_found",
            conversation_id=conversation_id,
        )
        return {
            "status": "resolved",
            "created": created,
            "conversation": conversation_to_dict(conversation),
        }

    async def load_conversation(
        self,
        conversation_id: str,
        db_session: AsyncSession,
    ) -> Conversation | None:
        if not conversation_id:
            return None
        return await db_session.get(Conversation, conversation_id, populate_existing=True)

    async def _create_if_absent(
        self,
        conversation_id: str,
        user_id: str,
        other_user_id: str,
        db_session: AsyncSession,
    ) -> bool:
        now = utcnow()
        conversation_values = {
            "id": conversation_id,
            "participant_ids": [user_id, other_user_id],
            "last_message": None,
            "last_message_at": now,
            "is_group_chat": False,
            "created_at": now,
        }

        async for attempt in store_retry():
            with attempt:
                try:
                    created = await insert_if_absent(
                        db_session, Conversation, conversation_values, ["id"]
                    )
                    for participant_id in (user_id, other_user_id):
                        await insert_if_absent(
                            db_session,
                            ConversationParticipant,
                            {
                                "conversation_id": conversation_id,
                                "user_id": participant_id,
                                "unread_count": 0,
                            },
                            ["conversation_id", "user_id"],
                        )
                    await db_session.commit()
                except OperationalError:
                    await db_session.rollback()
                    raise

        return created

    async def list_conversations(
        self,
        user_id: str,
        db_session: AsyncSession,
    ) -> list[dict]:
        """Conversations the user takes part in, most recent activity first,
        with the other participants' profiles attached (best-effort)."""
        log = logger.bind(user_id=user_id)

        if not user_id:
            log.warning("list_conversations_invalid", reason="empty_user_id")
            return []

        stmt = (
            select(Conversation)
            .join(
                ConversationParticipant,
                ConversationParticipant.conversation_id == Conversation.id,
            )
            .where(ConversationParticipant.user_id == user_id)
            .order_by(Conversation.last_message_at.desc())
        )
        result = await db_session.execute(stmt)
        conversations = result.scalars().unique().all()

        other_ids = {
            pid
            for c in conversations
            for pid in (c.participant_ids or [])
            if pid != user_id
        }
        profiles = await self.profile_service.fetch_profiles_best_effort(other_ids, db_session)

        items = []
        for c in conversations:
            item = conversation_to_dict(c)
            item["participant_profiles"] = {
                pid: profile_to_dict(profiles[pid])
                for pid in item["participant_ids"]
                if pid != user_id and pid in profiles
            }
            items.append(item)

        log.info("conversations_listed", count=len(items))
        return items

    async def mark_as_read(
        self,
        conversation_id: str,
        user_id: str,
        db_session: AsyncSession,
    ) -> dict:
        """Zero the reader's unread counter and stamp ``read_at`` on every
        message addressed to them that is still unread."""
        log = logger.bind(conversation_id=conversation_id, user_id=user_id)

        if not conversation_id or not user_id:
            log.warning("mark_as_read_invalid", reason="empty_id")
            return {"status": "invalid", "reason": "empty_id"}

        participant = await db_session.get(
            ConversationParticipant, (conversation_id, user_id)
        )
        if participant is None:
            log.warning("mark_as_read_not_participant")
            return {"status": "not_found"}

        participant.unread_count = 0
        marked = await db_session.execute(
            update(Message)
            .where(
                Message.conversation_id == conversation_id,
                Message.recipient_id == user_id,
                Message.read_at.is_(None),
            )
            .values(read_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        await db_session.flush()

        log.info("conversation_marked_read", messages_marked=marked.rowcount)
        return {
            "status": "read",
            "conversation_id": conversation_id,
            "messages_marked": marked.rowcount,
        }
