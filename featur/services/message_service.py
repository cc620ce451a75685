"""
Featur — Message dispatch, history and live snapshots

The message log is the source of truth.  ``send_message`` commits the new
message first; the denormalized conversation fields (preview text,
``last_message_at``, recipient unread counter) and the match's
``has_messaged`` flag are secondary writes applied afterwards.  If one of
those fails it is rolled back and reported in the result, and
``reconcile_conversation`` can rebuild the conversation fields from the log
at any time.
"""

from __future__ import annotations

from typing import Any, AsyncIterator

import structlog
from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from featur.config import get_settings
from featur.database import utcnow
from featur.models.conversation import Conversation, ConversationParticipant, Message
from featur.services.conversation_service import conversation_to_dict
from featur.services.match_service import MatchDetector
from featur.services.realtime import get_hub

logger = structlog.get_logger("featur.message_service")


def message_to_dict(message: Message) -> dict[str, Any]:
    return {
        "id": message.id,
        "conversation_id": message.conversation_id,
        "sender_id": message.sender_id,
        "recipient_id": message.recipient_id,
        "content": message.content,
        "media_url": message.media_url,
        "sent_at": message.sent_at.isoformat() if message.sent_at else None,
        "read_at": message.read_at.isoformat() if message.read_at else None,
    }


class MessageDispatcher:
    """Appends messages and keeps conversation metadata in step.

    Parameters
    ----------
    match_detector:
        Used to flag the pair's match as messaged.
    hub:
        Change-notification hub; defaults to the process-wide hub.
    """

    def __init__(self, match_detector: MatchDetector | None = None, hub=None) -> None:
        self.match_detector = match_detector or MatchDetector()
        self._hub = hub

    @property
    def hub(self):
        return self._hub if self._hub is not None else get_hub()

    # ── Write path ───────────────────────────────────────────────────────

    async def send_message(
        self,
        conversation_id: str,
        sender_id: str,
        recipient_id: str,
        content: str,
        db_session: AsyncSession,
        media_url: str | None = None,
        sent_at=None,
    ) -> dict:
        """Append a message and update the owning conversation.

        Returns
        -------
        dict
            ``status`` is ``sent``, ``invalid`` or ``not_found``.  For a sent
            message ``conversation_synced`` and ``match_marked`` tell the
            caller whether the secondary writes landed.
        """
        log = logger.bind(
            conversation_id=conversation_id,
            sender_id=sender_id,
            recipient_id=recipient_id,
        )

        if not conversation_id or not sender_id or not recipient_id:
            log.warning("send_message_invalid", reason="empty_id")
            return {"status": "invalid", "reason": "empty_id", "message": None}
        if not (content or "").strip() and not media_url:
            log.warning("send_message_invalid", reason="empty_content")
            return {"status": "invalid", "reason": "empty_content", "message": None}

        conversation = await db_session.get(Conversation, conversation_id)
        if conversation is None:
            log.warning("send_message_conversation_not_found")
            return {"status": "not_found", "message": None}

        participants = set(conversation.participant_ids or [])
        if sender_id == recipient_id or not {sender_id, recipient_id} <= participants:
            log.warning("send_message_invalid", reason="not_a_participant")
            return {"status": "invalid", "reason": "not_a_participant", "message": None}

        message = Message(
            conversation_id=conversation_id,
            sender_id=sender_id,
            recipient_id=recipient_id,
            content=content,
            media_url=media_url,
            sent_at=sent_at or utcnow(),
        )
        db_session.add(message)
        await db_session.commit()
        # Snapshot now: a rollback in the secondary writes expires ``message``.
        payload = message_to_dict(message)
        log.info("message_stored", message_id=payload["id"])

        conversation_synced = await self._sync_conversation(
            conversation_id, recipient_id, content, message.sent_at, db_session, log
        )
        match_marked = await self.match_detector.mark_match_as_messaged(
            sender_id, recipient_id, db_session
        )
        await self._notify(conversation_id)

        return {
            "status": "sent",
            "message": payload,
            "conversation_synced": conversation_synced,
            "match_marked": match_marked,
        }

    async def _sync_conversation(
        self,
        conversation_id: str,
        recipient_id: str,
        content: str,
        sent_at,
        db_session: AsyncSession,
        log,
    ) -> bool:
        """Update preview fields and bump the recipient's unread counter."""
        try:
            await db_session.execute(
                update(Conversation)
                .where(
                    Conversation.id == conversation_id,
                    # Never move the preview backwards in time.
                    or_(
                        Conversation.last_message.is_(None),
                        Conversation.last_message_at <= sent_at,
                    ),
                )
                .values(last_message=content, last_message_at=sent_at)
                .execution_options(synchronize_session="fetch")
            )
            await db_session.execute(
                update(ConversationParticipant)
                .where(
                    ConversationParticipant.conversation_id == conversation_id,
                    ConversationParticipant.user_id == recipient_id,
                )
                .values(unread_count=ConversationParticipant.unread_count + 1)
                .execution_options(synchronize_session="fetch")
            )
            await db_session.commit()
        except SQLAlchemyError as exc:
            await db_session.rollback()
            log.warning("conversation_sync_failed", error=str(exc)[:200])
            return False
        return True

    async def _notify(self, conversation_id: str) -> None:
        try:
            await self.hub.publish(conversation_id)
        except Exception:
            logger.exception("conversation_notify_failed", conversation_id=conversation_id)

    # ── Read path ────────────────────────────────────────────────────────

    async def fetch_messages(
        self,
        conversation_id: str,
        db_session: AsyncSession,
        limit: int | None = None,
    ) -> list[dict]:
        """Most recent ``limit`` messages, newest first."""
        if not conversation_id:
            logger.warning("fetch_messages_invalid", reason="empty_conversation_id")
            return []

        limit = limit or get_settings().MESSAGE_PAGE_SIZE
        stmt = (
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .order_by(Message.sent_at.desc())
            .limit(limit)
        )
        result = await db_session.execute(stmt)
        return [message_to_dict(m) for m in result.scalars().all()]

    async def _snapshot(
        self,
        conversation_id: str,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> list[dict]:
        async with session_factory() as session:
            stmt = (
                select(Message)
                .where(Message.conversation_id == conversation_id)
                .order_by(Message.sent_at.asc())
            )
            result = await session.execute(stmt)
            return [message_to_dict(m) for m in result.scalars().all()]

    async def subscribe(
        self,
        conversation_id: str,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> AsyncIterator[list[dict]]:
        """Yield the full oldest-first message list now and again after every
        change to the conversation.  Each yield replaces the previous view.

        The subscription is registered before the first snapshot is read, so
        a message sent in between still triggers a fresh snapshot.
        """
        log = logger.bind(conversation_id=conversation_id)
        log.info("subscription_opened")
        try:
            async with self.hub.listen(conversation_id) as changes:
                yield await self._snapshot(conversation_id, session_factory)
                async for _ in changes:
                    yield await self._snapshot(conversation_id, session_factory)
        finally:
            log.info("subscription_closed")

    # ── Reconciliation ───────────────────────────────────────────────────

    async def reconcile_conversation(
        self,
        conversation_id: str,
        db_session: AsyncSession,
    ) -> dict:
        """Recompute the denormalized conversation fields from the message
        log.  Safe to run any number of times."""
        log = logger.bind(conversation_id=conversation_id)

        conversation = await db_session.get(
            Conversation, conversation_id, populate_existing=True
        ) if conversation_id else None
        if conversation is None:
            log.warning("reconcile_not_found")
            return {"status": "not_found", "conversation": None}

        latest = (
            await db_session.execute(
                select(Message)
                .where(Message.conversation_id == conversation_id)
                .order_by(Message.sent_at.desc())
                .limit(1)
            )
        ).scalar_one_or_none()

        unread_rows = await db_session.execute(
            select(Message.recipient_id, func.count(Message.id))
            .where(
                Message.conversation_id == conversation_id,
                Message.read_at.is_(None),
            )
            .group_by(Message.recipient_id)
        )
        unread = {recipient: count for recipient, count in unread_rows.all()}

        if latest is not None:
            conversation.last_message = latest.content
            conversation.last_message_at = latest.sent_at
        for participant in conversation.participants:
            participant.unread_count = unread.get(participant.user_id, 0)

        await db_session.commit()

        log.info("conversation_reconciled", unread=unread)
        return {"status": "reconciled", "conversation": conversation_to_dict(conversation)}
