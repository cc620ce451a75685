"""
Featur — Conversation, participant and message models.
"""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from featur.database import Base, JSONType, utcnow


class Conversation(Base):
    __tablename__ = "conversations"

    # pair_key(...) for direct chats
    id: Mapped[str] = mapped_column(String(260), primary_key=True)
    participant_ids: Mapped[list] = mapped_column(JSONType, nullable=False)
    last_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_message_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    is_group_chat: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default="false", nullable=False
    )
    group_name: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )

    # ── Relationships ──────────────────────────────────────────────
    participants: Mapped[list["ConversationParticipant"]] = relationship(
        "ConversationParticipant",
        back_populates="conversation",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def unread_count(self) -> dict[str, int]:
        return {p.user_id: p.unread_count for p in self.participants}

    def __repr__(self) -> str:
        return f"<Conversation {self.id} participants={self.participant_ids}>"


class ConversationParticipant(Base):
    """One row per (conversation, participant); holds the unread counter so
    increments are a single-row atomic update."""

    __tablename__ = "conversation_participants"

    conversation_id: Mapped[str] = mapped_column(
        String(260),
        ForeignKey("conversations.id", ondelete="CASCADE"),
        primary_key=True,
    )
    user_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True, index=True
    )
    unread_count: Mapped[int] = mapped_column(
        Integer, default=0, server_default="0", nullable=False
    )

    conversation: Mapped["Conversation"] = relationship(
        "Conversation", back_populates="participants"
    )

    def __repr__(self) -> str:
        return (
            f"<ConversationParticipant {self.user_id} in {self.conversation_id} "
            f"unread={self.unread_count}>"
        )


class Message(Base):
    """Immutable chat message; only ``read_at`` is ever set after insert."""

    __tablename__ = "messages"
    __table_args__ = (
        Index("ix_messages_conversation_sent", "conversation_id", "sent_at"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    conversation_id: Mapped[str] = mapped_column(
        String(260), ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False
    )
    sender_id: Mapped[str] = mapped_column(String(128), nullable=False)
    recipient_id: Mapped[str] = mapped_column(String(128), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    media_url: Mapped[str | None] = mapped_column(String, nullable=True)
    sent_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    read_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def __repr__(self) -> str:
        return f"<Message {self.sender_id} -> {self.recipient_id} in {self.conversation_id}>"
