"""
Featur — Swipe and Match models.
"""

import hashlib
import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, func
from sqlalchemy.orm import Mapped, mapped_column

from featur.database import Base, utcnow


def pair_key(user_a_id: str, user_b_id: str) -> str:
    """Deterministic key for an unordered pair of user ids.

    ``pair_key(a, b) == pair_key(b, a)``; used as the primary key of both
    matches and direct conversations.  The lower id is length-prefixed
    before hashing, so ids containing any separator cannot make two pairs
    share a key.
    """
    low, high = sorted((user_a_id, user_b_id))
    return hashlib.sha256(f"{len(low)}:{low}{high}".encode("utf-8")).hexdigest()


class SwipeAction(Base):
    """Append-only record of one swipe.  Never updated or deleted."""

    __tablename__ = "swipes"
    __table_args__ = (
        Index("ix_swipes_reciprocal", "user_id", "target_user_id", "action"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    target_user_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    action: Mapped[str] = mapped_column(
        String(16), nullable=False, comment="like / pass / super_like"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<SwipeAction {self.user_id} -> {self.target_user_id} action={self.action!r}>"


class Match(Base):
    __tablename__ = "matches"

    # pair_key(user_id_1, user_id_2); the primary key is what makes the
    # unordered pair unique.
    id: Mapped[str] = mapped_column(String(260), primary_key=True)
    user_id_1: Mapped[str] = mapped_column(
        String(128), ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False
    )
    user_id_2: Mapped[str] = mapped_column(
        String(128), ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False
    )
    matched_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    has_messaged: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default="false", nullable=False
    )
    last_message_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, default=True, server_default="true", nullable=False
    )
    unmatched_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def other_user_id(self, user_id: str) -> str:
        return self.user_id_2 if self.user_id_1 == user_id else self.user_id_1

    def __repr__(self) -> str:
        return f"<Match {self.user_id_1} <-> {self.user_id_2} active={self.is_active}>"
