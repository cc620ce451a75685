"""
Featur — Reciprocal-like detection and match lifecycle

A match exists for an unordered pair once both users have liked each
other.  Detection is pull-based: every ``like`` triggers a single query for
the reciprocal swipe.  Creation is an ``INSERT ... ON CONFLICT DO NOTHING``
keyed on ``pair_key(a, b)``, so two concurrent "last likes" for the same
pair still leave exactly one row.

Deactivated (unmatched) pairs are never re-activated by later likes.
"""

from __future__ import annotations

from typing import Any

import structlog
from sqlalchemy import or_, select, update
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from featur.database import insert_if_absent, utcnow
from featur.models.match import Match, SwipeAction, pair_key
from featur.services.profile_service import ProfileService, profile_to_dict
from featur.utils.retry import store_retry

logger = structlog.get_logger("featur.match_service")

# Swipe actions that count as interest for matching.
LIKE_ACTIONS: tuple[str, ...] = ("like", "super_like")


def match_to_dict(match: Match, viewer_id: str | None = None) -> dict[str, Any]:
    data = {
        "match_id": match.id,
        "user_id_1": match.user_id_1,
        "user_id_2": match.user_id_2,
        "matched_at": match.matched_at.isoformat() if match.matched_at else None,
        "has_messaged": bool(match.has_messaged),
        "last_message_at": match.last_message_at.isoformat() if match.last_message_at else None,
        "is_active": bool(match.is_active),
        "unmatched_at": match.unmatched_at.isoformat() if match.unmatched_at else None,
    }
    if viewer_id is not None:
        data["other_user_id"] = match.other_user_id(viewer_id)
    return data


class MatchDetector:
    """Creates matches on reciprocal likes and manages their lifecycle.

    The profile service is injected so listings can attach the other
    participant's profile; tests can pass a stub.
    """

    def __init__(self, profile_service: ProfileService | None = None) -> None:
        self.profile_service = profile_service or ProfileService()

    # ── Detection ────────────────────────────────────────────────────────

    async def check_and_create_match(
        self,
        user_id: str,
        target_user_id: str,
        db_session: AsyncSession,
    ) -> dict:
        """Create the (user, target) match if target already liked user.

        Returns
        -------
        dict
            ``status`` is one of ``matched``, ``no_reciprocal_like``,
            ``previously_unmatched`` or ``invalid``.  ``created`` is True
            only for the call that inserted the row.
        """
        log = logger.bind(user_id=user_id, target_user_id=target_user_id)

        if not user_id or not target_user_id:
            log.warning("match_check_invalid", reason="empty_user_id")
            return {"status": "invalid", "reason": "empty_user_id", "matched": False, "match_id": None}
        if user_id == target_user_id:
            log.warning("match_check_invalid", reason="self_match")
            return {"status": "invalid", "reason": "self_match", "matched": False, "match_id": None}

        if not await self._has_reciprocal_like(user_id, target_user_id, db_session):
            log.info("no_reciprocal_like")
            return {"status": "no_reciprocal_like", "matched": False, "match_id": None}

        match_id, created = await self._create_match_if_absent(
            user_id, target_user_id, db_session
        )
        match = await db_session.get(Match, match_id, populate_existing=True)

        if match is None:
            # Deleted between insert and read (user deletion cascade).
            log.warning("match_vanished", match_id=match_id)
            return {"status": "no_reciprocal_like", "matched": False, "match_id": None}

        if not match.is_active:
            log.info("match_previously_unmatched", match_id=match_id)
            return {
                "status": "previously_unmatched",
                "matched": False,
                "match_id": match_id,
                "created": False,
            }

        log.info("match_created" if created else "match_already_exists", match_id=match_id)
        return {
            "status": "matched",
            "matched": True,
            "match_id": match_id,
            "created": created,
            "match": match_to_dict(match),
        }

    async def _has_reciprocal_like(
        self,
        user_id: str,
        target_user_id: str,
        db_session: AsyncSession,
    ) -> bool:
        stmt = (
            select(SwipeAction.id)
            .where(
                SwipeAction.user_id == target_user_id,
                SwipeAction.target_user_id == user_id,
                SwipeAction.action.in_(LIKE_ACTIONS),
            )
            .limit(1)
        )
        result = await db_session.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def _create_match_if_absent(
        self,
        user_id: str,
        target_user_id: str,
        db_session: AsyncSession,
    ) -> tuple[str, bool]:
        """Insert the match row unless the pair already has one and commit.

        The insert is idempotent, so transient failures are retried.
        """
        match_id = pair_key(user_id, target_user_id)
        values = {
            "id": match_id,
            "user_id_1": user_id,
            "user_id_2": target_user_id,
            "matched_at": utcnow(),
            "has_messaged": False,
            "is_active": True,
        }

        async for attempt in store_retry():
            with attempt:
                try:
                    created = await insert_if_absent(db_session, Match, values, ["id"])
                    await db_session.commit()
                except OperationalError:
                    await db_session.rollback()
                    raise

        return match_id, created

    # ── Listing & lifecycle ──────────────────────────────────────────────

    async def get_user_matches(
        self,
        user_id: str,
        db_session: AsyncSession,
    ) -> list[dict]:
        """Active matches where the user is on either side, newest first,
        each decorated with the other participant's profile (best-effort)."""
        log = logger.bind(user_id=user_id)

        if not user_id:
            log.warning("get_user_matches_invalid", reason="empty_user_id")
            return []

        stmt = (
            select(Match)
            .where(
                or_(Match.user_id_1 == user_id, Match.user_id_2 == user_id),
                Match.is_active.is_(True),
            )
            .order_by(Match.matched_at.desc())
        )
        result = await db_session.execute(stmt)
        matches = result.scalars().all()

        profiles = await self.profile_service.fetch_profiles_best_effort(
            (m.other_user_id(user_id) for m in matches), db_session
        )

        items = []
        for m in matches:
            item = match_to_dict(m, viewer_id=user_id)
            other = profiles.get(item["other_user_id"])
            item["profile"] = profile_to_dict(other) if other is not None else None
            items.append(item)

        log.info("user_matches_retrieved", count=len(items))
        return items

    async def unmatch(
        self,
        match_id: str,
        db_session: AsyncSession,
    ) -> dict:
        """Soft-deactivate a match.  Idempotent."""
        log = logger.bind(match_id=match_id)

        match = await db_session.get(Match, match_id) if match_id else None
        if match is None:
            log.warning("unmatch_not_found")
            return {"status": "not_found", "match_id": match_id}

        if match.is_active:
            match.is_active = False
            match.unmatched_at = utcnow()
            await db_session.flush()
            log.info("match_deactivated")
        else:
            log.info("match_already_inactive")

        return {"status": "unmatched", "match": match_to_dict(match)}

    async def mark_match_as_messaged(
        self,
        user_id: str,
        target_user_id: str,
        db_session: AsyncSession,
    ) -> bool:
        """Flag the pair's match as messaged.

        Best-effort: a store failure is logged and rolled back, never
        raised.  Returns True when a match row was updated.
        """
        log = logger.bind(user_id=user_id, target_user_id=target_user_id)

        if not user_id or not target_user_id:
            return False

        stmt = (
            update(Match)
            .where(Match.id == pair_key(user_id, target_user_id))
            .values(has_messaged=True, last_message_at=utcnow())
        )
        try:
            result = await db_session.execute(stmt)
            await db_session.commit()
        except SQLAlchemyError as exc:
            await db_session.rollback()
            log.warning("mark_match_messaged_failed", error=str(exc)[:200])
            return False

        return result.rowcount > 0
