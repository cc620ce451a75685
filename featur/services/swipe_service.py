"""
Featur — Swipe recording

Every swipe is appended as its own ``SwipeAction`` row; repeats are kept.
The row is committed before the reciprocal check runs, so of two users
liking each other at the same moment the later check sees the earlier swipe.
"""

from __future__ import annotations

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from featur.models.match import SwipeAction
from featur.services.match_service import LIKE_ACTIONS, MatchDetector

logger = structlog.get_logger("featur.swipe_service")

SWIPE_ACTIONS: frozenset[str] = frozenset({"like", "pass", "super_like"})


class SwipeRecorder:
    """Persists swipes and hands likes to the ``MatchDetector``."""

    def __init__(self, match_detector: MatchDetector | None = None) -> None:
        self.match_detector = match_detector or MatchDetector()

    async def record_swipe(
        self,
        user_id: str,
        target_user_id: str,
        action: str,
        db_session: AsyncSession,
    ) -> dict:
        """Record ``user_id``'s ``action`` toward ``target_user_id``.

        Invalid input (empty ids, self-swipe, unknown action) is a logged
        no-op reported as ``status="invalid"``.  Store failures propagate.

        Returns
        -------
        dict
            ``status``, ``swipe_id``, ``matched`` and ``match_id``.
        """
        log = logger.bind(user_id=user_id, target_user_id=target_user_id, action=action)

        reason = self._validate(user_id, target_user_id, action)
        if reason is not None:
            log.warning("swipe_rejected", reason=reason)
            return {
                "status": "invalid",
                "reason": reason,
                "swipe_id": None,
                "matched": False,
                "match_id": None,
            }

        swipe = SwipeAction(
            user_id=user_id,
            target_user_id=target_user_id,
            action=action,
        )
        db_session.add(swipe)
        await db_session.commit()
        swipe_id = swipe.id
        log.info("swipe_recorded", swipe_id=swipe_id)

        matched = False
        match_id = None
        if action in LIKE_ACTIONS:
            outcome = await self.match_detector.check_and_create_match(
                user_id, target_user_id, db_session
            )
            matched = outcome["matched"]
            match_id = outcome["match_id"] if matched else None

        return {
            "status": "recorded",
            "swipe_id": swipe_id,
            "matched": matched,
            "match_id": match_id,
        }

    async def fetch_swiped_user_ids(
        self,
        user_id: str,
        db_session: AsyncSession,
    ) -> set[str]:
        """Distinct ids the user has swiped on, in any direction."""
        if not user_id:
            logger.warning("fetch_swiped_ids_invalid", reason="empty_user_id")
            return set()

        stmt = (
            select(SwipeAction.target_user_id)
            .where(SwipeAction.user_id == user_id)
            .distinct()
        )
        result = await db_session.execute(stmt)
        return set(result.scalars().all())

    @staticmethod
    def _validate(user_id: str, target_user_id: str, action: str) -> str | None:
        if not user_id or not target_user_id:
            return "empty_user_id"
        if user_id == target_user_id:
            return "self_swipe"
        if action not in SWIPE_ACTIONS:
            return "unknown_action"
        return None
