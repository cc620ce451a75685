"""
Featur — Discovery ranking

Candidates are scored by a two-term weighted set intersection:

    score(A, B) = STYLE_WEIGHT    × |A.content_styles ∩ B.content_styles|
                + INTEREST_WEIGHT × |A.interests ∩ B.interests|

Both terms are symmetric, so ``score(A, B) == score(B, A)``.  Ranking is a
stable sort on the score, so ties keep the order the store returned them in.
"""

from __future__ import annotations

from typing import Any, Iterable, Sequence

import structlog
from sqlalchemy import String, cast, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from featur.config import get_settings
from featur.models.match import SwipeAction
from featur.models.user import UserProfile
from featur.services.profile_service import profile_to_dict

logger = structlog.get_logger("featur.discovery_service")


class DiscoveryRanker:
    """Scores and ranks candidate profiles for a requesting user."""

    def __init__(
        self,
        style_weight: int | None = None,
        interest_weight: int | None = None,
    ) -> None:
        settings = get_settings()
        self.style_weight = (
            settings.STYLE_OVERLAP_WEIGHT if style_weight is None else style_weight
        )
        self.interest_weight = (
            settings.INTEREST_OVERLAP_WEIGHT if interest_weight is None else interest_weight
        )

    # ── Scoring ──────────────────────────────────────────────────────────

    def similarity_score(self, a: UserProfile, b: UserProfile) -> int:
        shared_styles = set(a.content_styles or []) & set(b.content_styles or [])
        shared_interests = set(a.interests or []) & set(b.interests or [])
        return (
            self.style_weight * len(shared_styles)
            + self.interest_weight * len(shared_interests)
        )

    def rank_candidates(
        self,
        current: UserProfile,
        candidates: Sequence[UserProfile],
        limit: int,
        excluded_ids: Iterable[str] = (),
    ) -> list[tuple[UserProfile, int]]:
        """Drop the current user and excluded ids, then order by score.

        Pure: no store access.  Returns at most ``limit`` ``(profile, score)``
        pairs, highest score first.
        """
        if limit <= 0:
            return []

        excluded = set(excluded_ids)
        excluded.add(current.id)

        scored = [
            (candidate, self.similarity_score(current, candidate))
            for candidate in candidates
            if candidate.id not in excluded
        ]
        # list.sort is stable.
        scored.sort(key=lambda pair: pair[1], reverse=True)
        return scored[:limit]

    # ── Store-backed queries ─────────────────────────────────────────────

    async def discover(
        self,
        user_id: str,
        db_session: AsyncSession,
        limit: int | None = None,
        excluded_ids: Iterable[str] = (),
        exclude_swiped: bool = True,
    ) -> dict:
        """Rank active profiles for ``user_id``.

        Every excluded id is applied in the store query, along with (when
        ``exclude_swiped``) every user already swiped on.  Only the newest
        ``DISCOVERY_CANDIDATE_POOL`` remaining profiles are scored, so an
        older profile outside that pool is not returned even if it would
        score higher.
        """
        settings = get_settings()
        limit = settings.DISCOVERY_DEFAULT_LIMIT if limit is None else limit
        log = logger.bind(user_id=user_id, limit=limit)

        current = await db_session.get(UserProfile, user_id) if user_id else None
        if current is None:
            log.warning("discover_invalid", reason="unknown_user")
            return {"status": "invalid", "reason": "unknown_user", "results": []}

        excluded = {uid for uid in excluded_ids if uid}
        excluded.add(user_id)

        stmt = select(UserProfile).where(
            UserProfile.is_active.is_(True),
            UserProfile.id.not_in(sorted(excluded)),
        )
        if exclude_swiped:
            swiped = select(SwipeAction.target_user_id).where(SwipeAction.user_id == user_id)
            stmt = stmt.where(UserProfile.id.not_in(swiped))
        stmt = stmt.order_by(
            UserProfile.created_at.desc(), UserProfile.id
        ).limit(settings.DISCOVERY_CANDIDATE_POOL)

        result = await db_session.execute(stmt)
        candidates = result.scalars().all()

        ranked = self.rank_candidates(current, candidates, limit, excluded)
        results = [
            {"profile": profile_to_dict(profile), "score": score}
            for profile, score in ranked
        ]

        log.info("discovery_ranked", candidates=len(candidates), returned=len(results))
        return {"status": "ok", "user_id": user_id, "results": results}

    async def search_profiles(
        self,
        query: str,
        db_session: AsyncSession,
        content_styles: Iterable[str] | None = None,
    ) -> list[dict[str, Any]]:
        """Active profiles matching ``query`` (case-insensitive, on display
        name, bio or interests) and carrying any of ``content_styles``."""
        query = (query or "").strip()
        styles = [s for s in (content_styles or []) if s]

        stmt = select(UserProfile).where(UserProfile.is_active.is_(True))
        if query:
            stmt = stmt.where(
                or_(
                    UserProfile.display_name.icontains(query, autoescape=True),
                    UserProfile.bio.icontains(query, autoescape=True),
                    cast(UserProfile.interests, String).icontains(query, autoescape=True),
                )
            )
        if styles:
            stmt = stmt.where(
                or_(*(
                    cast(UserProfile.content_styles, String).contains(f'"{style}"')
                    for style in styles
                ))
            )
        stmt = stmt.order_by(UserProfile.display_name).limit(get_settings().SEARCH_RESULT_LIMIT)

        result = await db_session.execute(stmt)
        profiles = [p for p in result.scalars().all() if self._matches(p, query, styles)]

        logger.info("profiles_searched", query=query, styles=styles, count=len(profiles))
        return [profile_to_dict(p) for p in profiles]

    @staticmethod
    def _matches(profile: UserProfile, query: str, styles: list[str]) -> bool:
        # The JSON text prefilter can over-match (keys, escapes); re-check here.
        if styles and not set(styles) & set(profile.content_styles or []):
            return False
        if not query:
            return True
        needle = query.lower()
        haystack = [profile.display_name or "", profile.bio or "", *(profile.interests or [])]
        return any(needle in text.lower() for text in haystack)
