"""
Featur — Featured creator listings

Listings are time-boxed: a creator is featured from ``featured_at`` until
``expires_at`` and the public list only shows unexpired rows, highest
priority first.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from featur.config import get_settings
from featur.database import utcnow
from featur.models.featured import FeaturedCreator
from featur.models.user import UserProfile
from featur.services.profile_service import ProfileService, profile_to_dict

logger = structlog.get_logger("featur.featured_service")


def featured_to_dict(featured: FeaturedCreator) -> dict[str, Any]:
    return {
        "id": featured.id,
        "user_id": featured.user_id,
        "category": featured.category,
        "highlight_text": featured.highlight_text,
        "priority": featured.priority,
        "featured_at": featured.featured_at.isoformat() if featured.featured_at else None,
        "expires_at": featured.expires_at.isoformat() if featured.expires_at else None,
    }


class FeaturedService:
    def __init__(self, profile_service: ProfileService | None = None) -> None:
        self.profile_service = profile_service or ProfileService()

    async def fetch_featured_creators(
        self,
        db_session: AsyncSession,
        limit: int | None = None,
    ) -> list[dict]:
        """Unexpired listings, priority descending, each with the creator's
        profile attached when it can be loaded."""
        limit = limit or get_settings().FEATURED_LIMIT

        stmt = (
            select(FeaturedCreator)
            .where(FeaturedCreator.expires_at > utcnow())
            .order_by(FeaturedCreator.priority.desc(), FeaturedCreator.featured_at.desc())
            .limit(limit)
        )
        result = await db_session.execute(stmt)
        listings = result.scalars().all()

        profiles = await self.profile_service.fetch_profiles_best_effort(
            (f.user_id for f in listings), db_session
        )

        items = []
        for featured in listings:
            item = featured_to_dict(featured)
            profile = profiles.get(featured.user_id)
            item["profile"] = profile_to_dict(profile) if profile is not None else None
            items.append(item)

        logger.info("featured_creators_listed", count=len(items))
        return items

    async def create_featured_creator(
        self,
        user_id: str,
        category: str,
        duration_seconds: int,
        db_session: AsyncSession,
        priority: int = 0,
        highlight_text: str | None = None,
    ) -> dict:
        log = logger.bind(user_id=user_id, category=category)

        if not user_id or not category:
            log.warning("create_featured_invalid", reason="empty_field")
            return {"status": "invalid", "reason": "empty_field"}
        if duration_seconds <= 0:
            log.warning("create_featured_invalid", reason="non_positive_duration")
            return {"status": "invalid", "reason": "non_positive_duration"}

        if await db_session.get(UserProfile, user_id) is None:
            log.warning("create_featured_user_not_found")
            return {"status": "not_found"}

        now = utcnow()
        featured = FeaturedCreator(
            user_id=user_id,
            category=category,
            highlight_text=highlight_text,
            priority=priority,
            featured_at=now,
            expires_at=now + timedelta(seconds=duration_seconds),
        )
        db_session.add(featured)
        await db_session.flush()

        log.info("featured_creator_created", featured_id=featured.id, priority=priority)
        return {"status": "created", "featured": featured_to_dict(featured)}
