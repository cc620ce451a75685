"""
Featur — Profile management

Create / read / merge-update / delete of creator profiles plus the
best-effort bulk lookup the match, conversation and featured listings use
to attach the *other* participant's profile.
"""

from __future__ import annotations

import uuid
from typing import Any, Iterable

import structlog
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from featur.database import utcnow
from featur.models.user import UserProfile
from featur.utils.storage import delete_media, upload_media

logger = structlog.get_logger("featur.profile_service")

# Fields a profile update may touch; ``id`` and timestamps are managed here.
_UPDATABLE_FIELDS: frozenset[str] = frozenset({
    "display_name",
    "email",
    "age",
    "bio",
    "location",
    "content_styles",
    "interests",
    "media_urls",
    "profile_image_url",
    "social_links",
    "follower_count",
    "is_verified",
    "collaboration_preferences",
    "is_active",
})


def profile_to_dict(profile: UserProfile) -> dict[str, Any]:
    return {
        "id": profile.id,
        "display_name": profile.display_name,
        "email": profile.email,
        "age": profile.age,
        "bio": profile.bio,
        "location": profile.location,
        "content_styles": list(profile.content_styles or []),
        "interests": list(profile.interests or []),
        "media_urls": list(profile.media_urls or []),
        "profile_image_url": profile.profile_image_url,
        "social_links": profile.social_links,
        "follower_count": profile.follower_count,
        "is_verified": bool(profile.is_verified),
        "collaboration_preferences": profile.collaboration_preferences,
        "is_active": bool(profile.is_active),
        "created_at": profile.created_at.isoformat() if profile.created_at else None,
        "updated_at": profile.updated_at.isoformat() if profile.updated_at else None,
    }


class ProfileService:
    """Profile persistence.  Every method takes the session explicitly."""

    async def create_profile(
        self,
        user_id: str,
        data: dict[str, Any],
        db_session: AsyncSession,
    ) -> dict:
        log = logger.bind(user_id=user_id)

        if not user_id:
            log.warning("create_profile_invalid", reason="empty_user_id")
            return {"status": "invalid", "reason": "empty_user_id"}

        existing = await db_session.get(UserProfile, user_id)
        if existing is not None:
            log.info("create_profile_exists")
            return {"status": "exists", "profile": profile_to_dict(existing)}

        fields = {k: v for k, v in data.items() if k in _UPDATABLE_FIELDS}
        profile = UserProfile(id=user_id, **fields)
        db_session.add(profile)
        await db_session.flush()

        log.info("profile_created")
        return {"status": "created", "profile": profile_to_dict(profile)}

    async def fetch_profile(
        self,
        user_id: str,
        db_session: AsyncSession,
    ) -> UserProfile | None:
        if not user_id:
            return None
        return await db_session.get(UserProfile, user_id)

    async def update_profile(
        self,
        user_id: str,
        changes: dict[str, Any],
        db_session: AsyncSession,
    ) -> dict:
        """Merge ``changes`` into the stored profile and bump ``updated_at``.

        Keys outside the updatable set are ignored; ``None`` values are
        skipped so partial payloads never clear stored fields.
        """
        log = logger.bind(user_id=user_id)

        profile = await self.fetch_profile(user_id, db_session)
        if profile is None:
            log.warning("update_profile_not_found")
            return {"status": "not_found"}

        applied = []
        for key, value in changes.items():
            if key not in _UPDATABLE_FIELDS or value is None:
                continue
            setattr(profile, key, value)
            applied.append(key)

        profile.updated_at = utcnow()
        await db_session.flush()

        log.info("profile_updated", fields=applied)
        return {"status": "updated", "profile": profile_to_dict(profile)}

    async def delete_profile(
        self,
        user_id: str,
        db_session: AsyncSession,
    ) -> bool:
        result = await db_session.execute(
            delete(UserProfile).where(UserProfile.id == user_id)
        )
        deleted = result.rowcount > 0
        logger.info("profile_deleted", user_id=user_id, deleted=deleted)
        return deleted

    async def touch_last_active(
        self,
        user_id: str,
        db_session: AsyncSession,
    ) -> None:
        profile = await self.fetch_profile(user_id, db_session)
        if profile is not None:
            profile.last_active_at = utcnow()
            await db_session.flush()

    async def fetch_profiles_best_effort(
        self,
        user_ids: Iterable[str],
        db_session: AsyncSession,
    ) -> dict[str, UserProfile]:
        """Bulk lookup used to decorate listings.

        A failed lookup is logged and yields an empty mapping; the listing it
        decorates is still returned.
        """
        ids = sorted({uid for uid in user_ids if uid})
        if not ids:
            return {}

        try:
            result = await db_session.execute(
                select(UserProfile).where(UserProfile.id.in_(ids))
            )
        except SQLAlchemyError as exc:
            logger.warning("profile_lookup_failed", user_ids=ids, error=str(exc)[:200])
            return {}

        return {p.id: p for p in result.scalars().all()}

    async def upload_profile_photo(
        self,
        user_id: str,
        image_bytes: bytes,
        db_session: AsyncSession,
        content_type: str = "image/jpeg",
    ) -> dict:
        """Store a photo in the media bucket and append its URL to the
        profile's ``media_urls``.  The first photo also becomes the profile
        image."""
        log = logger.bind(user_id=user_id)

        if not user_id:
            raise ValueError("user_id must not be empty")

        profile = await self.fetch_profile(user_id, db_session)
        if profile is None:
            log.warning("upload_photo_profile_not_found")
            return {"status": "not_found"}

        path = f"profile_photos/{user_id}/{uuid.uuid4()}.jpg"
        url = upload_media(path, image_bytes, content_type=content_type)

        # Reassign so the JSON column registers the change.
        profile.media_urls = [*(profile.media_urls or []), url]
        if not profile.profile_image_url:
            profile.profile_image_url = url
        profile.updated_at = utcnow()
        await db_session.flush()

        log.info("profile_photo_uploaded", path=path)
        return {"status": "uploaded", "url": url, "profile": profile_to_dict(profile)}

    async def remove_profile_photo(
        self,
        user_id: str,
        url: str,
        db_session: AsyncSession,
    ) -> dict:
        """Delete a photo from the media bucket and drop it from the profile.

        If it was the profile image, the next remaining photo (if any) takes
        its place.
        """
        log = logger.bind(user_id=user_id)

        profile = await self.fetch_profile(user_id, db_session)
        if profile is None:
            log.warning("remove_photo_profile_not_found")
            return {"status": "not_found"}
        if url not in (profile.media_urls or []):
            log.warning("remove_photo_unknown_url", url=url)
            return {"status": "not_found"}

        delete_media(url)

        remaining = [u for u in profile.media_urls if u != url]
        profile.media_urls = remaining
        if profile.profile_image_url == url:
            profile.profile_image_url = remaining[0] if remaining else None
        profile.updated_at = utcnow()
        await db_session.flush()

        log.info("profile_photo_removed")
        return {"status": "removed", "profile": profile_to_dict(profile)}
