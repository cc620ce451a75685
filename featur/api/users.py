"""
Featur — Users API

Endpoints for profile CRUD, photo uploads, search and the discovery feed.
"""

from __future__ import annotations

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from featur.api.errors import raise_for_result
from featur.database import get_db
from featur.schemas.user import (
    DiscoveryResponse,
    PhotoRemoveRequest,
    ProfileCreate,
    ProfileResponse,
    ProfileUpdate,
)
from featur.services.discovery_service import DiscoveryRanker
from featur.services.profile_service import ProfileService, profile_to_dict

logger = structlog.get_logger("featur.api.users")

router = APIRouter()

# ── Service singletons ────────────────────────────────────────────────────────

_profile_service: ProfileService | None = None
_discovery_ranker: DiscoveryRanker | None = None


def _get_profile_service() -> ProfileService:
    global _profile_service
    if _profile_service is None:
        _profile_service = ProfileService()
    return _profile_service


def _get_discovery_ranker() -> DiscoveryRanker:
    global _discovery_ranker
    if _discovery_ranker is None:
        _discovery_ranker = DiscoveryRanker()
    return _discovery_ranker


# ──────────────────────────────────────────────────────────────────────────────
# POST /: Create a profile
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "/",
    response_model=ProfileResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a creator profile",
)
async def create_profile(
    payload: ProfileCreate,
    db: AsyncSession = Depends(get_db),
) -> dict:
    """Create the profile for an identity-provider uid.

    Returns 409 if a profile with this id already exists.
    """
    data = payload.model_dump(mode="json", exclude={"id"}, exclude_none=True)
    result = await _get_profile_service().create_profile(payload.id, data, db)
    raise_for_result(result, detail=f"Profile {payload.id} already exists.")
    return result["profile"]


# ──────────────────────────────────────────────────────────────────────────────
# GET /search: Search profiles
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/search",
    response_model=list[ProfileResponse],
    summary="Search profiles by text and content style",
)
async def search_profiles(
    q: str = Query("", description="Matched against name, bio and interests"),
    styles: Optional[list[str]] = Query(None, description="Any-of content-style filter"),
    db: AsyncSession = Depends(get_db),
) -> list[dict]:
    return await _get_discovery_ranker().search_profiles(q, db, content_styles=styles)


# ──────────────────────────────────────────────────────────────────────────────
# GET /{user_id}: Get profile
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/{user_id}",
    response_model=ProfileResponse,
    summary="Get profile by user id",
)
async def get_profile(
    user_id: str,
    db: AsyncSession = Depends(get_db),
) -> dict:
    profile = await _get_profile_service().fetch_profile(user_id, db)
    if profile is None:
        logger.warning("get_profile_not_found", user_id=user_id)
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Profile {user_id} not found.",
        )
    return profile_to_dict(profile)


# ──────────────────────────────────────────────────────────────────────────────
# PUT /{user_id}: Merge-update profile
# ──────────────────────────────────────────────────────────────────────────────

@router.put(
    "/{user_id}",
    response_model=ProfileResponse,
    summary="Update profile fields",
)
async def update_profile(
    user_id: str,
    payload: ProfileUpdate,
    db: AsyncSession = Depends(get_db),
) -> dict:
    """Only fields present in the request body are applied."""
    changes = payload.model_dump(mode="json", exclude_unset=True)
    result = await _get_profile_service().update_profile(user_id, changes, db)
    raise_for_result(result, detail=f"Profile {user_id} not found.")
    return result["profile"]


# ──────────────────────────────────────────────────────────────────────────────
# DELETE /{user_id}: Delete profile
# ──────────────────────────────────────────────────────────────────────────────

@router.delete(
    "/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete profile",
)
async def delete_profile(
    user_id: str,
    db: AsyncSession = Depends(get_db),
) -> None:
    if not await _get_profile_service().delete_profile(user_id, db):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Profile {user_id} not found.",
        )


# ──────────────────────────────────────────────────────────────────────────────
# POST /{user_id}/photos: Upload photos
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "/{user_id}/photos",
    response_model=ProfileResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Upload profile photos",
)
async def upload_photos(
    user_id: str,
    files: list[UploadFile] = File(..., description="One or more image files"),
    db: AsyncSession = Depends(get_db),
) -> dict:
    """Store each file in the media bucket and append its URL to the
    profile's ``media_urls``."""
    log = logger.bind(user_id=user_id, file_count=len(files))
    service = _get_profile_service()

    result: dict = {"status": "not_found"}
    for upload in files:
        image_bytes = await upload.read()
        result = await service.upload_profile_photo(
            user_id,
            image_bytes,
            db,
            content_type=upload.content_type or "image/jpeg",
        )
        raise_for_result(result, detail=f"Profile {user_id} not found.")

    log.info("upload_photos_complete")
    return result["profile"]


@router.post(
    "/{user_id}/photos/remove",
    response_model=ProfileResponse,
    summary="Remove a profile photo",
)
async def remove_photo(
    user_id: str,
    payload: PhotoRemoveRequest,
    db: AsyncSession = Depends(get_db),
) -> dict:
    result = await _get_profile_service().remove_profile_photo(user_id, payload.url, db)
    raise_for_result(result, detail="Profile or photo not found.")
    return result["profile"]


# ──────────────────────────────────────────────────────────────────────────────
# GET /{user_id}/discover: Ranked discovery feed
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/{user_id}/discover",
    response_model=DiscoveryResponse,
    summary="Get ranked discovery candidates",
)
async def discover_feed(
    user_id: str,
    limit: int = Query(20, ge=1, le=100, description="Max candidates to return"),
    exclude: Optional[list[str]] = Query(None, description="Extra user ids to leave out"),
    include_swiped: bool = Query(False, description="Keep users already swiped on"),
    db: AsyncSession = Depends(get_db),
) -> dict:
    """Active profiles ranked by shared content styles and interests.

    The requesting user, every id in ``exclude`` and (by default) every user
    already swiped on are left out.
    """
    result = await _get_discovery_ranker().discover(
        user_id,
        db,
        limit=limit,
        excluded_ids=exclude or (),
        exclude_swiped=not include_swiped,
    )
    raise_for_result(result, detail=f"Unknown user {user_id}.")

    await _get_profile_service().touch_last_active(user_id, db)
    return result
