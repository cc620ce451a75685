"""
Featur — Swipes API
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from featur.api.errors import raise_for_result
from featur.database import get_db
from featur.schemas.match import SwipeCreate, SwipedIdsResponse, SwipeResponse
from featur.services.swipe_service import SwipeRecorder

logger = structlog.get_logger("featur.api.swipes")

router = APIRouter()

_swipe_recorder: SwipeRecorder | None = None


def _get_swipe_recorder() -> SwipeRecorder:
    global _swipe_recorder
    if _swipe_recorder is None:
        _swipe_recorder = SwipeRecorder()
    return _swipe_recorder


@router.post(
    "/",
    response_model=SwipeResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record a swipe",
)
async def record_swipe(
    payload: SwipeCreate,
    db: AsyncSession = Depends(get_db),
) -> dict:
    """Record a like / pass / super_like.  A like that completes a reciprocal
    pair creates the match and reports ``matched=true``."""
    result = await _get_swipe_recorder().record_swipe(
        payload.user_id, payload.target_user_id, payload.action, db
    )
    return raise_for_result(result)


@router.get(
    "/{user_id}/ids",
    response_model=SwipedIdsResponse,
    summary="List user ids already swiped on",
)
async def swiped_user_ids(
    user_id: str,
    db: AsyncSession = Depends(get_db),
) -> dict:
    ids = await _get_swipe_recorder().fetch_swiped_user_ids(user_id, db)
    return {"user_id": user_id, "swiped_user_ids": sorted(ids)}
