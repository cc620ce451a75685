"""
Featur — Matches API

Listing a user's active matches and soft-unmatching.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from featur.api.errors import raise_for_result
from featur.database import get_db
from featur.schemas.match import MatchListItem, MatchResponse
from featur.services.match_service import MatchDetector

logger = structlog.get_logger("featur.api.matches")

router = APIRouter()

_match_detector: MatchDetector | None = None


def _get_match_detector() -> MatchDetector:
    global _match_detector
    if _match_detector is None:
        _match_detector = MatchDetector()
    return _match_detector


@router.get(
    "/{user_id}",
    response_model=list[MatchListItem],
    summary="List active matches for a user",
)
async def list_matches(
    user_id: str,
    db: AsyncSession = Depends(get_db),
) -> list[dict]:
    """Newest first; each item carries the other participant's profile when
    it could be loaded."""
    return await _get_match_detector().get_user_matches(user_id, db)


@router.post(
    "/{match_id}/unmatch",
    response_model=MatchResponse,
    summary="Deactivate a match",
)
async def unmatch(
    match_id: str,
    db: AsyncSession = Depends(get_db),
) -> dict:
    result = await _get_match_detector().unmatch(match_id, db)
    raise_for_result(result, detail=f"Match {match_id} not found.")
    return result["match"]
