"""
Featur — Featured creators API
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from featur.api.errors import raise_for_result
from featur.database import get_db
from featur.schemas.featured import FeaturedCreate, FeaturedResponse
from featur.services.featured_service import FeaturedService

logger = structlog.get_logger("featur.api.featured")

router = APIRouter()

_featured_service: FeaturedService | None = None


def _get_featured_service() -> FeaturedService:
    global _featured_service
    if _featured_service is None:
        _featured_service = FeaturedService()
    return _featured_service


@router.get(
    "/",
    response_model=list[FeaturedResponse],
    summary="List active featured creators",
)
async def list_featured(
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
) -> list[dict]:
    """Unexpired listings, highest priority first."""
    return await _get_featured_service().fetch_featured_creators(db, limit=limit)


@router.post(
    "/",
    response_model=FeaturedResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Feature a creator for a period of time",
)
async def create_featured(
    payload: FeaturedCreate,
    db: AsyncSession = Depends(get_db),
) -> dict:
    result = await _get_featured_service().create_featured_creator(
        payload.user_id,
        payload.category,
        payload.duration_seconds,
        db,
        priority=payload.priority,
        highlight_text=payload.highlight_text,
    )
    raise_for_result(result, detail=(
        f"Profile {payload.user_id} not found." if result["status"] == "not_found" else None
    ))
    return result["featured"]
