"""
Featur — User reports API
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from featur.api.errors import raise_for_result
from featur.database import get_db
from featur.schemas.report import ReportCreate, ReportResponse
from featur.services.moderation_service import ModerationService

logger = structlog.get_logger("featur.api.reports")

router = APIRouter()

_moderation_service: ModerationService | None = None


def _get_moderation_service() -> ModerationService:
    global _moderation_service
    if _moderation_service is None:
        _moderation_service = ModerationService()
    return _moderation_service


@router.post(
    "/",
    response_model=ReportResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Report a user",
)
async def file_report(
    payload: ReportCreate,
    db: AsyncSession = Depends(get_db),
) -> dict:
    """Reports start as ``pending`` and are reviewed from the admin API."""
    result = await _get_moderation_service().file_report(
        payload.reporter_id,
        payload.reported_user_id,
        payload.reason,
        db,
        description=payload.description,
    )
    raise_for_result(result)
    return result["report"]
