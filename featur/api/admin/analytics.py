"""
Featur — Admin Analytics & Moderation API

Endpoints for the operator dashboard:
  - Headline totals (users, users active today, active matches, messages)
  - Report review queue and status changes
"""

from __future__ import annotations

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from featur.api.errors import raise_for_result
from featur.database import get_db
from featur.schemas.report import AnalyticsResponse, ReportResponse, ReportStatusUpdate
from featur.services.moderation_service import ModerationService

logger = structlog.get_logger("featur.api.admin.analytics")

router = APIRouter()

_moderation_service = ModerationService()


# ──────────────────────────────────────────────────────────────────────────────
# GET /analytics: Dashboard totals
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/analytics",
    response_model=AnalyticsResponse,
    summary="Platform totals",
)
async def get_analytics(db: AsyncSession = Depends(get_db)) -> dict:
    return await _moderation_service.get_analytics(db)


# ──────────────────────────────────────────────────────────────────────────────
# Report review
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/reports",
    response_model=list[ReportResponse],
    summary="List user reports",
)
async def list_reports(
    report_status: Optional[str] = Query(
        None,
        alias="status",
        description="Filter by status: pending, reviewed, action_taken, dismissed",
    ),
    db: AsyncSession = Depends(get_db),
) -> list[dict]:
    return await _moderation_service.list_reports(db, status=report_status)


@router.put(
    "/reports/{report_id}",
    response_model=ReportResponse,
    summary="Change a report's review status",
)
async def update_report(
    report_id: str,
    payload: ReportStatusUpdate,
    db: AsyncSession = Depends(get_db),
) -> dict:
    result = await _moderation_service.update_report_status(report_id, payload.status, db)
    raise_for_result(result, detail=(
        f"Report {report_id} not found." if result["status"] == "not_found" else None
    ))
    logger.info("admin_report_reviewed", report_id=report_id, new_status=payload.status)
    return result["report"]
