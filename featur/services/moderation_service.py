"""
Featur — User reports and admin analytics.
"""

from __future__ import annotations

from datetime import datetime, time, timezone
from typing import Any

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from featur.models.conversation import Message
from featur.models.featured import Report
from featur.models.match import Match
from featur.models.user import UserProfile

logger = structlog.get_logger("featur.moderation_service")

REPORT_STATUSES: frozenset[str] = frozenset({"pending", "reviewed", "action_taken", "dismissed"})


def report_to_dict(report: Report) -> dict[str, Any]:
    return {
        "id": report.id,
        "reporter_id": report.reporter_id,
        "reported_user_id": report.reported_user_id,
        "reason": report.reason,
        "description": report.description,
        "status": report.status,
        "created_at": report.created_at.isoformat() if report.created_at else None,
    }


class ModerationService:
    """Report intake and review plus the counters shown on the admin page."""

    async def file_report(
        self,
        reporter_id: str,
        reported_user_id: str,
        reason: str,
        db_session: AsyncSession,
        description: str | None = None,
    ) -> dict:
        log = logger.bind(reporter_id=reporter_id, reported_user_id=reported_user_id)

        if not reporter_id or not reported_user_id or not (reason or "").strip():
            log.warning("file_report_invalid", reason="empty_field")
            return {"status": "invalid", "reason": "empty_field"}
        if reporter_id == reported_user_id:
            log.warning("file_report_invalid", reason="self_report")
            return {"status": "invalid", "reason": "self_report"}

        report = Report(
            reporter_id=reporter_id,
            reported_user_id=reported_user_id,
            reason=reason.strip(),
            description=description,
        )
        db_session.add(report)
        await db_session.flush()

        log.info("report_filed", report_id=report.id, report_reason=report.reason)
        return {"status": "filed", "report": report_to_dict(report)}

    async def list_reports(
        self,
        db_session: AsyncSession,
        status: str | None = None,
    ) -> list[dict]:
        stmt = select(Report).order_by(Report.created_at.desc())
        if status:
            stmt = stmt.where(Report.status == status)
        result = await db_session.execute(stmt)
        return [report_to_dict(r) for r in result.scalars().all()]

    async def update_report_status(
        self,
        report_id: str,
        status: str,
        db_session: AsyncSession,
    ) -> dict:
        log = logger.bind(report_id=report_id, new_status=status)

        if status not in REPORT_STATUSES:
            log.warning("update_report_invalid", reason="unknown_status")
            return {"status": "invalid", "reason": "unknown_status"}

        report = await db_session.get(Report, report_id) if report_id else None
        if report is None:
            log.warning("update_report_not_found")
            return {"status": "not_found"}

        report.status = status
        await db_session.flush()

        log.info("report_status_updated")
        return {"status": "updated", "report": report_to_dict(report)}

    async def get_analytics(self, db_session: AsyncSession) -> dict[str, int]:
        """Totals for users, users active since UTC midnight, active matches
        and messages."""
        start_of_day = datetime.combine(
            datetime.now(timezone.utc).date(), time.min, tzinfo=timezone.utc
        )

        total_users = await db_session.scalar(select(func.count(UserProfile.id)))
        active_today = await db_session.scalar(
            select(func.count(UserProfile.id)).where(UserProfile.last_active_at >= start_of_day)
        )
        active_matches = await db_session.scalar(
            select(func.count(Match.id)).where(Match.is_active.is_(True))
        )
        total_messages = await db_session.scalar(select(func.count(Message.id)))

        totals = {
            "total_users": total_users or 0,
            "active_users_today": active_today or 0,
            "active_matches": active_matches or 0,
            "total_messages": total_messages or 0,
        }
        logger.info("analytics_computed", **totals)
        return totals
