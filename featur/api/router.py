"""
Featur — Main API Router

Aggregates all sub-routers under a single prefix so that ``featur.main``
can mount the entire API surface with one ``include_router`` call.
"""

from fastapi import APIRouter

from featur.api import conversations, featured, matches, reports, swipes, users
from featur.api.admin import analytics

router = APIRouter()

router.include_router(users.router, prefix="/users", tags=["Users"])
router.include_router(swipes.router, prefix="/swipes", tags=["Swipes"])
router.include_router(matches.router, prefix="/matches", tags=["Matches"])
router.include_router(conversations.router, prefix="/conversations", tags=["Conversations"])
router.include_router(featured.router, prefix="/featured", tags=["Featured"])
router.include_router(reports.router, prefix="/reports", tags=["Reports"])
router.include_router(analytics.router, prefix="/admin", tags=["Admin"])
