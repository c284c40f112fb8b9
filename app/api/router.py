"""
GenBridge SG — Main API Router

Aggregates all sub-routers under a single prefix so that ``app.main``
can mount the entire API surface with one ``include_router`` call.
"""

from fastapi import APIRouter

from app.api import ai, conversations, matching, profiles, realtime, reports
from app.api.admin import moderation

router = APIRouter()

router.include_router(profiles.router, prefix="/profiles", tags=["Profiles"])
router.include_router(matching.router, prefix="/matching", tags=["Matching"])
router.include_router(conversations.router, prefix="/conversations", tags=["Conversations"])
router.include_router(reports.router, prefix="/reports", tags=["Reports"])
router.include_router(ai.router, prefix="/ai", tags=["AI"])
router.include_router(realtime.router, prefix="/realtime", tags=["Realtime"])
router.include_router(moderation.router, prefix="/admin/moderation", tags=["Admin - Moderation"])
