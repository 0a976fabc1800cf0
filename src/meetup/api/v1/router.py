"""V1 API router -- aggregates all v1 endpoint routers."""

from __future__ import annotations

from fastapi import APIRouter

from src.meetup.api.v1 import meetings, notifications, participations

router = APIRouter()

router.include_router(meetings.router)
router.include_router(participations.router)
router.include_router(notifications.router)
