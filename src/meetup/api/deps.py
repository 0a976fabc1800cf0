"""FastAPI dependency injection for authentication and domain services.

Services are built once in the application lifespan and stored on
``app.state``; a missing service means the app was not initialized and
yields 503.
"""

from __future__ import annotations

import uuid

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from src.meetup.core.security import user_id_from_token
from src.meetup.meetings.notifications import NotificationRepository
from src.meetup.meetings.participations import ParticipationEngine
from src.meetup.meetings.queries import MeetingQueryEngine
from src.meetup.meetings.repository import MeetingRepository
from src.meetup.services.geocoding import KakaoGeocoder

_bearer = HTTPBearer(auto_error=False)


async def get_current_user_id(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
) -> uuid.UUID:
    """Return the acting user's UUID from the bearer token.

    Raises:
        HTTPException(401): If no valid bearer token is provided.
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user_id_from_token(credentials.credentials)


def _get_service(request: Request, name: str, label: str):
    service = getattr(request.app.state, name, None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{label} not initialized",
        )
    return service


def get_meeting_repository(request: Request) -> MeetingRepository:
    """Retrieve MeetingRepository from app.state, 503 if not available."""
    return _get_service(request, "meeting_repository", "Meeting store")


def get_participation_engine(request: Request) -> ParticipationEngine:
    """Retrieve ParticipationEngine from app.state, 503 if not available."""
    return _get_service(request, "participation_engine", "Participation engine")


def get_query_engine(request: Request) -> MeetingQueryEngine:
    return _get_service(request, "query_engine", "Meeting queries")


def get_notification_repository(request: Request) -> NotificationRepository:
    return _get_service(request, "notification_repository", "Notifications")


def get_geocoder(request: Request) -> KakaoGeocoder:
    return _get_service(request, "geocoder", "Geocoder")
