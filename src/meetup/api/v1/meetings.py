"""REST API endpoints for meetings.

Provides creating, editing and soft deleting meetings, the public list,
keyword search, the caller's own meetings, meeting detail and the accepted
member list. Address geocoding happens here, before the repository opens its
unit of work.

Static paths (/search, /me) are declared before /{meeting_id}.
"""

from __future__ import annotations

import uuid
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from pydantic import BaseModel, ValidationError

from src.meetup.api.deps import (
    get_current_user_id,
    get_geocoder,
    get_meeting_repository,
    get_participation_engine,
    get_query_engine,
)
from src.meetup.meetings.participations import ParticipationEngine
from src.meetup.meetings.queries import MeetingQueryEngine
from src.meetup.meetings.repository import MeetingRepository
from src.meetup.meetings.schemas import (
    MAX_PAGE_LIMIT,
    Meeting,
    MeetingCreate,
    MeetingItem,
    MeetingPageOptions,
    MeetingSearchOptions,
    MeetingSort,
    MeetingUpdate,
    MyMeetingItem,
    MyMeetingPageOptions,
    MyMeetingStatus,
    MyMeetingView,
    Page,
    Participation,
)
from src.meetup.services.geocoding import KakaoGeocoder

router = APIRouter(prefix="/meetings", tags=["meetings"])


def build_options(model: type[BaseModel], **values: Any) -> Any:
    """Validate query parameters into an options model, 422 on failure."""
    try:
        return model(**values)
    except ValidationError as exc:
        raise HTTPException(
            status_code=422,
            detail=exc.errors(include_url=False, include_context=False),
        )


# ── Lifecycle Endpoints ──────────────────────────────────────────────────────


@router.post("", response_model=Meeting, status_code=201)
async def create_meeting(
    body: MeetingCreate,
    user_id: uuid.UUID = Depends(get_current_user_id),
    repo: MeetingRepository = Depends(get_meeting_repository),
    geocoder: KakaoGeocoder = Depends(get_geocoder),
) -> Meeting:
    """Open a meeting hosted by the caller."""
    location = await geocoder.geocode(body.address)
    return await repo.create_meeting(user_id, body, location)


@router.get("", response_model=Page[MeetingItem])
async def list_meetings(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=MAX_PAGE_LIMIT),
    sort: MeetingSort = Query(MeetingSort.NEW),
    category: str | None = Query(None),
    include_finished: bool = Query(False),
    queries: MeetingQueryEngine = Depends(get_query_engine),
) -> Page[MeetingItem]:
    """Public list of live meetings."""
    options = build_options(
        MeetingPageOptions,
        page=page,
        limit=limit,
        sort=sort,
        category=category,
        include_finished=include_finished,
    )
    return await queries.list_meetings(options)


@router.get("/search", response_model=Page[MeetingItem])
async def search_meetings(
    keyword: str = Query(..., min_length=1, max_length=100),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=MAX_PAGE_LIMIT),
    include_finished: bool = Query(False),
    queries: MeetingQueryEngine = Depends(get_query_engine),
) -> Page[MeetingItem]:
    """Keyword search over live meetings, soonest first."""
    options = build_options(
        MeetingSearchOptions,
        keyword=keyword,
        page=page,
        limit=limit,
        include_finished=include_finished,
    )
    return await queries.search_meetings(options)


@router.get("/me", response_model=Page[MyMeetingItem])
async def list_my_meetings(
    view: MyMeetingView = Query(MyMeetingView.ALL),
    status_filter: MyMeetingStatus = Query(MyMeetingStatus.ALL, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=MAX_PAGE_LIMIT),
    user_id: uuid.UUID = Depends(get_current_user_id),
    queries: MeetingQueryEngine = Depends(get_query_engine),
) -> Page[MyMeetingItem]:
    """Meetings the caller hosts or applied to."""
    options = build_options(
        MyMeetingPageOptions, view=view, status=status_filter, page=page, limit=limit
    )
    return await queries.list_my_meetings(user_id, options)


@router.get("/{meeting_id}", response_model=Meeting)
async def get_meeting(
    meeting_id: uuid.UUID,
    repo: MeetingRepository = Depends(get_meeting_repository),
) -> Meeting:
    """Meeting detail; deleted meetings answer 410."""
    return await repo.get_meeting(meeting_id)


@router.patch("/{meeting_id}", response_model=Meeting)
async def update_meeting(
    meeting_id: uuid.UUID,
    body: MeetingUpdate,
    user_id: uuid.UUID = Depends(get_current_user_id),
    repo: MeetingRepository = Depends(get_meeting_repository),
    geocoder: KakaoGeocoder = Depends(get_geocoder),
) -> Meeting:
    """Partial edit of a meeting by its host."""
    location = None
    if body.address is not None:
        current = await repo.get_meeting(meeting_id)
        if body.address != current.address:
            location = await geocoder.geocode(body.address)
    return await repo.update_meeting(meeting_id, user_id, body, location)


@router.delete("/{meeting_id}", status_code=204)
async def delete_meeting(
    meeting_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    repo: MeetingRepository = Depends(get_meeting_repository),
) -> Response:
    """Soft delete a meeting and notify its accepted members."""
    await repo.soft_delete_meeting(meeting_id, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{meeting_id}/participants", response_model=list[Participation])
async def list_participants(
    meeting_id: uuid.UUID,
    engine: ParticipationEngine = Depends(get_participation_engine),
) -> list[Participation]:
    """Accepted members, host first."""
    return await engine.list_participants(meeting_id)
