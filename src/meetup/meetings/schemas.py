"""Pydantic v2 schemas for the meeting participation domain.

Defines the data contracts for meetings, participations, notifications,
listing options and paginated results. The repository, the participation
engine, the query engine and the HTTP layer all exchange these types; SQLAlchemy
models never leave the persistence modules.
"""

from __future__ import annotations

import math
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Generic, TypeVar
from zoneinfo import ZoneInfo

from pydantic import BaseModel, Field, field_validator

from src.meetup.config import get_settings

MAX_PAGE_LIMIT = 100

T = TypeVar("T")


def to_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime.

    Naive input is read in the configured meeting timezone.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=ZoneInfo(get_settings().MEETING_TIMEZONE))
    return value.astimezone(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    # Some backends hand stored UTC timestamps back without tzinfo
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# ── Enums ────────────────────────────────────────────────────────────────────


class ParticipationStatus(str, Enum):
    """Lifecycle status of a participation."""

    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"


class NotificationType(str, Enum):
    PARTICIPATION_REQUESTED = "PARTICIPATION_REQUESTED"
    PARTICIPATION_ACCEPTED = "PARTICIPATION_ACCEPTED"
    PARTICIPATION_REJECTED = "PARTICIPATION_REJECTED"
    PARTICIPATION_CANCELLED = "PARTICIPATION_CANCELLED"
    MEETING_DELETED = "MEETING_DELETED"


DECISION_NOTIFICATIONS: frozenset[NotificationType] = frozenset(
    {
        NotificationType.PARTICIPATION_ACCEPTED,
        NotificationType.PARTICIPATION_REJECTED,
        NotificationType.PARTICIPATION_CANCELLED,
    }
)


class MeetingSort(str, Enum):
    """Ordering policies for the public meeting list."""

    NEW = "new"
    UPDATE = "update"
    DEADLINE = "deadline"


class MyMeetingView(str, Enum):
    ALL = "all"
    HOSTED = "hosted"
    JOINED = "joined"


class MyMeetingStatus(str, Enum):
    ALL = "all"
    PENDING = "pending"
    ACCEPTED = "accepted"
    COMPLETED = "completed"


# ── Meeting Models ───────────────────────────────────────────────────────────


class GeocodedLocation(BaseModel):
    """Coordinates resolved for a street address."""

    address: str
    latitude: float
    longitude: float


class MeetingCreate(BaseModel):
    """Input for opening a new meeting."""

    title: str = Field(min_length=1, max_length=200)
    description: str = ""
    category: str | None = Field(None, max_length=100)
    address: str = Field(min_length=1, max_length=500)
    image_url: str | None = None
    max_participants: int = Field(ge=1, description="Participant cap, host included")
    scheduled_at: datetime

    @field_validator("scheduled_at")
    @classmethod
    def normalize_scheduled_at(cls, value: datetime) -> datetime:
        return to_utc(value)


class MeetingUpdate(BaseModel):
    """Partial edit of a meeting; unset fields are left unchanged."""

    title: str | None = Field(None, min_length=1, max_length=200)
    description: str | None = None
    category: str | None = Field(None, max_length=100)
    address: str | None = Field(None, min_length=1, max_length=500)
    image_url: str | None = None
    max_participants: int | None = Field(None, ge=1)
    scheduled_at: datetime | None = None

    @field_validator("scheduled_at")
    @classmethod
    def normalize_scheduled_at(cls, value: datetime | None) -> datetime | None:
        return to_utc(value) if value is not None else None


class Meeting(BaseModel):
    """A persisted meeting."""

    id: uuid.UUID
    host_id: uuid.UUID
    title: str
    description: str = ""
    category: str | None = None
    address: str
    latitude: float | None = None
    longitude: float | None = None
    image_url: str | None = None
    max_participants: int
    current_participants: int
    scheduled_at: datetime
    deleted: bool = False
    created_at: datetime
    updated_at: datetime

    normalize_utc = field_validator("scheduled_at", "created_at", "updated_at")(as_utc)

    @property
    def remaining_seats(self) -> int:
        return max(self.max_participants - self.current_participants, 0)


class MeetingItem(BaseModel):
    """Meeting summary row for list and search results."""

    id: uuid.UUID
    title: str
    category: str | None = None
    image_url: str | None = None
    address: str
    max_participants: int
    current_participants: int
    scheduled_at: datetime

    normalize_utc = field_validator("scheduled_at")(as_utc)


class MyMeetingItem(MeetingItem):
    """Meeting summary from the caller's point of view."""

    status: ParticipationStatus
    is_host: bool
    is_completed: bool


# ── Participation & Notification Models ──────────────────────────────────────


class Participation(BaseModel):
    """Membership of one user in one meeting."""

    id: uuid.UUID
    meeting_id: uuid.UUID
    user_id: uuid.UUID
    status: ParticipationStatus
    is_host: bool = False
    created_at: datetime
    updated_at: datetime

    normalize_utc = field_validator("created_at", "updated_at")(as_utc)


class Notification(BaseModel):
    id: uuid.UUID
    receiver_id: uuid.UUID
    sender_id: uuid.UUID
    meeting_id: uuid.UUID
    type: NotificationType
    is_read: bool = False
    created_at: datetime

    normalize_utc = field_validator("created_at")(as_utc)


class NotificationItem(Notification):
    """Feed entry joined with the meeting title."""

    meeting_title: str


# ── Listing Options ──────────────────────────────────────────────────────────


class PageOptions(BaseModel):
    """Offset pagination input."""

    page: int = Field(1, ge=1)
    limit: int = Field(10, ge=1, le=MAX_PAGE_LIMIT)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class MeetingPageOptions(PageOptions):
    sort: MeetingSort = MeetingSort.NEW
    category: str | None = None
    include_finished: bool = False


class MeetingSearchOptions(PageOptions):
    keyword: str = Field(min_length=1, max_length=100)
    include_finished: bool = False

    @field_validator("keyword")
    @classmethod
    def strip_keyword(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("keyword must not be blank")
        return value


class MyMeetingPageOptions(PageOptions):
    view: MyMeetingView = MyMeetingView.ALL
    status: MyMeetingStatus = MyMeetingStatus.ALL


class NotificationPageOptions(PageOptions):
    limit: int = Field(5, ge=1, le=MAX_PAGE_LIMIT)


# ── Pagination Results ───────────────────────────────────────────────────────


class PageMeta(BaseModel):
    total_count: int
    page: int
    limit: int
    total_pages: int

    @classmethod
    def build(cls, total_count: int, page: int, limit: int) -> PageMeta:
        return cls(
            total_count=total_count,
            page=page,
            limit=limit,
            total_pages=math.ceil(total_count / limit),
        )


class Page(BaseModel, Generic[T]):
    """A bounded slice of results plus pagination metadata."""

    data: list[T] = Field(default_factory=list)
    meta: PageMeta
