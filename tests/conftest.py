"""Test fixtures for the meeting participation stores.

Provides:
- A file-backed SQLite engine per test (aiosqlite) with all tables created
- A session_factory bound to it, and the real repositories and engines
- open_meeting: factory fixture that hosts a meeting through MeetingRepository
- occupancy: reads (current_participants, ACCEPTED row count) for a meeting

SQLite runs every unit of work under BEGIN IMMEDIATE, so concurrent tests
exercise the same serialization the row locks give on PostgreSQL.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncEngine

from src.meetup.core.database import build_engine, init_db, make_session_factory
from src.meetup.meetings.models import MeetingModel, ParticipationModel
from src.meetup.meetings.notifications import NotificationRepository
from src.meetup.meetings.participations import ParticipationEngine
from src.meetup.meetings.queries import MeetingQueryEngine
from src.meetup.meetings.repository import MeetingRepository
from src.meetup.meetings.schemas import Meeting, MeetingCreate, ParticipationStatus


@pytest_asyncio.fixture
async def db_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Fresh SQLite database file with the meetup tables."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'meetup.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return make_session_factory(db_engine)


@pytest.fixture
def meetings(session_factory) -> MeetingRepository:
    return MeetingRepository(session_factory=session_factory)


@pytest.fixture
def engine(session_factory) -> ParticipationEngine:
    return ParticipationEngine(session_factory=session_factory)


@pytest.fixture
def notifications(session_factory) -> NotificationRepository:
    return NotificationRepository(session_factory=session_factory)


@pytest.fixture
def queries(session_factory) -> MeetingQueryEngine:
    return MeetingQueryEngine(session_factory=session_factory)


@pytest.fixture
def host_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def open_meeting(meetings, host_id):
    """Factory: host a meeting ``days_ahead`` days from now (negative = past)."""

    async def _open(
        max_participants: int = 5,
        days_ahead: float = 7,
        host: uuid.UUID | None = None,
        **fields,
    ) -> Meeting:
        data = MeetingCreate(
            title=fields.pop("title", "Sunday hike"),
            address=fields.pop("address", "Seoul Jongno-gu Sejong-daero 175"),
            max_participants=max_participants,
            scheduled_at=datetime.now(timezone.utc) + timedelta(days=days_ahead),
            **fields,
        )
        return await meetings.create_meeting(host or host_id, data)

    return _open


@pytest.fixture
def occupancy(session_factory):
    """Return (current_participants, ACCEPTED row count) for a meeting."""

    async def _read(meeting_id: uuid.UUID) -> tuple[int, int]:
        async for session in session_factory():
            current = await session.scalar(
                select(MeetingModel.current_participants).where(
                    MeetingModel.id == meeting_id
                )
            )
            accepted = await session.scalar(
                select(func.count())
                .select_from(ParticipationModel)
                .where(
                    ParticipationModel.meeting_id == meeting_id,
                    ParticipationModel.status == ParticipationStatus.ACCEPTED.value,
                )
            )
            return current, accepted

    return _read
