"""Meeting repository -- lifecycle writes and detail reads for meetings.

Provides MeetingRepository with the session_factory callable pattern.
Creation opens the meeting together with the host's own ACCEPTED
participation, so occupancy starts at 1 and matches the accepted set.
Edits and soft deletes lock the meeting row like the participation engine
does, so a capacity edit can never slip under a concurrent approval.

Address geocoding is done by the caller before any method here is invoked;
this module never performs network I/O inside a transaction.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.meetup.core.database import SessionFactory, unit_of_work
from src.meetup.core.monitoring import meeting_lifecycle_total
from src.meetup.meetings.errors import (
    CapacityExceededError,
    MeetingError,
    MeetingFinishedError,
    MeetingGoneError,
    MeetingNotFoundError,
    MeetingStoreError,
    NotMeetingHostError,
)
from src.meetup.meetings.models import MeetingModel, ParticipationModel
from src.meetup.meetings.notifications import NotificationLedger
from src.meetup.meetings.schemas import (
    GeocodedLocation,
    Meeting,
    MeetingCreate,
    MeetingUpdate,
    ParticipationStatus,
    as_utc,
)

logger = structlog.get_logger(__name__)


# ── Serialization Helpers ───────────────────────────────────────────────────


def _model_to_meeting(model: MeetingModel) -> Meeting:
    """Convert MeetingModel to Meeting schema."""
    return Meeting(
        id=model.id,
        host_id=model.host_id,
        title=model.title,
        description=model.description or "",
        category=model.category,
        address=model.address,
        latitude=model.latitude,
        longitude=model.longitude,
        image_url=model.image_url,
        max_participants=model.max_participants,
        current_participants=model.current_participants,
        scheduled_at=model.scheduled_at,
        deleted=model.deleted,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


def _record(operation: str, outcome: str) -> None:
    meeting_lifecycle_total.labels(operation=operation, outcome=outcome).inc()


class MeetingRepository:
    """Async create, edit, soft delete and detail reads for meetings.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def create_meeting(
        self,
        host_id: uuid.UUID,
        data: MeetingCreate,
        location: GeocodedLocation | None = None,
    ) -> Meeting:
        """Open a meeting hosted by ``host_id``.

        Args:
            host_id: UUID of the hosting user.
            data: Meeting fields.
            location: Coordinates resolved for ``data.address``, if any.

        Returns:
            The created Meeting with ``current_participants == 1``.
        """
        try:
            async with unit_of_work(self._session_factory) as session:
                model = MeetingModel(
                    id=uuid.uuid4(),
                    host_id=host_id,
                    title=data.title,
                    description=data.description,
                    category=data.category,
                    address=data.address,
                    latitude=location.latitude if location else None,
                    longitude=location.longitude if location else None,
                    image_url=data.image_url,
                    max_participants=data.max_participants,
                    current_participants=1,
                    scheduled_at=data.scheduled_at,
                    deleted=False,
                )
                session.add(model)
                session.add(
                    ParticipationModel(
                        meeting_id=model.id,
                        user_id=host_id,
                        status=ParticipationStatus.ACCEPTED.value,
                        is_host=True,
                    )
                )
                await session.flush()
                meeting = _model_to_meeting(model)
        except SQLAlchemyError as exc:
            _record("create", "internal")
            logger.exception("meeting.create_failed", host_id=str(host_id))
            raise MeetingStoreError(f"create_meeting failed: {exc}") from exc

        _record("create", "success")
        logger.info(
            "meeting.created",
            meeting_id=str(meeting.id),
            host_id=str(host_id),
            max_participants=meeting.max_participants,
        )
        return meeting

    async def get_meeting(self, meeting_id: uuid.UUID) -> Meeting:
        """Get a live meeting.

        Raises:
            MeetingNotFoundError: No such meeting.
            MeetingGoneError: The meeting was soft deleted.
        """
        async for session in self._session_factory():
            model = await session.get(MeetingModel, meeting_id)
            if model is None:
                raise MeetingNotFoundError(meeting_id)
            if model.deleted:
                raise MeetingGoneError(meeting_id)
            return _model_to_meeting(model)

    async def update_meeting(
        self,
        meeting_id: uuid.UUID,
        user_id: uuid.UUID,
        data: MeetingUpdate,
        location: GeocodedLocation | None = None,
    ) -> Meeting:
        """Apply a partial edit. Host only.

        The new capacity is checked against the occupancy read under the
        meeting row lock.

        Raises:
            CapacityExceededError: ``max_participants`` below current occupancy.
        """
        changes = data.model_dump(exclude_unset=True)
        try:
            async with unit_of_work(self._session_factory) as session:
                model = await self._lock_live_meeting(session, meeting_id)
                if model.host_id != user_id:
                    raise NotMeetingHostError(meeting_id, user_id)

                capacity = changes.get("max_participants")
                if capacity is not None and capacity < model.current_participants:
                    raise CapacityExceededError(
                        meeting_id, capacity, model.current_participants, 0
                    )

                address_changed = changes.get("address") not in (None, model.address)
                for field, value in changes.items():
                    # Explicit nulls only clear optional columns
                    if value is None and field not in ("category", "image_url"):
                        continue
                    setattr(model, field, value)
                if location is not None:
                    model.address = location.address
                    model.latitude = location.latitude
                    model.longitude = location.longitude
                elif address_changed:
                    # Coordinates of the previous address no longer apply
                    model.latitude = None
                    model.longitude = None

                await session.flush()
                meeting = _model_to_meeting(model)
        except MeetingError as exc:
            _record("update", exc.kind.value)
            raise
        except SQLAlchemyError as exc:
            _record("update", "internal")
            logger.exception("meeting.update_failed", meeting_id=str(meeting_id))
            raise MeetingStoreError(f"update_meeting failed: {exc}") from exc

        _record("update", "success")
        logger.info(
            "meeting.updated",
            meeting_id=str(meeting_id),
            fields=sorted(changes),
        )
        return meeting

    async def soft_delete_meeting(self, meeting_id: uuid.UUID, user_id: uuid.UUID) -> None:
        """Mark a meeting deleted and tell its accepted members. Host only.

        Raises:
            MeetingGoneError: Already deleted.
            MeetingFinishedError: The meeting already took place.
        """
        try:
            async with unit_of_work(self._session_factory) as session:
                model = await self._lock_live_meeting(session, meeting_id)
                if model.host_id != user_id:
                    raise NotMeetingHostError(meeting_id, user_id)
                if as_utc(model.scheduled_at) < datetime.now(timezone.utc):
                    raise MeetingFinishedError(meeting_id)

                result = await session.execute(
                    select(ParticipationModel.user_id).where(
                        ParticipationModel.meeting_id == meeting_id,
                        ParticipationModel.status == ParticipationStatus.ACCEPTED.value,
                        ParticipationModel.is_host.is_(False),
                    )
                )
                members = list(result.scalars().all())

                model.deleted = True
                await NotificationLedger(session, model.id, model.host_id).meeting_deleted(
                    members
                )
        except MeetingError as exc:
            _record("delete", exc.kind.value)
            raise
        except SQLAlchemyError as exc:
            _record("delete", "internal")
            logger.exception("meeting.delete_failed", meeting_id=str(meeting_id))
            raise MeetingStoreError(f"soft_delete_meeting failed: {exc}") from exc

        _record("delete", "success")
        logger.info(
            "meeting.deleted",
            meeting_id=str(meeting_id),
            host_id=str(user_id),
            notified_count=len(members),
        )

    @staticmethod
    async def _lock_live_meeting(session: AsyncSession, meeting_id: uuid.UUID) -> MeetingModel:
        result = await session.execute(
            select(MeetingModel).where(MeetingModel.id == meeting_id).with_for_update()
        )
        model = result.scalar_one_or_none()
        if model is None:
            raise MeetingNotFoundError(meeting_id)
        if model.deleted:
            raise MeetingGoneError(meeting_id)
        return model
