"""Participation engine -- the capacity-aware join/approve state machine.

Every operation runs as one unit of work: the meeting row is locked first
(SELECT ... FOR UPDATE), then the target participation rows, then capacity,
occupancy and status are read, checked and written together with the
notification side effects. A rejected precondition raises before anything is
written; any other failure rolls the whole unit back.

Participation lifecycle:

    (none)   --request_join-->     PENDING
    PENDING  --approve-->          ACCEPTED   occupancy + 1
    PENDING  --reject-->           REJECTED
    ACCEPTED --cancel_approval-->  PENDING    occupancy - 1
    REJECTED --cancel_rejection--> PENDING
    PENDING* --approve_all-->      ACCEPTED*  all or nothing

There is no direct ACCEPTED <-> REJECTED edge and rows are never deleted.
The host's own participation is ACCEPTED from creation and is never a target.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.meetup.core.database import SessionFactory, unit_of_work
from src.meetup.core.monitoring import participation_transitions_total
from src.meetup.meetings.errors import (
    CapacityExceededError,
    DuplicateParticipationError,
    ErrorKind,
    HostParticipationError,
    InvalidParticipationTransitionError,
    MeetingDeadlinePassedError,
    MeetingError,
    MeetingGoneError,
    MeetingNotFoundError,
    MeetingStoreError,
    NotMeetingHostError,
    ParticipationNotFoundError,
)
from src.meetup.meetings.models import MeetingModel, ParticipationModel
from src.meetup.meetings.notifications import NotificationLedger
from src.meetup.meetings.schemas import (
    Participation,
    ParticipationStatus,
    as_utc,
)

logger = structlog.get_logger(__name__)


# ── Transition Table ────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Transition:
    """One host decision on a single participation."""

    operation: str
    source: ParticipationStatus
    target: ParticipationStatus
    seat_delta: int
    event: str


APPROVE = Transition(
    "approve",
    ParticipationStatus.PENDING,
    ParticipationStatus.ACCEPTED,
    1,
    "participation.approved",
)
REJECT = Transition(
    "reject",
    ParticipationStatus.PENDING,
    ParticipationStatus.REJECTED,
    0,
    "participation.rejected",
)
CANCEL_APPROVAL = Transition(
    "cancel_approval",
    ParticipationStatus.ACCEPTED,
    ParticipationStatus.PENDING,
    -1,
    "participation.approval_cancelled",
)
CANCEL_REJECTION = Transition(
    "cancel_rejection",
    ParticipationStatus.REJECTED,
    ParticipationStatus.PENDING,
    0,
    "participation.rejection_cancelled",
)


def _model_to_participation(model: ParticipationModel) -> Participation:
    """Convert ParticipationModel to Participation schema."""
    return Participation(
        id=model.id,
        meeting_id=model.meeting_id,
        user_id=model.user_id,
        status=ParticipationStatus(model.status),
        is_host=model.is_host,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


class ParticipationEngine:
    """Executes participation transitions against the meeting stores.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    # ── Unit Helpers ────────────────────────────────────────────────────────

    @asynccontextmanager
    async def _tracked(self, operation: str, **fields: Any) -> AsyncIterator[None]:
        """Count the outcome of ``operation`` and log rejected preconditions.

        Unexpected store failures are re-raised as MeetingStoreError after
        the unit of work has rolled back.
        """
        try:
            yield
        except MeetingError as exc:
            participation_transitions_total.labels(
                operation=operation, outcome=exc.kind.value
            ).inc()
            if exc.kind is not ErrorKind.INTERNAL:
                logger.info(
                    "participation.rejected_precondition",
                    operation=operation,
                    kind=exc.kind.value,
                    reason=str(exc),
                    **fields,
                )
            raise
        except SQLAlchemyError as exc:
            participation_transitions_total.labels(
                operation=operation, outcome=ErrorKind.INTERNAL.value
            ).inc()
            logger.exception("participation.store_failed", operation=operation, **fields)
            raise MeetingStoreError(f"{operation} failed: {exc}") from exc
        else:
            participation_transitions_total.labels(
                operation=operation, outcome="success"
            ).inc()

    @staticmethod
    async def _lock_meeting(session: AsyncSession, meeting_id: uuid.UUID) -> MeetingModel:
        result = await session.execute(
            select(MeetingModel).where(MeetingModel.id == meeting_id).with_for_update()
        )
        meeting = result.scalar_one_or_none()
        if meeting is None:
            raise MeetingNotFoundError(meeting_id)
        if meeting.deleted:
            raise MeetingGoneError(meeting_id)
        return meeting

    @staticmethod
    def _require_host(meeting: MeetingModel, user_id: uuid.UUID) -> None:
        if meeting.host_id != user_id:
            raise NotMeetingHostError(meeting.id, user_id)

    @staticmethod
    async def _lock_participation(
        session: AsyncSession, meeting: MeetingModel, participation_id: uuid.UUID
    ) -> ParticipationModel:
        result = await session.execute(
            select(ParticipationModel)
            .where(ParticipationModel.id == participation_id)
            .with_for_update()
        )
        participation = result.scalar_one_or_none()
        # A participation of another meeting is indistinguishable from a missing one
        if participation is None or participation.meeting_id != meeting.id:
            raise ParticipationNotFoundError(meeting.id, participation_id)
        if participation.is_host:
            raise HostParticipationError(meeting.id)
        return participation

    # ── Join ────────────────────────────────────────────────────────────────

    async def request_join(
        self, meeting_id: uuid.UUID, user_id: uuid.UUID
    ) -> Participation:
        """Create a PENDING participation and tell the host.

        Checks, in order: meeting exists, not deleted, not yet held, requester
        is not the host, a seat is free, no earlier participation exists.

        Returns:
            The new PENDING Participation.
        """
        async with self._tracked("request_join", meeting_id=str(meeting_id), user_id=str(user_id)):
            async with unit_of_work(self._session_factory) as session:
                meeting = await self._lock_meeting(session, meeting_id)
                if as_utc(meeting.scheduled_at) < datetime.now(timezone.utc):
                    raise MeetingDeadlinePassedError(meeting_id)
                if meeting.host_id == user_id:
                    raise HostParticipationError(meeting_id)
                if meeting.current_participants >= meeting.max_participants:
                    raise CapacityExceededError(
                        meeting_id, meeting.max_participants, meeting.current_participants
                    )

                existing = await session.scalar(
                    select(ParticipationModel.id).where(
                        ParticipationModel.meeting_id == meeting_id,
                        ParticipationModel.user_id == user_id,
                    )
                )
                if existing is not None:
                    raise DuplicateParticipationError(meeting_id, user_id)

                participation = ParticipationModel(
                    meeting_id=meeting_id,
                    user_id=user_id,
                    status=ParticipationStatus.PENDING.value,
                    is_host=False,
                )
                session.add(participation)
                try:
                    await session.flush()
                except IntegrityError as exc:
                    raise DuplicateParticipationError(meeting_id, user_id) from exc

                await NotificationLedger(session, meeting.id, meeting.host_id).request_opened(
                    user_id
                )
                await session.flush()
                result = _model_to_participation(participation)
                occupancy = meeting.current_participants

        logger.info(
            "participation.requested",
            meeting_id=str(meeting_id),
            participation_id=str(result.id),
            user_id=str(user_id),
            occupancy=occupancy,
        )
        return result

    # ── Single Decisions ────────────────────────────────────────────────────

    async def _apply(
        self,
        transition: Transition,
        meeting_id: uuid.UUID,
        host_id: uuid.UUID,
        participation_id: uuid.UUID,
    ) -> Participation:
        fields = {
            "meeting_id": str(meeting_id),
            "host_id": str(host_id),
            "participation_id": str(participation_id),
        }
        async with self._tracked(transition.operation, **fields):
            async with unit_of_work(self._session_factory) as session:
                meeting = await self._lock_meeting(session, meeting_id)
                self._require_host(meeting, host_id)
                participation = await self._lock_participation(
                    session, meeting, participation_id
                )
                if participation.status != transition.source.value:
                    raise InvalidParticipationTransitionError(
                        participation.id, participation.status, transition.source.value
                    )
                # Capacity is re-read under the lock; the host may have edited it
                if (
                    transition.seat_delta > 0
                    and meeting.current_participants + transition.seat_delta
                    > meeting.max_participants
                ):
                    raise CapacityExceededError(
                        meeting_id,
                        meeting.max_participants,
                        meeting.current_participants,
                        transition.seat_delta,
                    )

                participation.status = transition.target.value
                meeting.current_participants += transition.seat_delta

                ledger = NotificationLedger(session, meeting.id, meeting.host_id)
                if transition.target is ParticipationStatus.PENDING:
                    await ledger.undone(participation.user_id, transition.source)
                else:
                    await ledger.decided([participation.user_id], transition.target)

                await session.flush()
                result = _model_to_participation(participation)
                occupancy = meeting.current_participants

        logger.info(
            transition.event,
            user_id=str(result.user_id),
            status=result.status.value,
            occupancy=occupancy,
            **fields,
        )
        return result

    async def approve(
        self, meeting_id: uuid.UUID, host_id: uuid.UUID, participation_id: uuid.UUID
    ) -> Participation:
        """PENDING -> ACCEPTED; takes one seat."""
        return await self._apply(APPROVE, meeting_id, host_id, participation_id)

    async def reject(
        self, meeting_id: uuid.UUID, host_id: uuid.UUID, participation_id: uuid.UUID
    ) -> Participation:
        """PENDING -> REJECTED."""
        return await self._apply(REJECT, meeting_id, host_id, participation_id)

    async def cancel_approval(
        self, meeting_id: uuid.UUID, host_id: uuid.UUID, participation_id: uuid.UUID
    ) -> Participation:
        """ACCEPTED -> PENDING; frees the seat and tells the requester."""
        return await self._apply(CANCEL_APPROVAL, meeting_id, host_id, participation_id)

    async def cancel_rejection(
        self, meeting_id: uuid.UUID, host_id: uuid.UUID, participation_id: uuid.UUID
    ) -> Participation:
        """REJECTED -> PENDING; silently reopens the request."""
        return await self._apply(CANCEL_REJECTION, meeting_id, host_id, participation_id)

    # ── Bulk Decision ───────────────────────────────────────────────────────

    async def approve_all(
        self, meeting_id: uuid.UUID, host_id: uuid.UUID
    ) -> list[Participation]:
        """Accept every PENDING participation, or none of them.

        The whole pending set is sized against the remaining seats before
        any row changes. With nothing pending this is a successful no-op.

        Returns:
            The participations that were accepted, oldest request first.

        Raises:
            CapacityExceededError: The pending set does not fit.
        """
        fields = {"meeting_id": str(meeting_id), "host_id": str(host_id)}
        async with self._tracked("approve_all", **fields):
            async with unit_of_work(self._session_factory) as session:
                meeting = await self._lock_meeting(session, meeting_id)
                self._require_host(meeting, host_id)

                result = await session.execute(
                    select(ParticipationModel)
                    .where(
                        ParticipationModel.meeting_id == meeting_id,
                        ParticipationModel.status == ParticipationStatus.PENDING.value,
                        ParticipationModel.is_host.is_(False),
                    )
                    .order_by(ParticipationModel.created_at, ParticipationModel.id)
                    .with_for_update()
                )
                pending = list(result.scalars().all())

                if pending:
                    remaining = meeting.max_participants - meeting.current_participants
                    if len(pending) > remaining:
                        raise CapacityExceededError(
                            meeting_id,
                            meeting.max_participants,
                            meeting.current_participants,
                            len(pending),
                        )

                    for participation in pending:
                        participation.status = ParticipationStatus.ACCEPTED.value
                    meeting.current_participants += len(pending)

                    await NotificationLedger(session, meeting.id, meeting.host_id).decided(
                        [p.user_id for p in pending], ParticipationStatus.ACCEPTED
                    )
                    await session.flush()

                accepted = [_model_to_participation(p) for p in pending]
                occupancy = meeting.current_participants

        logger.info(
            "participation.all_approved",
            accepted_count=len(accepted),
            occupancy=occupancy,
            **fields,
        )
        return accepted

    # ── Reads ───────────────────────────────────────────────────────────────

    async def is_participant(self, user_id: uuid.UUID, meeting_id: uuid.UUID) -> bool:
        """True only if ``user_id`` holds an ACCEPTED participation (host included).

        A deleted meeting has no participants.
        """
        async for session in self._session_factory():
            found = await session.scalar(
                select(func.count())
                .select_from(ParticipationModel)
                .join(MeetingModel, MeetingModel.id == ParticipationModel.meeting_id)
                .where(
                    ParticipationModel.meeting_id == meeting_id,
                    ParticipationModel.user_id == user_id,
                    ParticipationModel.status == ParticipationStatus.ACCEPTED.value,
                    MeetingModel.deleted.is_(False),
                )
            )
            return bool(found)

    async def list_applicants(
        self, meeting_id: uuid.UUID, host_id: uuid.UUID
    ) -> list[Participation]:
        """Every applicant of a meeting in any status, newest first. Host only."""
        async for session in self._session_factory():
            meeting = await session.get(MeetingModel, meeting_id)
            if meeting is None:
                raise MeetingNotFoundError(meeting_id)
            if meeting.deleted:
                raise MeetingGoneError(meeting_id)
            self._require_host(meeting, host_id)

            result = await session.execute(
                select(ParticipationModel)
                .where(
                    ParticipationModel.meeting_id == meeting_id,
                    ParticipationModel.is_host.is_(False),
                )
                .order_by(ParticipationModel.created_at.desc(), ParticipationModel.id)
            )
            return [_model_to_participation(p) for p in result.scalars().all()]

    async def list_participants(self, meeting_id: uuid.UUID) -> list[Participation]:
        """Accepted members of a meeting, host first, then by request time."""
        async for session in self._session_factory():
            meeting = await session.get(MeetingModel, meeting_id)
            if meeting is None:
                raise MeetingNotFoundError(meeting_id)
            if meeting.deleted:
                raise MeetingGoneError(meeting_id)

            result = await session.execute(
                select(ParticipationModel)
                .where(
                    ParticipationModel.meeting_id == meeting_id,
                    ParticipationModel.status == ParticipationStatus.ACCEPTED.value,
                )
                .order_by(
                    ParticipationModel.is_host.desc(),
                    ParticipationModel.created_at,
                    ParticipationModel.id,
                )
            )
            return [_model_to_participation(p) for p in result.scalars().all()]
