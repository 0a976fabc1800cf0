"""Notification writes for participation transitions, and the receiver feed.

NotificationLedger is the only writer of the notifications table. It is bound
to the session of the unit of work performing a transition, so its rows
commit or roll back together with the participation and meeting changes.

Per request (one requester, one meeting) the ledger keeps:
- exactly one PARTICIPATION_REQUESTED row to the host, read while a decision
  stands and unread while the request is open
- at most one live decision row (ACCEPTED, REJECTED or CANCELLED) to the
  requester; a new decision or an undo retracts the previous one first

NotificationRepository is the read side used by the notification feed.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable

import structlog
from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.meetup.core.database import SessionFactory
from src.meetup.meetings.models import MeetingModel, NotificationModel
from src.meetup.meetings.schemas import (
    DECISION_NOTIFICATIONS,
    Notification,
    NotificationItem,
    NotificationPageOptions,
    NotificationType,
    Page,
    PageMeta,
    ParticipationStatus,
)

logger = structlog.get_logger(__name__)

_DECISION_FOR_STATUS: dict[ParticipationStatus, NotificationType] = {
    ParticipationStatus.ACCEPTED: NotificationType.PARTICIPATION_ACCEPTED,
    ParticipationStatus.REJECTED: NotificationType.PARTICIPATION_REJECTED,
}


def _model_to_notification(model: NotificationModel) -> Notification:
    """Convert NotificationModel to Notification schema."""
    return Notification(
        id=model.id,
        receiver_id=model.receiver_id,
        sender_id=model.sender_id,
        meeting_id=model.meeting_id,
        type=NotificationType(model.type),
        is_read=model.is_read,
        created_at=model.created_at,
    )


# ── Ledger (write side) ─────────────────────────────────────────────────────


class NotificationLedger:
    """Notification side effects of one meeting's participation transitions.

    Args:
        session: Session of the enclosing unit of work.
        meeting_id: Meeting the transitions belong to.
        host_id: Host of that meeting; sender of decisions, receiver of requests.
    """

    def __init__(
        self, session: AsyncSession, meeting_id: uuid.UUID, host_id: uuid.UUID
    ) -> None:
        self._session = session
        self._meeting_id = meeting_id
        self._host_id = host_id

    def _add(
        self,
        receiver_id: uuid.UUID,
        sender_id: uuid.UUID,
        notification_type: NotificationType,
    ) -> None:
        self._session.add(
            NotificationModel(
                meeting_id=self._meeting_id,
                receiver_id=receiver_id,
                sender_id=sender_id,
                type=notification_type.value,
                is_read=False,
            )
        )

    async def _set_request_read(
        self, requester_ids: list[uuid.UUID], is_read: bool
    ) -> None:
        await self._session.execute(
            update(NotificationModel)
            .where(
                NotificationModel.meeting_id == self._meeting_id,
                NotificationModel.receiver_id == self._host_id,
                NotificationModel.sender_id.in_(requester_ids),
                NotificationModel.type == NotificationType.PARTICIPATION_REQUESTED.value,
            )
            .values(is_read=is_read)
        )

    async def _retract_decisions(self, requester_ids: list[uuid.UUID]) -> None:
        await self._session.execute(
            delete(NotificationModel).where(
                NotificationModel.meeting_id == self._meeting_id,
                NotificationModel.receiver_id.in_(requester_ids),
                NotificationModel.sender_id == self._host_id,
                NotificationModel.type.in_([t.value for t in DECISION_NOTIFICATIONS]),
            )
        )

    async def request_opened(self, requester_id: uuid.UUID) -> None:
        """A join request was created: tell the host."""
        self._add(self._host_id, requester_id, NotificationType.PARTICIPATION_REQUESTED)

    async def decided(
        self, requester_ids: Iterable[uuid.UUID], decision: ParticipationStatus
    ) -> None:
        """The host accepted or rejected open requests.

        Closes each request notification and replaces any earlier decision
        the requester still holds with the new one.
        """
        notification_type = _DECISION_FOR_STATUS[decision]
        requester_ids = list(requester_ids)
        if not requester_ids:
            return

        await self._set_request_read(requester_ids, True)
        await self._retract_decisions(requester_ids)
        for requester_id in requester_ids:
            self._add(requester_id, self._host_id, notification_type)

    async def undone(
        self, requester_id: uuid.UUID, previous: ParticipationStatus
    ) -> None:
        """The host withdrew a decision; the request is open again.

        Withdrawing an acceptance tells the requester with
        PARTICIPATION_CANCELLED. Withdrawing a rejection is silent.
        """
        await self._retract_decisions([requester_id])
        await self._set_request_read([requester_id], False)
        if previous is ParticipationStatus.ACCEPTED:
            self._add(requester_id, self._host_id, NotificationType.PARTICIPATION_CANCELLED)

    async def meeting_deleted(self, receiver_ids: Iterable[uuid.UUID]) -> None:
        """The host deleted the meeting: tell every accepted member."""
        for receiver_id in receiver_ids:
            if receiver_id != self._host_id:
                self._add(receiver_id, self._host_id, NotificationType.MEETING_DELETED)


# ── Repository (read side) ──────────────────────────────────────────────────


class NotificationRepository:
    """Read access to a receiver's notification feed.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def list_notifications(
        self, user_id: uuid.UUID, options: NotificationPageOptions
    ) -> Page[NotificationItem]:
        """List a user's notifications, unread first, then newest first.

        Args:
            user_id: Receiver UUID.
            options: Page and limit.

        Returns:
            Page of NotificationItem joined with the meeting title.
        """
        async for session in self._session_factory():
            total_count = await session.scalar(
                select(func.count())
                .select_from(NotificationModel)
                .where(NotificationModel.receiver_id == user_id)
            )
            stmt = (
                select(NotificationModel, MeetingModel.title)
                .join(MeetingModel, MeetingModel.id == NotificationModel.meeting_id)
                .where(NotificationModel.receiver_id == user_id)
                .order_by(
                    NotificationModel.is_read.asc(),
                    NotificationModel.created_at.desc(),
                    NotificationModel.id,
                )
                .offset(options.offset)
                .limit(options.limit)
            )
            result = await session.execute(stmt)
            items = [
                NotificationItem(
                    **_model_to_notification(model).model_dump(),
                    meeting_title=title,
                )
                for model, title in result.all()
            ]
            return Page[NotificationItem](
                data=items,
                meta=PageMeta.build(total_count or 0, options.page, options.limit),
            )

    async def list_for_meeting(
        self, meeting_id: uuid.UUID, receiver_id: uuid.UUID | None = None
    ) -> list[Notification]:
        """All notifications about a meeting, oldest first.

        Used by operators and tests to audit the notification trail of a
        meeting; optionally restricted to one receiver.
        """
        async for session in self._session_factory():
            stmt = select(NotificationModel).where(
                NotificationModel.meeting_id == meeting_id
            )
            if receiver_id is not None:
                stmt = stmt.where(NotificationModel.receiver_id == receiver_id)
            stmt = stmt.order_by(NotificationModel.created_at, NotificationModel.id)
            result = await session.execute(stmt)
            return [_model_to_notification(m) for m in result.scalars().all()]
