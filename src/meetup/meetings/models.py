"""Meeting persistence models -- meetings, participations, notifications.

Three SQLAlchemy models on the shared declarative Base:
- MeetingModel: Capacity-limited meeting with a denormalized occupancy counter
- ParticipationModel: One membership row per (user, meeting), never deleted
- NotificationModel: Append-only per-receiver event feed

No foreign key constraints (application-level referential integrity via
the repository and the participation engine). Primary keys are generated
client side so the same models run on PostgreSQL and SQLite.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from src.meetup.core.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MeetingModel(Base):
    """A meeting hosted by one user with a participant cap.

    ``current_participants`` always equals the number of ACCEPTED
    participations (host included) and is only changed inside a unit of
    work that holds the row lock.
    """

    __tablename__ = "meetings"
    __table_args__ = (
        Index("ix_meetings_listing", "deleted", "scheduled_at"),
        CheckConstraint(
            "current_participants <= max_participants",
            name="ck_meetings_occupancy_within_capacity",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    host_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", server_default=text("''"))
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    address: Mapped[str] = mapped_column(String(500), nullable=False)
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    image_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    max_participants: Mapped[int] = mapped_column(Integer, nullable=False)
    current_participants: Mapped[int] = mapped_column(
        Integer, default=1, server_default=text("1"), nullable=False
    )
    scheduled_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    deleted: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=text("false"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )


class ParticipationModel(Base):
    """Membership of one user in one meeting.

    Status moves between pending, accepted and rejected; rows are never
    deleted. The host's own row is ACCEPTED with ``is_host`` set and is
    excluded from every applicant-facing read.
    """

    __tablename__ = "participations"
    __table_args__ = (
        UniqueConstraint("user_id", "meeting_id", name="uq_participation_user_meeting"),
        Index("ix_participations_meeting_status", "meeting_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    meeting_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), nullable=False, index=True
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    is_host: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=text("false"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )


class NotificationModel(Base):
    """A fact delivered to ``receiver_id`` about ``meeting_id``."""

    __tablename__ = "notifications"
    __table_args__ = (
        Index("ix_notifications_receiver_feed", "receiver_id", "is_read", "created_at"),
        Index("ix_notifications_thread", "meeting_id", "receiver_id", "sender_id", "type"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    receiver_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    sender_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    meeting_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    type: Mapped[str] = mapped_column(String(40), nullable=False)
    is_read: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=text("false"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )
