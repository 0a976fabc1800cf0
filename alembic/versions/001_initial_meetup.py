"""Create meetings, participations and notifications tables.

Revision ID: 001_initial_meetup
Revises:
Create Date: 2026-10-17

Creates the three stores of the participation engine:
- meetings: Capacity-limited meetings with a denormalized occupancy counter
- participations: One membership row per (user, meeting), host row flagged
- notifications: Per-receiver event feed written by the engine

No foreign key constraints (application-level referential integrity via
the repository and the participation engine). Primary keys are generated
client side.
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001_initial_meetup"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ── meetings table ───────────────────────────────────────────────────

    op.create_table(
        "meetings",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("host_id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), server_default=sa.text("''"), nullable=False),
        sa.Column("category", sa.String(100), nullable=True),
        sa.Column("address", sa.String(500), nullable=False),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("image_url", sa.String(1000), nullable=True),
        sa.Column("max_participants", sa.Integer(), nullable=False),
        sa.Column(
            "current_participants",
            sa.Integer(),
            server_default=sa.text("1"),
            nullable=False,
        ),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("deleted", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.CheckConstraint(
            "current_participants <= max_participants",
            name="ck_meetings_occupancy_within_capacity",
        ),
    )
    op.create_index("ix_meetings_host_id", "meetings", ["host_id"])
    op.create_index("ix_meetings_listing", "meetings", ["deleted", "scheduled_at"])

    # ── participations table ─────────────────────────────────────────────

    op.create_table(
        "participations",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("meeting_id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("user_id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("is_host", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.UniqueConstraint("user_id", "meeting_id", name="uq_participation_user_meeting"),
    )
    op.create_index("ix_participations_user_id", "participations", ["user_id"])
    op.create_index(
        "ix_participations_meeting_status", "participations", ["meeting_id", "status"]
    )

    # ── notifications table ──────────────────────────────────────────────

    op.create_table(
        "notifications",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("receiver_id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("sender_id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("meeting_id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("type", sa.String(40), nullable=False),
        sa.Column("is_read", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    )
    op.create_index(
        "ix_notifications_receiver_feed",
        "notifications",
        ["receiver_id", "is_read", "created_at"],
    )
    op.create_index(
        "ix_notifications_thread",
        "notifications",
        ["meeting_id", "receiver_id", "sender_id", "type"],
    )


def downgrade() -> None:
    op.drop_index("ix_notifications_thread", table_name="notifications")
    op.drop_index("ix_notifications_receiver_feed", table_name="notifications")
    op.drop_table("notifications")

    op.drop_index("ix_participations_meeting_status", table_name="participations")
    op.drop_index("ix_participations_user_id", table_name="participations")
    op.drop_table("participations")

    op.drop_index("ix_meetings_listing", table_name="meetings")
    op.drop_index("ix_meetings_host_id", table_name="meetings")
    op.drop_table("meetings")
