"""Meeting query engine -- read-only listing, search and "my meetings".

Every read filters out soft-deleted meetings and, unless the caller asks to
include finished meetings, those whose ``scheduled_at`` has passed. Results
are offset-paginated into Page[...] with a total count.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

import structlog
from sqlalchemy import Select, and_, func, or_, select

from src.meetup.core.database import SessionFactory
from src.meetup.meetings.models import MeetingModel, ParticipationModel
from src.meetup.meetings.schemas import (
    MeetingItem,
    MeetingPageOptions,
    MeetingSearchOptions,
    MeetingSort,
    MyMeetingItem,
    MyMeetingPageOptions,
    MyMeetingStatus,
    MyMeetingView,
    Page,
    PageMeta,
    ParticipationStatus,
    as_utc,
)

logger = structlog.get_logger(__name__)

_SORT_ORDER = {
    MeetingSort.NEW: (MeetingModel.created_at.desc(),),
    MeetingSort.UPDATE: (MeetingModel.updated_at.desc(),),
    MeetingSort.DEADLINE: (MeetingModel.scheduled_at.asc(),),
}


def _model_to_item(model: MeetingModel) -> MeetingItem:
    """Convert MeetingModel to MeetingItem schema."""
    return MeetingItem(
        id=model.id,
        title=model.title,
        category=model.category,
        image_url=model.image_url,
        address=model.address,
        max_participants=model.max_participants,
        current_participants=model.current_participants,
        scheduled_at=model.scheduled_at,
    )


def _escape_like(keyword: str) -> str:
    return keyword.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class MeetingQueryEngine:
    """Read-only views over the meeting store.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def _page(
        self, stmt: Select, page: int, limit: int, offset: int
    ) -> tuple[list, int]:
        async for session in self._session_factory():
            total_count = await session.scalar(
                select(func.count()).select_from(stmt.order_by(None).subquery())
            )
            result = await session.execute(stmt.offset(offset).limit(limit))
            return list(result.all()), total_count or 0

    async def list_meetings(self, options: MeetingPageOptions) -> Page[MeetingItem]:
        """List live meetings with an optional category filter."""
        now = datetime.now(timezone.utc)
        stmt = select(MeetingModel).where(MeetingModel.deleted.is_(False))
        if not options.include_finished:
            stmt = stmt.where(MeetingModel.scheduled_at >= now)
        if options.category:
            stmt = stmt.where(MeetingModel.category == options.category)
        stmt = stmt.order_by(*_SORT_ORDER[options.sort], MeetingModel.id)

        rows, total_count = await self._page(
            stmt, options.page, options.limit, options.offset
        )
        logger.debug(
            "meetings.listed",
            sort=options.sort.value,
            page=options.page,
            total_count=total_count,
        )
        return Page[MeetingItem](
            data=[_model_to_item(row[0]) for row in rows],
            meta=PageMeta.build(total_count, options.page, options.limit),
        )

    async def search_meetings(self, options: MeetingSearchOptions) -> Page[MeetingItem]:
        """Case-insensitive keyword match on title, description and category.

        Upcoming meetings only unless ``include_finished``; soonest first.
        """
        pattern = f"%{_escape_like(options.keyword)}%"
        stmt = select(MeetingModel).where(
            MeetingModel.deleted.is_(False),
            or_(
                MeetingModel.title.ilike(pattern, escape="\\"),
                MeetingModel.description.ilike(pattern, escape="\\"),
                MeetingModel.category.ilike(pattern, escape="\\"),
            ),
        )
        if not options.include_finished:
            stmt = stmt.where(MeetingModel.scheduled_at >= datetime.now(timezone.utc))
        stmt = stmt.order_by(MeetingModel.scheduled_at.asc(), MeetingModel.id)

        rows, total_count = await self._page(
            stmt, options.page, options.limit, options.offset
        )
        return Page[MeetingItem](
            data=[_model_to_item(row[0]) for row in rows],
            meta=PageMeta.build(total_count, options.page, options.limit),
        )

    async def list_my_meetings(
        self, user_id: uuid.UUID, options: MyMeetingPageOptions
    ) -> Page[MyMeetingItem]:
        """Meetings the user hosts or applied to, newest meeting date first.

        ``status`` narrows by the caller's own participation: ``accepted``
        means accepted and upcoming, ``completed`` accepted and past.
        Finished meetings are included in every other view.
        """
        now = datetime.now(timezone.utc)
        stmt = (
            select(MeetingModel, ParticipationModel.status, ParticipationModel.is_host)
            .join(
                ParticipationModel,
                and_(
                    ParticipationModel.meeting_id == MeetingModel.id,
                    ParticipationModel.user_id == user_id,
                ),
            )
            .where(MeetingModel.deleted.is_(False))
        )

        if options.view is MyMeetingView.HOSTED:
            stmt = stmt.where(ParticipationModel.is_host.is_(True))
        elif options.view is MyMeetingView.JOINED:
            stmt = stmt.where(ParticipationModel.is_host.is_(False))

        if options.status is MyMeetingStatus.PENDING:
            stmt = stmt.where(ParticipationModel.status == ParticipationStatus.PENDING.value)
        elif options.status is MyMeetingStatus.ACCEPTED:
            stmt = stmt.where(
                ParticipationModel.status == ParticipationStatus.ACCEPTED.value,
                MeetingModel.scheduled_at >= now,
            )
        elif options.status is MyMeetingStatus.COMPLETED:
            stmt = stmt.where(
                ParticipationModel.status == ParticipationStatus.ACCEPTED.value,
                MeetingModel.scheduled_at < now,
            )

        stmt = stmt.order_by(MeetingModel.scheduled_at.desc(), MeetingModel.id)

        rows, total_count = await self._page(
            stmt, options.page, options.limit, options.offset
        )
        items = [
            MyMeetingItem(
                **_model_to_item(model).model_dump(),
                status=ParticipationStatus(status),
                is_host=is_host,
                is_completed=as_utc(model.scheduled_at) < now,
            )
            for model, status, is_host in rows
        ]
        return Page[MyMeetingItem](
            data=items,
            meta=PageMeta.build(total_count, options.page, options.limit),
        )
