"""Tests for the read-only meeting query engine."""

from __future__ import annotations

import uuid

import pytest
from pydantic import ValidationError

from src.meetup.meetings.schemas import (
    MeetingPageOptions,
    MeetingSearchOptions,
    MeetingSort,
    MeetingUpdate,
    MyMeetingPageOptions,
    MyMeetingStatus,
    MyMeetingView,
    PageMeta,
    PageOptions,
    ParticipationStatus,
)


# ── Pagination ───────────────────────────────────────────────────────────────


class TestPagination:
    def test_total_pages_rounds_up(self):
        assert PageMeta.build(total_count=21, page=1, limit=10).total_pages == 3
        assert PageMeta.build(total_count=20, page=1, limit=10).total_pages == 2
        assert PageMeta.build(total_count=0, page=1, limit=10).total_pages == 0

    def test_offset(self):
        assert PageOptions(page=3, limit=10).offset == 20

    def test_limit_is_bounded(self):
        with pytest.raises(ValidationError):
            PageOptions(limit=101)
        with pytest.raises(ValidationError):
            PageOptions(page=0)

    def test_blank_keyword_is_rejected(self):
        with pytest.raises(ValidationError):
            MeetingSearchOptions(keyword="   ")


# ── Public List ──────────────────────────────────────────────────────────────


class TestListMeetings:
    async def test_hides_deleted_and_finished(self, queries, meetings, open_meeting, host_id):
        upcoming = await open_meeting(title="Upcoming")
        finished = await open_meeting(title="Finished", days_ahead=-1)
        deleted = await open_meeting(title="Deleted")
        await meetings.soft_delete_meeting(deleted.id, host_id)

        page = await queries.list_meetings(MeetingPageOptions())
        assert [m.id for m in page.data] == [upcoming.id]
        assert page.meta.total_count == 1

        with_finished = await queries.list_meetings(MeetingPageOptions(include_finished=True))
        assert {m.id for m in with_finished.data} == {upcoming.id, finished.id}

    async def test_sort_policies(self, queries, meetings, open_meeting, host_id):
        later = await open_meeting(title="Later", days_ahead=10)
        sooner = await open_meeting(title="Sooner", days_ahead=2)

        newest_first = await queries.list_meetings(MeetingPageOptions(sort=MeetingSort.NEW))
        assert [m.id for m in newest_first.data] == [sooner.id, later.id]

        deadline = await queries.list_meetings(MeetingPageOptions(sort=MeetingSort.DEADLINE))
        assert [m.id for m in deadline.data] == [sooner.id, later.id]

        await meetings.update_meeting(later.id, host_id, MeetingUpdate(title="Later, edited"))
        recently_updated = await queries.list_meetings(
            MeetingPageOptions(sort=MeetingSort.UPDATE)
        )
        assert recently_updated.data[0].id == later.id

    async def test_category_filter(self, queries, open_meeting):
        hiking = await open_meeting(category="hiking")
        await open_meeting(category="books")

        page = await queries.list_meetings(MeetingPageOptions(category="hiking"))

        assert [m.id for m in page.data] == [hiking.id]

    async def test_pages(self, queries, open_meeting):
        for i in range(5):
            await open_meeting(title=f"Meeting {i}")

        page = await queries.list_meetings(MeetingPageOptions(page=2, limit=2))

        assert len(page.data) == 2
        assert page.meta.total_count == 5
        assert page.meta.total_pages == 3
        assert page.meta.page == 2


# ── Search ───────────────────────────────────────────────────────────────────


class TestSearchMeetings:
    async def test_matches_title_description_and_category(self, queries, open_meeting):
        by_title = await open_meeting(title="Weekend HIKING trip", days_ahead=3)
        by_description = await open_meeting(
            title="Mountain day", description="light hiking and lunch", days_ahead=1
        )
        by_category = await open_meeting(title="Trail", category="Hiking", days_ahead=2)
        await open_meeting(title="Chess evening")

        page = await queries.search_meetings(MeetingSearchOptions(keyword="hiking"))

        assert [m.id for m in page.data] == [by_description.id, by_category.id, by_title.id]

    async def test_excludes_finished_unless_asked(self, queries, open_meeting):
        await open_meeting(title="Old picnic", days_ahead=-3)

        page = await queries.search_meetings(MeetingSearchOptions(keyword="picnic"))
        assert page.data == []

        page = await queries.search_meetings(
            MeetingSearchOptions(keyword="picnic", include_finished=True)
        )
        assert len(page.data) == 1

    async def test_like_wildcards_are_literal(self, queries, open_meeting):
        await open_meeting(title="Anything goes")

        page = await queries.search_meetings(MeetingSearchOptions(keyword="%"))

        assert page.data == []


# ── My Meetings ──────────────────────────────────────────────────────────────


class TestMyMeetings:
    async def test_views_and_statuses(self, queries, engine, open_meeting, host_id):
        me = uuid.uuid4()
        hosted = await open_meeting(title="Mine", host=me, days_ahead=5)
        joined = await open_meeting(title="Joined", days_ahead=4)
        pending = await open_meeting(title="Pending", days_ahead=3)

        p = await engine.request_join(joined.id, me)
        await engine.approve(joined.id, host_id, p.id)
        await engine.request_join(pending.id, me)

        everything = await queries.list_my_meetings(me, MyMeetingPageOptions())
        assert [m.id for m in everything.data] == [hosted.id, joined.id, pending.id]
        by_id = {m.id: m for m in everything.data}
        assert by_id[hosted.id].is_host is True
        assert by_id[hosted.id].status is ParticipationStatus.ACCEPTED
        assert by_id[joined.id].is_host is False
        assert by_id[pending.id].status is ParticipationStatus.PENDING

        only_hosted = await queries.list_my_meetings(
            me, MyMeetingPageOptions(view=MyMeetingView.HOSTED)
        )
        assert [m.id for m in only_hosted.data] == [hosted.id]

        only_joined = await queries.list_my_meetings(
            me, MyMeetingPageOptions(view=MyMeetingView.JOINED)
        )
        assert [m.id for m in only_joined.data] == [joined.id, pending.id]

        only_pending = await queries.list_my_meetings(
            me, MyMeetingPageOptions(status=MyMeetingStatus.PENDING)
        )
        assert [m.id for m in only_pending.data] == [pending.id]

    async def test_accepted_versus_completed(self, queries, engine, open_meeting, host_id):
        me = uuid.uuid4()
        upcoming = await open_meeting(title="Upcoming", host=me, days_ahead=2)
        past = await open_meeting(title="Past", host=me, days_ahead=-2)

        accepted = await queries.list_my_meetings(
            me, MyMeetingPageOptions(status=MyMeetingStatus.ACCEPTED)
        )
        assert [m.id for m in accepted.data] == [upcoming.id]
        assert accepted.data[0].is_completed is False

        completed = await queries.list_my_meetings(
            me, MyMeetingPageOptions(status=MyMeetingStatus.COMPLETED)
        )
        assert [m.id for m in completed.data] == [past.id]
        assert completed.data[0].is_completed is True

    async def test_deleted_meetings_are_hidden(self, queries, meetings, open_meeting):
        me = uuid.uuid4()
        created = await open_meeting(host=me)
        await meetings.soft_delete_meeting(created.id, me)

        page = await queries.list_my_meetings(me, MyMeetingPageOptions())

        assert page.data == []
