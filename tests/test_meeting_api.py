"""Integration tests for the meeting, participation and notification endpoints.

Runs the v1 routers against the real services on a per-test SQLite store,
with httpx AsyncClient over ASGITransport. Callers authenticate with real
access tokens; the geocoder has no API key, so coordinates stay empty.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from src.meetup.api.errors import install_error_handlers
from src.meetup.api.v1.router import router as v1_router
from src.meetup.core.security import create_access_token
from src.meetup.meetings.schemas import GeocodedLocation, MeetingCreate
from src.meetup.services.geocoding import KakaoGeocoder


def _make_app() -> FastAPI:
    """Create a minimal FastAPI app with the v1 routers and error handlers."""
    app = FastAPI()
    install_error_handlers(app)
    app.include_router(v1_router, prefix="/api/v1")
    return app


def _auth(user_id: uuid.UUID) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


def _meeting_body(**overrides) -> dict:
    body = {
        "title": "Board game night",
        "description": "Bring snacks",
        "category": "games",
        "address": "Seoul Mapo-gu Yanghwa-ro 45",
        "max_participants": 3,
        "scheduled_at": (datetime.now(timezone.utc) + timedelta(days=3)).isoformat(),
    }
    body.update(overrides)
    return body


@pytest_asyncio.fixture
async def client(meetings, engine, queries, notifications):
    app = _make_app()
    app.state.meeting_repository = meetings
    app.state.participation_engine = engine
    app.state.query_engine = queries
    app.state.notification_repository = notifications
    app.state.geocoder = KakaoGeocoder(api_key="")

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


# ── Meeting Lifecycle ────────────────────────────────────────────────────────


async def test_create_and_get_meeting(client, host_id):
    response = await client.post("/api/v1/meetings", json=_meeting_body(), headers=_auth(host_id))

    assert response.status_code == 201
    created = response.json()
    assert created["host_id"] == str(host_id)
    assert created["current_participants"] == 1
    assert created["latitude"] is None

    detail = await client.get(f"/api/v1/meetings/{created['id']}")
    assert detail.status_code == 200
    assert detail.json()["title"] == "Board game night"


async def test_create_requires_token(client):
    response = await client.post("/api/v1/meetings", json=_meeting_body())

    assert response.status_code == 401


async def test_create_rejects_invalid_token(client):
    response = await client.post(
        "/api/v1/meetings",
        json=_meeting_body(),
        headers={"Authorization": "Bearer not-a-token"},
    )

    assert response.status_code == 401


async def test_create_validates_body(client, host_id):
    response = await client.post(
        "/api/v1/meetings", json=_meeting_body(max_participants=0), headers=_auth(host_id)
    )

    assert response.status_code == 422


async def test_unknown_meeting_is_404(client):
    response = await client.get(f"/api/v1/meetings/{uuid.uuid4()}")

    assert response.status_code == 404
    assert response.json()["kind"] == "not_found"


async def test_patch_by_non_host_is_403(client, host_id):
    created = (
        await client.post("/api/v1/meetings", json=_meeting_body(), headers=_auth(host_id))
    ).json()

    response = await client.patch(
        f"/api/v1/meetings/{created['id']}",
        json={"title": "Hijacked"},
        headers=_auth(uuid.uuid4()),
    )

    assert response.status_code == 403
    assert response.json()["kind"] == "forbidden"


async def test_patch_updates_fields(client, host_id):
    created = (
        await client.post("/api/v1/meetings", json=_meeting_body(), headers=_auth(host_id))
    ).json()

    response = await client.patch(
        f"/api/v1/meetings/{created['id']}",
        json={"title": "Strategy games", "address": "Seoul Gangnam-gu Teheran-ro 1"},
        headers=_auth(host_id),
    )

    assert response.status_code == 200
    assert response.json()["title"] == "Strategy games"
    assert response.json()["address"] == "Seoul Gangnam-gu Teheran-ro 1"


async def test_patch_with_unchanged_address_keeps_coordinates(
    client, meetings, host_id
):
    data = MeetingCreate(
        title="Board game night",
        address="Seoul Mapo-gu Yanghwa-ro 45",
        max_participants=3,
        scheduled_at=datetime.now(timezone.utc) + timedelta(days=3),
    )
    location = GeocodedLocation(address=data.address, latitude=37.55, longitude=126.92)
    created = await meetings.create_meeting(host_id, data, location)

    response = await client.patch(
        f"/api/v1/meetings/{created.id}",
        json={"title": "Board games", "address": "Seoul Mapo-gu Yanghwa-ro 45"},
        headers=_auth(host_id),
    )

    assert response.status_code == 200
    assert response.json()["latitude"] == 37.55
    assert response.json()["longitude"] == 126.92


async def test_delete_then_get_is_410(client, host_id):
    created = (
        await client.post("/api/v1/meetings", json=_meeting_body(), headers=_auth(host_id))
    ).json()

    response = await client.delete(f"/api/v1/meetings/{created['id']}", headers=_auth(host_id))
    assert response.status_code == 204

    detail = await client.get(f"/api/v1/meetings/{created['id']}")
    assert detail.status_code == 410
    assert detail.json()["kind"] == "gone"


# ── Participation Flow ───────────────────────────────────────────────────────


async def test_join_approve_and_membership(client, host_id):
    guest = uuid.uuid4()
    meeting = (
        await client.post("/api/v1/meetings", json=_meeting_body(), headers=_auth(host_id))
    ).json()
    base = f"/api/v1/meetings/{meeting['id']}"

    joined = await client.post(f"{base}/participations", headers=_auth(guest))
    assert joined.status_code == 201
    assert joined.json()["status"] == "PENDING"

    duplicate = await client.post(f"{base}/participations", headers=_auth(guest))
    assert duplicate.status_code == 409
    assert duplicate.json()["kind"] == "conflict"

    membership = await client.get(f"{base}/membership", headers=_auth(guest))
    assert membership.json()["is_participant"] is False

    approved = await client.put(
        f"{base}/participations/{joined.json()['id']}/approve", headers=_auth(host_id)
    )
    assert approved.status_code == 200
    assert approved.json()["status"] == "ACCEPTED"

    membership = await client.get(f"{base}/membership", headers=_auth(guest))
    assert membership.json()["is_participant"] is True

    participants = await client.get(f"{base}/participants")
    assert [p["user_id"] for p in participants.json()] == [str(host_id), str(guest)]


async def test_host_cannot_join_own_meeting(client, host_id):
    meeting = (
        await client.post("/api/v1/meetings", json=_meeting_body(), headers=_auth(host_id))
    ).json()

    response = await client.post(
        f"/api/v1/meetings/{meeting['id']}/participations", headers=_auth(host_id)
    )

    assert response.status_code == 400
    assert response.json()["kind"] == "rejected_precondition"


async def test_join_past_meeting_is_400(client, host_id, open_meeting):
    meeting = await open_meeting(days_ahead=-1)

    response = await client.post(
        f"/api/v1/meetings/{meeting.id}/participations", headers=_auth(uuid.uuid4())
    )

    assert response.status_code == 400
    assert response.json()["kind"] == "past_deadline"


async def test_decisions_by_non_host_are_403(client, host_id):
    guest = uuid.uuid4()
    meeting = (
        await client.post("/api/v1/meetings", json=_meeting_body(), headers=_auth(host_id))
    ).json()
    base = f"/api/v1/meetings/{meeting['id']}"
    joined = (await client.post(f"{base}/participations", headers=_auth(guest))).json()

    for action in ("approve", "reject", "cancel-approval", "cancel-rejection"):
        response = await client.put(
            f"{base}/participations/{joined['id']}/{action}", headers=_auth(guest)
        )
        assert response.status_code == 403

    listing = await client.get(f"{base}/participations", headers=_auth(guest))
    assert listing.status_code == 403


async def test_reject_and_undo(client, host_id):
    guest = uuid.uuid4()
    meeting = (
        await client.post("/api/v1/meetings", json=_meeting_body(), headers=_auth(host_id))
    ).json()
    base = f"/api/v1/meetings/{meeting['id']}"
    joined = (await client.post(f"{base}/participations", headers=_auth(guest))).json()

    rejected = await client.put(
        f"{base}/participations/{joined['id']}/reject", headers=_auth(host_id)
    )
    assert rejected.json()["status"] == "REJECTED"

    again = await client.put(
        f"{base}/participations/{joined['id']}/reject", headers=_auth(host_id)
    )
    assert again.status_code == 400

    undone = await client.put(
        f"{base}/participations/{joined['id']}/cancel-rejection", headers=_auth(host_id)
    )
    assert undone.json()["status"] == "PENDING"


async def test_approve_all_is_all_or_nothing(client, host_id):
    meeting = (
        await client.post(
            "/api/v1/meetings", json=_meeting_body(max_participants=2), headers=_auth(host_id)
        )
    ).json()
    base = f"/api/v1/meetings/{meeting['id']}"
    for _ in range(2):
        await client.post(f"{base}/participations", headers=_auth(uuid.uuid4()))

    response = await client.put(f"{base}/participations/approve-all", headers=_auth(host_id))
    assert response.status_code == 400

    applicants = await client.get(f"{base}/participations", headers=_auth(host_id))
    assert {p["status"] for p in applicants.json()} == {"PENDING"}

    detail = await client.get(base)
    assert detail.json()["current_participants"] == 1


async def test_approve_all_accepts_everyone(client, host_id):
    meeting = (
        await client.post("/api/v1/meetings", json=_meeting_body(), headers=_auth(host_id))
    ).json()
    base = f"/api/v1/meetings/{meeting['id']}"
    for _ in range(2):
        await client.post(f"{base}/participations", headers=_auth(uuid.uuid4()))

    response = await client.put(f"{base}/participations/approve-all", headers=_auth(host_id))

    assert response.status_code == 200
    assert response.json()["accepted_count"] == 2
    detail = await client.get(base)
    assert detail.json()["current_participants"] == 3


# ── Listing & Feed ───────────────────────────────────────────────────────────


async def test_list_search_and_my_meetings(client, host_id):
    await client.post("/api/v1/meetings", json=_meeting_body(), headers=_auth(host_id))
    await client.post(
        "/api/v1/meetings",
        json=_meeting_body(title="Morning run", category="sports"),
        headers=_auth(uuid.uuid4()),
    )

    listing = await client.get("/api/v1/meetings", params={"sort": "deadline", "limit": 1})
    assert listing.status_code == 200
    assert listing.json()["meta"]["total_count"] == 2
    assert listing.json()["meta"]["total_pages"] == 2
    assert len(listing.json()["data"]) == 1

    found = await client.get("/api/v1/meetings/search", params={"keyword": "RUN"})
    assert [m["title"] for m in found.json()["data"]] == ["Morning run"]

    mine = await client.get(
        "/api/v1/meetings/me", params={"view": "hosted"}, headers=_auth(host_id)
    )
    assert [m["title"] for m in mine.json()["data"]] == ["Board game night"]
    assert mine.json()["data"][0]["is_host"] is True


async def test_listing_rejects_bad_parameters(client):
    too_many = await client.get("/api/v1/meetings", params={"limit": 101})
    assert too_many.status_code == 422

    unknown_sort = await client.get("/api/v1/meetings", params={"sort": "popular"})
    assert unknown_sort.status_code == 422

    blank = await client.get("/api/v1/meetings/search", params={"keyword": "   "})
    assert blank.status_code == 422


async def test_notification_feed(client, host_id):
    guest = uuid.uuid4()
    meeting = (
        await client.post("/api/v1/meetings", json=_meeting_body(), headers=_auth(host_id))
    ).json()
    base = f"/api/v1/meetings/{meeting['id']}"
    joined = (await client.post(f"{base}/participations", headers=_auth(guest))).json()
    await client.put(f"{base}/participations/{joined['id']}/approve", headers=_auth(host_id))

    feed = await client.get("/api/v1/notifications", headers=_auth(guest))

    assert feed.status_code == 200
    body = feed.json()
    assert body["meta"]["limit"] == 5
    assert [n["type"] for n in body["data"]] == ["PARTICIPATION_ACCEPTED"]
    assert body["data"][0]["meeting_title"] == "Board game night"


# ── 503 When Not Initialized ─────────────────────────────────────────────────


async def test_503_when_services_missing(host_id):
    app = _make_app()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/api/v1/meetings")
        assert response.status_code == 503
        assert "not initialized" in response.json()["detail"]

        response = await client.get("/api/v1/notifications", headers=_auth(host_id))
        assert response.status_code == 503
