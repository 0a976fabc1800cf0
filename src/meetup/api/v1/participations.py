"""REST API endpoints for join requests and host decisions.

All host decisions are PUT requests on the target participation; the
engine enforces host-only access, state preconditions and capacity. The
membership predicate is what the chat service polls before relaying.
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from src.meetup.api.deps import get_current_user_id, get_participation_engine
from src.meetup.meetings.participations import ParticipationEngine
from src.meetup.meetings.schemas import Participation

router = APIRouter(prefix="/meetings/{meeting_id}", tags=["participations"])


# ── Response Schemas ─────────────────────────────────────────────────────────


class ApproveAllResponse(BaseModel):
    """Participations accepted by one bulk approval."""

    accepted_count: int
    accepted: list[Participation]


class MembershipResponse(BaseModel):
    meeting_id: uuid.UUID
    user_id: uuid.UUID
    is_participant: bool


# ── Applicant Endpoints ──────────────────────────────────────────────────────


@router.post("/participations", response_model=Participation, status_code=201)
async def request_join(
    meeting_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    engine: ParticipationEngine = Depends(get_participation_engine),
) -> Participation:
    """Ask to join a meeting."""
    return await engine.request_join(meeting_id, user_id)


@router.get("/membership", response_model=MembershipResponse)
async def get_membership(
    meeting_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    engine: ParticipationEngine = Depends(get_participation_engine),
) -> MembershipResponse:
    """Whether the caller is an accepted member (host included)."""
    return MembershipResponse(
        meeting_id=meeting_id,
        user_id=user_id,
        is_participant=await engine.is_participant(user_id, meeting_id),
    )


# ── Host Endpoints ───────────────────────────────────────────────────────────


@router.get("/participations", response_model=list[Participation])
async def list_applicants(
    meeting_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    engine: ParticipationEngine = Depends(get_participation_engine),
) -> list[Participation]:
    """Every applicant in any status, newest first."""
    return await engine.list_applicants(meeting_id, user_id)


@router.put("/participations/approve-all", response_model=ApproveAllResponse)
async def approve_all(
    meeting_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    engine: ParticipationEngine = Depends(get_participation_engine),
) -> ApproveAllResponse:
    """Accept every pending request, or none if they don't all fit."""
    accepted = await engine.approve_all(meeting_id, user_id)
    return ApproveAllResponse(accepted_count=len(accepted), accepted=accepted)


@router.put("/participations/{participation_id}/approve", response_model=Participation)
async def approve(
    meeting_id: uuid.UUID,
    participation_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    engine: ParticipationEngine = Depends(get_participation_engine),
) -> Participation:
    return await engine.approve(meeting_id, user_id, participation_id)


@router.put("/participations/{participation_id}/reject", response_model=Participation)
async def reject(
    meeting_id: uuid.UUID,
    participation_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    engine: ParticipationEngine = Depends(get_participation_engine),
) -> Participation:
    return await engine.reject(meeting_id, user_id, participation_id)


@router.put(
    "/participations/{participation_id}/cancel-approval", response_model=Participation
)
async def cancel_approval(
    meeting_id: uuid.UUID,
    participation_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    engine: ParticipationEngine = Depends(get_participation_engine),
) -> Participation:
    return await engine.cancel_approval(meeting_id, user_id, participation_id)


@router.put(
    "/participations/{participation_id}/cancel-rejection", response_model=Participation
)
async def cancel_rejection(
    meeting_id: uuid.UUID,
    participation_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    engine: ParticipationEngine = Depends(get_participation_engine),
) -> Participation:
    return await engine.cancel_rejection(meeting_id, user_id, participation_id)
