"""
FastAPI router for circle endpoints.

Provides endpoints for circles, members, invite codes, meetups, pieces,
the feed and the puzzle. Every route under /circles/{circle_id} requires
membership of that circle.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends

from common.utils import list_response, success_response
from geuttae.dependencies import (
    require_auth,
    require_circle_role,
    get_membership_directory,
    get_invite_code_issuer,
    get_meetup_planner,
    get_piece_catalog,
    get_feed_aggregator,
)
from geuttae.schemas.circles import (
    CreateCircleRequest,
    JoinCircleRequest,
    CreateMeetupRequest,
    CreatePieceRequest,
    PuzzleResponse,
)
from geuttae.services.invite_codes import format_invite_code
from geuttae.services.puzzle import puzzle_score, stage_of

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/circles", tags=["circles"])


def _invite_payload(circle_id: str, code):
    return {
        "circleId": circle_id,
        "code": code,
        "display": format_invite_code(code) if code else None,
    }


# ─────────────────────────────────────────────────────────────────
# Circles
# ─────────────────────────────────────────────────────────────────

@router.get("")
async def list_circles(user_id: Annotated[str, Depends(require_auth)]):
    """Get circles the current user belongs to."""
    circles = await get_membership_directory().list_circles(user_id)
    return list_response([c.model_dump(mode="json") for c in circles])


@router.post("")
async def create_circle(
    body: CreateCircleRequest,
    user_id: Annotated[str, Depends(require_auth)],
):
    """Create a circle with the current user as admin."""
    circle = await get_membership_directory().create_circle(body.name, user_id)
    return success_response(circle.model_dump(mode="json"), message="모임을 만들었어요.")


@router.post("/join")
async def join_circle(
    body: JoinCircleRequest,
    user_id: Annotated[str, Depends(require_auth)],
):
    """Join a circle with its invite code."""
    circle = await get_invite_code_issuer().redeem(body.code, user_id)
    return success_response(circle.model_dump(mode="json"), message="모임에 참여했어요.")


@router.get("/{circle_id}/members")
async def list_members(
    circle_id: str,
    user_id: Annotated[str, Depends(require_auth)],
):
    """Get members of a circle, the caller first."""
    await require_circle_role(circle_id, user_id)
    members = await get_membership_directory().list_members(circle_id, user_id)
    return list_response([m.model_dump(mode="json") for m in members])


# ─────────────────────────────────────────────────────────────────
# Invite codes
# ─────────────────────────────────────────────────────────────────

@router.get("/{circle_id}/invite-code")
async def get_invite_code(
    circle_id: str,
    user_id: Annotated[str, Depends(require_auth)],
):
    """Get the circle's current invite code. Non-admins always get null."""
    role = await require_circle_role(circle_id, user_id)
    code = await get_invite_code_issuer().fetch_latest(circle_id, user_id, role)
    return success_response(_invite_payload(circle_id, code))


@router.post("/{circle_id}/invite-code")
async def issue_invite_code(
    circle_id: str,
    user_id: Annotated[str, Depends(require_auth)],
):
    """Issue a fresh invite code, expiring the previous one."""
    role = await require_circle_role(circle_id, user_id)
    code = await get_invite_code_issuer().issue(circle_id, user_id, role)
    return success_response(
        _invite_payload(circle_id, code),
        message="초대 코드를 발급했어요.",
    )


# ─────────────────────────────────────────────────────────────────
# Meetups
# ─────────────────────────────────────────────────────────────────

@router.get("/{circle_id}/meetups")
async def list_meetups(
    circle_id: str,
    user_id: Annotated[str, Depends(require_auth)],
):
    """Get meetups of a circle in display order."""
    await require_circle_role(circle_id, user_id)
    meetups = await get_meetup_planner().list_meetups(circle_id)
    return list_response([m.model_dump(mode="json") for m in meetups])


@router.post("/{circle_id}/meetups")
async def create_meetup(
    circle_id: str,
    body: CreateMeetupRequest,
    user_id: Annotated[str, Depends(require_auth)],
):
    """Plan a meetup in a circle."""
    await require_circle_role(circle_id, user_id)
    meetup = await get_meetup_planner().create_meetup(
        circle_id, user_id, body.title, body.scheduledAt
    )
    return success_response(meetup.model_dump(mode="json"), message="모임 일정을 추가했어요.")


# ─────────────────────────────────────────────────────────────────
# Pieces, feed and puzzle
# ─────────────────────────────────────────────────────────────────

@router.get("/{circle_id}/pieces")
async def list_pieces(
    circle_id: str,
    user_id: Annotated[str, Depends(require_auth)],
):
    """Get the circle's recent pieces with display labels."""
    await require_circle_role(circle_id, user_id)
    pieces = await get_piece_catalog().list_pieces(circle_id)
    return list_response([p.model_dump(mode="json") for p in pieces])


@router.post("/{circle_id}/pieces")
async def create_piece(
    circle_id: str,
    body: CreatePieceRequest,
    user_id: Annotated[str, Depends(require_auth)],
):
    """Save a text piece in the circle."""
    await require_circle_role(circle_id, user_id)
    item = await get_piece_catalog().create_text_piece(circle_id, user_id, body.body)
    return success_response(item.model_dump(mode="json"), message="기억 조각을 저장했어요.")


@router.get("/{circle_id}/feed")
async def list_feed(
    circle_id: str,
    user_id: Annotated[str, Depends(require_auth)],
):
    """Get the circle's recent feed entries with text."""
    await require_circle_role(circle_id, user_id)
    items = await get_feed_aggregator().list_feed_items(circle_id)
    return list_response([i.model_dump(mode="json") for i in items])


@router.get("/{circle_id}/puzzle")
async def get_puzzle(
    circle_id: str,
    user_id: Annotated[str, Depends(require_auth)],
):
    """Get the circle's puzzle score and stage."""
    await require_circle_role(circle_id, user_id)
    pieces = await get_piece_catalog().list_pieces(circle_id)
    meetups = await get_meetup_planner().list_meetups(circle_id)

    score = puzzle_score(len(pieces), len(meetups))
    puzzle = PuzzleResponse(
        pieceCount=len(pieces),
        meetupCount=len(meetups),
        score=score,
        stage=stage_of(score),
    )
    return success_response(puzzle.model_dump())
