"""
FastAPI router for meetup endpoints.

Provides endpoints for piece mentions and attendance within a meetup.
Every route requires membership in the meetup's circle.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends

from common.utils import success_response
from common.utils.exceptions import ValidationException
from geuttae.dependencies import (
    require_auth,
    require_meetup_member,
    get_mention_tracker,
    get_attendance_tracker,
    get_piece_catalog,
)
from geuttae.schemas.circles import CreateMentionRequest, SetAttendanceRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/meetups", tags=["meetups"])

PIECE_NOT_IN_CIRCLE_MESSAGE = "이 모임의 기억 조각이 아니에요."


@router.get("/{meetup_id}/mentions")
async def list_mentions(
    meetup_id: str,
    user_id: Annotated[str, Depends(require_auth)],
):
    """Get ids of pieces already mentioned in the meetup."""
    await require_meetup_member(meetup_id, user_id)
    piece_ids = await get_mention_tracker().list_mentioned(meetup_id)
    return success_response({"meetupId": meetup_id, "pieceIds": sorted(piece_ids)})


@router.post("/{meetup_id}/mentions")
async def create_mention(
    meetup_id: str,
    body: CreateMentionRequest,
    user_id: Annotated[str, Depends(require_auth)],
):
    """Mark a piece mentioned. Repeating it is not an error."""
    circle_id = await require_meetup_member(meetup_id, user_id)

    piece_circle_id = await get_piece_catalog().get_circle_id(body.pieceId)
    if piece_circle_id != circle_id:
        logger.info(f"Rejected mention of piece {body.pieceId} in meetup {meetup_id}")
        raise ValidationException(
            message=PIECE_NOT_IN_CIRCLE_MESSAGE, code="PIECE_NOT_IN_CIRCLE"
        )

    await get_mention_tracker().create(meetup_id, body.pieceId, user_id)
    return success_response({"meetupId": meetup_id, "pieceId": body.pieceId})


@router.get("/{meetup_id}/attendance")
async def get_attendance(
    meetup_id: str,
    user_id: Annotated[str, Depends(require_auth)],
):
    """Get the current user's attendance answer."""
    await require_meetup_member(meetup_id, user_id)
    is_attending = await get_attendance_tracker().get(meetup_id, user_id)
    return success_response({"meetupId": meetup_id, "isAttending": is_attending})


@router.put("/{meetup_id}/attendance")
async def set_attendance(
    meetup_id: str,
    body: SetAttendanceRequest,
    user_id: Annotated[str, Depends(require_auth)],
):
    """Record the current user's attendance answer."""
    await require_meetup_member(meetup_id, user_id)
    await get_attendance_tracker().set(meetup_id, user_id, body.isAttending)
    return success_response({"meetupId": meetup_id, "isAttending": body.isAttending})
