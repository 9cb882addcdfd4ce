"""
FastAPI router for piece comment endpoints.
"""

from typing import Annotated

from fastapi import APIRouter, Depends

from common.utils import list_response, success_response
from common.utils.exceptions import ValidationException
from geuttae.dependencies import (
    require_auth,
    require_piece_member,
    get_comment_service,
    get_meetup_planner,
)
from geuttae.schemas.circles import CreateCommentRequest

router = APIRouter(prefix="/pieces", tags=["pieces"])


@router.get("/{piece_id}/comments")
async def list_comments(
    piece_id: str,
    user_id: Annotated[str, Depends(require_auth)],
):
    """Get comments on a piece, oldest first."""
    await require_piece_member(piece_id, user_id)
    comments = await get_comment_service().list_comments(piece_id)
    return list_response([c.model_dump(mode="json") for c in comments])


@router.post("/{piece_id}/comments")
async def create_comment(
    piece_id: str,
    body: CreateCommentRequest,
    user_id: Annotated[str, Depends(require_auth)],
):
    """Comment on a piece, optionally from within a meetup of the same circle."""
    circle_id = await require_piece_member(piece_id, user_id)

    if body.meetupId:
        meetup_circle_id = await get_meetup_planner().get_circle_id(body.meetupId)
        if meetup_circle_id != circle_id:
            raise ValidationException(
                message="이 기억 조각의 모임이 아니에요.", code="MEETUP_NOT_IN_CIRCLE"
            )

    comment = await get_comment_service().create_comment(
        piece_id, user_id, body.body, meetup_id=body.meetupId
    )
    return success_response(comment.model_dump(mode="json"))
