"""
Comments on pieces.
"""

import logging
from typing import List, Optional

from common.utils.exceptions import ValidationException
from geuttae.models import Comment
from geuttae.persistence.gateway import PersistenceGateway

logger = logging.getLogger(__name__)


class PieceCommentService:
    """Lists and adds comments on a piece."""

    def __init__(self, gateway: PersistenceGateway):
        self._gateway = gateway

    async def list_comments(self, piece_id: str) -> List[Comment]:
        """Comments of the piece, oldest first."""
        return await self._gateway.list_comments(piece_id)

    async def create_comment(
        self,
        piece_id: str,
        author_id: str,
        body: str,
        meetup_id: Optional[str] = None,
    ) -> Comment:
        """Add a comment, optionally tied to the meetup it was written in."""
        trimmed_body = (body or "").strip()
        if not trimmed_body:
            raise ValidationException(
                message="댓글 내용을 입력해 주세요.",
                code="EMPTY_COMMENT",
            )

        comment = await self._gateway.insert_comment(
            piece_id, author_id, trimmed_body, meetup_id=meetup_id
        )
        logger.info(f"Comment {comment.id} added to piece {piece_id} by {author_id}")
        return comment
