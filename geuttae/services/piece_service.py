"""
Pieces and feed entries derived from a circle's feed items.

Both views read the same recent window of feed items, newest first.
A piece needs an id but may have a blank body (it gets a positional
label); a feed entry needs a non-blank body.
"""

import logging
from typing import List

from common.utils.exceptions import NotFoundException, ValidationException
from geuttae.models import FeedItem, FeedItemRecord, Piece
from geuttae.persistence.gateway import PersistenceGateway

logger = logging.getLogger(__name__)

DEFAULT_FEED_WINDOW = 30
TEXT_ITEM_TYPE = "text"


def placeholder_label(position: int) -> str:
    """Label for a piece whose body is blank; position is 1-based."""
    return f"기억 조각 {position}"


def pieces_from_feed(rows: List[FeedItemRecord]) -> List[Piece]:
    """Map newest-first feed rows to pieces, numbering blanks by window position."""
    pieces = []
    for position, row in enumerate(rows, start=1):
        if not row.id:
            continue
        label = (row.body or "").strip() or placeholder_label(position)
        pieces.append(Piece(id=row.id, label=label))
    return pieces


def feed_entries_from_feed(rows: List[FeedItemRecord]) -> List[FeedItem]:
    """Map newest-first feed rows to displayable entries, dropping blank bodies."""
    entries = []
    for row in rows:
        body = (row.body or "").strip()
        if not body or not row.id:
            continue
        entries.append(FeedItem(
            id=row.id,
            body=body,
            createdAt=row.createdAt,
            authorId=row.authorId,
        ))
    return entries


class PieceCatalog:
    """
    Pieces of a circle and text piece creation.
    """

    def __init__(self, gateway: PersistenceGateway, window: int = DEFAULT_FEED_WINDOW):
        """
        Initialize PieceCatalog.

        Args:
            gateway: Store holding feed items
            window: How many recent feed items to read
        """
        self._gateway = gateway
        self._window = window

    async def list_pieces(self, circle_id: str) -> List[Piece]:
        """Most recent pieces of the circle, newest first."""
        rows = await self._gateway.list_recent_feed_items(circle_id, self._window)
        return pieces_from_feed(rows)

    async def create_text_piece(
        self,
        circle_id: str,
        user_id: str,
        body: str,
    ) -> FeedItemRecord:
        """
        Store a text piece.

        Raises:
            ValidationException: If the body is blank; nothing is written
        """
        trimmed_body = (body or "").strip()
        if not trimmed_body:
            raise ValidationException(
                message="조각 내용을 입력해 주세요.",
                code="EMPTY_PIECE",
            )

        item = await self._gateway.insert_feed_item(
            circle_id, user_id, TEXT_ITEM_TYPE, trimmed_body
        )
        logger.info(f"Text piece added to circle {circle_id} by {user_id}")
        return item

    async def get_circle_id(self, piece_id: str) -> str:
        """
        Circle the piece belongs to.

        Raises:
            NotFoundException: If there is no such piece
        """
        circle_id = await self._gateway.get_piece_circle_id(piece_id)
        if circle_id is None:
            raise NotFoundException(
                message="기억 조각을 찾을 수 없어요.",
                code="PIECE_NOT_FOUND",
            )
        return circle_id


class FeedAggregator:
    """Feed entries of a circle."""

    def __init__(self, gateway: PersistenceGateway, window: int = DEFAULT_FEED_WINDOW):
        self._gateway = gateway
        self._window = window

    async def list_feed_items(self, circle_id: str) -> List[FeedItem]:
        """Most recent non-blank feed entries of the circle, newest first."""
        rows = await self._gateway.list_recent_feed_items(circle_id, self._window)
        return feed_entries_from_feed(rows)
