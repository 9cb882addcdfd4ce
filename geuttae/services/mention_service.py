"""
Piece mentions within a meetup.

A mention records that a piece was talked about during a meetup. The
store keeps one row per (meetup, piece); marking an already mentioned
piece again is a no-op, so callers can mark optimistically and resubmit.
"""

import logging
from typing import Set

from common.utils.exceptions import ConflictException
from geuttae.persistence.gateway import PersistenceGateway

logger = logging.getLogger(__name__)


class MentionTracker:
    """Idempotent mention recording."""

    def __init__(self, gateway: PersistenceGateway):
        self._gateway = gateway

    async def list_mentioned(self, meetup_id: str) -> Set[str]:
        """Ids of all pieces mentioned in the meetup."""
        return await self._gateway.list_mentioned_piece_ids(meetup_id)

    async def create(self, meetup_id: str, piece_id: str, user_id: str) -> None:
        """Mark a piece mentioned. Repeats succeed silently."""
        try:
            await self._gateway.insert_mention(meetup_id, piece_id, user_id)
        except ConflictException:
            logger.debug(f"Piece {piece_id} already mentioned in meetup {meetup_id}")
            return

        logger.info(f"Piece {piece_id} mentioned in meetup {meetup_id} by {user_id}")
