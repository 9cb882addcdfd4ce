"""
Meetup attendance answers.

One row per (meetup, user); each answer overwrites the previous one.
"""

import logging
from typing import Optional

from geuttae.persistence.gateway import PersistenceGateway

logger = logging.getLogger(__name__)


class AttendanceTracker:
    """Last-write-wins attendance per user and meetup."""

    def __init__(self, gateway: PersistenceGateway):
        self._gateway = gateway

    async def get(self, meetup_id: str, user_id: str) -> Optional[bool]:
        """True or False once the user answered, None before that."""
        return await self._gateway.get_attendance(meetup_id, user_id)

    async def set(
        self,
        meetup_id: str,
        user_id: str,
        is_attending: bool,
        checked_by: Optional[str] = None,
    ) -> None:
        """
        Record the user's answer, replacing any earlier one.

        Args:
            meetup_id: Meetup answered for
            user_id: User whose attendance this is
            is_attending: The answer
            checked_by: User writing the answer, defaults to user_id
        """
        await self._gateway.upsert_attendance(
            meetup_id,
            user_id,
            bool(is_attending),
            checked_by or user_id,
        )
        logger.info(
            f"Attendance for meetup {meetup_id} set to {bool(is_attending)} for {user_id}"
        )
