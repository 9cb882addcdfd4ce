"""
Circle meetup planning service.

Any member can add a meetup to a circle. A meetup without a time is
treated as happening now.
"""

import logging
from datetime import datetime, timezone
from typing import List, Union

from common.utils.exceptions import NotFoundException, ValidationException
from geuttae.models import MeetupSummary
from geuttae.persistence.gateway import PersistenceGateway

logger = logging.getLogger(__name__)

PLANNED_STATUS = "planned"

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def parse_scheduled_at(value: Union[datetime, str, None]) -> datetime:
    """
    Turn user input into an aware UTC datetime.

    Raises:
        ValidationException: If a string is blank or not ISO-8601
    """
    if value is None:
        return datetime.now(timezone.utc)

    if isinstance(value, str):
        text = value.strip()
        if not text:
            raise ValidationException(
                message="모임 날짜와 시간을 입력해 주세요.",
                code="EMPTY_SCHEDULED_AT",
            )
        try:
            value = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError as e:
            raise ValidationException(
                message="모임 날짜 형식이 올바르지 않아요.",
                code="INVALID_SCHEDULED_AT",
            ) from e

    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def order_meetups(meetups: List[MeetupSummary]) -> List[MeetupSummary]:
    """Scheduled meetups by time, unscheduled last; ties newest created first."""
    newest_first = sorted(
        meetups,
        key=lambda m: m.createdAt or _OLDEST,
        reverse=True,
    )
    return sorted(
        newest_first,
        key=lambda m: (m.scheduledAt is None, m.scheduledAt or _OLDEST),
    )


class MeetupPlanner:
    """
    Creates and lists meetups of a circle.
    """

    def __init__(self, gateway: PersistenceGateway):
        """
        Initialize MeetupPlanner.

        Args:
            gateway: Store holding meetups
        """
        self._gateway = gateway

    async def create_meetup(
        self,
        circle_id: str,
        host_id: str,
        title: str,
        scheduled_at: Union[datetime, str, None] = None,
    ) -> MeetupSummary:
        """
        Add a planned meetup to a circle.

        Args:
            circle_id: Circle the meetup belongs to
            host_id: Member creating it
            title: Meetup title, trimmed
            scheduled_at: datetime or ISO-8601 string; None means now

        Raises:
            ValidationException: If the title is blank or the time is malformed
        """
        trimmed_title = (title or "").strip()
        if not trimmed_title:
            raise ValidationException(
                message="모임 제목을 입력해 주세요.",
                code="EMPTY_MEETUP_TITLE",
            )

        when = parse_scheduled_at(scheduled_at)

        meetup = await self._gateway.insert_meetup(
            circle_id, host_id, trimmed_title, when, status=PLANNED_STATUS
        )
        logger.info(f"Meetup {meetup.id} planned in circle {circle_id} by {host_id}")
        return meetup

    async def list_meetups(self, circle_id: str) -> List[MeetupSummary]:
        """Meetups of a circle in display order."""
        meetups = await self._gateway.list_meetups(circle_id)
        return order_meetups(meetups)

    async def get_circle_id(self, meetup_id: str) -> str:
        """
        Circle the meetup belongs to.

        Raises:
            NotFoundException: If there is no such meetup
        """
        circle_id = await self._gateway.get_meetup_circle_id(meetup_id)
        if circle_id is None:
            raise NotFoundException(
                message="모임 일정을 찾을 수 없어요.",
                code="MEETUP_NOT_FOUND",
            )
        return circle_id
