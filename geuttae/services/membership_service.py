"""
Circle membership directory.

Lists the circles a user belongs to and the members of a circle, and
creates circles together with the creator's admin membership.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from common.utils.exceptions import ValidationException
from geuttae.models import CircleRole, CircleSummary, MembershipSummary
from geuttae.persistence.gateway import PersistenceGateway

logger = logging.getLogger(__name__)

_NO_JOIN_TIME = datetime.min.replace(tzinfo=timezone.utc)


def order_members(
    members: List[MembershipSummary],
    requesting_user_id: Optional[str],
) -> List[MembershipSummary]:
    """
    Order members for display.

    The requesting user comes first, then admins before members, then
    earliest joiners. Members without a join time sort before those with
    one. Python's sort is stable, so remaining ties keep input order.
    """
    def sort_key(member: MembershipSummary):
        return (
            member.userId != requesting_user_id,
            member.role != CircleRole.ADMIN,
            member.joinedAt is not None,
            member.joinedAt or _NO_JOIN_TIME,
        )

    return sorted(members, key=sort_key)


class MembershipDirectory:
    """
    Circle and role lookups.
    """

    def __init__(self, gateway: PersistenceGateway):
        """
        Initialize MembershipDirectory.

        Args:
            gateway: Store holding circles and memberships
        """
        self._gateway = gateway

    async def list_circles(self, user_id: str) -> List[CircleSummary]:
        """Circles the user belongs to, with the user's role in each."""
        return await self._gateway.list_circles_for_user(user_id)

    async def list_members(
        self,
        circle_id: str,
        requesting_user_id: Optional[str] = None,
    ) -> List[MembershipSummary]:
        """Members of a circle in display order for the requesting user."""
        members = await self._gateway.list_members(circle_id)
        return order_members(members, requesting_user_id)

    async def get_role(self, circle_id: str, user_id: str) -> Optional[CircleRole]:
        """The user's role in the circle, None for non-members."""
        membership = await self._gateway.get_membership(circle_id, user_id)
        return membership.role if membership else None

    async def create_circle(self, name: str, creator_id: str) -> CircleSummary:
        """
        Create a circle with the creator as its admin.

        Args:
            name: Circle name, trimmed before storing
            creator_id: User creating the circle

        Returns:
            The new circle with role admin

        Raises:
            ValidationException: If the name is blank
        """
        trimmed_name = (name or "").strip()
        if not trimmed_name:
            raise ValidationException(
                message="모임 이름을 입력해 주세요.",
                code="EMPTY_CIRCLE_NAME",
            )

        circle_id = await self._gateway.insert_circle(trimmed_name, creator_id)

        try:
            await self._gateway.insert_membership(circle_id, creator_id, CircleRole.ADMIN)
        except Exception:
            # A circle without its admin must not survive
            logger.error(f"Admin membership insert failed for circle {circle_id}")
            try:
                await self._gateway.discard_circle(circle_id)
            except Exception as cleanup_error:
                logger.error(f"Could not discard circle {circle_id}: {cleanup_error}")
            raise

        logger.info(f"Circle {circle_id} created by {creator_id}")

        return CircleSummary(id=circle_id, name=trimmed_name, role=CircleRole.ADMIN)
