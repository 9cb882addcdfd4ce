"""
Persistence contract required by the circle services.

Implementations own the remote store. They must map every raw row onto
the typed records in geuttae.models and report failures as the tagged
exceptions from common.utils.exceptions:

- ConflictException when a unique constraint rejects a write
- ForbiddenException when a privileged procedure rejects the caller
- NotFoundException when a privileged lookup finds nothing
- TransientException when the store cannot be reached
- UnknownException for anything else

Race-sensitive writes (invite code rotation, membership on redeem,
mention insert, attendance upsert) must be decided by the store itself,
never by a read followed by a write in the client.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional, Set

from geuttae.models import (
    CircleRole,
    CircleSummary,
    Comment,
    FeedItemRecord,
    InviteCode,
    MeetupSummary,
    MembershipSummary,
)

NOT_ADMIN_MESSAGE = "관리자만 초대 코드를 만들 수 있어요."
INVITE_NOT_FOUND_MESSAGE = "유효한 초대 코드가 아니에요."


class PersistenceGateway(ABC):
    """Abstract store used by every circle service."""

    # ─────────────────────────────────────────────────────────────────
    # Circles and memberships
    # ─────────────────────────────────────────────────────────────────

    @abstractmethod
    async def list_circles_for_user(self, user_id: str) -> List[CircleSummary]:
        """Circles the user belongs to, each with the user's role."""

    @abstractmethod
    async def list_members(self, circle_id: str) -> List[MembershipSummary]:
        """Member rows of a circle ordered by joinedAt ascending."""

    @abstractmethod
    async def get_membership(
        self, circle_id: str, user_id: str
    ) -> Optional[MembershipSummary]:
        """The user's membership row in a circle, if any."""

    @abstractmethod
    async def insert_circle(self, name: str, created_by: str) -> str:
        """Insert a circle row and return its id."""

    @abstractmethod
    async def insert_membership(
        self, circle_id: str, user_id: str, role: CircleRole
    ) -> MembershipSummary:
        """Insert a membership row. Raises ConflictException if it exists."""

    @abstractmethod
    async def discard_circle(self, circle_id: str) -> None:
        """Remove a circle whose creation could not be completed."""

    # ─────────────────────────────────────────────────────────────────
    # Invite codes (privileged procedures)
    # ─────────────────────────────────────────────────────────────────

    @abstractmethod
    async def get_active_invite_code(
        self, circle_id: str, caller_id: str
    ) -> Optional[InviteCode]:
        """
        Current code of a circle.

        Raises ForbiddenException when the caller is not an admin of it.
        """

    @abstractmethod
    async def rotate_invite_code(
        self, circle_id: str, caller_id: str, code: str
    ) -> InviteCode:
        """
        Atomically make code the only active code of the circle.

        Raises ForbiddenException when the caller is not an admin of it and
        ConflictException when code is active for another circle.
        """

    @abstractmethod
    async def redeem_invite_code(self, code: str, user_id: str) -> CircleSummary:
        """
        Join the circle whose active code equals code.

        Creates a member row for user_id or keeps the existing one.
        Raises NotFoundException when no circle currently has that code.
        """

    # ─────────────────────────────────────────────────────────────────
    # Meetups
    # ─────────────────────────────────────────────────────────────────

    @abstractmethod
    async def insert_meetup(
        self,
        circle_id: str,
        host_id: str,
        title: str,
        scheduled_at: datetime,
        status: str = "planned",
    ) -> MeetupSummary:
        """Insert a meetup row."""

    @abstractmethod
    async def list_meetups(self, circle_id: str) -> List[MeetupSummary]:
        """Meetups of a circle; callers apply display ordering."""

    @abstractmethod
    async def get_meetup_circle_id(self, meetup_id: str) -> Optional[str]:
        """Id of the circle a meetup belongs to, None when there is no such meetup."""

    # ─────────────────────────────────────────────────────────────────
    # Feed items
    # ─────────────────────────────────────────────────────────────────

    @abstractmethod
    async def list_recent_feed_items(
        self, circle_id: str, limit: int
    ) -> List[FeedItemRecord]:
        """Most recent feed items of a circle, newest first."""

    @abstractmethod
    async def insert_feed_item(
        self, circle_id: str, author_id: str, item_type: str, body: str
    ) -> FeedItemRecord:
        """Insert a feed item row."""

    @abstractmethod
    async def get_piece_circle_id(self, piece_id: str) -> Optional[str]:
        """Id of the circle a piece (feed item) belongs to, None when there is none."""

    # ─────────────────────────────────────────────────────────────────
    # Mentions and attendance
    # ─────────────────────────────────────────────────────────────────

    @abstractmethod
    async def list_mentioned_piece_ids(self, meetup_id: str) -> Set[str]:
        """Ids of every piece mentioned in the meetup."""

    @abstractmethod
    async def insert_mention(
        self, meetup_id: str, piece_id: str, user_id: str
    ) -> None:
        """Insert a mention. Raises ConflictException for a repeated pair."""

    @abstractmethod
    async def get_attendance(self, meetup_id: str, user_id: str) -> Optional[bool]:
        """The user's attendance answer, None when there is none."""

    @abstractmethod
    async def upsert_attendance(
        self,
        meetup_id: str,
        user_id: str,
        is_attending: bool,
        checked_by: str,
    ) -> None:
        """Write the attendance row keyed by (meetup, user), replacing any answer."""

    # ─────────────────────────────────────────────────────────────────
    # Comments
    # ─────────────────────────────────────────────────────────────────

    @abstractmethod
    async def list_comments(self, piece_id: str) -> List[Comment]:
        """Comments of a piece, oldest first."""

    @abstractmethod
    async def insert_comment(
        self,
        piece_id: str,
        author_id: str,
        body: str,
        meetup_id: Optional[str] = None,
    ) -> Comment:
        """Insert a comment row."""
