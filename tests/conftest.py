"""Shared test fixtures for Geuttae backend tests."""

import pytest
from datetime import datetime, timedelta, timezone
from itertools import count
from typing import Dict, List, Optional, Set, Tuple
from unittest.mock import AsyncMock, MagicMock
from bson import ObjectId

from common.utils.exceptions import (
    ConflictException,
    ForbiddenException,
    NotFoundException,
)
from geuttae.models import (
    CircleRole,
    CircleSummary,
    Comment,
    FeedItemRecord,
    InviteCode,
    MeetupSummary,
    MembershipSummary,
)
from geuttae.persistence.gateway import (
    INVITE_NOT_FOUND_MESSAGE,
    NOT_ADMIN_MESSAGE,
    PersistenceGateway,
)


class InMemoryGateway(PersistenceGateway):
    """
    Stateful fake store with the same uniqueness rules as the Mongo indexes.

    calls records every method invoked; fail_next maps a method name to an
    exception raised on its next call.
    """

    def __init__(self):
        self.circles: Dict[str, Dict] = {}
        self.members: Dict[Tuple[str, str], MembershipSummary] = {}
        self.invite_codes: Dict[str, InviteCode] = {}
        self.meetups: Dict[str, Tuple[str, MeetupSummary]] = {}
        self.feed: List[FeedItemRecord] = []
        self.mentions: Dict[Tuple[str, str], str] = {}
        self.attendance: Dict[Tuple[str, str], Tuple[bool, str]] = {}
        self.comments: List[Tuple[str, Comment]] = []
        self.calls: List[str] = []
        self.fail_next: Dict[str, Exception] = {}
        self._ids = count(1)
        self._epoch = datetime(2026, 1, 1, tzinfo=timezone.utc)

    def _hit(self, name: str) -> None:
        self.calls.append(name)
        if name in self.fail_next:
            raise self.fail_next.pop(name)

    def _next_id(self, prefix: str) -> str:
        return f"{prefix}-{next(self._ids)}"

    def _now(self) -> datetime:
        return self._epoch + timedelta(seconds=next(self._ids))

    def _is_admin(self, circle_id: str, user_id: str) -> bool:
        member = self.members.get((circle_id, user_id))
        return member is not None and member.role == CircleRole.ADMIN

    # Seeding helpers

    def seed_circle(self, name: str, admin_id: str) -> str:
        circle_id = self._next_id("circle")
        self.circles[circle_id] = {"name": name, "createdBy": admin_id}
        self.members[(circle_id, admin_id)] = MembershipSummary(
            userId=admin_id, role=CircleRole.ADMIN, joinedAt=self._now()
        )
        return circle_id

    def seed_member(self, circle_id: str, user_id: str, joined_at=None) -> None:
        self.members[(circle_id, user_id)] = MembershipSummary(
            userId=user_id, role=CircleRole.MEMBER, joinedAt=joined_at or self._now()
        )

    def seed_meetup(self, circle_id: str, title: str = "저녁 모임") -> str:
        meetup = MeetupSummary(
            id=self._next_id("meetup"), title=title, createdAt=self._now()
        )
        self.meetups[meetup.id] = (circle_id, meetup)
        return meetup.id

    def seed_feed(self, circle_id: str, bodies: List[Optional[str]]) -> List[str]:
        """Insert bodies oldest first so the last one is the newest."""
        ids = []
        for body in bodies:
            record = FeedItemRecord(
                id=self._next_id("feed"),
                circleId=circle_id,
                authorId="seed",
                body=body,
                createdAt=self._now(),
            )
            self.feed.append(record)
            ids.append(record.id)
        return ids

    # Circles and memberships

    async def list_circles_for_user(self, user_id):
        self._hit("list_circles_for_user")
        return [
            CircleSummary(id=cid, name=self.circles[cid]["name"], role=m.role)
            for (cid, uid), m in self.members.items()
            if uid == user_id and cid in self.circles
        ]

    async def list_members(self, circle_id):
        self._hit("list_members")
        rows = [m for (cid, _), m in self.members.items() if cid == circle_id]
        return sorted(rows, key=lambda m: m.joinedAt or self._epoch)

    async def get_membership(self, circle_id, user_id):
        self._hit("get_membership")
        return self.members.get((circle_id, user_id))

    async def insert_circle(self, name, created_by):
        self._hit("insert_circle")
        circle_id = self._next_id("circle")
        self.circles[circle_id] = {"name": name, "createdBy": created_by}
        return circle_id

    async def insert_membership(self, circle_id, user_id, role):
        self._hit("insert_membership")
        if (circle_id, user_id) in self.members:
            raise ConflictException(message="Record already exists", code="DUPLICATE_KEY")
        member = MembershipSummary(userId=user_id, role=role, joinedAt=self._now())
        self.members[(circle_id, user_id)] = member
        return member

    async def discard_circle(self, circle_id):
        self._hit("discard_circle")
        self.circles.pop(circle_id, None)
        for key in [k for k in self.members if k[0] == circle_id]:
            del self.members[key]

    # Invite codes

    async def get_active_invite_code(self, circle_id, caller_id):
        self._hit("get_active_invite_code")
        if not self._is_admin(circle_id, caller_id):
            raise ForbiddenException(message=NOT_ADMIN_MESSAGE, code="NOT_CIRCLE_ADMIN")
        return self.invite_codes.get(circle_id)

    async def rotate_invite_code(self, circle_id, caller_id, code):
        self._hit("rotate_invite_code")
        if not self._is_admin(circle_id, caller_id):
            raise ForbiddenException(message=NOT_ADMIN_MESSAGE, code="NOT_CIRCLE_ADMIN")
        for other_id, invite in self.invite_codes.items():
            if other_id != circle_id and invite.code == code:
                raise ConflictException(code="INVITE_CODE_TAKEN")
        invite = InviteCode(circleId=circle_id, code=code, issuedAt=self._now())
        self.invite_codes[circle_id] = invite
        return invite

    async def redeem_invite_code(self, code, user_id):
        self._hit("redeem_invite_code")
        for circle_id, invite in self.invite_codes.items():
            if invite.code == code:
                key = (circle_id, user_id)
                if key not in self.members:
                    self.members[key] = MembershipSummary(
                        userId=user_id, role=CircleRole.MEMBER, joinedAt=self._now()
                    )
                return CircleSummary(
                    id=circle_id,
                    name=self.circles[circle_id]["name"],
                    role=self.members[key].role,
                )
        raise NotFoundException(message=INVITE_NOT_FOUND_MESSAGE, code="INVITE_NOT_FOUND")

    # Meetups

    async def insert_meetup(self, circle_id, host_id, title, scheduled_at, status="planned"):
        self._hit("insert_meetup")
        meetup = MeetupSummary(
            id=self._next_id("meetup"),
            title=title,
            status=status,
            scheduledAt=scheduled_at,
            createdAt=self._now(),
        )
        self.meetups[meetup.id] = (circle_id, meetup)
        return meetup

    async def list_meetups(self, circle_id):
        self._hit("list_meetups")
        return [m for cid, m in self.meetups.values() if cid == circle_id]

    async def get_meetup_circle_id(self, meetup_id):
        self._hit("get_meetup_circle_id")
        row = self.meetups.get(meetup_id)
        return row[0] if row else None

    # Feed items

    async def list_recent_feed_items(self, circle_id, limit):
        self._hit("list_recent_feed_items")
        rows = [r for r in self.feed if r.circleId == circle_id]
        return list(reversed(rows))[:limit]

    async def insert_feed_item(self, circle_id, author_id, item_type, body):
        self._hit("insert_feed_item")
        record = FeedItemRecord(
            id=self._next_id("feed"),
            circleId=circle_id,
            authorId=author_id,
            type=item_type,
            body=body,
            createdAt=self._now(),
        )
        self.feed.append(record)
        return record

    async def get_piece_circle_id(self, piece_id):
        self._hit("get_piece_circle_id")
        for record in self.feed:
            if record.id == piece_id:
                return record.circleId
        return None

    # Mentions and attendance

    async def list_mentioned_piece_ids(self, meetup_id) -> Set[str]:
        self._hit("list_mentioned_piece_ids")
        return {piece_id for (mid, piece_id) in self.mentions if mid == meetup_id}

    async def insert_mention(self, meetup_id, piece_id, user_id):
        self._hit("insert_mention")
        if (meetup_id, piece_id) in self.mentions:
            raise ConflictException(code="DUPLICATE_KEY")
        self.mentions[(meetup_id, piece_id)] = user_id

    async def get_attendance(self, meetup_id, user_id):
        self._hit("get_attendance")
        row = self.attendance.get((meetup_id, user_id))
        return row[0] if row else None

    async def upsert_attendance(self, meetup_id, user_id, is_attending, checked_by):
        self._hit("upsert_attendance")
        self.attendance[(meetup_id, user_id)] = (is_attending, checked_by)

    # Comments

    async def list_comments(self, piece_id):
        self._hit("list_comments")
        return [c for pid, c in self.comments if pid == piece_id]

    async def insert_comment(self, piece_id, author_id, body, meetup_id=None):
        self._hit("insert_comment")
        comment = Comment(
            id=self._next_id("comment"),
            body=body,
            authorId=author_id,
            meetupId=meetup_id,
            createdAt=self._now(),
        )
        self.comments.append((piece_id, comment))
        return comment


@pytest.fixture
def gateway():
    return InMemoryGateway()


@pytest.fixture
def admin_id():
    return "user-admin"


@pytest.fixture
def member_id():
    return "user-member"


@pytest.fixture
def circle_id(gateway, admin_id, member_id):
    """A circle with one admin and one plain member."""
    circle_id = gateway.seed_circle("대학 동기", admin_id)
    gateway.seed_member(circle_id, member_id)
    return circle_id


@pytest.fixture
def mock_collection():
    collection = AsyncMock()
    # Motor's find() returns a cursor synchronously (not a coroutine),
    # so use MagicMock for it. Async methods like find_one, insert_one,
    # update_one etc. stay as AsyncMock.
    collection.find = MagicMock()
    return collection


@pytest.fixture
def mock_db(mock_collection):
    db = MagicMock()
    db.__getitem__ = MagicMock(return_value=mock_collection)
    return db


def make_cursor(rows):
    """A Motor-like cursor whose chained calls return itself."""
    cursor = MagicMock()
    cursor.sort = MagicMock(return_value=cursor)
    cursor.limit = MagicMock(return_value=cursor)
    cursor.to_list = AsyncMock(return_value=rows)
    return cursor


@pytest.fixture
def sample_object_id():
    return ObjectId()


@pytest.fixture
def cursor_factory():
    return make_cursor
