"""
Typed records exchanged between the persistence boundary and the services.

Every raw store row is mapped onto one of these models before business
logic sees it; services never handle untyped documents.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class CircleRole(str, Enum):
    """Per-circle role of a member."""

    ADMIN = "admin"
    MEMBER = "member"


class CircleSummary(BaseModel):
    """A circle annotated with the viewing user's role in it."""
    id: str
    name: str
    role: CircleRole


class MembershipSummary(BaseModel):
    """One member row of a circle."""
    userId: str
    role: CircleRole
    joinedAt: Optional[datetime] = None


class InviteCode(BaseModel):
    """The single active invite code of a circle."""
    circleId: str
    code: str = Field(..., min_length=1, max_length=8)
    issuedAt: Optional[datetime] = None


class MeetupSummary(BaseModel):
    """A meetup as listed for a circle."""
    id: str
    title: str
    status: str = "planned"
    scheduledAt: Optional[datetime] = None
    createdAt: Optional[datetime] = None


class FeedItemRecord(BaseModel):
    """
    A stored feed item as read from the store.

    id is optional: a row without a derivable identity can still come back
    from the store and is filtered by the views that need one.
    """
    id: Optional[str] = None
    circleId: str
    authorId: str
    type: str = "text"
    body: Optional[str] = None
    createdAt: Optional[datetime] = None


class FeedItem(BaseModel):
    """A feed entry ready for display. Body is never blank."""
    id: str
    body: str
    createdAt: Optional[datetime] = None
    authorId: str


class Piece(BaseModel):
    """A memory fragment as shown in a meetup or on the home screen."""
    id: str
    label: str


class Comment(BaseModel):
    """A comment left on a piece, optionally during a meetup."""
    id: str
    body: str
    authorId: str
    meetupId: Optional[str] = None
    createdAt: Optional[datetime] = None
