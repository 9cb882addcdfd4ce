"""
Pydantic models for circle API request validation.

Defines request bodies for circles, invite codes, meetups, pieces,
mentions, attendance and comments. Blank-after-trim checks live in the
services so the same messages reach every caller.
"""

from datetime import datetime
from typing import Optional, Union

from pydantic import BaseModel, Field


class CreateCircleRequest(BaseModel):
    """Request body for creating a circle."""
    name: str = Field(..., max_length=100)


class JoinCircleRequest(BaseModel):
    """Request body for joining a circle with an invite code."""
    code: str = Field(..., max_length=32)


class CreateMeetupRequest(BaseModel):
    """Request body for planning a meetup."""
    title: str = Field(..., max_length=200)
    scheduledAt: Optional[Union[datetime, str]] = None


class CreatePieceRequest(BaseModel):
    """Request body for saving a text piece."""
    body: str = Field(..., max_length=2000)


class CreateMentionRequest(BaseModel):
    """Request body for marking a piece mentioned in a meetup."""
    pieceId: str = Field(..., min_length=1)


class SetAttendanceRequest(BaseModel):
    """Request body for answering attendance."""
    isAttending: bool


class CreateCommentRequest(BaseModel):
    """Request body for commenting on a piece."""
    body: str = Field(..., max_length=1000)
    meetupId: Optional[str] = None


class PuzzleResponse(BaseModel):
    """Puzzle progress of a circle."""
    pieceCount: int
    meetupCount: int
    score: int
    stage: int
