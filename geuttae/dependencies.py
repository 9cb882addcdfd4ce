"""
FastAPI dependencies for Geuttae.

Provides dependency injection for all circle services.
"""

import logging
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from common.auth import JWTAuth, create_auth_dependency
from common.utils.exceptions import ForbiddenException
from geuttae.config import Settings
from geuttae.models import CircleRole
from geuttae.persistence import MongoPersistenceGateway
from geuttae.services import (
    AttendanceTracker,
    FeedAggregator,
    InviteCodeIssuer,
    MeetupPlanner,
    MembershipDirectory,
    MentionTracker,
    PieceCatalog,
    PieceCommentService,
)

logger = logging.getLogger(__name__)

# ─────────────────────────────────────────────────────────────────
# Global service instances
# ─────────────────────────────────────────────────────────────────

_jwt_auth: Optional[JWTAuth] = None
_gateway: Optional[MongoPersistenceGateway] = None

_membership_directory: Optional[MembershipDirectory] = None
_invite_code_issuer: Optional[InviteCodeIssuer] = None
_meetup_planner: Optional[MeetupPlanner] = None
_piece_catalog: Optional[PieceCatalog] = None
_feed_aggregator: Optional[FeedAggregator] = None
_mention_tracker: Optional[MentionTracker] = None
_attendance_tracker: Optional[AttendanceTracker] = None
_comment_service: Optional[PieceCommentService] = None


# ─────────────────────────────────────────────────────────────────
# Initialization
# ─────────────────────────────────────────────────────────────────

def init_auth_services(settings: Settings) -> None:
    """Initialize the token verifier."""
    global _jwt_auth
    _jwt_auth = JWTAuth(
        secret=settings.JWT_SECRET or "",
        algorithm=settings.JWT_ALGORITHM,
    )


def init_circle_services(db: AsyncIOMotorDatabase, settings: Settings) -> None:
    """Initialize the gateway and every circle service on top of it."""
    global _gateway, _membership_directory, _invite_code_issuer
    global _meetup_planner, _piece_catalog, _feed_aggregator
    global _mention_tracker, _attendance_tracker, _comment_service

    _gateway = MongoPersistenceGateway(db)
    _membership_directory = MembershipDirectory(_gateway)
    _invite_code_issuer = InviteCodeIssuer(
        _gateway, max_attempts=settings.INVITE_CODE_MAX_ATTEMPTS
    )
    _meetup_planner = MeetupPlanner(_gateway)
    _piece_catalog = PieceCatalog(_gateway, window=settings.FEED_WINDOW)
    _feed_aggregator = FeedAggregator(_gateway, window=settings.FEED_WINDOW)
    _mention_tracker = MentionTracker(_gateway)
    _attendance_tracker = AttendanceTracker(_gateway)
    _comment_service = PieceCommentService(_gateway)


def init_all_services(db: AsyncIOMotorDatabase, settings: Settings) -> None:
    """
    Initialize all services at application startup.

    Args:
        db: Main MongoDB database connection
        settings: Application settings
    """
    init_auth_services(settings)
    init_circle_services(db, settings)
    logger.info("Circle services initialized")


# ─────────────────────────────────────────────────────────────────
# Getters
# ─────────────────────────────────────────────────────────────────

def get_jwt_auth() -> JWTAuth:
    """Get JWT auth instance."""
    if _jwt_auth is None:
        raise RuntimeError("Auth services not initialized.")
    return _jwt_auth


def get_gateway() -> MongoPersistenceGateway:
    """Get persistence gateway instance."""
    if _gateway is None:
        raise RuntimeError("Circle services not initialized.")
    return _gateway


def get_membership_directory() -> MembershipDirectory:
    """Get membership directory instance."""
    if _membership_directory is None:
        raise RuntimeError("Circle services not initialized.")
    return _membership_directory


def get_invite_code_issuer() -> InviteCodeIssuer:
    """Get invite code issuer instance."""
    if _invite_code_issuer is None:
        raise RuntimeError("Circle services not initialized.")
    return _invite_code_issuer


def get_meetup_planner() -> MeetupPlanner:
    """Get meetup planner instance."""
    if _meetup_planner is None:
        raise RuntimeError("Circle services not initialized.")
    return _meetup_planner


def get_piece_catalog() -> PieceCatalog:
    """Get piece catalog instance."""
    if _piece_catalog is None:
        raise RuntimeError("Circle services not initialized.")
    return _piece_catalog


def get_feed_aggregator() -> FeedAggregator:
    """Get feed aggregator instance."""
    if _feed_aggregator is None:
        raise RuntimeError("Circle services not initialized.")
    return _feed_aggregator


def get_mention_tracker() -> MentionTracker:
    """Get mention tracker instance."""
    if _mention_tracker is None:
        raise RuntimeError("Circle services not initialized.")
    return _mention_tracker


def get_attendance_tracker() -> AttendanceTracker:
    """Get attendance tracker instance."""
    if _attendance_tracker is None:
        raise RuntimeError("Circle services not initialized.")
    return _attendance_tracker


def get_comment_service() -> PieceCommentService:
    """Get piece comment service instance."""
    if _comment_service is None:
        raise RuntimeError("Circle services not initialized.")
    return _comment_service


# ─────────────────────────────────────────────────────────────────
# Auth dependencies
# ─────────────────────────────────────────────────────────────────

# Resolves the bearer token to the caller's user id
require_auth = create_auth_dependency(get_jwt_auth)


async def require_circle_role(circle_id: str, user_id: str) -> CircleRole:
    """
    The caller's role in the circle.

    Raises:
        ForbiddenException: If the caller is not a member
    """
    role = await get_membership_directory().get_role(circle_id, user_id)
    if role is None:
        raise ForbiddenException(
            message="You are not a member of this circle",
            code="NOT_CIRCLE_MEMBER",
        )
    return role


async def require_meetup_member(meetup_id: str, user_id: str) -> str:
    """
    Circle of the meetup, once the caller is known to be a member of it.

    Raises:
        NotFoundException: If there is no such meetup
        ForbiddenException: If the caller is not a member of its circle
    """
    circle_id = await get_meetup_planner().get_circle_id(meetup_id)
    await require_circle_role(circle_id, user_id)
    return circle_id


async def require_piece_member(piece_id: str, user_id: str) -> str:
    """
    Circle of the piece, once the caller is known to be a member of it.

    Raises:
        NotFoundException: If there is no such piece
        ForbiddenException: If the caller is not a member of its circle
    """
    circle_id = await get_piece_catalog().get_circle_id(piece_id)
    await require_circle_role(circle_id, user_id)
    return circle_id
