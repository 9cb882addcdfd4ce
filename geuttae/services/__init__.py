"""Circle services."""

from geuttae.services.membership_service import MembershipDirectory
from geuttae.services.invite_service import InviteCodeIssuer, RotationProposal
from geuttae.services.mention_service import MentionTracker
from geuttae.services.attendance_service import AttendanceTracker
from geuttae.services.piece_service import PieceCatalog, FeedAggregator
from geuttae.services.meetup_service import MeetupPlanner
from geuttae.services.comment_service import PieceCommentService

__all__ = [
    "MembershipDirectory",
    "InviteCodeIssuer",
    "RotationProposal",
    "MentionTracker",
    "AttendanceTracker",
    "PieceCatalog",
    "FeedAggregator",
    "MeetupPlanner",
    "PieceCommentService",
]
