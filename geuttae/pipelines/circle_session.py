"""
Circle home session pipeline.

Holds everything a user sees for their circles and the currently
selected one, and turns each user action into service calls. Failures
never escape an action: they are logged, kept on the state as
last_error and rendered into error_message.

Selecting a circle bumps selection_token. Loads that resolve after the
token moved on are dropped, so a slow response for a circle the user
already left never overwrites the newer one.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Union

from common.utils.exceptions import message_from_error
from geuttae.models import (
    CircleRole,
    CircleSummary,
    Comment,
    MeetupSummary,
    MembershipSummary,
    Piece,
)
from geuttae.services.attendance_service import AttendanceTracker
from geuttae.services.comment_service import PieceCommentService
from geuttae.services.invite_codes import share_message
from geuttae.services.invite_service import (
    ROTATION_PROMPT,
    InviteCodeIssuer,
    RotationProposal,
)
from geuttae.services.meetup_service import MeetupPlanner
from geuttae.services.membership_service import MembershipDirectory
from geuttae.services.mention_service import MentionTracker
from geuttae.services.piece_service import PieceCatalog
from geuttae.services.puzzle import puzzle_score, stage_of

logger = logging.getLogger(__name__)

LOAD_FAILED = "모임 정보를 불러오지 못했어요."
REFRESH_FAILED = "모임 데이터를 새로고침하지 못했어요."
CREATE_CIRCLE_FAILED = "모임 만들기에 실패했어요."
JOIN_FAILED = "참여 코드로 모임에 들어가지 못했어요."
INVITE_FAILED = "초대 코드 생성에 실패했어요."
MEETUP_FAILED = "모임 생성에 실패했어요."
PIECE_FAILED = "기억 조각 저장에 실패했어요."
MENTION_FAILED = "언급 저장에 실패했어요."
ATTENDANCE_FAILED = "참석 여부 저장에 실패했어요."
COMMENT_FAILED = "댓글 저장에 실패했어요."

CIRCLE_CREATED = "모임을 만들었어요."
CIRCLE_JOINED = "모임에 참여했어요."
INVITE_ISSUED = "초대 코드를 발급했어요."
INVITE_ROTATED = "새 코드를 발급했어요. 이전 코드는 만료됐어요."
MEETUP_CREATED = "모임 일정을 추가했어요."
PIECE_CREATED = "기억 조각을 저장했어요."


class BusyAction(str, Enum):
    """User actions that block each other while in flight."""

    CREATE_CIRCLE = "create_circle"
    JOIN_CIRCLE = "join_circle"
    CREATE_INVITE = "create_invite"
    CREATE_MEETUP = "create_meetup"
    CREATE_PIECE = "create_piece"
    MENTION = "mention"
    ATTEND = "attend"
    COMMENT = "comment"


class MarkState(str, Enum):
    """Lifecycle of an optimistic write."""

    PENDING = "pending"
    COMMITTED = "committed"
    FAILED = "failed"


@dataclass
class AttendanceMark:
    """The user's attendance answer for the open meetup."""

    value: Optional[bool] = None
    state: MarkState = MarkState.COMMITTED


@dataclass
class SessionState:
    user_id: str
    circles: List[CircleSummary] = field(default_factory=list)
    selected_circle_id: Optional[str] = None
    selection_token: int = 0
    meetups: List[MeetupSummary] = field(default_factory=list)
    members: List[MembershipSummary] = field(default_factory=list)
    pieces: List[Piece] = field(default_factory=list)
    invite_code: Optional[str] = None
    pending_rotation: Optional[RotationProposal] = None
    busy_action: Optional[BusyAction] = None
    last_error: Optional[BaseException] = None
    error_message: Optional[str] = None
    success_message: Optional[str] = None
    first_piece_nudge: bool = False
    active_meetup_id: Optional[str] = None
    mentions: Dict[str, MarkState] = field(default_factory=dict)
    attendance: AttendanceMark = field(default_factory=AttendanceMark)


class CircleSession:
    """
    Per-user circle home state and actions.

    Actions return their result on success and None when they were
    rejected or failed; the reason is on the state.
    """

    def __init__(
        self,
        user_id: str,
        directory: MembershipDirectory,
        invites: InviteCodeIssuer,
        meetups: MeetupPlanner,
        pieces: PieceCatalog,
        mentions: MentionTracker,
        attendance: AttendanceTracker,
        comments: PieceCommentService,
    ):
        self.state = SessionState(user_id=user_id)
        self._directory = directory
        self._invites = invites
        self._meetups = meetups
        self._pieces = pieces
        self._mentions = mentions
        self._attendance = attendance
        self._comments = comments

    # ─────────────────────────────────────────────────────────────────
    # Derived values
    # ─────────────────────────────────────────────────────────────────

    @property
    def selected_circle(self) -> Optional[CircleSummary]:
        for circle in self.state.circles:
            if circle.id == self.state.selected_circle_id:
                return circle
        return None

    @property
    def is_admin(self) -> bool:
        circle = self.selected_circle
        return circle is not None and circle.role == CircleRole.ADMIN

    @property
    def puzzle_stage(self) -> int:
        """Stage of the selected circle's puzzle."""
        return stage_of(puzzle_score(len(self.state.pieces), len(self.state.meetups)))

    def invite_share_message(self) -> Optional[str]:
        """Share text for the current code, None when there is nothing to share."""
        circle = self.selected_circle
        if circle is None or not self.state.invite_code:
            return None
        return share_message(circle.name, self.state.invite_code)

    # ─────────────────────────────────────────────────────────────────
    # Loading
    # ─────────────────────────────────────────────────────────────────

    async def load(self) -> bool:
        """Load the user's circles and open the first one."""
        try:
            self.state.circles = await self._directory.list_circles(self.state.user_id)
        except Exception as e:
            self._fail(e, LOAD_FAILED)
            return False

        if not self.state.circles:
            self._clear_selection(None)
            return True

        return await self.select_circle(self.state.circles[0].id)

    async def select_circle(self, circle_id: str) -> bool:
        """
        Switch to a circle and load its content.

        Returns:
            True when the loaded content was applied, False when it failed
            or was superseded by a newer selection
        """
        token = self._clear_selection(circle_id)
        return await self._load_selected(token, LOAD_FAILED)

    async def refresh(self) -> bool:
        """Reload the selected circle."""
        if self.state.selected_circle_id is None:
            return False
        self.state.selection_token += 1
        return await self._load_selected(self.state.selection_token, REFRESH_FAILED)

    def _clear_selection(self, circle_id: Optional[str]) -> int:
        state = self.state
        state.selection_token += 1
        state.selected_circle_id = circle_id
        state.meetups = []
        state.members = []
        state.pieces = []
        state.invite_code = None
        state.pending_rotation = None
        state.active_meetup_id = None
        state.mentions = {}
        state.attendance = AttendanceMark()
        return state.selection_token

    async def _load_selected(self, token: int, fallback: str) -> bool:
        circle_id = self.state.selected_circle_id
        user_id = self.state.user_id
        circle = self.selected_circle
        role = circle.role if circle else None

        loads = [
            self._meetups.list_meetups(circle_id),
            self._directory.list_members(circle_id, user_id),
            self._pieces.list_pieces(circle_id),
        ]
        if self.is_admin:
            loads.append(self._invites.fetch_latest(circle_id, user_id, role))

        try:
            results = await asyncio.gather(*loads)
        except Exception as e:
            if token != self.state.selection_token:
                logger.debug(f"Dropped failed load for stale selection {circle_id}")
                return False
            self._fail(e, fallback)
            return False

        if token != self.state.selection_token:
            logger.debug(f"Dropped stale load for circle {circle_id}")
            return False

        self.state.meetups, self.state.members, self.state.pieces = results[:3]
        self.state.invite_code = results[3] if len(results) > 3 else None
        return True

    # ─────────────────────────────────────────────────────────────────
    # Busy guard
    # ─────────────────────────────────────────────────────────────────

    def _begin(self, action: BusyAction) -> bool:
        if self.state.busy_action is not None:
            logger.info(
                f"Rejected {action.value} while {self.state.busy_action.value} is running"
            )
            return False
        self.state.busy_action = action
        self.state.error_message = None
        self.state.success_message = None
        self.state.last_error = None
        return True

    def _end(self) -> None:
        self.state.busy_action = None

    def _fail(self, error: BaseException, fallback: str) -> None:
        logger.error(f"Circle session action failed: {error!r}")
        self.state.last_error = error
        self.state.error_message = message_from_error(error, fallback)

    # ─────────────────────────────────────────────────────────────────
    # Circle actions
    # ─────────────────────────────────────────────────────────────────

    async def create_circle(self, name: str) -> Optional[CircleSummary]:
        if not self._begin(BusyAction.CREATE_CIRCLE):
            return None
        try:
            circle = await self._directory.create_circle(name, self.state.user_id)
        except Exception as e:
            self._fail(e, CREATE_CIRCLE_FAILED)
            return None
        finally:
            self._end()

        self.state.circles = [circle] + [
            c for c in self.state.circles if c.id != circle.id
        ]
        await self.select_circle(circle.id)
        self.state.success_message = CIRCLE_CREATED
        return circle

    async def join_circle(self, raw_code: str) -> Optional[CircleSummary]:
        """Redeem an invite code and open the joined circle."""
        if not self._begin(BusyAction.JOIN_CIRCLE):
            return None
        try:
            circle = await self._invites.redeem(raw_code, self.state.user_id)
        except Exception as e:
            self._fail(e, JOIN_FAILED)
            return None
        finally:
            self._end()

        if all(c.id != circle.id for c in self.state.circles):
            self.state.circles = self.state.circles + [circle]

        loaded = await self.select_circle(circle.id)
        self.state.first_piece_nudge = loaded and not self.state.pieces
        self.state.success_message = CIRCLE_JOINED
        return circle

    async def request_invite_code(self) -> Optional[str]:
        """
        Issue an invite code for the selected circle.

        With a live code the first call only stores a proposal and asks
        for confirmation; calling again confirms it.
        """
        circle = self.selected_circle
        if circle is None:
            return None
        if not self._begin(BusyAction.CREATE_INVITE):
            return None

        proposal = self.state.pending_rotation
        try:
            if proposal is None or proposal.circle_id != circle.id:
                proposal = self._invites.propose(circle.id, self.state.invite_code)
                if proposal.requires_confirmation:
                    self.state.pending_rotation = proposal
                    self.state.success_message = ROTATION_PROMPT
                    return None

            self.state.pending_rotation = None
            code = await self._invites.confirm(proposal, self.state.user_id, circle.role)
        except Exception as e:
            if self.state.selected_circle_id == circle.id:
                self._fail(e, INVITE_FAILED)
            else:
                logger.debug(f"Dropped invite failure for circle {circle.id}: {e!r}")
            return None
        finally:
            self._end()

        # The user may have switched circles while the code was being issued
        if self.state.selected_circle_id != circle.id:
            logger.debug(f"Dropped invite code for circle {circle.id}; selection moved on")
            return code

        self.state.invite_code = code
        self.state.success_message = (
            INVITE_ROTATED if proposal.requires_confirmation else INVITE_ISSUED
        )
        return code

    def cancel_invite_rotation(self) -> None:
        self.state.pending_rotation = None
        self.state.success_message = None

    async def create_meetup(
        self,
        title: str,
        scheduled_at: Union[datetime, str, None] = None,
    ) -> Optional[MeetupSummary]:
        circle_id = self.state.selected_circle_id
        if circle_id is None:
            return None
        if not self._begin(BusyAction.CREATE_MEETUP):
            return None
        try:
            meetup = await self._meetups.create_meetup(
                circle_id, self.state.user_id, title, scheduled_at
            )
        except Exception as e:
            self._fail(e, MEETUP_FAILED)
            return None
        finally:
            self._end()

        await self.refresh()
        self.state.success_message = MEETUP_CREATED
        return meetup

    async def create_piece(self, body: str) -> Optional[str]:
        """Save a text piece in the selected circle and return its id."""
        circle_id = self.state.selected_circle_id
        if circle_id is None:
            return None
        if not self._begin(BusyAction.CREATE_PIECE):
            return None
        try:
            record = await self._pieces.create_text_piece(
                circle_id, self.state.user_id, body
            )
        except Exception as e:
            self._fail(e, PIECE_FAILED)
            return None
        finally:
            self._end()

        self.state.first_piece_nudge = False
        await self.refresh()
        self.state.success_message = PIECE_CREATED
        return record.id

    # ─────────────────────────────────────────────────────────────────
    # Meetup actions
    # ─────────────────────────────────────────────────────────────────

    async def open_meetup(self, meetup_id: str) -> bool:
        """Load what was already mentioned and the user's attendance."""
        self.state.active_meetup_id = meetup_id
        self.state.mentions = {}
        self.state.attendance = AttendanceMark()

        try:
            mentioned, attending = await asyncio.gather(
                self._mentions.list_mentioned(meetup_id),
                self._attendance.get(meetup_id, self.state.user_id),
            )
        except Exception as e:
            self._fail(e, LOAD_FAILED)
            return False

        if self.state.active_meetup_id != meetup_id:
            return False

        self.state.mentions = {
            piece_id: MarkState.COMMITTED for piece_id in mentioned
        }
        self.state.attendance = AttendanceMark(value=attending)
        return True

    async def mark_mentioned(self, piece_id: str) -> bool:
        """
        Optimistically mark a piece mentioned in the open meetup.

        Already pending or committed pieces are left alone. A failed write
        leaves the piece FAILED so it can be marked again.
        """
        meetup_id = self.state.active_meetup_id
        if meetup_id is None:
            return False
        if self.state.mentions.get(piece_id) in (MarkState.PENDING, MarkState.COMMITTED):
            return True
        if not self._begin(BusyAction.MENTION):
            return False

        self.state.mentions[piece_id] = MarkState.PENDING
        try:
            await self._mentions.create(meetup_id, piece_id, self.state.user_id)
        except Exception as e:
            self._fail(e, MENTION_FAILED)
            if self.state.active_meetup_id == meetup_id:
                self.state.mentions[piece_id] = MarkState.FAILED
            return False
        finally:
            self._end()

        if self.state.active_meetup_id == meetup_id:
            self.state.mentions[piece_id] = MarkState.COMMITTED
        return True

    async def set_attendance(self, is_attending: bool) -> bool:
        """
        Optimistically record the user's attendance in the open meetup.

        On failure the previous answer is restored with state FAILED.
        """
        meetup_id = self.state.active_meetup_id
        if meetup_id is None:
            return False
        if not self._begin(BusyAction.ATTEND):
            return False

        previous = self.state.attendance.value
        self.state.attendance = AttendanceMark(
            value=is_attending, state=MarkState.PENDING
        )
        try:
            await self._attendance.set(meetup_id, self.state.user_id, is_attending)
        except Exception as e:
            self._fail(e, ATTENDANCE_FAILED)
            if self.state.active_meetup_id == meetup_id:
                self.state.attendance = AttendanceMark(
                    value=previous, state=MarkState.FAILED
                )
            return False
        finally:
            self._end()

        if self.state.active_meetup_id == meetup_id:
            self.state.attendance = AttendanceMark(
                value=is_attending, state=MarkState.COMMITTED
            )
        return True

    async def create_comment(self, piece_id: str, body: str) -> Optional[Comment]:
        """Comment on a piece, tied to the open meetup if there is one."""
        if not self._begin(BusyAction.COMMENT):
            return None
        try:
            return await self._comments.create_comment(
                piece_id,
                self.state.user_id,
                body,
                meetup_id=self.state.active_meetup_id,
            )
        except Exception as e:
            self._fail(e, COMMENT_FAILED)
            return None
        finally:
            self._end()
