"""
Circle invite code management service.

Each circle has at most one active code. Admins issue and rotate it;
anyone holding the current code can join the circle as a member.
Replacing a live code strands people who have not redeemed it yet, so
rotation goes through propose() and confirm().
"""

import logging
from dataclasses import dataclass
from typing import Optional, Union

from common.utils.exceptions import (
    ConflictException,
    ForbiddenException,
    NotFoundException,
    UnknownException,
    ValidationException,
)
from geuttae.models import CircleRole, CircleSummary
from geuttae.persistence.gateway import (
    INVITE_NOT_FOUND_MESSAGE,
    NOT_ADMIN_MESSAGE,
    PersistenceGateway,
)
from geuttae.services.invite_codes import generate_invite_code, normalize_invite_code

logger = logging.getLogger(__name__)

ROTATION_PROMPT = "새 코드를 발급하면 이전 코드가 만료돼요. 계속할까요?"

RoleLike = Union[CircleRole, str, None]


@dataclass(frozen=True)
class RotationProposal:
    """A pending request to issue a code for a circle."""

    circle_id: str
    current_code: Optional[str] = None

    @property
    def requires_confirmation(self) -> bool:
        return bool(self.current_code)


def _is_admin(role: RoleLike) -> bool:
    try:
        return role is not None and CircleRole(role) is CircleRole.ADMIN
    except ValueError:
        return False


def _require_circle_id(circle_id: str) -> None:
    if not circle_id or not circle_id.strip():
        raise ValidationException(
            message="모임 정보를 찾을 수 없어요.",
            code="MISSING_CIRCLE",
        )


class InviteCodeIssuer:
    """
    Issues, rotates and redeems circle invite codes.
    """

    def __init__(self, gateway: PersistenceGateway, max_attempts: int = 5):
        """
        Initialize InviteCodeIssuer.

        Args:
            gateway: Store holding invite codes and memberships
            max_attempts: Fresh codes to try when one collides with another circle's
        """
        self._gateway = gateway
        self._max_attempts = max(1, max_attempts)

    async def fetch_latest(
        self,
        circle_id: str,
        caller_id: str,
        caller_role: RoleLike,
    ) -> Optional[str]:
        """
        Current code of the circle, or None.

        Non-admins always get None, never an error.
        """
        _require_circle_id(circle_id)

        if not _is_admin(caller_role):
            return None

        try:
            invite = await self._gateway.get_active_invite_code(circle_id, caller_id)
        except ForbiddenException:
            return None

        if invite is None:
            return None
        return invite.code.strip() or None

    async def issue(
        self,
        circle_id: str,
        caller_id: str,
        caller_role: RoleLike,
    ) -> str:
        """
        Replace the circle's code with a fresh one.

        Returns:
            The new active code

        Raises:
            ForbiddenException: If the caller is not an admin of the circle
            UnknownException: If no unused code could be produced
        """
        _require_circle_id(circle_id)

        if not _is_admin(caller_role):
            raise ForbiddenException(message=NOT_ADMIN_MESSAGE, code="NOT_CIRCLE_ADMIN")

        for attempt in range(1, self._max_attempts + 1):
            candidate = generate_invite_code()
            try:
                invite = await self._gateway.rotate_invite_code(
                    circle_id, caller_id, candidate
                )
            except ConflictException:
                logger.debug(
                    f"Invite code collision for circle {circle_id} (attempt {attempt})"
                )
                continue
            except ForbiddenException as e:
                raise ForbiddenException(
                    message=NOT_ADMIN_MESSAGE, code="NOT_CIRCLE_ADMIN"
                ) from e

            code = invite.code.strip()
            if not code:
                break

            logger.info(f"Issued invite code for circle {circle_id}")
            return code

        raise UnknownException(
            message="초대 코드를 생성하지 못했어요.",
            code="INVITE_CODE_UNAVAILABLE",
        )

    def propose(self, circle_id: str, current_code: Optional[str]) -> RotationProposal:
        """Start an issue request; a live code means the caller must confirm."""
        _require_circle_id(circle_id)
        return RotationProposal(
            circle_id=circle_id,
            current_code=normalize_invite_code(current_code) or None,
        )

    async def confirm(
        self,
        proposal: RotationProposal,
        caller_id: str,
        caller_role: RoleLike,
    ) -> str:
        """Carry out a proposed issue."""
        return await self.issue(proposal.circle_id, caller_id, caller_role)

    async def redeem(self, raw_code: str, caller_id: str) -> CircleSummary:
        """
        Join the circle whose current code matches.

        Args:
            raw_code: Code as typed, any case, separators allowed
            caller_id: User joining

        Raises:
            ValidationException: If nothing is left after normalization
            NotFoundException: If no circle currently has that code
        """
        code = normalize_invite_code(raw_code)
        if not code:
            raise ValidationException(
                message="참여 코드를 입력해 주세요.",
                code="EMPTY_INVITE_CODE",
            )

        try:
            circle = await self._gateway.redeem_invite_code(code, caller_id)
        except NotFoundException as e:
            raise NotFoundException(
                message=INVITE_NOT_FOUND_MESSAGE, code="INVITE_NOT_FOUND"
            ) from e

        logger.info(f"User {caller_id} redeemed invite code for circle {circle.id}")
        return circle
