"""
Invite code text handling.

Codes are 8 characters from [A-Z0-9] and are shown to people as
XXXX-XXXX. normalize_invite_code accepts anything a person might type or
paste (lower case, separators, spaces) and is total.
"""

import re
import secrets
import string
from typing import Optional

INVITE_CODE_LENGTH = 8
INVITE_CODE_ALPHABET = string.ascii_uppercase + string.digits
INVITE_CODE_GROUP = 4
INVITE_CODE_SEPARATOR = "-"

_NOT_CODE_CHAR = re.compile(r"[^A-Z0-9]")


def normalize_invite_code(raw: Optional[str]) -> str:
    """Uppercase, drop everything outside [A-Z0-9], truncate to 8 chars."""
    if not raw:
        return ""
    return _NOT_CODE_CHAR.sub("", raw.upper())[:INVITE_CODE_LENGTH]


def format_invite_code(code: Optional[str]) -> str:
    """Display form: ABCD-1234. Codes of 4 chars or fewer are returned as-is."""
    normalized = normalize_invite_code(code)
    if len(normalized) <= INVITE_CODE_GROUP:
        return normalized
    return (
        f"{normalized[:INVITE_CODE_GROUP]}"
        f"{INVITE_CODE_SEPARATOR}"
        f"{normalized[INVITE_CODE_GROUP:]}"
    )


def generate_invite_code() -> str:
    """Draw a fresh code with a CSPRNG."""
    return "".join(
        secrets.choice(INVITE_CODE_ALPHABET) for _ in range(INVITE_CODE_LENGTH)
    )


def share_message(circle_name: str, code: str) -> str:
    """Text handed to the platform share sheet."""
    return (
        f"[우리그때] {circle_name} 초대 코드: {format_invite_code(code)}\n"
        "앱에서 코드로 참여해 주세요."
    )
