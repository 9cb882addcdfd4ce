"""
Custom HTTP exceptions with error codes and error kinds.

Extends FastAPI's HTTPException with standardized error codes and a
discriminating ErrorKind so callers can branch on the kind of failure
instead of parsing message text.

Example:
    from common.utils import NotFoundException, ErrorKind

    try:
        circle = await invite_service.redeem(code, user_id)
    except APIException as e:
        if e.kind is ErrorKind.NOT_FOUND:
            ...
"""

from enum import Enum
from typing import Optional, Any, Dict
from fastapi import HTTPException


NETWORK_ERROR_MESSAGE = "네트워크가 불안정해요. 연결을 확인한 뒤 다시 시도해 주세요."


class ErrorKind(str, Enum):
    """Discriminator for every failure the core reports."""

    VALIDATION = "validation"
    AUTHORIZATION = "authorization"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    TRANSIENT = "transient"
    UNKNOWN = "unknown"


class APIException(HTTPException):
    """
    Base API exception with error code support.

    Provides consistent error response format across the API.
    """

    kind: ErrorKind = ErrorKind.UNKNOWN
    retryable: bool = False

    def __init__(
        self,
        status_code: int,
        message: str,
        code: Optional[str] = None,
        details: Optional[Any] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        """
        Create an API exception.

        Args:
            status_code: HTTP status code
            message: Human-readable error message
            code: Machine-readable error code
            details: Additional error details
            headers: Optional response headers
        """
        detail: Dict[str, Any] = {"message": message, "kind": self.kind.value}

        if code:
            detail["code"] = code

        if details is not None:
            detail["details"] = details

        self.message = message
        self.code = code

        super().__init__(
            status_code=status_code,
            detail=detail,
            headers=headers,
        )

    def __str__(self) -> str:
        return self.message


class BadRequestException(APIException):
    """400 Bad Request - Invalid input or malformed request."""

    kind = ErrorKind.VALIDATION

    def __init__(
        self,
        message: str = "Bad request",
        code: str = "BAD_REQUEST",
        details: Optional[Any] = None,
    ):
        super().__init__(400, message, code, details)


class UnauthorizedException(APIException):
    """401 Unauthorized - Missing or invalid authentication."""

    kind = ErrorKind.AUTHORIZATION

    def __init__(
        self,
        message: str = "Unauthorized",
        code: str = "UNAUTHORIZED",
        details: Optional[Any] = None,
    ):
        super().__init__(401, message, code, details)


class ForbiddenException(APIException):
    """403 Forbidden - Valid auth but insufficient role."""

    kind = ErrorKind.AUTHORIZATION

    def __init__(
        self,
        message: str = "Forbidden",
        code: str = "FORBIDDEN",
        details: Optional[Any] = None,
    ):
        super().__init__(403, message, code, details)


class NotFoundException(APIException):
    """404 Not Found - Resource doesn't exist."""

    kind = ErrorKind.NOT_FOUND

    def __init__(
        self,
        message: str = "Not found",
        code: str = "NOT_FOUND",
        details: Optional[Any] = None,
    ):
        super().__init__(404, message, code, details)


class ConflictException(APIException):
    """409 Conflict - Unique constraint hit in the store."""

    kind = ErrorKind.CONFLICT

    def __init__(
        self,
        message: str = "Conflict",
        code: str = "CONFLICT",
        details: Optional[Any] = None,
    ):
        super().__init__(409, message, code, details)


class ValidationException(APIException):
    """422 Validation Error - Input rejected before reaching the store."""

    kind = ErrorKind.VALIDATION

    def __init__(
        self,
        message: str = "Validation error",
        code: str = "VALIDATION_ERROR",
        details: Optional[Any] = None,
        errors: Optional[list] = None,
    ):
        detail_info = details
        if errors:
            detail_info = {"errors": errors, **(details or {})}
        super().__init__(422, message, code, detail_info)


class InternalServerException(APIException):
    """500 Internal Server Error - Unexpected store or server error."""

    kind = ErrorKind.UNKNOWN

    def __init__(
        self,
        message: str = "Internal server error",
        code: str = "INTERNAL_ERROR",
        details: Optional[Any] = None,
    ):
        super().__init__(500, message, code, details)


# Aliases for InternalServerException
ServerException = InternalServerException
UnknownException = InternalServerException


class ServiceUnavailableException(APIException):
    """503 Service Unavailable - Store unreachable, safe to retry."""

    kind = ErrorKind.TRANSIENT
    retryable = True

    def __init__(
        self,
        message: str = NETWORK_ERROR_MESSAGE,
        code: str = "SERVICE_UNAVAILABLE",
        retry_after: Optional[int] = None,
    ):
        headers = {}
        if retry_after:
            headers["Retry-After"] = str(retry_after)

        super().__init__(
            status_code=503,
            message=message,
            code=code,
            details={"retryAfter": retry_after} if retry_after else None,
            headers=headers if headers else None,
        )


TransientException = ServiceUnavailableException


def message_from_error(error: BaseException, fallback: str) -> str:
    """
    Turn any failure into the text shown to a user.

    Transient failures always read as the generic connectivity message,
    tagged errors use their own message, anything else is shown verbatim
    when it has text and replaced by the fallback otherwise.
    """
    if isinstance(error, APIException):
        if error.kind is ErrorKind.TRANSIENT:
            return NETWORK_ERROR_MESSAGE
        return error.message or fallback

    text = str(error).strip()
    return text or fallback
