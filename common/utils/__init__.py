"""
Utilities module - Common helpers for API responses and exceptions.
"""

from common.utils.responses import success_response, error_response, list_response
from common.utils.exceptions import (
    ErrorKind,
    APIException,
    BadRequestException,
    UnauthorizedException,
    ForbiddenException,
    NotFoundException,
    ConflictException,
    ValidationException,
    ServerException,
    InternalServerException,
    UnknownException,
    ServiceUnavailableException,
    TransientException,
    NETWORK_ERROR_MESSAGE,
    message_from_error,
)

__all__ = [
    "success_response",
    "error_response",
    "list_response",
    "ErrorKind",
    "APIException",
    "BadRequestException",
    "UnauthorizedException",
    "ForbiddenException",
    "NotFoundException",
    "ConflictException",
    "ValidationException",
    "ServerException",
    "InternalServerException",
    "UnknownException",
    "ServiceUnavailableException",
    "TransientException",
    "NETWORK_ERROR_MESSAGE",
    "message_from_error",
]
