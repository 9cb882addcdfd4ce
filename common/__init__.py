"""
Common library for reusable infrastructure components.

- database: Async MongoDB connection through Motor
- auth: Bearer token verification (JWT)
- utils: Standard responses and the tagged exception taxonomy
- config: Base settings class
"""

from common.database import MongoDB
from common.auth import AuthProvider, JWTAuth, create_auth_dependency
from common.utils import (
    success_response,
    error_response,
    ErrorKind,
    APIException,
    UnauthorizedException,
    ForbiddenException,
    NotFoundException,
    ConflictException,
    ValidationException,
    TransientException,
    UnknownException,
)
from common.config import BaseAppSettings

__all__ = [
    # Database
    "MongoDB",
    # Auth
    "AuthProvider",
    "JWTAuth",
    "create_auth_dependency",
    # Utils
    "success_response",
    "error_response",
    "ErrorKind",
    "APIException",
    "UnauthorizedException",
    "ForbiddenException",
    "NotFoundException",
    "ConflictException",
    "ValidationException",
    "TransientException",
    "UnknownException",
    # Config
    "BaseAppSettings",
]
