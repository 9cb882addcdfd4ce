"""Unit tests for the tagged exception taxonomy."""

import pytest

from common.utils.exceptions import (
    BadRequestException,
    ConflictException,
    ErrorKind,
    ForbiddenException,
    NETWORK_ERROR_MESSAGE,
    NotFoundException,
    TransientException,
    UnauthorizedException,
    UnknownException,
    ValidationException,
    message_from_error,
)


class TestErrorKinds:
    @pytest.mark.parametrize(
        "exc,kind,status",
        [
            (ValidationException(), ErrorKind.VALIDATION, 422),
            (BadRequestException(), ErrorKind.VALIDATION, 400),
            (ForbiddenException(), ErrorKind.AUTHORIZATION, 403),
            (UnauthorizedException(), ErrorKind.AUTHORIZATION, 401),
            (NotFoundException(), ErrorKind.NOT_FOUND, 404),
            (ConflictException(), ErrorKind.CONFLICT, 409),
            (TransientException(), ErrorKind.TRANSIENT, 503),
            (UnknownException(), ErrorKind.UNKNOWN, 500),
        ],
    )
    def test_kind_and_status(self, exc, kind, status):
        assert exc.kind is kind
        assert exc.status_code == status
        assert exc.detail["kind"] == kind.value

    def test_only_transient_is_retryable(self):
        assert TransientException().retryable is True
        assert NotFoundException().retryable is False

    def test_str_is_message(self):
        assert str(NotFoundException(message="없어요")) == "없어요"


class TestMessageFromError:
    def test_transient_uses_network_message(self):
        error = TransientException(message="socket closed")
        assert message_from_error(error, "fallback") == NETWORK_ERROR_MESSAGE

    def test_tagged_error_uses_its_message(self):
        error = ValidationException(message="참여 코드를 입력해 주세요.")
        assert message_from_error(error, "fallback") == "참여 코드를 입력해 주세요."

    def test_plain_error_text_is_shown(self):
        assert message_from_error(RuntimeError("boom"), "fallback") == "boom"

    def test_blank_error_uses_fallback(self):
        assert message_from_error(RuntimeError("  "), "모임 생성에 실패했어요.") == (
            "모임 생성에 실패했어요."
        )
