"""Unit tests for MongoPersistenceGateway against mocked Motor collections."""

import pytest
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock
from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import (
    AutoReconnect,
    DuplicateKeyError,
    OperationFailure,
    ServerSelectionTimeoutError,
)

from common.utils.exceptions import (
    ConflictException,
    ErrorKind,
    ForbiddenException,
    NotFoundException,
    TransientException,
    UnknownException,
    ValidationException,
)
from geuttae.models import CircleRole
from geuttae.persistence.gateway import INVITE_NOT_FOUND_MESSAGE, NOT_ADMIN_MESSAGE
from geuttae.persistence.mongo_gateway import (
    MongoPersistenceGateway,
    to_object_id,
    translate_store_errors,
)


def _duplicate(key_pattern):
    return DuplicateKeyError(
        "E11000 duplicate key error",
        11000,
        {"keyPattern": key_pattern},
    )


@pytest.fixture
def store(mock_db):
    return MongoPersistenceGateway(mock_db)


# ─────────────────────────────────────────────────────────────────
# Error translation
# ─────────────────────────────────────────────────────────────────


class TestTranslateStoreErrors:
    @pytest.mark.asyncio
    async def test_duplicate_key_is_conflict(self):
        with pytest.raises(ConflictException) as exc_info:
            async with translate_store_errors("insert"):
                raise _duplicate({"code": 1})
        assert exc_info.value.kind is ErrorKind.CONFLICT

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [AutoReconnect("gone"), ServerSelectionTimeoutError("no primary")],
    )
    async def test_connection_failures_are_transient(self, error):
        with pytest.raises(TransientException) as exc_info:
            async with translate_store_errors("read"):
                raise error
        assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    async def test_other_driver_errors_are_unknown(self):
        with pytest.raises(UnknownException) as exc_info:
            async with translate_store_errors("read"):
                raise OperationFailure("bad query")
        assert exc_info.value.kind is ErrorKind.UNKNOWN

    @pytest.mark.asyncio
    async def test_tagged_errors_pass_through(self):
        with pytest.raises(NotFoundException):
            async with translate_store_errors("read"):
                raise NotFoundException()


class TestToObjectId:
    def test_malformed_id_is_validation_error(self):
        with pytest.raises(ValidationException) as exc_info:
            to_object_id("not-an-id", "circleId")
        assert exc_info.value.code == "INVALID_ID"

    def test_valid_id_parses(self, sample_object_id):
        assert to_object_id(str(sample_object_id)) == sample_object_id


# ─────────────────────────────────────────────────────────────────
# Circles and memberships
# ─────────────────────────────────────────────────────────────────


class TestCircles:
    @pytest.mark.asyncio
    async def test_list_circles_skips_missing_circles(
        self, store, mock_collection, cursor_factory,
    ):
        kept, gone = ObjectId(), ObjectId()
        mock_collection.find.side_effect = [
            cursor_factory([
                {"circleId": kept, "userId": "u1", "role": "admin"},
                {"circleId": gone, "userId": "u1", "role": "member"},
            ]),
            cursor_factory([{"_id": kept, "name": "동네 친구"}]),
        ]

        circles = await store.list_circles_for_user("u1")

        assert len(circles) == 1
        assert circles[0].id == str(kept)
        assert circles[0].role == CircleRole.ADMIN

    @pytest.mark.asyncio
    async def test_list_circles_without_memberships_skips_second_query(
        self, store, mock_collection, cursor_factory,
    ):
        mock_collection.find.return_value = cursor_factory([])

        assert await store.list_circles_for_user("u1") == []
        mock_collection.find.assert_called_once()

    @pytest.mark.asyncio
    async def test_malformed_row_is_unknown_error(
        self, store, mock_collection, cursor_factory, sample_object_id,
    ):
        mock_collection.find.return_value = cursor_factory([
            {"circleId": sample_object_id, "userId": "u1", "role": "owner"},
        ])

        with pytest.raises(UnknownException) as exc_info:
            await store.list_members(str(sample_object_id))
        assert exc_info.value.code == "MALFORMED_ROW"

    @pytest.mark.asyncio
    async def test_insert_membership_duplicate_is_conflict(
        self, store, mock_collection, sample_object_id,
    ):
        mock_collection.insert_one.side_effect = _duplicate({"circleId": 1, "userId": 1})

        with pytest.raises(ConflictException):
            await store.insert_membership(str(sample_object_id), "u1", CircleRole.ADMIN)


# ─────────────────────────────────────────────────────────────────
# Invite codes
# ─────────────────────────────────────────────────────────────────


class TestInviteCodes:
    @pytest.mark.asyncio
    async def test_rotation_requires_admin(self, store, mock_collection, sample_object_id):
        mock_collection.find_one.return_value = None

        with pytest.raises(ForbiddenException) as exc_info:
            await store.rotate_invite_code(str(sample_object_id), "u1", "AB12CD34")

        assert exc_info.value.message == NOT_ADMIN_MESSAGE
        mock_collection.find_one_and_update.assert_not_called()

    @pytest.mark.asyncio
    async def test_rotation_is_single_upsert(self, store, mock_collection, sample_object_id):
        mock_collection.find_one.return_value = {"role": "admin"}
        mock_collection.find_one_and_update.return_value = {
            "circleId": sample_object_id,
            "code": "AB12CD34",
            "issuedAt": datetime.now(timezone.utc),
        }

        invite = await store.rotate_invite_code(str(sample_object_id), "u1", "AB12CD34")

        assert invite.code == "AB12CD34"
        args, kwargs = mock_collection.find_one_and_update.call_args
        assert args[0] == {"circleId": sample_object_id}
        assert args[1]["$set"]["code"] == "AB12CD34"
        assert kwargs["upsert"] is True
        assert kwargs["return_document"] == ReturnDocument.AFTER

    @pytest.mark.asyncio
    async def test_code_taken_by_other_circle_is_conflict(
        self, store, mock_collection, sample_object_id,
    ):
        mock_collection.find_one.return_value = {"role": "admin"}
        mock_collection.find_one_and_update.side_effect = _duplicate({"code": 1})

        with pytest.raises(ConflictException) as exc_info:
            await store.rotate_invite_code(str(sample_object_id), "u1", "AB12CD34")

        assert exc_info.value.code == "INVITE_CODE_TAKEN"

    @pytest.mark.asyncio
    async def test_concurrent_first_rotation_retries_once(
        self, store, mock_collection, sample_object_id,
    ):
        mock_collection.find_one.return_value = {"role": "admin"}
        mock_collection.find_one_and_update.side_effect = [
            _duplicate({"circleId": 1}),
            {"circleId": sample_object_id, "code": "AB12CD34"},
        ]

        invite = await store.rotate_invite_code(str(sample_object_id), "u1", "AB12CD34")

        assert invite.code == "AB12CD34"
        assert mock_collection.find_one_and_update.await_count == 2

    @pytest.mark.asyncio
    async def test_redeem_unknown_code_is_not_found(self, store, mock_collection):
        mock_collection.find_one.return_value = None

        with pytest.raises(NotFoundException) as exc_info:
            await store.redeem_invite_code("ZZZZ9999", "u1")

        assert exc_info.value.message == INVITE_NOT_FOUND_MESSAGE

    @pytest.mark.asyncio
    async def test_redeem_upserts_membership_without_overwriting_role(
        self, store, mock_collection, sample_object_id,
    ):
        mock_collection.find_one.side_effect = [
            {"circleId": sample_object_id, "code": "AB12CD34"},
            {"_id": sample_object_id, "name": "동네 친구"},
            {"circleId": sample_object_id, "userId": "u1", "role": "admin"},
        ]

        circle = await store.redeem_invite_code("AB12CD34", "u1")

        assert circle.role == CircleRole.ADMIN
        args, kwargs = mock_collection.update_one.call_args
        assert args[0] == {"circleId": sample_object_id, "userId": "u1"}
        assert "$set" not in args[1]
        assert args[1]["$setOnInsert"]["role"] == "member"
        assert kwargs["upsert"] is True


# ─────────────────────────────────────────────────────────────────
# Circle lookups
# ─────────────────────────────────────────────────────────────────


class TestCircleLookups:
    @pytest.mark.asyncio
    async def test_meetup_circle_id_is_string(self, store, mock_collection, sample_object_id):
        mock_collection.find_one.return_value = {"circleId": sample_object_id}
        meetup = ObjectId()

        circle_id = await store.get_meetup_circle_id(str(meetup))

        assert circle_id == str(sample_object_id)
        assert mock_collection.find_one.call_args[0][0] == {"_id": meetup}

    @pytest.mark.asyncio
    async def test_missing_meetup_has_no_circle(self, store, mock_collection):
        mock_collection.find_one.return_value = None

        assert await store.get_meetup_circle_id(str(ObjectId())) is None

    @pytest.mark.asyncio
    async def test_piece_circle_id_is_string(self, store, mock_collection, sample_object_id):
        mock_collection.find_one.return_value = {"circleId": sample_object_id}

        assert await store.get_piece_circle_id(str(ObjectId())) == str(sample_object_id)

    @pytest.mark.asyncio
    async def test_missing_piece_has_no_circle(self, store, mock_collection):
        mock_collection.find_one.return_value = None

        assert await store.get_piece_circle_id(str(ObjectId())) is None

    @pytest.mark.asyncio
    async def test_malformed_meetup_id_is_validation_error(self, store, mock_collection):
        with pytest.raises(ValidationException):
            await store.get_meetup_circle_id("not-an-id")

        mock_collection.find_one.assert_not_called()


# ─────────────────────────────────────────────────────────────────
# Feed, mentions and attendance
# ─────────────────────────────────────────────────────────────────


class TestFeedMentionsAttendance:
    @pytest.mark.asyncio
    async def test_recent_feed_reads_window_newest_first(
        self, store, mock_collection, cursor_factory, sample_object_id,
    ):
        cursor = cursor_factory([
            {"_id": ObjectId(), "circleId": sample_object_id, "authorId": "u1", "body": "안녕"},
        ])
        mock_collection.find.return_value = cursor

        rows = await store.list_recent_feed_items(str(sample_object_id), 30)

        assert rows[0].body == "안녕"
        cursor.sort.assert_called_once_with("createdAt", -1)
        cursor.limit.assert_called_once_with(30)

    @pytest.mark.asyncio
    async def test_mentioned_ids_are_strings(
        self, store, mock_collection, cursor_factory, sample_object_id,
    ):
        piece = ObjectId()
        mock_collection.find.return_value = cursor_factory([{"pieceId": piece}])

        ids = await store.list_mentioned_piece_ids(str(sample_object_id))

        assert ids == {str(piece)}

    @pytest.mark.asyncio
    async def test_duplicate_mention_is_conflict(self, store, mock_collection):
        mock_collection.insert_one.side_effect = _duplicate({"meetupId": 1, "pieceId": 1})

        with pytest.raises(ConflictException):
            await store.insert_mention(str(ObjectId()), str(ObjectId()), "u1")

    @pytest.mark.asyncio
    async def test_attendance_upsert_retries_on_concurrent_insert(
        self, store, mock_collection, sample_object_id,
    ):
        mock_collection.update_one.side_effect = [_duplicate({"meetupId": 1}), MagicMock()]

        await store.upsert_attendance(str(sample_object_id), "u1", True, "u1")

        assert mock_collection.update_one.await_count == 2
        update = mock_collection.update_one.call_args[0][1]
        assert update["$set"]["isAttending"] is True

    @pytest.mark.asyncio
    async def test_missing_attendance_is_none(self, store, mock_collection, sample_object_id):
        mock_collection.find_one.return_value = None

        assert await store.get_attendance(str(sample_object_id), "u1") is None

    @pytest.mark.asyncio
    async def test_unreachable_store_is_transient(self, store, mock_collection, sample_object_id):
        mock_collection.find_one.side_effect = AutoReconnect("connection reset")

        with pytest.raises(TransientException):
            await store.get_attendance(str(sample_object_id), "u1")


class TestEnsureIndexes:
    @pytest.mark.asyncio
    async def test_creates_unique_indexes(self, store, mock_collection):
        await store.ensure_indexes()

        unique_calls = [
            c for c in mock_collection.create_index.call_args_list
            if c.kwargs.get("unique")
        ]
        assert len(unique_calls) == 5
