"""
MongoDB implementation of the persistence contract.

Collections:
    circles, circle_members, circle_invite_codes, meetups, feed_items,
    piece_mentions, meetup_attendance, piece_comments

Unique indexes (created by ensure_indexes) arbitrate every race:
    circle_members (circleId, userId)
    circle_invite_codes (circleId) and (code)
    piece_mentions (meetupId, pieceId)
    meetup_attendance (meetupId, userId)

Invite code rotation is a single find_one_and_update upsert on the
circle's code document, so concurrent rotations leave exactly one code.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set, Type, TypeVar

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import BaseModel, ValidationError
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import (
    ConnectionFailure,
    DuplicateKeyError,
    ExecutionTimeout,
    PyMongoError,
    WTimeoutError,
)

from common.utils.exceptions import (
    APIException,
    ConflictException,
    ForbiddenException,
    NotFoundException,
    TransientException,
    UnknownException,
    ValidationException,
)
from geuttae.models import (
    CircleRole,
    CircleSummary,
    Comment,
    FeedItemRecord,
    InviteCode,
    MeetupSummary,
    MembershipSummary,
)
from geuttae.persistence.gateway import (
    INVITE_NOT_FOUND_MESSAGE,
    NOT_ADMIN_MESSAGE,
    PersistenceGateway,
)

logger = logging.getLogger(__name__)

# ConnectionFailure covers AutoReconnect, NetworkTimeout and ServerSelectionTimeoutError
TRANSIENT_ERRORS = (ConnectionFailure, ExecutionTimeout, WTimeoutError)

MALFORMED_ROW_MESSAGE = "모임 정보를 확인할 수 없어요."

ModelT = TypeVar("ModelT", bound=BaseModel)


@asynccontextmanager
async def translate_store_errors(operation: str):
    """Re-raise driver errors as tagged API exceptions."""
    try:
        yield
    except APIException:
        raise
    except DuplicateKeyError as e:
        raise ConflictException(
            message="Record already exists",
            code="DUPLICATE_KEY",
            details={"operation": operation},
        ) from e
    except TRANSIENT_ERRORS as e:
        logger.warning(f"Store unreachable during {operation}: {e}")
        raise TransientException() from e
    except PyMongoError as e:
        logger.error(f"Store error during {operation}: {e}")
        raise UnknownException(
            message=str(e) or "Unexpected store error",
            code="STORE_ERROR",
        ) from e


def duplicate_key_fields(error: DuplicateKeyError) -> Set[str]:
    """Field names of the unique index that rejected a write."""
    details = error.details or {}
    return set((details.get("keyPattern") or {}).keys())


def to_object_id(value: str, label: str = "id") -> ObjectId:
    """Parse an id coming from a caller; malformed ids are a validation error."""
    try:
        return ObjectId(value)
    except (InvalidId, TypeError) as e:
        raise ValidationException(
            message=f"Invalid {label}",
            code="INVALID_ID",
            details={"field": label},
        ) from e


def map_row(model: Type[ModelT], data: Dict[str, Any]) -> ModelT:
    """Validate a mapped row; a row that does not fit the model is a store error."""
    try:
        return model.model_validate(data)
    except ValidationError as e:
        logger.error(f"Malformed {model.__name__} row: {e}")
        raise UnknownException(message=MALFORMED_ROW_MESSAGE, code="MALFORMED_ROW") from e


def _str_or_none(value: Any) -> Optional[str]:
    return str(value) if value is not None else None


class MongoPersistenceGateway(PersistenceGateway):
    """
    Persistence gateway backed by MongoDB through Motor.
    """

    LIST_LIMIT = 500

    def __init__(self, db: AsyncIOMotorDatabase):
        """
        Initialize MongoPersistenceGateway.

        Args:
            db: MongoDB database connection
        """
        self._db = db
        self._circles_collection = db["circles"]
        self._members_collection = db["circle_members"]
        self._invite_codes_collection = db["circle_invite_codes"]
        self._meetups_collection = db["meetups"]
        self._feed_collection = db["feed_items"]
        self._mentions_collection = db["piece_mentions"]
        self._attendance_collection = db["meetup_attendance"]
        self._comments_collection = db["piece_comments"]

    async def ensure_indexes(self) -> None:
        """Create the indexes the uniqueness guarantees rely on."""
        async with translate_store_errors("ensure_indexes"):
            await self._members_collection.create_index(
                [("circleId", ASCENDING), ("userId", ASCENDING)], unique=True
            )
            await self._members_collection.create_index([("userId", ASCENDING)])
            await self._invite_codes_collection.create_index(
                [("circleId", ASCENDING)], unique=True
            )
            await self._invite_codes_collection.create_index(
                [("code", ASCENDING)], unique=True
            )
            await self._meetups_collection.create_index(
                [("circleId", ASCENDING), ("scheduledAt", ASCENDING)]
            )
            await self._feed_collection.create_index(
                [("circleId", ASCENDING), ("createdAt", DESCENDING)]
            )
            await self._mentions_collection.create_index(
                [("meetupId", ASCENDING), ("pieceId", ASCENDING)], unique=True
            )
            await self._attendance_collection.create_index(
                [("meetupId", ASCENDING), ("userId", ASCENDING)], unique=True
            )
            await self._comments_collection.create_index(
                [("pieceId", ASCENDING), ("createdAt", ASCENDING)]
            )

        logger.info("Circle store indexes ensured")

    # ─────────────────────────────────────────────────────────────────
    # Circles and memberships
    # ─────────────────────────────────────────────────────────────────

    async def list_circles_for_user(self, user_id: str) -> List[CircleSummary]:
        async with translate_store_errors("list_circles_for_user"):
            memberships = await self._members_collection.find(
                {"userId": user_id}
            ).sort("joinedAt", ASCENDING).to_list(length=self.LIST_LIMIT)

            if not memberships:
                return []

            circle_ids = [m["circleId"] for m in memberships]
            circles = await self._circles_collection.find(
                {"_id": {"$in": circle_ids}}
            ).to_list(length=self.LIST_LIMIT)

        circles_by_id = {c["_id"]: c for c in circles}
        result = []
        for membership in memberships:
            circle = circles_by_id.get(membership["circleId"])
            # Membership rows whose circle is gone are not shown
            if not circle:
                continue
            result.append(map_row(CircleSummary, {
                "id": str(circle["_id"]),
                "name": circle.get("name"),
                "role": membership.get("role"),
            }))
        return result

    async def list_members(self, circle_id: str) -> List[MembershipSummary]:
        circle_oid = to_object_id(circle_id, "circleId")
        async with translate_store_errors("list_members"):
            rows = await self._members_collection.find(
                {"circleId": circle_oid}
            ).sort("joinedAt", ASCENDING).to_list(length=self.LIST_LIMIT)

        return [self._to_membership(row) for row in rows]

    async def get_membership(
        self, circle_id: str, user_id: str
    ) -> Optional[MembershipSummary]:
        circle_oid = to_object_id(circle_id, "circleId")
        async with translate_store_errors("get_membership"):
            row = await self._members_collection.find_one(
                {"circleId": circle_oid, "userId": user_id}
            )
        return self._to_membership(row) if row else None

    async def insert_circle(self, name: str, created_by: str) -> str:
        now = datetime.now(timezone.utc)
        async with translate_store_errors("insert_circle"):
            result = await self._circles_collection.insert_one({
                "name": name,
                "createdBy": created_by,
                "createdAt": now,
                "updatedAt": now,
            })
        return str(result.inserted_id)

    async def insert_membership(
        self, circle_id: str, user_id: str, role: CircleRole
    ) -> MembershipSummary:
        circle_oid = to_object_id(circle_id, "circleId")
        doc = {
            "circleId": circle_oid,
            "userId": user_id,
            "role": CircleRole(role).value,
            "joinedAt": datetime.now(timezone.utc),
        }
        async with translate_store_errors("insert_membership"):
            await self._members_collection.insert_one(doc)
        return self._to_membership(doc)

    async def discard_circle(self, circle_id: str) -> None:
        circle_oid = to_object_id(circle_id, "circleId")
        async with translate_store_errors("discard_circle"):
            await self._members_collection.delete_many({"circleId": circle_oid})
            await self._circles_collection.delete_one({"_id": circle_oid})
        logger.warning(f"Discarded incomplete circle {circle_id}")

    # ─────────────────────────────────────────────────────────────────
    # Invite codes
    # ─────────────────────────────────────────────────────────────────

    async def get_active_invite_code(
        self, circle_id: str, caller_id: str
    ) -> Optional[InviteCode]:
        circle_oid = to_object_id(circle_id, "circleId")
        async with translate_store_errors("get_active_invite_code"):
            await self._require_admin(circle_oid, caller_id)
            row = await self._invite_codes_collection.find_one({"circleId": circle_oid})

        if not row:
            return None
        return self._to_invite_code(row)

    async def rotate_invite_code(
        self, circle_id: str, caller_id: str, code: str
    ) -> InviteCode:
        circle_oid = to_object_id(circle_id, "circleId")
        now = datetime.now(timezone.utc)
        update = {
            "$set": {"code": code, "issuedAt": now, "issuedBy": caller_id},
            "$setOnInsert": {"circleId": circle_oid},
        }

        async with translate_store_errors("rotate_invite_code"):
            await self._require_admin(circle_oid, caller_id)

            row = None
            for attempt in range(2):
                try:
                    row = await self._invite_codes_collection.find_one_and_update(
                        {"circleId": circle_oid},
                        update,
                        upsert=True,
                        return_document=ReturnDocument.AFTER,
                    )
                    break
                except DuplicateKeyError as e:
                    if "code" in duplicate_key_fields(e):
                        raise ConflictException(
                            message="Invite code already in use",
                            code="INVITE_CODE_TAKEN",
                        ) from e
                    if attempt:
                        raise
                    # A concurrent rotation inserted the row first; retry takes the update path
                    logger.debug(f"Concurrent first rotation for circle {circle_id}, retrying")

        logger.info(f"Invite code rotated for circle {circle_id} by {caller_id}")
        return self._to_invite_code(row)

    async def redeem_invite_code(self, code: str, user_id: str) -> CircleSummary:
        now = datetime.now(timezone.utc)

        async with translate_store_errors("redeem_invite_code"):
            invite = await self._invite_codes_collection.find_one({"code": code})
            if not invite:
                raise NotFoundException(
                    message=INVITE_NOT_FOUND_MESSAGE,
                    code="INVITE_NOT_FOUND",
                )

            circle_oid = invite["circleId"]
            circle = await self._circles_collection.find_one({"_id": circle_oid})
            if not circle:
                raise NotFoundException(
                    message=INVITE_NOT_FOUND_MESSAGE,
                    code="INVITE_NOT_FOUND",
                )

            query = {"circleId": circle_oid, "userId": user_id}
            await self._upsert(
                self._members_collection,
                query,
                {"$setOnInsert": {"role": CircleRole.MEMBER.value, "joinedAt": now}},
            )
            membership = await self._members_collection.find_one(query)

        role = membership.get("role") if membership else CircleRole.MEMBER.value
        logger.info(f"User {user_id} joined circle {circle_oid} by invite code")

        return map_row(CircleSummary, {
            "id": str(circle_oid),
            "name": circle.get("name"),
            "role": role,
        })

    async def _require_admin(self, circle_oid: ObjectId, caller_id: str) -> None:
        """Reject callers that are not admins of the circle."""
        admin = await self._members_collection.find_one({
            "circleId": circle_oid,
            "userId": caller_id,
            "role": CircleRole.ADMIN.value,
        })
        if admin is None:
            raise ForbiddenException(message=NOT_ADMIN_MESSAGE, code="NOT_CIRCLE_ADMIN")

    # ─────────────────────────────────────────────────────────────────
    # Meetups
    # ─────────────────────────────────────────────────────────────────

    async def insert_meetup(
        self,
        circle_id: str,
        host_id: str,
        title: str,
        scheduled_at: datetime,
        status: str = "planned",
    ) -> MeetupSummary:
        circle_oid = to_object_id(circle_id, "circleId")
        doc = {
            "circleId": circle_oid,
            "hostId": host_id,
            "title": title,
            "status": status,
            "scheduledAt": scheduled_at,
            "createdAt": datetime.now(timezone.utc),
        }
        async with translate_store_errors("insert_meetup"):
            result = await self._meetups_collection.insert_one(doc)
        doc["_id"] = result.inserted_id
        return self._to_meetup(doc)

    async def list_meetups(self, circle_id: str) -> List[MeetupSummary]:
        circle_oid = to_object_id(circle_id, "circleId")
        async with translate_store_errors("list_meetups"):
            rows = await self._meetups_collection.find(
                {"circleId": circle_oid}
            ).sort([("scheduledAt", ASCENDING), ("createdAt", DESCENDING)]).to_list(
                length=self.LIST_LIMIT
            )
        return [self._to_meetup(row) for row in rows]

    async def get_meetup_circle_id(self, meetup_id: str) -> Optional[str]:
        meetup_oid = to_object_id(meetup_id, "meetupId")
        async with translate_store_errors("get_meetup_circle_id"):
            row = await self._meetups_collection.find_one(
                {"_id": meetup_oid}, {"circleId": 1}
            )
        return _str_or_none(row.get("circleId")) if row else None

    # ─────────────────────────────────────────────────────────────────
    # Feed items
    # ─────────────────────────────────────────────────────────────────

    async def list_recent_feed_items(
        self, circle_id: str, limit: int
    ) -> List[FeedItemRecord]:
        circle_oid = to_object_id(circle_id, "circleId")
        async with translate_store_errors("list_recent_feed_items"):
            rows = await self._feed_collection.find(
                {"circleId": circle_oid}
            ).sort("createdAt", DESCENDING).limit(limit).to_list(length=limit)
        return [self._to_feed_item(row) for row in rows]

    async def insert_feed_item(
        self, circle_id: str, author_id: str, item_type: str, body: str
    ) -> FeedItemRecord:
        circle_oid = to_object_id(circle_id, "circleId")
        doc = {
            "circleId": circle_oid,
            "authorId": author_id,
            "type": item_type,
            "body": body,
            "createdAt": datetime.now(timezone.utc),
        }
        async with translate_store_errors("insert_feed_item"):
            result = await self._feed_collection.insert_one(doc)
        doc["_id"] = result.inserted_id
        return self._to_feed_item(doc)

    async def get_piece_circle_id(self, piece_id: str) -> Optional[str]:
        piece_oid = to_object_id(piece_id, "pieceId")
        async with translate_store_errors("get_piece_circle_id"):
            row = await self._feed_collection.find_one(
                {"_id": piece_oid}, {"circleId": 1}
            )
        return _str_or_none(row.get("circleId")) if row else None

    # ─────────────────────────────────────────────────────────────────
    # Mentions and attendance
    # ─────────────────────────────────────────────────────────────────

    async def list_mentioned_piece_ids(self, meetup_id: str) -> Set[str]:
        meetup_oid = to_object_id(meetup_id, "meetupId")
        async with translate_store_errors("list_mentioned_piece_ids"):
            rows = await self._mentions_collection.find(
                {"meetupId": meetup_oid}, {"pieceId": 1}
            ).to_list(length=self.LIST_LIMIT)
        return {str(row["pieceId"]) for row in rows if row.get("pieceId") is not None}

    async def insert_mention(
        self, meetup_id: str, piece_id: str, user_id: str
    ) -> None:
        doc = {
            "meetupId": to_object_id(meetup_id, "meetupId"),
            "pieceId": to_object_id(piece_id, "pieceId"),
            "userId": user_id,
            "createdAt": datetime.now(timezone.utc),
        }
        async with translate_store_errors("insert_mention"):
            await self._mentions_collection.insert_one(doc)

    async def get_attendance(self, meetup_id: str, user_id: str) -> Optional[bool]:
        meetup_oid = to_object_id(meetup_id, "meetupId")
        async with translate_store_errors("get_attendance"):
            row = await self._attendance_collection.find_one(
                {"meetupId": meetup_oid, "userId": user_id},
                {"isAttending": 1},
            )
        if not row or row.get("isAttending") is None:
            return None
        return bool(row["isAttending"])

    async def upsert_attendance(
        self,
        meetup_id: str,
        user_id: str,
        is_attending: bool,
        checked_by: str,
    ) -> None:
        meetup_oid = to_object_id(meetup_id, "meetupId")
        now = datetime.now(timezone.utc)
        async with translate_store_errors("upsert_attendance"):
            await self._upsert(
                self._attendance_collection,
                {"meetupId": meetup_oid, "userId": user_id},
                {
                    "$set": {
                        "isAttending": is_attending,
                        "checkedBy": checked_by,
                        "updatedAt": now,
                    },
                    "$setOnInsert": {"createdAt": now},
                },
            )

    # ─────────────────────────────────────────────────────────────────
    # Comments
    # ─────────────────────────────────────────────────────────────────

    async def list_comments(self, piece_id: str) -> List[Comment]:
        piece_oid = to_object_id(piece_id, "pieceId")
        async with translate_store_errors("list_comments"):
            rows = await self._comments_collection.find(
                {"pieceId": piece_oid}
            ).sort("createdAt", ASCENDING).to_list(length=self.LIST_LIMIT)
        return [self._to_comment(row) for row in rows]

    async def insert_comment(
        self,
        piece_id: str,
        author_id: str,
        body: str,
        meetup_id: Optional[str] = None,
    ) -> Comment:
        doc = {
            "pieceId": to_object_id(piece_id, "pieceId"),
            "meetupId": to_object_id(meetup_id, "meetupId") if meetup_id else None,
            "authorId": author_id,
            "body": body,
            "createdAt": datetime.now(timezone.utc),
        }
        async with translate_store_errors("insert_comment"):
            result = await self._comments_collection.insert_one(doc)
        doc["_id"] = result.inserted_id
        return self._to_comment(doc)

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    async def _upsert(self, collection, query: Dict[str, Any], update: Dict[str, Any]):
        """Upsert by a unique key, tolerating a concurrent first insert."""
        try:
            return await collection.update_one(query, update, upsert=True)
        except DuplicateKeyError:
            # The other writer created the row; this attempt takes the update path
            return await collection.update_one(query, update, upsert=True)

    def _to_membership(self, row: Dict[str, Any]) -> MembershipSummary:
        return map_row(MembershipSummary, {
            "userId": row.get("userId"),
            "role": row.get("role"),
            "joinedAt": row.get("joinedAt"),
        })

    def _to_invite_code(self, row: Dict[str, Any]) -> InviteCode:
        return map_row(InviteCode, {
            "circleId": _str_or_none(row.get("circleId")),
            "code": str(row.get("code") or "").strip(),
            "issuedAt": row.get("issuedAt"),
        })

    def _to_meetup(self, row: Dict[str, Any]) -> MeetupSummary:
        return map_row(MeetupSummary, {
            "id": _str_or_none(row.get("_id")),
            "title": row.get("title"),
            "status": row.get("status") or "planned",
            "scheduledAt": row.get("scheduledAt"),
            "createdAt": row.get("createdAt"),
        })

    def _to_feed_item(self, row: Dict[str, Any]) -> FeedItemRecord:
        return map_row(FeedItemRecord, {
            "id": _str_or_none(row.get("_id")),
            "circleId": _str_or_none(row.get("circleId")),
            "authorId": row.get("authorId"),
            "type": row.get("type") or "text",
            "body": row.get("body"),
            "createdAt": row.get("createdAt"),
        })

    def _to_comment(self, row: Dict[str, Any]) -> Comment:
        return map_row(Comment, {
            "id": _str_or_none(row.get("_id")),
            "body": row.get("body"),
            "authorId": row.get("authorId"),
            "meetupId": _str_or_none(row.get("meetupId")),
            "createdAt": row.get("createdAt"),
        })
