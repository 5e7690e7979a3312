"""
Credential store — the `users` collection.

Writes that touch name, password_hash or pin_hash use an aggregation
pipeline update whose last stage recomputes profile_completed from the
three fields, so the persisted flag and has_completed_profile() are derived
from the same document state in one atomic update.
"""

from __future__ import annotations

from typing import Any, Optional

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from repositories.base import BaseRepository, to_object_id
from schemas.models.base import utcnow
from schemas.models.user import UserDoc
from shared.logging import get_logger

log = get_logger(__name__)

_PROFILE_COMPLETED_STAGE = {
    "$set": {
        "profile_completed": {"$and": ["$name", "$password_hash", "$pin_hash"]}
    }
}


class UserRepository(BaseRepository[UserDoc]):
    collection_name = "users"
    model = UserDoc

    async def find_by_email(self, email: str) -> Optional[UserDoc]:
        return self._to_model(await self._collection.find_one({"email": email}))

    async def find_verified_by_email(self, email: str) -> Optional[UserDoc]:
        doc = await self._collection.find_one({"email": email, "is_verified": True})
        return self._to_model(doc)

    async def find_by_id(self, user_id: Any) -> Optional[UserDoc]:
        oid = to_object_id(user_id)
        if oid is None:
            return None
        return self._to_model(await self._collection.find_one({"_id": oid}))

    async def upsert_verified(self, email: str) -> UserDoc:
        """Create *email* as a verified user, or promote an unverified record.

        Two concurrent upserts can race on the unique email index; the loser
        retries as a plain update of the winner's document.
        """
        now = utcnow()
        update = {
            "$set": {"is_verified": True, "updated_at": now},
            "$setOnInsert": {
                "email": email,
                "name": None,
                "password_hash": None,
                "pin_hash": None,
                "is_locked": False,
                "login_attempts": 0,
                "profile_completed": False,
                "role": "user",
                "created_at": now,
            },
        }
        try:
            doc = await self._collection.find_one_and_update(
                {"email": email},
                update,
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError:
            log.warning("user_upsert_race", email=email)
            doc = await self._collection.find_one_and_update(
                {"email": email},
                {"$set": update["$set"]},
                return_document=ReturnDocument.AFTER,
            )
        return self._to_model(doc)

    async def reset_login_attempts(self, user_id: Any) -> Optional[UserDoc]:
        return await self._update(
            user_id, [{"$set": {"login_attempts": 0, "updated_at": utcnow()}}]
        )

    async def record_failed_login(
        self, user_id: Any, max_attempts: int
    ) -> Optional[UserDoc]:
        """Increment login_attempts and lock the account once it reaches *max_attempts*."""
        return await self._update(
            user_id,
            [
                {
                    "$set": {
                        "login_attempts": {
                            "$add": [{"$ifNull": ["$login_attempts", 0]}, 1]
                        },
                        "updated_at": utcnow(),
                    }
                },
                {
                    "$set": {
                        "is_locked": {
                            "$or": [
                                {"$ifNull": ["$is_locked", False]},
                                {"$gte": ["$login_attempts", max_attempts]},
                            ]
                        }
                    }
                },
            ],
        )

    async def set_password(
        self, user_id: Any, password_hash: str, *, unlock: bool = False
    ) -> Optional[UserDoc]:
        fields: dict = {"password_hash": password_hash, "updated_at": utcnow()}
        if unlock:
            fields.update({"login_attempts": 0, "is_locked": False})
        return await self._update(user_id, [{"$set": fields}, _PROFILE_COMPLETED_STAGE])

    async def set_pin(self, user_id: Any, pin_hash: str) -> Optional[UserDoc]:
        return await self._update(
            user_id,
            [{"$set": {"pin_hash": pin_hash, "updated_at": utcnow()}}, _PROFILE_COMPLETED_STAGE],
        )

    async def set_name(self, user_id: Any, name: str) -> Optional[UserDoc]:
        return await self._update(
            user_id,
            [{"$set": {"name": name, "updated_at": utcnow()}}, _PROFILE_COMPLETED_STAGE],
        )

    async def complete_profile(
        self, user_id: Any, name: str, password_hash: str, pin_hash: str
    ) -> Optional[UserDoc]:
        return await self._update(
            user_id,
            [
                {
                    "$set": {
                        "name": name,
                        "password_hash": password_hash,
                        "pin_hash": pin_hash,
                        "updated_at": utcnow(),
                    }
                },
                _PROFILE_COMPLETED_STAGE,
            ],
        )

    async def delete(self, user_id: Any) -> bool:
        oid = to_object_id(user_id)
        if oid is None:
            return False
        result = await self._collection.delete_one({"_id": oid})
        return result.deleted_count > 0

    async def _update(self, user_id: Any, pipeline: list) -> Optional[UserDoc]:
        oid = to_object_id(user_id)
        if oid is None:
            return None
        doc = await self._collection.find_one_and_update(
            {"_id": oid}, pipeline, return_document=ReturnDocument.AFTER
        )
        return self._to_model(doc)
