"""
OTP ledger storage — the `otps` collection.

The conditional updates here are what keep verification honest under
retried or concurrent requests: an attempt is only counted against a record
that is still unused, unexpired and under the limit, and only one caller
can flip is_used.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pymongo import DESCENDING, ReturnDocument

from repositories.base import BaseRepository, to_object_id
from schemas.models.otp import OtpDoc, OtpType


class OtpRepository(BaseRepository[OtpDoc]):
    collection_name = "otps"
    model = OtpDoc

    async def insert(self, otp: OtpDoc) -> OtpDoc:
        result = await self._collection.insert_one(otp.to_mongo())
        return otp.model_copy(update={"id": result.inserted_id})

    async def delete_unused(self, email: str, otp_type: OtpType) -> int:
        result = await self._collection.delete_many(
            {"email": email, "otp_type": otp_type.value, "is_used": False}
        )
        return result.deleted_count

    async def find_latest_unused(
        self, email: str, otp_type: OtpType
    ) -> Optional[OtpDoc]:
        doc = await self._collection.find_one(
            {"email": email, "otp_type": otp_type.value, "is_used": False},
            sort=[("created_at", DESCENDING), ("_id", DESCENDING)],
        )
        return self._to_model(doc)

    async def find_by_id(self, otp_id: Any) -> Optional[OtpDoc]:
        oid = to_object_id(otp_id)
        if oid is None:
            return None
        return self._to_model(await self._collection.find_one({"_id": oid}))

    async def increment_attempts(
        self, otp_id: Any, max_attempts: int, now: datetime
    ) -> Optional[OtpDoc]:
        """Count one verify attempt; None when the record is no longer usable."""
        doc = await self._collection.find_one_and_update(
            {
                "_id": to_object_id(otp_id),
                "is_used": False,
                "attempts": {"$lt": max_attempts},
                "expires_at": {"$gt": now},
            },
            {"$inc": {"attempts": 1}},
            return_document=ReturnDocument.AFTER,
        )
        return self._to_model(doc)

    async def mark_used(self, otp_id: Any) -> bool:
        result = await self._collection.update_one(
            {"_id": to_object_id(otp_id), "is_used": False},
            {"$set": {"is_used": True}},
        )
        return result.modified_count == 1

    async def delete(self, otp_id: Any) -> bool:
        result = await self._collection.delete_one({"_id": to_object_id(otp_id)})
        return result.deleted_count > 0

    async def purge_expired(self, now: datetime) -> int:
        result = await self._collection.delete_many({"expires_at": {"$lte": now}})
        return result.deleted_count
