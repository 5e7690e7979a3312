"""
One-time code document model.

Maps to the `otps` MongoDB collection.

code_hash stores SHA-256(code) — the plain code is never stored.
attempts counts verify calls that reached the comparison (max 5).
is_used flips to True once and never back; consumed records are deleted.
expires_at carries a TTL index so MongoDB reaps stale records on its own.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import Field

from schemas.models.base import MongoBaseModel, ensure_utc


class OtpType(str, Enum):
    REGISTER = "register"
    LOGIN = "login"
    PASSWORD_RESET = "password_reset"


class OtpDoc(MongoBaseModel):
    """Document model for the `otps` collection."""

    email: str
    code_hash: str
    otp_type: OtpType
    attempts: int = Field(default=0, ge=0)
    is_used: bool = False
    expires_at: datetime
    created_at: Optional[datetime] = None

    def to_mongo(self) -> dict:
        data = super().to_mongo()
        data["otp_type"] = self.otp_type.value
        return data

    def is_expired(self, now: datetime) -> bool:
        return ensure_utc(self.expires_at) <= now
