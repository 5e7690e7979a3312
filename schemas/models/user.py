"""
User document model.

Maps to the `users` MongoDB collection.

A record is created unverified only in the window between sending a
registration code and verifying it. name, password_hash and pin_hash start
as None and are filled in by profile completion; profile_completed persists
the has_completed_profile() check for cheap queries and is recomputed on
every write that touches those three fields.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Mapping, Optional, Union

from pydantic import Field

from schemas.models.base import MongoBaseModel


class UserDoc(MongoBaseModel):
    """Document model for the `users` collection."""

    email: str
    name: Optional[str] = None
    password_hash: Optional[str] = None
    pin_hash: Optional[str] = None
    is_verified: bool = False
    is_locked: bool = False
    login_attempts: int = Field(default=0, ge=0)
    profile_completed: bool = False
    role: Literal["user", "admin", "moderator"] = "user"
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def has_completed_profile(self) -> bool:
        return has_completed_profile(self)


def has_completed_profile(user: Union[UserDoc, Mapping[str, Any]]) -> bool:
    """True once name, password hash and PIN hash are all set.

    Accepts a UserDoc or a raw document / pending update dict.
    """
    if isinstance(user, UserDoc):
        fields = (user.name, user.password_hash, user.pin_hash)
    else:
        fields = (user.get("name"), user.get("password_hash"), user.get("pin_hash"))
    return all(fields)
