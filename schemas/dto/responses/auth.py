"""
Response DTOs for authentication endpoints.

UserProfileResponse    — public view of a user, embedded in most responses
SendCodeResponse       — POST /auth/send-*-otp  (200)
SessionResponse        — POST /auth/verify-{registration,login}-otp, /auth/login-*,
                         /auth/refresh-token
ValidateTokenResponse  — GET /auth/validate-token  (200)
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from schemas.models.user import UserDoc


class UserProfileResponse(BaseModel):
    """Never carries password or PIN hashes."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    email: str
    name: Optional[str] = None
    is_verified: bool
    profile_completed: bool
    has_completed_profile: bool
    role: str = "user"
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_user(cls, user: UserDoc) -> "UserProfileResponse":
        return cls(
            id=str(user.id),
            email=user.email,
            name=user.name,
            is_verified=user.is_verified,
            profile_completed=user.profile_completed,
            has_completed_profile=user.has_completed_profile,
            role=user.role,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )


class SendCodeResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    message: str
    email: str
    expires_in: int


class SessionResponse(BaseModel):
    """Token fields are only present with the bearer transport (exclude_none)."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    message: str
    user: Optional[UserProfileResponse] = None
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None


class ValidateTokenResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    valid: bool = True
    message: str = "Token is valid"
    user: UserProfileResponse
