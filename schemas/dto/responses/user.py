"""Response DTOs for profile endpoints."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from schemas.dto.responses.auth import UserProfileResponse


class UserResponse(BaseModel):
    """GET /users/me, POST /users/complete-profile, PUT /users/profile."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    message: str
    data: UserProfileResponse
