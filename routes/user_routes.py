"""
Profile endpoints for the signed-in user.

GET    /users/me                — current profile
POST   /users/complete-profile  — set name, password and PIN in one go
PUT    /users/profile           — change display name
PUT    /users/password          — create or change password
PUT    /users/pin               — create or change PIN
DELETE /users/me                — delete the account and end the session
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response

from dependencies import get_current_user, get_session_transport, get_user_service
from infrastructure.session_transport import SessionTransport
from schemas.dto.requests.user import (
    CompleteProfileRequest,
    UpdatePasswordRequest,
    UpdatePinRequest,
    UpdateProfileRequest,
)
from schemas.dto.responses.auth import UserProfileResponse
from schemas.dto.responses.common import MessageResponse
from schemas.dto.responses.user import UserResponse
from schemas.models.user import UserDoc
from services.user_service import UserService

router = APIRouter(prefix="/users", tags=["users"])


def _user(user: UserDoc, message: str) -> dict:
    return UserResponse(
        message=message, data=UserProfileResponse.from_user(user)
    ).model_dump(mode="json")


@router.get("/me")
async def get_me(user: UserDoc = Depends(get_current_user)) -> dict:
    return _user(user, "Current user retrieved successfully")


@router.post("/complete-profile")
async def complete_profile(
    body: CompleteProfileRequest,
    user: UserDoc = Depends(get_current_user),
    users: UserService = Depends(get_user_service),
) -> dict:
    updated = await users.complete_profile(user, body.name, body.password, body.pin)
    return _user(updated, "Profile completed successfully")


@router.put("/profile")
async def update_profile(
    body: UpdateProfileRequest,
    user: UserDoc = Depends(get_current_user),
    users: UserService = Depends(get_user_service),
) -> dict:
    updated = await users.update_name(user, body.name)
    return _user(updated, "Profile updated successfully")


@router.put("/password")
async def update_password(
    body: UpdatePasswordRequest,
    user: UserDoc = Depends(get_current_user),
    users: UserService = Depends(get_user_service),
) -> dict:
    created = await users.update_password(user, body.old_password, body.new_password)
    message = "Password created successfully" if created else "Password updated successfully"
    return MessageResponse(message=message).model_dump()


@router.put("/pin")
async def update_pin(
    body: UpdatePinRequest,
    user: UserDoc = Depends(get_current_user),
    users: UserService = Depends(get_user_service),
) -> dict:
    created = await users.update_pin(user, body.old_pin, body.new_pin)
    message = "PIN created successfully" if created else "PIN updated successfully"
    return MessageResponse(message=message).model_dump()


@router.delete("/me")
async def delete_me(
    response: Response,
    user: UserDoc = Depends(get_current_user),
    users: UserService = Depends(get_user_service),
    transport: SessionTransport = Depends(get_session_transport),
) -> dict:
    await users.delete_account(user)
    transport.clear(response)
    return MessageResponse(message="User deleted successfully").model_dump()
