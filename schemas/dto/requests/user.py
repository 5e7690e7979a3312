"""
Request DTOs for profile endpoints.

CompleteProfileRequest  — POST /users/complete-profile
UpdateProfileRequest    — PUT  /users/profile
UpdatePasswordRequest   — PUT  /users/password
UpdatePinRequest        — PUT  /users/pin
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class CompleteProfileRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = ""
    password: str = ""
    pin: str = ""


class UpdateProfileRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = ""


class UpdatePasswordRequest(BaseModel):
    """``old_password`` is only required once a password exists."""

    model_config = ConfigDict(populate_by_name=True)

    old_password: Optional[str] = Field(default=None, alias="oldPassword")
    new_password: str = Field(default="", alias="newPassword")


class UpdatePinRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    old_pin: Optional[str] = Field(default=None, alias="oldPin")
    new_pin: str = Field(default="", alias="newPin")
