"""
Request DTOs for authentication endpoints.

SendCodeRequest               — POST /auth/send-{registration,login,password-reset}-otp
VerifyCodeRequest             — POST /auth/verify-{registration,login}-otp
VerifyPasswordResetRequest    — POST /auth/verify-password-reset-otp
PasswordLoginRequest          — POST /auth/login-password
PinLoginRequest               — POST /auth/login-pin
RefreshTokenRequest           — POST /auth/refresh-token (body only used by bearer transport)

Fields default to empty strings so missing values reach the service
validators and come back with the same messages as malformed ones. The
browser client sends camelCase keys; both spellings are accepted.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class SendCodeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: str = ""


class VerifyCodeRequest(BaseModel):
    """``otp`` is the 6-digit code sent to the user's email address."""

    model_config = ConfigDict(populate_by_name=True)

    email: str = ""
    otp: str = ""


class VerifyPasswordResetRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: str = ""
    otp: str = ""
    new_password: str = Field(default="", alias="newPassword")


class PasswordLoginRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: str = ""
    password: str = ""


class PinLoginRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: str = ""
    pin: str = ""


class RefreshTokenRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    refresh_token: Optional[str] = Field(default=None, alias="refreshToken")
