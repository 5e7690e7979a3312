"""
Authentication endpoints.

POST /auth/send-registration-otp     — begin register flow
POST /auth/verify-registration-otp   — complete register flow, issues session (201)
POST /auth/send-login-otp            — begin login flow
POST /auth/verify-login-otp          — complete login flow, issues session
POST /auth/send-password-reset-otp   — begin reset flow
POST /auth/verify-password-reset-otp — complete reset flow, changes password
POST /auth/login-password            — sign in with password
POST /auth/login-pin                 — sign in with PIN
POST /auth/refresh-token             — rotate the session
POST /auth/sign-out                  — clear the session
GET  /auth/validate-token            — resolve the current identity
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Request, Response

from dependencies import (
    get_auth_service,
    get_current_user,
    get_session_transport,
)
from errors import NO_TOKEN, AuthenticationError
from infrastructure.session_transport import SessionTransport
from schemas.dto.requests.auth import (
    PasswordLoginRequest,
    PinLoginRequest,
    RefreshTokenRequest,
    SendCodeRequest,
    VerifyCodeRequest,
    VerifyPasswordResetRequest,
)
from schemas.dto.responses.auth import (
    SendCodeResponse,
    SessionResponse,
    UserProfileResponse,
    ValidateTokenResponse,
)
from schemas.dto.responses.common import MessageResponse
from schemas.models.otp import OtpType
from schemas.models.user import UserDoc
from services.auth_service import AuthService, CodeSent, SessionIssued
from shared.logging import get_logger

router = APIRouter(prefix="/auth", tags=["auth"])
log = get_logger(__name__)


def _code_sent(result: CodeSent, message: str) -> dict:
    return SendCodeResponse(
        message=message, email=result.email, expires_in=result.expires_in
    ).model_dump(mode="json")


def _session(
    response: Response,
    transport: SessionTransport,
    result: SessionIssued,
    message: str,
    include_user: bool = True,
) -> dict:
    extra = transport.issue(response, result.tokens)
    body = SessionResponse(
        message=message,
        user=UserProfileResponse.from_user(result.user) if include_user else None,
        **extra,
    )
    return body.model_dump(mode="json", exclude_none=True)


# ── Registration ────────────────────────────────────────────────────────────


@router.post("/send-registration-otp")
async def send_registration_otp(
    body: SendCodeRequest,
    auth: AuthService = Depends(get_auth_service),
) -> dict:
    result = await auth.send_code(OtpType.REGISTER, body.email)
    return _code_sent(result, "Verification code sent to your email")


@router.post("/verify-registration-otp", status_code=201)
async def verify_registration_otp(
    body: VerifyCodeRequest,
    response: Response,
    auth: AuthService = Depends(get_auth_service),
    transport: SessionTransport = Depends(get_session_transport),
) -> dict:
    result = await auth.verify_registration(body.email, body.otp)
    return _session(response, transport, result, "Registration successful")


# ── Login ───────────────────────────────────────────────────────────────────


@router.post("/send-login-otp")
async def send_login_otp(
    body: SendCodeRequest,
    auth: AuthService = Depends(get_auth_service),
) -> dict:
    result = await auth.send_code(OtpType.LOGIN, body.email)
    return _code_sent(result, "Verification code sent to your email")


@router.post("/verify-login-otp")
async def verify_login_otp(
    body: VerifyCodeRequest,
    response: Response,
    auth: AuthService = Depends(get_auth_service),
    transport: SessionTransport = Depends(get_session_transport),
) -> dict:
    result = await auth.verify_login(body.email, body.otp)
    return _session(response, transport, result, "Login successful")


@router.post("/login-password")
async def login_password(
    body: PasswordLoginRequest,
    response: Response,
    auth: AuthService = Depends(get_auth_service),
    transport: SessionTransport = Depends(get_session_transport),
) -> dict:
    result = await auth.login_with_password(body.email, body.password)
    return _session(response, transport, result, "Login successful")


@router.post("/login-pin")
async def login_pin(
    body: PinLoginRequest,
    response: Response,
    auth: AuthService = Depends(get_auth_service),
    transport: SessionTransport = Depends(get_session_transport),
) -> dict:
    result = await auth.login_with_pin(body.email, body.pin)
    return _session(response, transport, result, "Login successful")


# ── Password reset ──────────────────────────────────────────────────────────


@router.post("/send-password-reset-otp")
async def send_password_reset_otp(
    body: SendCodeRequest,
    auth: AuthService = Depends(get_auth_service),
) -> dict:
    result = await auth.send_code(OtpType.PASSWORD_RESET, body.email)
    return _code_sent(result, "Password reset code sent to your email")


@router.post("/verify-password-reset-otp")
async def verify_password_reset_otp(
    body: VerifyPasswordResetRequest,
    auth: AuthService = Depends(get_auth_service),
) -> dict:
    await auth.verify_password_reset(body.email, body.otp, body.new_password)
    return MessageResponse(message="Password reset successful").model_dump()


# ── Session lifecycle ───────────────────────────────────────────────────────


@router.post("/refresh-token")
async def refresh_token(
    request: Request,
    response: Response,
    body: Optional[RefreshTokenRequest] = None,
    auth: AuthService = Depends(get_auth_service),
    transport: SessionTransport = Depends(get_session_transport),
) -> dict:
    token = transport.extract_refresh(
        request, body.model_dump() if body is not None else None
    )
    if not token:
        raise AuthenticationError("Refresh token is required", code=NO_TOKEN)

    result = await auth.refresh_session(token)
    return _session(
        response, transport, result, "Token refreshed successfully", include_user=False
    )


@router.post("/sign-out")
async def sign_out(
    response: Response,
    transport: SessionTransport = Depends(get_session_transport),
) -> dict:
    # Stateless refresh tokens: nothing to revoke server-side
    transport.clear(response)
    log.info("sign_out")
    return MessageResponse(message="User signed out successfully").model_dump()


@router.get("/validate-token")
async def validate_token(
    user: UserDoc = Depends(get_current_user),
    auth: AuthService = Depends(get_auth_service),
) -> dict:
    user = await auth.validate_session(user)
    return ValidateTokenResponse(user=UserProfileResponse.from_user(user)).model_dump(
        mode="json"
    )
