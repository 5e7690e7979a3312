"""
FastAPI dependency providers.

All injectable dependencies are defined here as plain functions used with
FastAPI's Depends() system. Tests swap repositories and the email provider
through app.dependency_overrides.

Authentication contract: get_current_user_id pulls the access credential
from the Authorization header or the access cookie, verifies it and stores
the resolved id on request.state.user_id. Failures are 401s whose ``code``
is NO_TOKEN, TOKEN_EXPIRED or INVALID_TOKEN.
"""

from __future__ import annotations

from fastapi import Depends, Request

from config import AppSettings
from errors import INVALID_TOKEN, NO_TOKEN, AuthenticationError
from infrastructure.email.protocol import EmailProvider
from infrastructure.session_transport import SessionTransport, build_session_transport
from repositories.otp_repository import OtpRepository
from repositories.user_repository import UserRepository
from schemas.models.user import UserDoc
from services.auth_service import AuthService
from services.otp_service import OtpService
from services.token_service import TokenService
from services.user_service import UserService


def get_settings(request: Request) -> AppSettings:
    """Return the AppSettings instance stored on app.state."""
    return request.app.state.settings


async def get_db(request: Request):
    """Return the async MongoDB database from app.state."""
    return request.app.state.db


def get_email_provider(request: Request) -> EmailProvider:
    return request.app.state.email_provider


def get_user_repository(db=Depends(get_db)) -> UserRepository:
    return UserRepository(db)


def get_otp_repository(db=Depends(get_db)) -> OtpRepository:
    return OtpRepository(db)


def get_token_service(settings: AppSettings = Depends(get_settings)) -> TokenService:
    return TokenService(settings.jwt)


def get_session_transport(
    settings: AppSettings = Depends(get_settings),
) -> SessionTransport:
    return build_session_transport(settings.jwt)


def get_otp_service(
    otp_repo: OtpRepository = Depends(get_otp_repository),
    settings: AppSettings = Depends(get_settings),
) -> OtpService:
    return OtpService(
        otp_repo,
        length=settings.otp.otp_length,
        expiry_seconds=settings.otp.otp_expiry_seconds,
        max_attempts=settings.otp.otp_max_attempts,
    )


def get_auth_service(
    user_repo: UserRepository = Depends(get_user_repository),
    otp_service: OtpService = Depends(get_otp_service),
    token_service: TokenService = Depends(get_token_service),
    email_provider: EmailProvider = Depends(get_email_provider),
    settings: AppSettings = Depends(get_settings),
) -> AuthService:
    return AuthService(
        user_repo,
        otp_service,
        token_service,
        email_provider,
        max_login_attempts=settings.otp.max_login_attempts,
    )


def get_user_service(
    user_repo: UserRepository = Depends(get_user_repository),
) -> UserService:
    return UserService(user_repo)


def get_current_user_id(
    request: Request,
    transport: SessionTransport = Depends(get_session_transport),
    token_service: TokenService = Depends(get_token_service),
) -> str:
    token = transport.extract_access(request)
    if not token:
        raise AuthenticationError("Access token is required", code=NO_TOKEN)
    user_id = token_service.verify_access(token)
    request.state.user_id = user_id
    return user_id


async def get_current_user(
    user_id: str = Depends(get_current_user_id),
    user_repo: UserRepository = Depends(get_user_repository),
) -> UserDoc:
    user = await user_repo.find_by_id(user_id)
    if user is None:
        raise AuthenticationError(
            "Unauthorized access, user not found", code=INVALID_TOKEN
        )
    return user
