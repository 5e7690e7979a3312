"""
Auth flow engine.

Register, login and password reset share one two-phase shape:

    Idle --send_code--> CodeSent --verify--> Verified --issue--> SessionIssued

Password reset ends at Verified with a password change instead of a session.
Every precondition or OTP failure raises a typed AppError; nothing here is
retried, retry is the client's decision (resending a code simply replaces
the previous one).

Password and PIN sign-in are the alternate verification methods for users
who completed their profile. Failed attempts are counted on the user and
lock the account at the configured limit; a password reset unlocks it.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from errors import (
    AccountLockedError,
    AuthenticationError,
    ConflictError,
    InvalidCredentialsError,
    NotFoundError,
    NotVerifiedError,
    ServiceUnavailableError,
    INVALID_TOKEN,
)
from infrastructure.email.protocol import EmailProvider
from repositories.user_repository import UserRepository
from schemas.models.otp import OtpDoc, OtpType
from schemas.models.user import UserDoc
from services.otp_service import OtpService
from services.token_service import TokenPair, TokenService
from shared.crypto import hash_password, verify_password, verify_pin
from shared.logging import get_logger
from shared.validators import require_email, require_otp, require_password, require_pin

log = get_logger(__name__)

MAX_LOGIN_ATTEMPTS = 5


class FlowState(str, Enum):
    IDLE = "idle"
    CODE_SENT = "code_sent"
    VERIFIED = "verified"
    SESSION_ISSUED = "session_issued"


@dataclass(frozen=True)
class CodeSent:
    email: str
    flow: OtpType
    expires_in: int
    state: FlowState = FlowState.CODE_SENT


@dataclass(frozen=True)
class SessionIssued:
    user: UserDoc
    tokens: TokenPair
    state: FlowState = FlowState.SESSION_ISSUED


@dataclass(frozen=True)
class PasswordReset:
    user: UserDoc
    state: FlowState = FlowState.VERIFIED


class AuthService:
    def __init__(
        self,
        user_repo: UserRepository,
        otp_service: OtpService,
        token_service: TokenService,
        email_provider: EmailProvider,
        *,
        max_login_attempts: int = MAX_LOGIN_ATTEMPTS,
    ) -> None:
        self._users = user_repo
        self._otps = otp_service
        self._tokens = token_service
        self._email = email_provider
        self._max_login_attempts = max_login_attempts

    # ── Phase 1: send code ──────────────────────────────────────────────────

    async def send_code(self, flow: OtpType, email: str) -> CodeSent:
        email = require_email(email)

        if flow is OtpType.REGISTER:
            existing = await self._users.find_by_email(email)
            if existing is not None and existing.is_verified:
                log.warning("send_code_rejected", flow=flow.value, reason="user_exists")
                raise ConflictError("User already exists. Please sign in instead.")
        elif flow is OtpType.LOGIN:
            user = await self._require_verified(
                email, "No account found with this email. Please register first."
            )
            self._ensure_unlocked(user)
        else:
            await self._require_verified(email, "No account found with this email")

        record, code = await self._otps.create_otp(email, flow)
        await self._deliver(record, code)

        log.info("otp_sent", email=email, flow=flow.value)
        return CodeSent(email=email, flow=flow, expires_in=self._otps.expiry_seconds)

    async def _deliver(self, record: OtpDoc, code: str) -> None:
        """Hand the code to the notifier; an undelivered code is withdrawn."""
        try:
            delivered = await self._email.send_otp_email(record.email, code, record.otp_type)
        except Exception as e:
            log.error(
                "otp_delivery_error",
                email=record.email,
                error=str(e),
                error_type=type(e).__name__,
            )
            delivered = False

        if not delivered:
            await self._otps.consume(record)
            log.error("otp_delivery_failed", email=record.email, flow=record.otp_type.value)
            raise ServiceUnavailableError(
                "Failed to send verification email", code="notifier_unavailable"
            )

    # ── Phase 2: verify code ────────────────────────────────────────────────

    async def verify_registration(self, email: str, code: str) -> SessionIssued:
        email = require_email(email)
        code = require_otp(code)

        record = await self._otps.verify_latest(email, OtpType.REGISTER, code)
        try:
            user = await self._users.upsert_verified(email)
        finally:
            await self._otps.consume(record)

        log.info("user_registered", user_id=str(user.id), auth_method="otp")
        return self._issue(user, "otp")

    async def verify_login(self, email: str, code: str) -> SessionIssued:
        email = require_email(email)
        code = require_otp(code)

        record = await self._otps.verify_latest(email, OtpType.LOGIN, code)
        try:
            user = await self._require_verified(email, "User not found")
            self._ensure_unlocked(user)
            if user.login_attempts > 0:
                user = await self._users.reset_login_attempts(user.id) or user
        finally:
            await self._otps.consume(record)

        log.info("login_success", user_id=str(user.id), auth_method="otp")
        return self._issue(user, "otp")

    async def verify_password_reset(
        self, email: str, code: str, new_password: str
    ) -> PasswordReset:
        email = require_email(email)
        code = require_otp(code)
        new_password = require_password(new_password, field="new_password")

        record = await self._otps.verify_latest(email, OtpType.PASSWORD_RESET, code)
        try:
            user = await self._require_verified(email, "User not found")
            updated = await self._users.set_password(
                user.id, hash_password(new_password), unlock=True
            )
            if updated is None:
                raise NotFoundError("User not found")
        finally:
            await self._otps.consume(record)

        log.info("password_reset_success", user_id=str(updated.id))
        return PasswordReset(user=updated)

    # ── Alternate verification methods ──────────────────────────────────────

    async def login_with_password(self, email: str, password: str) -> SessionIssued:
        email = require_email(email)
        if not password:
            raise InvalidCredentialsError("Invalid email or password")
        return await self._login_with_secret(
            email, password, "password_hash", verify_password, "pwd",
            "Invalid email or password",
        )

    async def login_with_pin(self, email: str, pin: str) -> SessionIssued:
        email = require_email(email)
        pin = require_pin(pin)
        return await self._login_with_secret(
            email, pin, "pin_hash", verify_pin, "pin", "Invalid email or PIN"
        )

    async def _login_with_secret(
        self,
        email: str,
        secret: str,
        hash_field: str,
        check,
        auth_method: str,
        failure_message: str,
    ) -> SessionIssued:
        user = await self._users.find_verified_by_email(email)
        if user is None:
            log.warning("login_failed", reason="invalid_credentials", auth_method=auth_method)
            raise InvalidCredentialsError(failure_message)
        self._ensure_unlocked(user)

        stored_hash: Optional[str] = getattr(user, hash_field)
        if not stored_hash:
            log.warning(
                "login_failed", reason="secret_not_set", user_id=str(user.id),
                auth_method=auth_method,
            )
            raise InvalidCredentialsError(failure_message)

        if not check(secret, stored_hash):
            updated = await self._users.record_failed_login(
                user.id, self._max_login_attempts
            )
            log.warning(
                "login_failed",
                reason="wrong_secret",
                user_id=str(user.id),
                auth_method=auth_method,
                login_attempts=updated.login_attempts if updated else None,
                locked=updated.is_locked if updated else None,
            )
            raise InvalidCredentialsError(failure_message)

        if user.login_attempts > 0:
            user = await self._users.reset_login_attempts(user.id) or user

        log.info("login_success", user_id=str(user.id), auth_method=auth_method)
        return self._issue(user, auth_method)

    # ── Session lifecycle ───────────────────────────────────────────────────

    async def refresh_session(self, refresh_token: str) -> SessionIssued:
        """Rotate a session: verify the refresh token and mint a new pair."""
        try:
            user_id = self._tokens.verify_refresh(refresh_token)
        except AuthenticationError as e:
            log.warning("token_refresh_failed", reason=e.error_code)
            raise AuthenticationError(
                "Invalid or expired refresh token", code=INVALID_TOKEN
            )

        user = await self._users.find_by_id(user_id)
        if user is None or not user.is_verified:
            log.warning("token_refresh_failed", reason="user_unavailable", user_id=user_id)
            raise AuthenticationError(
                "Invalid or expired refresh token", code=INVALID_TOKEN
            )

        log.info("token_refreshed", user_id=user_id)
        return self._issue(user, "refresh")

    async def validate_session(self, user: UserDoc) -> UserDoc:
        """Account checks behind GET /auth/validate-token."""
        if user.is_locked:
            raise AccountLockedError("Account is locked")
        if not user.is_verified:
            raise NotVerifiedError("Email not verified")
        return user

    # ── helpers ─────────────────────────────────────────────────────────────

    def _issue(self, user: UserDoc, auth_method: str) -> SessionIssued:
        return SessionIssued(user=user, tokens=self._tokens.issue(str(user.id), auth_method))

    async def _require_verified(self, email: str, message: str) -> UserDoc:
        user = await self._users.find_verified_by_email(email)
        if user is None:
            raise NotFoundError(message)
        return user

    @staticmethod
    def _ensure_unlocked(user: UserDoc) -> None:
        if user.is_locked:
            log.warning("auth_rejected", reason="account_locked", user_id=str(user.id))
            raise AccountLockedError("Account is locked. Please contact administrator")
