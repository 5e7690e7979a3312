"""
Application error hierarchy and FastAPI exception handlers.

AppError is the base for all typed errors. The global exception handler
converts AppError subclasses to the uniform JSON envelope:

    {"success": false, "message": "...", "code": "..."}

Token failures use the upper-case discriminants NO_TOKEN, TOKEN_EXPIRED and
INVALID_TOKEN so clients can decide between "refresh" and "sign in again".

Non-AppError exceptions bubble up as 500s (with Sentry reporting in production).
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from shared.logging import get_logger

log = get_logger(__name__)

# Token failure discriminants
NO_TOKEN = "NO_TOKEN"
TOKEN_EXPIRED = "TOKEN_EXPIRED"
INVALID_TOKEN = "INVALID_TOKEN"


class AppError(Exception):
    """Base application error. All typed errors inherit from this."""

    status_code: int = 500
    error_code: str = "internal_error"

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        field: Optional[str] = None,
        details: Optional[Any] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.error_code = code
        self.field = field
        self.details = details

    def to_dict(self) -> dict:
        payload: dict = {
            "success": False,
            "message": self.message,
            "code": self.error_code,
        }
        if self.field is not None:
            payload["field"] = self.field
        if self.details is not None:
            payload["details"] = self.details
        return payload


class ValidationError(AppError):
    status_code = 400
    error_code = "validation_error"


class AuthenticationError(AppError):
    status_code = 401
    error_code = INVALID_TOKEN


class InvalidCredentialsError(AppError):
    status_code = 401
    error_code = "invalid_credentials"


class ForbiddenError(AppError):
    status_code = 403
    error_code = "forbidden"


class AccountLockedError(ForbiddenError):
    error_code = "account_locked"


class NotVerifiedError(ForbiddenError):
    error_code = "not_verified"


class NotFoundError(AppError):
    status_code = 404
    error_code = "not_found"


class ConflictError(AppError):
    status_code = 409
    error_code = "conflict"


class ServiceUnavailableError(AppError):
    status_code = 503
    error_code = "service_unavailable"


class OtpFailure(str, Enum):
    """Internal reason an OTP verification was rejected."""

    NOT_FOUND = "not_found"
    ALREADY_USED = "already_used"
    EXPIRED = "expired"
    ATTEMPTS_EXCEEDED = "attempts_exceeded"
    CODE_MISMATCH = "code_mismatch"


class OtpVerificationError(AppError):
    """Rejected verify call.

    ``reason`` keeps the precise failure for logs and callers; the message
    stays generic so a response never reveals which check failed, except
    for the attempt limit which tells the client to request a new code.
    """

    status_code = 400
    error_code = "invalid_otp"

    def __init__(self, reason: OtpFailure) -> None:
        if reason is OtpFailure.ATTEMPTS_EXCEEDED:
            super().__init__(
                "Too many failed attempts. Please request a new code.",
                code="otp_attempts_exceeded",
            )
        else:
            super().__init__("Invalid or expired verification code")
        self.reason = reason


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the FastAPI app."""

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = exc.errors()
        first = errors[0] if errors else {}
        loc = [str(p) for p in first.get("loc", ()) if p != "body"]
        error = ValidationError(
            first.get("msg", "Invalid request body"),
            field=".".join(loc) or None,
        )
        return JSONResponse(status_code=error.status_code, content=error.to_dict())

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        # Sentry integration: if sentry_sdk is initialized it will auto-capture
        # unhandled exceptions before this handler fires.
        log.error(
            "unhandled_exception",
            path=request.url.path,
            error=str(exc),
            error_type=type(exc).__name__,
        )
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "message": "An internal server error occurred.",
                "code": "internal_error",
            },
        )
