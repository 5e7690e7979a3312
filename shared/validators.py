"""
Input validators — framework-agnostic, pure functions.

Each ``validate_*`` helper returns a bool; ``require_*`` helpers raise the
application ValidationError with the field name attached.
"""

from __future__ import annotations

import re

import validators as _validators

from errors import ValidationError

MIN_PASSWORD_LENGTH = 6
NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 150

_PIN_RE = re.compile(r"^\d{4,6}$")
_OTP_RE = re.compile(r"^\d{6}$")


def normalize_email(email: str) -> str:
    """Trim and lowercase *email* so lookups are case-insensitive."""
    return (email or "").strip().lower()


def validate_email(email: str) -> bool:
    """Return True if *email* is a syntactically valid address."""
    return bool(email) and bool(_validators.email(email))


def validate_password(password: str) -> bool:
    """Passwords need at least six characters."""
    return bool(password) and len(password) >= MIN_PASSWORD_LENGTH


def validate_pin(pin: str) -> bool:
    """PINs are 4 to 6 decimal digits."""
    return bool(pin) and bool(_PIN_RE.match(pin))


def validate_otp_format(code: str) -> bool:
    """OTP codes are exactly six decimal digits."""
    return bool(code) and bool(_OTP_RE.match(code))


def validate_name(name: str) -> bool:
    stripped = (name or "").strip()
    return NAME_MIN_LENGTH <= len(stripped) <= NAME_MAX_LENGTH


def require_email(email: str) -> str:
    """Normalize *email* and raise ValidationError when it is missing or malformed."""
    normalized = normalize_email(email)
    if not normalized:
        raise ValidationError("Email is required", field="email")
    if not validate_email(normalized):
        raise ValidationError("Please enter a valid email address", field="email")
    return normalized


def require_password(password: str, field: str = "password") -> str:
    if not password:
        raise ValidationError("Password is required", field=field)
    if not validate_password(password):
        raise ValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long",
            field=field,
        )
    return password


def require_pin(pin: str, field: str = "pin") -> str:
    if not pin:
        raise ValidationError("PIN is required", field=field)
    if not validate_pin(pin):
        raise ValidationError("PIN must be 4-6 digits", field=field)
    return pin


def require_otp(code: str) -> str:
    code = (code or "").strip()
    if not code:
        raise ValidationError("Verification code is required", field="otp")
    if not validate_otp_format(code):
        raise ValidationError("Verification code must be 6 digits", field="otp")
    return code


def require_name(name: str) -> str:
    if not name or not name.strip():
        raise ValidationError("Name is required", field="name")
    if not validate_name(name):
        raise ValidationError(
            f"Name must be {NAME_MIN_LENGTH}-{NAME_MAX_LENGTH} characters",
            field="name",
        )
    return name.strip()
