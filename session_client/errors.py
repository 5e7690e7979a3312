"""
Client-side error taxonomy.

ApiError            — the server answered with an error envelope
SessionExpiredError — the session is gone; the user has to sign in again
TransientError      — network failure or 5xx; the same call may succeed on retry
"""

from __future__ import annotations

from typing import Optional

NO_TOKEN = "NO_TOKEN"
TOKEN_EXPIRED = "TOKEN_EXPIRED"


class ClientError(Exception):
    """Base for everything the session client raises."""


class ApiError(ClientError):
    def __init__(self, status: int, message: str, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.status = status
        self.message = message
        self.code = code

    @property
    def is_token_expired(self) -> bool:
        return self.status == 401 and self.code == TOKEN_EXPIRED

    @property
    def is_token_missing(self) -> bool:
        return self.status == 401 and self.code == NO_TOKEN

    def __repr__(self) -> str:
        return f"ApiError(status={self.status}, code={self.code!r}, message={self.message!r})"


class SessionExpiredError(ClientError):
    pass


class TransientError(ClientError):
    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status
