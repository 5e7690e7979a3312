"""
How session credentials travel between server and client.

Two transports sit behind one protocol so the auth flows never care which
is active:

- CookieSessionTransport: server-set HttpOnly, SameSite=Strict cookies.
  Client script never sees credential material; a separate non-HttpOnly
  ``session_hint`` cookie (value "1") lets a client guess it is signed in.
- BearerSessionTransport: tokens returned in the response body and sent
  back in an ``Authorization: Bearer`` header (refresh token in the body).

Access tokens are always accepted from the Authorization header first, then
from the access cookie.
"""

from __future__ import annotations

from typing import Optional, Protocol

from fastapi import Request, Response

from config import JWTSettings
from services.token_service import TokenPair

ACCESS_COOKIE = "access_token"
REFRESH_COOKIE = "refresh_token"
SESSION_HINT_COOKIE = "session_hint"


def bearer_token(request: Request) -> Optional[str]:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.lower().startswith("bearer "):
        token = auth_header.split(" ", 1)[1].strip()
        return token or None
    return None


class SessionTransport(Protocol):
    def issue(self, response: Response, tokens: TokenPair) -> dict:
        """Attach *tokens* to *response*; return extra body fields."""
        ...

    def extract_access(self, request: Request) -> Optional[str]: ...

    def extract_refresh(self, request: Request, body: Optional[dict]) -> Optional[str]: ...

    def clear(self, response: Response) -> None: ...


class CookieSessionTransport:
    def __init__(self, settings: JWTSettings) -> None:
        self._settings = settings

    def _set(self, response: Response, name: str, value: str, max_age: int, httponly: bool = True) -> None:
        response.set_cookie(
            name,
            value=value,
            max_age=max_age,
            path="/",
            secure=self._settings.cookie_secure,
            httponly=httponly,
            samesite="strict",
        )

    def issue(self, response: Response, tokens: TokenPair) -> dict:
        # Outlives its JWT: an expired token must reach the server as TOKEN_EXPIRED
        self._set(response, ACCESS_COOKIE, tokens.access_token, tokens.refresh_expires_in)
        self._set(response, REFRESH_COOKIE, tokens.refresh_token, tokens.refresh_expires_in)
        self._set(
            response, SESSION_HINT_COOKIE, "1", tokens.refresh_expires_in, httponly=False
        )
        return {}

    def extract_access(self, request: Request) -> Optional[str]:
        return bearer_token(request) or request.cookies.get(ACCESS_COOKIE) or None

    def extract_refresh(self, request: Request, body: Optional[dict]) -> Optional[str]:
        return request.cookies.get(REFRESH_COOKIE) or None

    def clear(self, response: Response) -> None:
        for name, httponly in (
            (ACCESS_COOKIE, True),
            (REFRESH_COOKIE, True),
            (SESSION_HINT_COOKIE, False),
        ):
            response.delete_cookie(
                name,
                path="/",
                secure=self._settings.cookie_secure,
                httponly=httponly,
                samesite="strict",
            )


class BearerSessionTransport:
    def issue(self, response: Response, tokens: TokenPair) -> dict:
        return {
            "access_token": tokens.access_token,
            "refresh_token": tokens.refresh_token,
            "expires_in": tokens.access_expires_in,
        }

    def extract_access(self, request: Request) -> Optional[str]:
        return bearer_token(request) or request.cookies.get(ACCESS_COOKIE) or None

    def extract_refresh(self, request: Request, body: Optional[dict]) -> Optional[str]:
        return (body or {}).get("refresh_token") or None

    def clear(self, response: Response) -> None:
        # Nothing is held server-side; the client drops its tokens.
        return None


def build_session_transport(settings: JWTSettings) -> SessionTransport:
    if settings.session_transport == "bearer":
        return BearerSessionTransport()
    return CookieSessionTransport(settings)
