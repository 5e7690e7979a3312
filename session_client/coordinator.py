"""
Client-side session coordinator for the FastLink auth API.

One SessionCoordinator holds everything a client app needs between calls:

- flow scratch (pending email and flow type) while a code is outstanding
- lifecycle flags: loading, initialized, initializing, hydrated
- the cached user profile once signed in

Credentials normally live in the HTTP client's cookie jar, set by the server.
When the server runs the bearer transport the tokens come back in the body;
they are kept in memory only and never written to storage.

Authenticated calls go through request(): a 401 with code TOKEN_EXPIRED runs
one refresh (shared by every caller that hits the expiry at the same time)
and retries the original call exactly once. A 401 NO_TOKEN does the same
while a refresh credential is still held.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Optional, Union

import httpx

from infrastructure.http_client import HttpClient
from session_client.errors import (
    ApiError,
    ClientError,
    SessionExpiredError,
    TransientError,
)
from session_client.single_flight import SingleFlight
from session_client.state import CachedUser, FlowType, PersistedSession, SessionState
from session_client.storage import MemorySessionStorage, SessionStorage
from shared.logging import get_logger

log = get_logger(__name__)

SESSION_HINT_COOKIE = "session_hint"
DEFAULT_TIMEOUT_SECONDS = 10.0

_SEND_PATHS = {
    FlowType.REGISTER: "/auth/send-registration-otp",
    FlowType.LOGIN: "/auth/send-login-otp",
    FlowType.PASSWORD_RESET: "/auth/send-password-reset-otp",
}
_VERIFY_PATHS = {
    FlowType.REGISTER: "/auth/verify-registration-otp",
    FlowType.LOGIN: "/auth/verify-login-otp",
    FlowType.PASSWORD_RESET: "/auth/verify-password-reset-otp",
}

SessionExpiredCallback = Callable[[], Union[None, Awaitable[None]]]


class SessionCoordinator:
    def __init__(
        self,
        base_url: str,
        *,
        storage: Optional[SessionStorage] = None,
        on_session_expired: Optional[SessionExpiredCallback] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        hydration_poll_interval: float = 0.1,
        hydration_poll_attempts: int = 10,
    ) -> None:
        self._http = HttpClient(timeout=timeout, base_url=base_url, transport=transport)
        self._storage = storage or MemorySessionStorage()
        self._on_session_expired = on_session_expired
        self._poll_interval = hydration_poll_interval
        self._poll_attempts = hydration_poll_attempts
        self._refresh_flight: SingleFlight[None] = SingleFlight()

        # Bearer transport only; memory-resident
        self._access_token: Optional[str] = None
        self._refresh_token: Optional[str] = None

        self.user: Optional[CachedUser] = None
        self.pending_email: str = ""
        self.flow_type: Optional[FlowType] = None

        self.state = SessionState.UNINITIALIZED
        self.loading = False
        self.initialized = False
        self.initializing = False
        self.hydrated = False
        self._hydrating = False

    # ── Lifecycle ───────────────────────────────────────────────────────────

    async def hydrate(self) -> None:
        """Restore the persisted snapshot. Always ends with hydrated=True."""
        if self.hydrated or self._hydrating:
            return
        self._hydrating = True
        try:
            snapshot = await self._storage.load()
            if snapshot is not None:
                self.user = snapshot.user
                self.pending_email = snapshot.pending_email
                self.flow_type = snapshot.flow_type
        except Exception as e:
            log.warning("session_hydrate_failed", error=str(e))
        finally:
            self._hydrating = False
            self.hydrated = True

    async def initialize(self) -> None:
        """Establish whether a usable server session exists.

        Safe to call repeatedly and concurrently: only the first call does
        any work. Never raises; any failure leaves the client signed out.
        """
        if self.initialized or self.initializing:
            return

        self.initializing = True
        self.loading = True
        try:
            self.state = SessionState.HYDRATING
            if not self.hydrated and not self._hydrating:
                await self.hydrate()
            for _ in range(self._poll_attempts):
                if self.hydrated:
                    break
                await asyncio.sleep(self._poll_interval)

            self.state = SessionState.VALIDATING
            if not await self._validate():
                try:
                    await self.refresh(notify=False)
                except SessionExpiredError:
                    log.info("session_not_restored")
                else:
                    if not await self._validate():
                        await self._clear_session()
            self.state = SessionState.READY
        except TransientError as e:
            # Server unreachable: credentials and snapshot stay for a later retry
            log.warning("session_initialize_unavailable", error=str(e), status=e.status)
            self.user = None
            self.state = SessionState.FAILED
        except Exception as e:
            log.warning("session_initialize_failed", error=str(e))
            self.state = SessionState.FAILED
            try:
                await self._clear_session()
            except Exception as clear_error:
                log.warning("session_clear_failed", error=str(clear_error))
                self._forget_credentials()
                self.user = None
        finally:
            self.initialized = True
            self.loading = False
            self.initializing = False

    @property
    def cookies(self) -> httpx.Cookies:
        """The session cookie jar; credential cookies are server-managed."""
        return self._http.cookies

    def is_authenticated(self) -> bool:
        if self.user is not None:
            return True
        if not self.hydrated:
            # Best guess until the snapshot is back; the server set this
            # cookie alongside the real (unreadable) session cookies.
            return self._http.cookies.get(SESSION_HINT_COOKIE) == "1"
        return False

    # ── Flow scratch ────────────────────────────────────────────────────────

    async def begin_flow(self, flow_type: FlowType, email: str) -> None:
        self.flow_type = flow_type
        self.pending_email = email
        await self._persist()

    async def clear_flow(self) -> None:
        self.flow_type = None
        self.pending_email = ""
        await self._persist()

    # ── Auth flows ──────────────────────────────────────────────────────────

    async def send_code(self, flow_type: FlowType, email: str) -> dict:
        data = await self._send("POST", _SEND_PATHS[flow_type], json={"email": email})
        await self.begin_flow(flow_type, data.get("email") or email)
        return data

    async def verify_code(self, code: str, new_password: Optional[str] = None) -> dict:
        """Complete the pending flow with *code*.

        Login and register flows end signed in. The password reset flow
        needs *new_password* and ends signed out.
        """
        if self.flow_type is None or not self.pending_email:
            raise ClientError("No verification in progress")

        body: dict[str, Any] = {"email": self.pending_email, "otp": code}
        if self.flow_type is FlowType.PASSWORD_RESET:
            if new_password is None:
                raise ClientError("A new password is required to reset the password")
            body["newPassword"] = new_password
            data = await self._send("POST", _VERIFY_PATHS[self.flow_type], json=body)
            await self.clear_flow()
            return data

        data = await self._send("POST", _VERIFY_PATHS[self.flow_type], json=body)
        await self._establish(data)
        return data

    async def login_with_password(self, email: str, password: str) -> dict:
        data = await self._send(
            "POST", "/auth/login-password", json={"email": email, "password": password}
        )
        await self._establish(data)
        return data

    async def login_with_pin(self, email: str, pin: str) -> dict:
        data = await self._send("POST", "/auth/login-pin", json={"email": email, "pin": pin})
        await self._establish(data)
        return data

    async def sign_out(self) -> None:
        try:
            await self._send("POST", "/auth/sign-out")
        finally:
            await self._clear_session()

    async def fetch_profile(self) -> CachedUser:
        data = await self.request("GET", "/users/me")
        self.user = CachedUser.model_validate(data["data"])
        await self._persist()
        return self.user

    # ── Authenticated transport ─────────────────────────────────────────────

    async def request(self, method: str, path: str, json: Optional[dict] = None) -> dict:
        """Send an authenticated request, refreshing once on an expired token."""
        try:
            return await self._send(method, path, json=json)
        except ApiError as e:
            if not self._is_refreshable(e):
                raise

        await self.refresh()
        return await self._send(method, path, json=json)

    async def refresh(self, notify: bool = True) -> None:
        """Rotate the session; concurrent callers share one refresh call.

        When the server rejects the refresh, all session state is cleared
        and, if *notify* is set, the on_session_expired callback fires before
        SessionExpiredError. A TransientError propagates with the session
        left intact.
        """
        try:
            await self._refresh_flight.do(self._do_refresh)
        except ApiError as e:
            had_session = await self._clear_session()
            if notify and had_session:
                await self._notify_expired()
            raise SessionExpiredError("Session expired. Please sign in again.") from e

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "SessionCoordinator":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()

    # ── Internals ───────────────────────────────────────────────────────────

    def _is_refreshable(self, error: ApiError) -> bool:
        if error.is_token_expired:
            return True
        # The jar may have dropped the access cookie while the refresh one lives on
        return error.is_token_missing and (
            self._refresh_token is not None
            or self._http.cookies.get(SESSION_HINT_COOKIE) == "1"
        )

    async def _do_refresh(self) -> None:
        body = {"refreshToken": self._refresh_token} if self._refresh_token else None
        data = await self._send("POST", "/auth/refresh-token", json=body)
        self._remember_tokens(data)
        log.info("session_refreshed")

    async def _validate(self) -> bool:
        try:
            data = await self._send("GET", "/auth/validate-token")
        except ApiError as e:
            if e.status in (401, 403):
                return False
            raise
        self.user = CachedUser.model_validate(data["user"])
        await self._persist()
        return True

    async def _establish(self, data: dict) -> None:
        self._remember_tokens(data)
        if data.get("user"):
            self.user = CachedUser.model_validate(data["user"])
        self.flow_type = None
        self.pending_email = ""
        await self._persist()

    def _remember_tokens(self, data: dict) -> None:
        if data.get("access_token"):
            self._access_token = data["access_token"]
        if data.get("refresh_token"):
            self._refresh_token = data["refresh_token"]

    def _forget_credentials(self) -> None:
        self._access_token = None
        self._refresh_token = None
        self._http.cookies.clear()

    async def _clear_session(self) -> bool:
        """Drop every piece of session state; True if there was any."""
        had_session = bool(
            self.user is not None
            or self._access_token
            or self._refresh_token
            or len(self._http.cookies)
        )
        self._forget_credentials()
        self.user = None
        self.flow_type = None
        self.pending_email = ""
        await self._storage.clear()
        return had_session

    async def _notify_expired(self) -> None:
        if self._on_session_expired is None:
            return
        result = self._on_session_expired()
        if asyncio.iscoroutine(result):
            await result

    async def _persist(self) -> None:
        await self._storage.save(
            PersistedSession(
                user=self.user,
                pending_email=self.pending_email,
                flow_type=self.flow_type,
            )
        )

    async def _send(self, method: str, path: str, json: Optional[dict] = None) -> dict:
        headers = {}
        if self._access_token:
            headers["Authorization"] = f"Bearer {self._access_token}"
        try:
            response = await self._http.request(method, path, json=json, headers=headers)
        except httpx.TransportError as e:
            log.warning("api_request_failed", method=method, path=path, error=str(e))
            raise TransientError(f"Network error: {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = {}

        if response.status_code >= 500:
            raise TransientError(
                data.get("message") or f"Server error ({response.status_code})",
                status=response.status_code,
            )
        if response.is_error:
            raise ApiError(
                response.status_code,
                data.get("message") or f"Request failed ({response.status_code})",
                code=data.get("code"),
            )
        return data
