"""Unit tests for the session client: single-flight refresh and coordinator lifecycle."""

import asyncio
import json

import httpx
import pytest

from session_client import (
    ApiError,
    CachedUser,
    ClientError,
    FileSessionStorage,
    FlowType,
    MemorySessionStorage,
    PersistedSession,
    SessionCoordinator,
    SessionExpiredError,
    SessionState,
    SingleFlight,
    TransientError,
)

USER = {"id": "64b7f0c2a1b2c3d4e5f60718", "email": "a@b.co", "is_verified": True}
BASE_URL = "http://api.test/api/v1"


def _error(status: int, code: str, message: str = "nope") -> httpx.Response:
    return httpx.Response(status, json={"success": False, "message": message, "code": code})


class FakeServer:
    """Scriptable stand-in for the auth API behind httpx.MockTransport."""

    def __init__(self) -> None:
        self.calls: list[str] = []
        self.validate_responses: list[httpx.Response] = []
        self.refresh_ok = True
        self.refresh_delay = 0.0
        self.profile_expired_until_refresh = False
        self.profile_missing_until_refresh = False
        self.refreshed = 0

    def count(self, path: str) -> int:
        return sum(1 for c in self.calls if c == path)

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.removeprefix("/api/v1")
        self.calls.append(path)

        if path == "/auth/validate-token":
            if self.validate_responses:
                return self.validate_responses.pop(0)
            return httpx.Response(200, json={"success": True, "valid": True, "user": USER})

        if path == "/auth/refresh-token":
            if self.refresh_delay:
                await asyncio.sleep(self.refresh_delay)
            if not self.refresh_ok:
                return _error(401, "INVALID_TOKEN", "Invalid or expired refresh token")
            self.refreshed += 1
            return httpx.Response(200, json={"success": True, "message": "Token refreshed successfully"})

        if path == "/users/me":
            if self.profile_expired_until_refresh and not self.refreshed:
                return _error(401, "TOKEN_EXPIRED", "Token has expired")
            if self.profile_missing_until_refresh and not self.refreshed:
                return _error(401, "NO_TOKEN", "Access token is required")
            return httpx.Response(200, json={"success": True, "data": USER})

        if path.startswith("/auth/send-"):
            email = json.loads(request.content)["email"]
            return httpx.Response(200, json={"success": True, "email": email, "expires_in": 600})

        if path in ("/auth/verify-registration-otp", "/auth/verify-login-otp", "/auth/login-password"):
            return httpx.Response(
                201 if "registration" in path else 200,
                json={"success": True, "message": "ok", "user": USER},
                headers={"set-cookie": "session_hint=1; Path=/"},
            )

        if path == "/auth/verify-password-reset-otp":
            return httpx.Response(200, json={"success": True, "message": "Password reset successful"})

        if path == "/auth/sign-out":
            return httpx.Response(200, json={"success": True})

        return _error(404, "not_found")


@pytest.fixture
def server() -> FakeServer:
    return FakeServer()


@pytest.fixture
def expired_calls() -> list:
    return []


@pytest.fixture
def make_coordinator(server, expired_calls):
    def _make(**kwargs) -> SessionCoordinator:
        kwargs.setdefault("on_session_expired", lambda: expired_calls.append(True))
        kwargs.setdefault("hydration_poll_interval", 0.001)
        return SessionCoordinator(BASE_URL, transport=httpx.MockTransport(server), **kwargs)

    return _make


# ── SingleFlight ──────────────────────────────────────────────────────────────


class TestSingleFlight:
    async def test_concurrent_callers_share_one_call(self):
        flight: SingleFlight[int] = SingleFlight()
        calls = 0

        async def work() -> int:
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.01)
            return 42

        results = await asyncio.gather(*(flight.do(work) for _ in range(5)))
        assert results == [42] * 5
        assert calls == 1
        assert flight.in_flight is False

    async def test_failure_reaches_every_waiter(self):
        flight: SingleFlight[int] = SingleFlight()

        async def work() -> int:
            await asyncio.sleep(0.01)
            raise ValueError("refresh failed")

        results = await asyncio.gather(*(flight.do(work) for _ in range(3)), return_exceptions=True)
        assert all(isinstance(r, ValueError) for r in results)

    async def test_next_call_starts_new_flight(self):
        flight: SingleFlight[int] = SingleFlight()
        calls = 0

        async def work() -> int:
            nonlocal calls
            calls += 1
            return calls

        assert await flight.do(work) == 1
        assert await flight.do(work) == 2


# ── Storage ───────────────────────────────────────────────────────────────────


class TestStorage:
    async def test_memory_round_trip(self):
        storage = MemorySessionStorage()
        assert await storage.load() is None
        await storage.save(PersistedSession(pending_email="a@b.co", flow_type=FlowType.LOGIN))
        loaded = await storage.load()
        assert loaded.pending_email == "a@b.co"
        assert loaded.flow_type is FlowType.LOGIN
        await storage.clear()
        assert await storage.load() is None

    async def test_file_round_trip(self, tmp_path):
        storage = FileSessionStorage(tmp_path / "nested" / "session.json")
        await storage.save(PersistedSession(user=CachedUser(**USER)))
        assert (await storage.load()).user.email == "a@b.co"
        await storage.clear()
        assert await storage.load() is None
        await storage.clear()

    async def test_file_corrupt_snapshot_ignored(self, tmp_path):
        path = tmp_path / "session.json"
        path.write_text("{not json", encoding="utf-8")
        assert await FileSessionStorage(path).load() is None


# ── initialize() ──────────────────────────────────────────────────────────────


class TestInitialize:
    async def test_valid_session(self, make_coordinator, server):
        coordinator = make_coordinator()
        await coordinator.initialize()
        assert coordinator.state is SessionState.READY
        assert coordinator.user.email == "a@b.co"
        assert coordinator.initialized is True
        assert coordinator.loading is False
        assert coordinator.is_authenticated() is True
        assert server.count("/auth/refresh-token") == 0

    async def test_refresh_then_revalidate(self, make_coordinator, server):
        server.validate_responses = [_error(401, "TOKEN_EXPIRED")]
        coordinator = make_coordinator()
        await coordinator.initialize()
        assert server.count("/auth/validate-token") == 2
        assert server.refreshed == 1
        assert coordinator.user is not None

    async def test_refresh_failure_signs_out_quietly(self, make_coordinator, server, expired_calls):
        storage = MemorySessionStorage(PersistedSession(user=CachedUser(**USER)))
        server.validate_responses = [_error(401, "NO_TOKEN")]
        server.refresh_ok = False
        coordinator = make_coordinator(storage=storage)

        await coordinator.initialize()

        assert coordinator.state is SessionState.READY
        assert coordinator.user is None
        assert coordinator.is_authenticated() is False
        assert await storage.load() is None
        assert expired_calls == []

    async def test_network_error_never_raises(self, make_coordinator, server):
        async def down(request):
            raise httpx.ConnectError("connection refused")

        coordinator = SessionCoordinator(BASE_URL, transport=httpx.MockTransport(down))
        await coordinator.initialize()
        assert coordinator.state is SessionState.FAILED
        assert coordinator.initialized is True
        assert coordinator.loading is False
        assert coordinator.is_authenticated() is False

    async def test_server_unavailable_keeps_credentials(self):
        async def unavailable(request):
            return httpx.Response(503, json={"success": False, "message": "down"})

        storage = MemorySessionStorage(PersistedSession(user=CachedUser(**USER)))
        coordinator = SessionCoordinator(
            BASE_URL, storage=storage, transport=httpx.MockTransport(unavailable)
        )
        coordinator.cookies.set("refresh_token", "r1")
        coordinator.cookies.set("session_hint", "1")

        await coordinator.initialize()

        assert coordinator.state is SessionState.FAILED
        assert coordinator.user is None
        assert coordinator.cookies.get("refresh_token") == "r1"
        assert coordinator.cookies.get("session_hint") == "1"
        assert (await storage.load()).user.email == "a@b.co"

    async def test_unexpected_error_clears_memory_and_storage(self, make_coordinator, server):
        server.validate_responses = [httpx.Response(200, json={"success": True, "user": {}})]
        storage = MemorySessionStorage(PersistedSession(user=CachedUser(**USER)))
        coordinator = make_coordinator(storage=storage)
        coordinator.cookies.set("session_hint", "1")

        await coordinator.initialize()

        assert coordinator.state is SessionState.FAILED
        assert coordinator.user is None
        assert len(coordinator.cookies) == 0
        assert await storage.load() is None

    async def test_idempotent_and_reentrant(self, make_coordinator, server):
        coordinator = make_coordinator()
        await asyncio.gather(coordinator.initialize(), coordinator.initialize())
        await coordinator.initialize()
        assert server.count("/auth/validate-token") == 1

    async def test_hydrates_persisted_flow(self, make_coordinator):
        storage = MemorySessionStorage(
            PersistedSession(pending_email="a@b.co", flow_type=FlowType.REGISTER)
        )
        coordinator = make_coordinator(storage=storage)
        await coordinator.hydrate()
        assert coordinator.hydrated is True
        assert coordinator.pending_email == "a@b.co"
        assert coordinator.flow_type is FlowType.REGISTER


def test_session_hint_before_hydration(make_coordinator):
    coordinator = make_coordinator()
    assert coordinator.is_authenticated() is False
    coordinator.cookies.set("session_hint", "1")
    assert coordinator.is_authenticated() is True


# ── request() and refresh ─────────────────────────────────────────────────────


class TestRequest:
    async def test_concurrent_expiry_single_refresh(self, make_coordinator, server):
        server.profile_expired_until_refresh = True
        server.refresh_delay = 0.02
        coordinator = make_coordinator()

        first, second = await asyncio.gather(
            coordinator.request("GET", "/users/me"),
            coordinator.request("GET", "/users/me"),
        )

        assert first["data"]["email"] == second["data"]["email"] == "a@b.co"
        assert server.count("/auth/refresh-token") == 1

    async def test_retries_exactly_once(self, server):
        async def always_expired(request):
            server.calls.append(request.url.path)
            if request.url.path.endswith("/auth/refresh-token"):
                return httpx.Response(200, json={"success": True})
            return _error(401, "TOKEN_EXPIRED")

        coordinator = SessionCoordinator(BASE_URL, transport=httpx.MockTransport(always_expired))
        with pytest.raises(ApiError) as exc:
            await coordinator.request("GET", "/users/me")
        assert exc.value.is_token_expired
        assert sum(1 for c in server.calls if c.endswith("/users/me")) == 2
        assert sum(1 for c in server.calls if c.endswith("/auth/refresh-token")) == 1

    async def test_other_401_not_retried(self, make_coordinator, server):
        coordinator = make_coordinator()
        server.validate_responses = [_error(401, "INVALID_TOKEN")]
        with pytest.raises(ApiError) as exc:
            await coordinator.request("GET", "/auth/validate-token")
        assert exc.value.code == "INVALID_TOKEN"
        assert server.count("/auth/refresh-token") == 0

    async def test_refresh_failure_clears_and_signals(self, make_coordinator, server, expired_calls):
        storage = MemorySessionStorage(PersistedSession(user=CachedUser(**USER)))
        server.profile_expired_until_refresh = True
        server.refresh_ok = False
        server.refresh_delay = 0.01
        coordinator = make_coordinator(storage=storage)
        await coordinator.hydrate()

        results = await asyncio.gather(
            coordinator.request("GET", "/users/me"),
            coordinator.request("GET", "/users/me"),
            return_exceptions=True,
        )

        assert all(isinstance(r, SessionExpiredError) for r in results)
        assert coordinator.user is None
        assert await storage.load() is None
        assert expired_calls == [True]

    async def test_dropped_access_cookie_refreshes(self, make_coordinator, server):
        server.profile_missing_until_refresh = True
        coordinator = make_coordinator()
        coordinator.cookies.set("session_hint", "1")

        data = await coordinator.request("GET", "/users/me")

        assert data["data"]["email"] == "a@b.co"
        assert server.count("/auth/refresh-token") == 1
        assert server.count("/users/me") == 2

    async def test_no_token_without_session_not_retried(self, make_coordinator, server):
        server.profile_missing_until_refresh = True
        coordinator = make_coordinator()
        with pytest.raises(ApiError) as exc:
            await coordinator.request("GET", "/users/me")
        assert exc.value.code == "NO_TOKEN"
        assert server.count("/auth/refresh-token") == 0

    async def test_transient_refresh_keeps_session(self, make_coordinator, server, expired_calls):
        async def refresh_down(request):
            server.calls.append(request.url.path)
            if request.url.path.endswith("/auth/refresh-token"):
                return httpx.Response(503, json={"success": False, "message": "down"})
            return _error(401, "TOKEN_EXPIRED")

        storage = MemorySessionStorage(PersistedSession(user=CachedUser(**USER)))
        coordinator = SessionCoordinator(
            BASE_URL,
            storage=storage,
            on_session_expired=lambda: expired_calls.append(True),
            transport=httpx.MockTransport(refresh_down),
        )
        await coordinator.hydrate()

        with pytest.raises(TransientError):
            await coordinator.request("GET", "/users/me")
        assert coordinator.user is not None
        assert (await storage.load()).user is not None
        assert expired_calls == []

    async def test_server_error_is_transient(self, make_coordinator):
        async def broken(request):
            return httpx.Response(502, text="bad gateway")

        coordinator = SessionCoordinator(BASE_URL, transport=httpx.MockTransport(broken))
        with pytest.raises(TransientError) as exc:
            await coordinator.request("GET", "/users/me")
        assert exc.value.status == 502


# ── flows ─────────────────────────────────────────────────────────────────────


class TestFlows:
    async def test_register_flow(self, make_coordinator, server):
        storage = MemorySessionStorage()
        coordinator = make_coordinator(storage=storage)

        await coordinator.send_code(FlowType.REGISTER, "a@b.co")
        assert coordinator.pending_email == "a@b.co"
        assert (await storage.load()).flow_type is FlowType.REGISTER

        await coordinator.verify_code("123456")
        assert coordinator.user.email == "a@b.co"
        assert coordinator.pending_email == ""
        assert coordinator.flow_type is None
        assert server.calls[-1] == "/auth/verify-registration-otp"

        snapshot = (await storage.load()).model_dump_json()
        assert "token" not in snapshot

    async def test_password_reset_needs_new_password(self, make_coordinator):
        coordinator = make_coordinator()
        await coordinator.send_code(FlowType.PASSWORD_RESET, "a@b.co")
        with pytest.raises(ClientError):
            await coordinator.verify_code("123456")
        await coordinator.verify_code("123456", new_password="abcdef")
        assert coordinator.user is None
        assert coordinator.flow_type is None

    async def test_verify_without_flow(self, make_coordinator):
        with pytest.raises(ClientError):
            await make_coordinator().verify_code("123456")

    async def test_sign_out_clears_everything(self, make_coordinator):
        coordinator = make_coordinator()
        await coordinator.login_with_password("a@b.co", "abcdef")
        assert coordinator.is_authenticated() is True
        await coordinator.sign_out()
        assert coordinator.user is None
        assert len(coordinator.cookies) == 0

    async def test_bearer_tokens_sent_but_not_persisted(self):
        seen_auth = []

        async def bearer_server(request):
            path = request.url.path
            seen_auth.append(request.headers.get("authorization"))
            if path.endswith("/auth/login-pin"):
                return httpx.Response(
                    200,
                    json={
                        "success": True,
                        "user": USER,
                        "access_token": "acc-1",
                        "refresh_token": "ref-1",
                        "expires_in": 3600,
                    },
                )
            return httpx.Response(200, json={"success": True, "data": USER})

        storage = MemorySessionStorage()
        coordinator = SessionCoordinator(
            BASE_URL, storage=storage, transport=httpx.MockTransport(bearer_server)
        )
        await coordinator.login_with_pin("a@b.co", "1234")
        profile = await coordinator.fetch_profile()

        assert profile.email == "a@b.co"
        assert seen_auth == [None, "Bearer acc-1"]
        snapshot = (await storage.load()).model_dump_json()
        assert "acc-1" not in snapshot
        assert "ref-1" not in snapshot
