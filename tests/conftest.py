"""
Shared test fixtures.

In-memory stand-ins for the two repositories and the email provider mirror
the conditional-update semantics of the Mongo implementations, so service
and route tests exercise the real OTP and credential rules without a
database.
"""

from __future__ import annotations

from typing import Any, Optional
from unittest.mock import MagicMock

import pytest
from bson import ObjectId
from fastapi import FastAPI
from fastapi.testclient import TestClient

from config import AppSettings, DatabaseSettings, EmailSettings, JWTSettings, OTPSettings
from dependencies import get_otp_repository, get_user_repository
from repositories.base import to_object_id
from schemas.models.base import ensure_utc, utcnow
from schemas.models.otp import OtpDoc, OtpType
from schemas.models.user import UserDoc, has_completed_profile
from services.otp_service import OtpService
from services.token_service import TokenService

TEST_JWT_SECRET = "test-jwt-secret-with-enough-length-for-hs256"


class FakeUserRepository:
    def __init__(self) -> None:
        self.users: dict[ObjectId, UserDoc] = {}

    def add(self, **fields: Any) -> UserDoc:
        now = utcnow()
        fields.setdefault("is_verified", True)
        user = UserDoc(id=ObjectId(), created_at=now, updated_at=now, **fields)
        user = user.model_copy(update={"profile_completed": has_completed_profile(user)})
        self.users[user.id] = user
        return user

    async def find_by_email(self, email: str) -> Optional[UserDoc]:
        return next((u for u in self.users.values() if u.email == email), None)

    async def find_verified_by_email(self, email: str) -> Optional[UserDoc]:
        user = await self.find_by_email(email)
        return user if user is not None and user.is_verified else None

    async def find_by_id(self, user_id: Any) -> Optional[UserDoc]:
        oid = to_object_id(user_id)
        return self.users.get(oid) if oid is not None else None

    async def upsert_verified(self, email: str) -> UserDoc:
        existing = await self.find_by_email(email)
        if existing is None:
            return self.add(email=email, is_verified=True)
        return self._write(existing.id, is_verified=True)

    async def reset_login_attempts(self, user_id: Any) -> Optional[UserDoc]:
        return self._write(user_id, login_attempts=0)

    async def record_failed_login(self, user_id: Any, max_attempts: int) -> Optional[UserDoc]:
        user = await self.find_by_id(user_id)
        if user is None:
            return None
        attempts = user.login_attempts + 1
        return self._write(
            user_id,
            login_attempts=attempts,
            is_locked=user.is_locked or attempts >= max_attempts,
        )

    async def set_password(
        self, user_id: Any, password_hash: str, *, unlock: bool = False
    ) -> Optional[UserDoc]:
        fields: dict = {"password_hash": password_hash}
        if unlock:
            fields.update(login_attempts=0, is_locked=False)
        return self._write(user_id, **fields)

    async def set_pin(self, user_id: Any, pin_hash: str) -> Optional[UserDoc]:
        return self._write(user_id, pin_hash=pin_hash)

    async def set_name(self, user_id: Any, name: str) -> Optional[UserDoc]:
        return self._write(user_id, name=name)

    async def complete_profile(
        self, user_id: Any, name: str, password_hash: str, pin_hash: str
    ) -> Optional[UserDoc]:
        return self._write(user_id, name=name, password_hash=password_hash, pin_hash=pin_hash)

    async def delete(self, user_id: Any) -> bool:
        return self.users.pop(to_object_id(user_id), None) is not None

    def _write(self, user_id: Any, **fields: Any) -> Optional[UserDoc]:
        oid = to_object_id(user_id)
        user = self.users.get(oid)
        if user is None:
            return None
        user = user.model_copy(update={**fields, "updated_at": utcnow()})
        user = user.model_copy(update={"profile_completed": has_completed_profile(user)})
        self.users[oid] = user
        return user


class FakeOtpRepository:
    def __init__(self) -> None:
        self.records: dict[ObjectId, OtpDoc] = {}

    async def insert(self, otp: OtpDoc) -> OtpDoc:
        stored = otp.model_copy(update={"id": ObjectId()})
        self.records[stored.id] = stored
        return stored

    async def delete_unused(self, email: str, otp_type: OtpType) -> int:
        doomed = [
            oid
            for oid, r in self.records.items()
            if r.email == email and r.otp_type == otp_type and not r.is_used
        ]
        for oid in doomed:
            del self.records[oid]
        return len(doomed)

    async def find_latest_unused(self, email: str, otp_type: OtpType) -> Optional[OtpDoc]:
        matches = [
            r
            for r in self.records.values()
            if r.email == email and r.otp_type == otp_type and not r.is_used
        ]
        if not matches:
            return None
        return max(matches, key=lambda r: (r.created_at, r.id))

    async def find_by_id(self, otp_id: Any) -> Optional[OtpDoc]:
        return self.records.get(to_object_id(otp_id))

    async def increment_attempts(self, otp_id: Any, max_attempts: int, now) -> Optional[OtpDoc]:
        record = self.records.get(to_object_id(otp_id))
        if (
            record is None
            or record.is_used
            or record.attempts >= max_attempts
            or ensure_utc(record.expires_at) <= now
        ):
            return None
        record = record.model_copy(update={"attempts": record.attempts + 1})
        self.records[record.id] = record
        return record

    async def mark_used(self, otp_id: Any) -> bool:
        record = self.records.get(to_object_id(otp_id))
        if record is None or record.is_used:
            return False
        self.records[record.id] = record.model_copy(update={"is_used": True})
        return True

    async def delete(self, otp_id: Any) -> bool:
        return self.records.pop(to_object_id(otp_id), None) is not None

    async def purge_expired(self, now) -> int:
        doomed = [oid for oid, r in self.records.items() if ensure_utc(r.expires_at) <= now]
        for oid in doomed:
            del self.records[oid]
        return len(doomed)


class RecordingEmailProvider:
    def __init__(self) -> None:
        self.sent: list[tuple[str, str, OtpType]] = []
        self.fail = False
        self.error: Optional[Exception] = None

    async def send_otp_email(self, email: str, code: str, otp_type: OtpType) -> bool:
        if self.error is not None:
            raise self.error
        if self.fail:
            return False
        self.sent.append((email, code, otp_type))
        return True

    def last_code(self, email: Optional[str] = None) -> str:
        for sent_to, code, _ in reversed(self.sent):
            if email is None or sent_to == email:
                return code
        raise AssertionError(f"no code sent to {email}")


def make_settings(**jwt_overrides: Any) -> AppSettings:
    jwt_fields = {"jwt_secret": TEST_JWT_SECRET, "cookie_secure": False, **jwt_overrides}
    return AppSettings(
        env="test",
        db=DatabaseSettings(mongodb_uri="mongodb://localhost:27017/"),
        jwt=JWTSettings(**jwt_fields),
        otp=OTPSettings(),
        email=EmailSettings(email_provider="console"),
    )


def build_test_app(
    users: FakeUserRepository,
    otps: FakeOtpRepository,
    email: RecordingEmailProvider,
    settings: Optional[AppSettings] = None,
) -> FastAPI:
    """The real app with in-memory storage; lifespan never runs."""
    from app import create_app

    app = create_app(settings or make_settings())
    app.state.db = MagicMock()
    app.state.email_provider = email
    app.dependency_overrides[get_user_repository] = lambda: users
    app.dependency_overrides[get_otp_repository] = lambda: otps
    return app


@pytest.fixture
def user_repo() -> FakeUserRepository:
    return FakeUserRepository()


@pytest.fixture
def otp_repo() -> FakeOtpRepository:
    return FakeOtpRepository()


@pytest.fixture
def email_provider() -> RecordingEmailProvider:
    return RecordingEmailProvider()


@pytest.fixture
def otp_service(otp_repo) -> OtpService:
    return OtpService(otp_repo)


@pytest.fixture
def jwt_settings() -> JWTSettings:
    return JWTSettings(jwt_secret=TEST_JWT_SECRET, cookie_secure=False)


@pytest.fixture
def token_service(jwt_settings) -> TokenService:
    return TokenService(jwt_settings)


@pytest.fixture
def app(user_repo, otp_repo, email_provider) -> FastAPI:
    return build_test_app(user_repo, otp_repo, email_provider)


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


@pytest.fixture
def bearer_app(user_repo, otp_repo, email_provider) -> FastAPI:
    return build_test_app(
        user_repo, otp_repo, email_provider, make_settings(session_transport="bearer")
    )


@pytest.fixture
def bearer_client(bearer_app) -> TestClient:
    return TestClient(bearer_app)


@pytest.fixture
def short_access_app(user_repo, otp_repo, email_provider) -> FastAPI:
    """Cookie-mode app whose access tokens expire after two seconds."""
    return build_test_app(
        user_repo, otp_repo, email_provider, make_settings(access_token_ttl_seconds=2)
    )
