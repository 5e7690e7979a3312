"""Unit tests for document models and response DTOs."""

from datetime import timedelta

import pytest
from bson import ObjectId

from schemas.dto.requests.auth import RefreshTokenRequest, VerifyPasswordResetRequest
from schemas.dto.requests.user import UpdatePasswordRequest, UpdatePinRequest
from schemas.dto.responses.auth import SessionResponse, UserProfileResponse
from schemas.models.base import utcnow
from schemas.models.otp import OtpDoc, OtpType
from schemas.models.user import UserDoc, has_completed_profile


def _otp(**overrides) -> OtpDoc:
    fields = dict(
        email="a@b.co",
        code_hash="0" * 64,
        otp_type=OtpType.LOGIN,
        expires_at=utcnow() + timedelta(minutes=10),
        created_at=utcnow(),
    )
    fields.update(overrides)
    return OtpDoc(**fields)


class TestUserDoc:
    def test_defaults(self):
        user = UserDoc(email="a@b.co")
        assert user.is_verified is False
        assert user.is_locked is False
        assert user.login_attempts == 0
        assert user.role == "user"
        assert user.has_completed_profile is False

    @pytest.mark.parametrize(
        "fields, expected",
        [
            ({"name": "Ada", "password_hash": "p", "pin_hash": "q"}, True),
            ({"name": "Ada", "password_hash": "p"}, False),
            ({"password_hash": "p", "pin_hash": "q"}, False),
            ({}, False),
        ],
    )
    def test_has_completed_profile(self, fields, expected):
        assert UserDoc(email="a@b.co", **fields).has_completed_profile is expected
        assert has_completed_profile({"email": "a@b.co", **fields}) is expected

    def test_from_mongo_round_trip(self):
        oid = ObjectId()
        user = UserDoc.from_mongo({"_id": oid, "email": "a@b.co", "is_verified": True})
        assert user.id == oid
        assert user.to_mongo()["_id"] == oid

    def test_from_mongo_none(self):
        assert UserDoc.from_mongo(None) is None

    def test_to_mongo_drops_missing_id(self):
        assert "_id" not in UserDoc(email="a@b.co").to_mongo()


class TestOtpDoc:
    def test_to_mongo_stores_type_value(self):
        assert _otp(otp_type=OtpType.PASSWORD_RESET).to_mongo()["otp_type"] == "password_reset"

    def test_is_expired(self):
        now = utcnow()
        assert _otp(expires_at=now - timedelta(seconds=1)).is_expired(now) is True
        assert _otp(expires_at=now + timedelta(seconds=1)).is_expired(now) is False

    def test_naive_expiry_treated_as_utc(self):
        now = utcnow()
        naive = (now - timedelta(seconds=5)).replace(tzinfo=None)
        assert _otp(expires_at=naive).is_expired(now) is True

    def test_attempts_cannot_be_negative(self):
        with pytest.raises(Exception):
            _otp(attempts=-1)


class TestDtos:
    def test_profile_response_hides_hashes(self):
        user = UserDoc(
            id=ObjectId(),
            email="a@b.co",
            name="Ada",
            password_hash="secret-hash",
            pin_hash="pin-hash",
            is_verified=True,
            profile_completed=True,
        )
        dumped = UserProfileResponse.from_user(user).model_dump()
        assert dumped["id"] == str(user.id)
        assert dumped["has_completed_profile"] is True
        assert "password_hash" not in dumped
        assert "pin_hash" not in dumped

    def test_session_response_omits_tokens_when_absent(self):
        dumped = SessionResponse(message="Login successful").model_dump(exclude_none=True)
        assert dumped == {"success": True, "message": "Login successful"}

    def test_camel_case_aliases_accepted(self):
        assert VerifyPasswordResetRequest(newPassword="abcdef").new_password == "abcdef"
        assert RefreshTokenRequest(refreshToken="r").refresh_token == "r"
        assert UpdatePasswordRequest(oldPassword="a", newPassword="b").old_password == "a"
        assert UpdatePinRequest(oldPin="1111", newPin="2222").new_pin == "2222"

    def test_snake_case_accepted(self):
        assert VerifyPasswordResetRequest(new_password="abcdef").new_password == "abcdef"
