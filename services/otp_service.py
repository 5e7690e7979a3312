"""
OTP ledger — minting and verifying one-time codes.

Verification runs its checks in a fixed order: used, expired, attempt
limit, count the attempt, compare. A wrong guess therefore always consumes
an attempt, and a caller who keeps guessing after the limit sees
ATTEMPTS_EXCEEDED rather than another mismatch.

With the default limit of 5 the check is ``attempts >= 5`` before the
increment, so at most five verify calls ever reach the comparison and the
sixth call of any kind fails.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Optional, Tuple

from errors import OtpFailure, OtpVerificationError
from repositories.otp_repository import OtpRepository
from schemas.models.base import utcnow
from schemas.models.otp import OtpDoc, OtpType
from shared.crypto import hash_token, token_matches
from shared.generators import generate_otp_code
from shared.logging import get_logger
from shared.validators import normalize_email

log = get_logger(__name__)

OTP_LENGTH = 6
OTP_EXPIRY_SECONDS = 600  # 10 minutes
MAX_VERIFICATION_ATTEMPTS = 5


class OtpService:
    def __init__(
        self,
        otp_repo: OtpRepository,
        *,
        length: int = OTP_LENGTH,
        expiry_seconds: int = OTP_EXPIRY_SECONDS,
        max_attempts: int = MAX_VERIFICATION_ATTEMPTS,
    ) -> None:
        self._repo = otp_repo
        self.length = length
        self.expiry_seconds = expiry_seconds
        self.max_attempts = max_attempts

    async def create_otp(self, email: str, otp_type: OtpType) -> Tuple[OtpDoc, str]:
        """Mint a fresh code for (email, type), invalidating earlier unused ones.

        Returns:
            The stored record and the plaintext code for delivery.
        """
        email = normalize_email(email)
        purged = await self._repo.delete_unused(email, otp_type)

        code = generate_otp_code(self.length)
        now = utcnow()
        record = await self._repo.insert(
            OtpDoc(
                email=email,
                code_hash=hash_token(code),
                otp_type=otp_type,
                attempts=0,
                is_used=False,
                expires_at=now + timedelta(seconds=self.expiry_seconds),
                created_at=now,
            )
        )
        log.info(
            "otp_created",
            email=email,
            otp_type=otp_type.value,
            otp_id=str(record.id),
            replaced=purged,
        )
        return record, code

    async def find_active(self, email: str, otp_type: OtpType) -> Optional[OtpDoc]:
        """Most recently created unused record for (email, type), if any."""
        return await self._repo.find_latest_unused(normalize_email(email), otp_type)

    async def verify(self, record: OtpDoc, code: str) -> OtpDoc:
        """Check *code* against *record*, consuming one attempt.

        Raises:
            OtpVerificationError: with reason ALREADY_USED, EXPIRED,
                ATTEMPTS_EXCEEDED or CODE_MISMATCH.
        """
        self._raise_if_unusable(record)

        counted = await self._repo.increment_attempts(
            record.id, self.max_attempts, utcnow()
        )
        if counted is None:
            # Another request changed the record between our read and update.
            await self._raise_current_state(record)

        if not token_matches(code, counted.code_hash):
            self._fail(counted, OtpFailure.CODE_MISMATCH)

        if not await self._repo.mark_used(counted.id):
            self._fail(counted, OtpFailure.ALREADY_USED)

        log.info(
            "otp_verified_success",
            email=counted.email,
            otp_type=counted.otp_type.value,
            otp_id=str(counted.id),
            attempts=counted.attempts,
        )
        return counted.model_copy(update={"is_used": True})

    async def verify_latest(
        self, email: str, otp_type: OtpType, code: str
    ) -> OtpDoc:
        """find_active + verify; a missing record reads as invalid-or-expired."""
        record = await self.find_active(email, otp_type)
        if record is None:
            log.warning(
                "otp_verification_failed",
                email=normalize_email(email),
                otp_type=otp_type.value,
                reason=OtpFailure.NOT_FOUND.value,
            )
            raise OtpVerificationError(OtpFailure.NOT_FOUND)
        return await self.verify(record, code)

    async def consume(self, record: OtpDoc) -> None:
        """Delete a record whose flow has completed."""
        await self._repo.delete(record.id)

    async def purge_expired(self) -> int:
        """Sweep for stores without a TTL index."""
        removed = await self._repo.purge_expired(utcnow())
        if removed:
            log.info("otp_purged_expired", count=removed)
        return removed

    def _raise_if_unusable(self, record: OtpDoc) -> None:
        if record.is_used:
            self._fail(record, OtpFailure.ALREADY_USED)
        if record.is_expired(utcnow()):
            self._fail(record, OtpFailure.EXPIRED)
        if record.attempts >= self.max_attempts:
            self._fail(record, OtpFailure.ATTEMPTS_EXCEEDED)

    async def _raise_current_state(self, record: OtpDoc) -> None:
        current = await self._repo.find_by_id(record.id)
        if current is None:
            self._fail(record, OtpFailure.NOT_FOUND)
        self._raise_if_unusable(current)
        # Usable again by the time we looked; report the attempt limit race.
        self._fail(current, OtpFailure.ATTEMPTS_EXCEEDED)

    def _fail(self, record: OtpDoc, reason: OtpFailure) -> None:
        log.warning(
            "otp_verification_failed",
            email=record.email,
            otp_type=record.otp_type.value,
            otp_id=str(record.id),
            reason=reason.value,
            attempts=record.attempts,
        )
        raise OtpVerificationError(reason)
