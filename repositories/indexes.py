"""Collection indexes, created once at startup."""

from __future__ import annotations

from pymongo import ASCENDING, DESCENDING

from shared.logging import get_logger

log = get_logger(__name__)


async def ensure_indexes(db) -> None:
    try:
        users = db["users"]
        await users.create_index([("email", ASCENDING)], unique=True)

        otps = db["otps"]
        await otps.create_index(
            [
                ("email", ASCENDING),
                ("otp_type", ASCENDING),
                ("created_at", DESCENDING),
            ]
        )
        # TTL: MongoDB removes records once expires_at passes
        await otps.create_index([("expires_at", ASCENDING)], expireAfterSeconds=0)
        log.info("indexes_ensured")
    except Exception as e:
        log.error("ensure_indexes_failed", error=str(e), error_type=type(e).__name__)
        raise
