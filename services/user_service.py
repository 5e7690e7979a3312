"""
Profile mutations for signed-in users.

Password and PIN follow the same rule: the first one is simply set, later
changes must prove the current value and pick a different one.
"""

from __future__ import annotations

from typing import Optional

from errors import NotFoundError, NotVerifiedError, ValidationError
from repositories.user_repository import UserRepository
from schemas.models.user import UserDoc
from shared.crypto import hash_password, hash_pin, verify_password, verify_pin
from shared.logging import get_logger
from shared.validators import require_name, require_password, require_pin

log = get_logger(__name__)


class UserService:
    def __init__(self, user_repo: UserRepository) -> None:
        self._users = user_repo

    async def complete_profile(
        self, user: UserDoc, name: str, password: str, pin: str
    ) -> UserDoc:
        if not name or not password or not pin:
            raise ValidationError("Name, password, and PIN are required")
        name = require_name(name)
        require_password(password)
        require_pin(pin)

        if not user.is_verified:
            raise NotVerifiedError("Email must be verified before completing profile")

        updated = await self._users.complete_profile(
            user.id, name, hash_password(password), hash_pin(pin)
        )
        log.info("profile_completed", user_id=str(user.id))
        return self._found(updated)

    async def update_name(self, user: UserDoc, name: str) -> UserDoc:
        updated = await self._users.set_name(user.id, require_name(name))
        log.info("profile_updated", user_id=str(user.id))
        return self._found(updated)

    async def update_password(
        self, user: UserDoc, old_password: Optional[str], new_password: str
    ) -> bool:
        """Create or change the password. Returns True when it was created."""
        if not new_password:
            raise ValidationError("New password is required", field="new_password")
        require_password(new_password, field="new_password")

        creating = not user.password_hash
        if not creating:
            if not old_password:
                raise ValidationError(
                    "Current password is required to update", field="old_password"
                )
            if not verify_password(old_password, user.password_hash):
                raise ValidationError("Current password is incorrect", field="old_password")
            if verify_password(new_password, user.password_hash):
                raise ValidationError(
                    "New password must be different from the current password",
                    field="new_password",
                )

        self._found(await self._users.set_password(user.id, hash_password(new_password)))
        log.info("password_changed", user_id=str(user.id), created=creating)
        return creating

    async def update_pin(self, user: UserDoc, old_pin: Optional[str], new_pin: str) -> bool:
        """Create or change the PIN. Returns True when it was created."""
        if not new_pin:
            raise ValidationError("New PIN is required", field="new_pin")
        require_pin(new_pin, field="new_pin")

        creating = not user.pin_hash
        if not creating:
            if not old_pin:
                raise ValidationError("Current PIN is required to update", field="old_pin")
            if not verify_pin(old_pin, user.pin_hash):
                raise ValidationError("Current PIN is incorrect", field="old_pin")
            if verify_pin(new_pin, user.pin_hash):
                raise ValidationError(
                    "New PIN must be different from the current PIN", field="new_pin"
                )

        self._found(await self._users.set_pin(user.id, hash_pin(new_pin)))
        log.info("pin_changed", user_id=str(user.id), created=creating)
        return creating

    async def delete_account(self, user: UserDoc) -> None:
        if not await self._users.delete(user.id):
            raise NotFoundError("User not found")
        log.info("user_deleted", user_id=str(user.id))

    @staticmethod
    def _found(user: Optional[UserDoc]) -> UserDoc:
        if user is None:
            raise NotFoundError("User not found")
        return user
