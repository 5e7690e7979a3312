"""EmailProvider protocol — services depend on this, not the concrete implementation."""

from typing import Protocol

from schemas.models.otp import OtpType


class EmailProvider(Protocol):
    async def send_otp_email(self, email: str, code: str, otp_type: OtpType) -> bool:
        """Deliver *code* to *email*; return False when delivery failed."""
        ...
