"""Development EmailProvider that writes codes to the log instead of sending mail."""

from schemas.models.otp import OtpType
from shared.logging import get_logger

log = get_logger(__name__)


class ConsoleEmailProvider:
    def __init__(self, echo_codes: bool = False) -> None:
        # Only a local development server should ever print codes.
        self._echo_codes = echo_codes

    async def send_otp_email(self, email: str, code: str, otp_type: OtpType) -> bool:
        if self._echo_codes:
            print(f"[{otp_type.value}] verification code for {email}: {code}")
        log.info("otp_email_logged", to_email=email, otp_type=otp_type.value)
        return True
