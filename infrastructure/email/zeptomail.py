"""ZeptoMail implementation of EmailProvider.

Renders the OTP email with Jinja2 and posts it through the shared async
HttpClient. Each flow type gets its own subject line and intro copy.
Delivery problems are reported as False, never raised, so the auth flow
can withdraw the undelivered code.
"""

from pathlib import Path

from jinja2 import Environment, FileSystemLoader, select_autoescape

from config import EmailSettings
from infrastructure.http_client import HttpClient
from schemas.models.otp import OtpType
from shared.logging import get_logger

log = get_logger(__name__)

_TOKEN_PREFIX = "Zoho-enczapikey "
_DEFAULT_TEMPLATE_DIR = Path(__file__).resolve().parents[2] / "templates" / "emails"

_OTP_COPY = {
    OtpType.REGISTER: (
        "Welcome to {app} - Verify Your Email",
        "Complete your registration with the verification code below.",
    ),
    OtpType.LOGIN: (
        "Your {app} sign-in code",
        "Use the code below to sign in to your account.",
    ),
    OtpType.PASSWORD_RESET: (
        "Reset your {app} password",
        "Use the code below to choose a new password.",
    ),
}


class ZeptoMailProvider:
    def __init__(
        self,
        settings: EmailSettings,
        http_client: HttpClient,
        app_name: str = "FastLink",
        app_url: str = "http://localhost:5173",
        expiry_minutes: int = 10,
        template_dir: Path = _DEFAULT_TEMPLATE_DIR,
    ) -> None:
        self._settings = settings
        self._http = http_client
        self._app_name = app_name
        self._app_url = app_url
        self._expiry_minutes = expiry_minutes
        self._jinja = Environment(
            loader=FileSystemLoader(str(template_dir)),
            autoescape=select_autoescape(["html", "xml"]),
        )

    async def send_otp_email(self, email: str, code: str, otp_type: OtpType) -> bool:
        if not self._settings.zepto_api_token:
            log.error("otp_email_not_sent", reason="token_not_configured")
            return False

        subject, html_body, text_body = self._render(code, otp_type)
        payload = {
            "from": {
                "address": self._settings.zepto_from_email,
                "name": self._settings.zepto_from_name,
            },
            "to": [{"email_address": {"address": email, "name": email}}],
            "subject": subject,
            "htmlbody": html_body,
            "textbody": text_body,
        }
        headers = {"Authorization": self._auth_header(), "Content-Type": "application/json"}

        try:
            response = await self._http.post(
                self._settings.zepto_api_url, json=payload, headers=headers
            )
        except Exception as e:
            log.error(
                "otp_email_error",
                to_email=email,
                otp_type=otp_type.value,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

        if 200 <= response.status_code < 300:
            log.info("otp_email_sent", to_email=email, otp_type=otp_type.value)
            return True
        log.error(
            "otp_email_rejected",
            to_email=email,
            otp_type=otp_type.value,
            status_code=response.status_code,
            response=response.text[:200],
        )
        return False

    def _render(self, code: str, otp_type: OtpType) -> tuple[str, str, str]:
        subject_tpl, intro = _OTP_COPY[otp_type]
        subject = subject_tpl.format(app=self._app_name)
        html_body = self._jinja.get_template("otp.html").render(
            otp_code=code,
            intro=intro,
            app_name=self._app_name,
            app_url=self._app_url,
            expiry_minutes=self._expiry_minutes,
        )
        text_body = (
            f"{subject}\n\n"
            f"{intro}\n\n"
            f"Your verification code is: {code}\n\n"
            f"This code expires in {self._expiry_minutes} minutes. "
            f"If you didn't request it, you can ignore this email."
        )
        return subject, html_body, text_body

    def _auth_header(self) -> str:
        token = self._settings.zepto_api_token
        return token if token.startswith(_TOKEN_PREFIX) else f"{_TOKEN_PREFIX}{token}"
