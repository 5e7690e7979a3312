"""
Session credential issuance and verification.

Access and refresh credentials are both signed JWTs binding the user id in
``sub``. There is no server-side revocation list: a refresh token is good
until it expires or the client throws it away. Verification is a pure
function of the token and never reads the credential store.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from config import JWTSettings
from errors import INVALID_TOKEN, TOKEN_EXPIRED, AuthenticationError
from shared.generators import generate_token_id

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    access_expires_in: int
    refresh_expires_in: int


class TokenService:
    def __init__(self, settings: JWTSettings) -> None:
        self._settings = settings
        if settings.use_rs256:
            # Support keys provided via env with literal \n sequences
            private = settings.jwt_private_key.replace("\\n", "\n").encode("utf-8")
            public = settings.jwt_public_key.replace("\\n", "\n").encode("utf-8")
            self._algorithm = "RS256"
            self._access_keys = (private, public)
            self._refresh_keys = (private, public)
        else:
            if not settings.jwt_secret:
                raise RuntimeError(
                    "JWT_SECRET must be set when RS256 keys are not provided"
                )
            refresh_secret = settings.jwt_refresh_secret or settings.jwt_secret
            self._algorithm = "HS256"
            self._access_keys = (settings.jwt_secret, settings.jwt_secret)
            self._refresh_keys = (refresh_secret, refresh_secret)

    @property
    def access_ttl(self) -> int:
        return self._settings.access_token_ttl_seconds

    @property
    def refresh_ttl(self) -> int:
        return self._settings.refresh_token_ttl_seconds

    def issue(self, user_id: str, auth_method: str = "otp") -> TokenPair:
        """Mint an access/refresh pair for *user_id*."""
        return TokenPair(
            access_token=self._encode(
                str(user_id), ACCESS_TOKEN_TYPE, self.access_ttl, auth_method
            ),
            refresh_token=self._encode(
                str(user_id), REFRESH_TOKEN_TYPE, self.refresh_ttl, auth_method
            ),
            access_expires_in=self.access_ttl,
            refresh_expires_in=self.refresh_ttl,
        )

    def verify_access(self, token: str) -> str:
        """Return the user id bound to an access token.

        Raises:
            AuthenticationError: code TOKEN_EXPIRED or INVALID_TOKEN.
        """
        return self._decode(token, ACCESS_TOKEN_TYPE)["sub"]

    def verify_refresh(self, token: str) -> str:
        """Return the user id bound to a refresh token."""
        return self._decode(token, REFRESH_TOKEN_TYPE)["sub"]

    def _encode(self, user_id: str, token_type: str, ttl: int, auth_method: str) -> str:
        now = datetime.now(timezone.utc)
        claims = {
            "iss": self._settings.jwt_issuer,
            "aud": self._settings.jwt_audience,
            "sub": user_id,
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(seconds=ttl)).timestamp()),
            "jti": generate_token_id(),
            "type": token_type,
            "amr": [auth_method],  # Authentication Methods References
        }
        keys = self._refresh_keys if token_type == REFRESH_TOKEN_TYPE else self._access_keys
        return jwt.encode(claims, keys[0], algorithm=self._algorithm)

    def _decode(self, token: Optional[str], token_type: str) -> dict:
        if not token:
            raise AuthenticationError("Invalid token", code=INVALID_TOKEN)
        keys = self._refresh_keys if token_type == REFRESH_TOKEN_TYPE else self._access_keys
        try:
            claims = jwt.decode(
                token,
                keys[1],
                algorithms=[self._algorithm],
                audience=self._settings.jwt_audience,
                issuer=self._settings.jwt_issuer,
                options={"require": ["exp", "sub"]},
            )
        except jwt.ExpiredSignatureError:
            raise AuthenticationError("Token has expired", code=TOKEN_EXPIRED)
        except jwt.InvalidTokenError:
            raise AuthenticationError("Invalid token", code=INVALID_TOKEN)

        if claims.get("type") != token_type:
            raise AuthenticationError("Invalid token", code=INVALID_TOKEN)
        return claims
