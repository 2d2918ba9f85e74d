"""App Store Connect API credentials.

Tokens are ES256-signed JWTs valid for at most 20 minutes. A publish run can
poll for much longer than that, so :class:`TokenProvider` re-signs a fresh
token whenever the cached one is about to expire.
"""

from __future__ import annotations

import time
from typing import Callable, Optional

import jwt

from testflight_uploader.utils.logging import get_logger

logger = get_logger("api.auth")

AUDIENCE = "appstoreconnect-v1"
ALGORITHM = "ES256"


class TokenProvider:
    """
    Produces bearer tokens for the App Store Connect API.

    Usage::

        tokens = TokenProvider(issuer_id, key_id, private_key_pem)
        headers = {"Authorization": f"Bearer {tokens.get_token()}"}
    """

    def __init__(
        self,
        issuer_id: str,
        key_id: str,
        private_key: str,
        ttl: int = 1200,
        refresh_leeway: int = 60,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Initialize the provider.

        Args:
            issuer_id: API issuer id (``iss`` claim)
            key_id: API key id (``kid`` header)
            private_key: PEM contents of the .p8 key
            ttl: Token lifetime in seconds
            refresh_leeway: Re-sign when fewer seconds than this remain
            clock: Time source, returns epoch seconds
        """
        self.issuer_id = issuer_id
        self.key_id = key_id
        self._private_key = private_key
        self.ttl = ttl
        self.refresh_leeway = refresh_leeway
        self._clock = clock
        self._token: Optional[str] = None
        self._expires_at: float = 0.0

    def get_token(self) -> str:
        """Return a valid token, signing a new one if needed."""
        now = self._clock()
        if self._token is None or now >= self._expires_at - self.refresh_leeway:
            self._token = self._sign(now)
            self._expires_at = now + self.ttl
            logger.debug("token_signed", key_id=self.key_id, ttl=self.ttl)
        return self._token

    def invalidate(self) -> None:
        """Drop the cached token so the next request re-signs."""
        self._token = None
        self._expires_at = 0.0

    def _sign(self, now: float) -> str:
        issued_at = int(now)
        payload = {
            "iss": self.issuer_id,
            "iat": issued_at,
            "exp": issued_at + self.ttl,
            "aud": AUDIENCE,
        }
        return jwt.encode(
            payload,
            self._private_key,
            algorithm=ALGORITHM,
            headers={"kid": self.key_id, "typ": "JWT"},
        )
