"""Tests for ES256 token signing and refresh."""

from __future__ import annotations

import jwt
from cryptography.hazmat.primitives import serialization

from testflight_uploader.api.auth import AUDIENCE, TokenProvider


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def public_key(private_pem: str):
    return serialization.load_pem_private_key(private_pem.encode(), password=None).public_key()


class TestTokenProvider:
    def test_token_is_verifiable_with_expected_claims(self, ec_private_key_pem):
        clock = FakeClock()
        tokens = TokenProvider("issuer-1", "KEY123", ec_private_key_pem, clock=clock)

        token = tokens.get_token()

        header = jwt.get_unverified_header(token)
        assert header["alg"] == "ES256"
        assert header["kid"] == "KEY123"
        assert header["typ"] == "JWT"

        claims = jwt.decode(
            token,
            public_key(ec_private_key_pem),
            algorithms=["ES256"],
            audience=AUDIENCE,
            options={"verify_exp": False, "verify_iat": False},
        )
        assert claims["iss"] == "issuer-1"
        assert claims["aud"] == "appstoreconnect-v1"
        assert claims["exp"] - claims["iat"] == 1200
        assert claims["iat"] == int(clock.now)

    def test_token_is_reused_until_near_expiry(self, ec_private_key_pem):
        clock = FakeClock()
        tokens = TokenProvider("issuer-1", "KEY123", ec_private_key_pem, ttl=1200, refresh_leeway=60, clock=clock)

        first = tokens.get_token()
        clock.now += 1139
        assert tokens.get_token() == first

        clock.now += 1
        refreshed = tokens.get_token()
        assert refreshed != first
        claims = jwt.decode(refreshed, options={"verify_signature": False})
        assert claims["iat"] == int(clock.now)

    def test_invalidate_forces_resign(self, ec_private_key_pem):
        clock = FakeClock()
        tokens = TokenProvider("issuer-1", "KEY123", ec_private_key_pem, clock=clock)

        first = tokens.get_token()
        clock.now += 1
        tokens.invalidate()

        assert tokens.get_token() != first
