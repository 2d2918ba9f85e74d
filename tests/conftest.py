"""Shared pytest fixtures for testflight-uploader tests.

Provides a fake token source, an App Store Connect client backed by
``httpx.MockTransport``, a recording sleep so no test waits on a real clock,
and a builder for small .ipa archives.
"""

from __future__ import annotations

import plistlib
import zipfile
from pathlib import Path
from typing import Callable, Optional

import httpx
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from testflight_uploader.api.client import AppStoreConnectClient
from testflight_uploader.utils.logging import configure_logging

BASE_URL = "https://api.example.test/v1"

DEFAULT_INFO = {
    "CFBundleIdentifier": "com.example.app",
    "CFBundleVersion": "42",
    "CFBundleShortVersionString": "1.2.3",
}


class FakeTokenProvider:
    """Stands in for TokenProvider without any signing."""

    def __init__(self, token: str = "test-token") -> None:
        self.token = token
        self.calls = 0
        self.invalidations = 0

    def get_token(self) -> str:
        self.calls += 1
        return self.token

    def invalidate(self) -> None:
        self.invalidations += 1


class RecordingSleep:
    """Async sleep replacement that only records the requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture(autouse=True)
def reset_logging():
    """Point logging back at the session stderr after tests that reconfigure it."""
    yield
    configure_logging()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def make_client():
    """Factory: build an API client whose requests go to ``handler``."""

    def factory(handler: Callable[[httpx.Request], httpx.Response]) -> AppStoreConnectClient:
        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return AppStoreConnectClient(FakeTokenProvider(), base_url=BASE_URL, http_client=http)

    return factory


@pytest.fixture
def make_ipa(tmp_path: Path):
    """Factory: write an .ipa with the given Info.plist contents."""

    def factory(
        info: Optional[dict] = None,
        binary: bool = False,
        name: str = "Example.ipa",
        padding: int = 0,
        include_plist: bool = True,
    ) -> Path:
        path = tmp_path / name
        plist_format = plistlib.FMT_BINARY if binary else plistlib.FMT_XML
        with zipfile.ZipFile(path, "w") as archive:
            if include_plist:
                payload = plistlib.dumps(
                    DEFAULT_INFO if info is None else info, fmt=plist_format
                )
                archive.writestr("Payload/Example.app/Info.plist", payload)
            # Nested bundles also carry an Info.plist and must be ignored
            archive.writestr(
                "Payload/Example.app/Frameworks/Kit.framework/Info.plist",
                plistlib.dumps({"CFBundleIdentifier": "com.example.kit"}),
            )
            if padding:
                archive.writestr("Payload/Example.app/blob.bin", b"\0" * padding)
        return path

    return factory


@pytest.fixture(scope="session")
def ec_private_key_pem() -> str:
    """A throwaway P-256 key in the .p8 (PKCS#8 PEM) format Apple issues."""
    key = ec.generate_private_key(ec.SECP256R1())
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()


def json_response(data: dict, status: int = 200) -> httpx.Response:
    return httpx.Response(status, json=data)
