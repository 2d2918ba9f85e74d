"""Tests for TestFlight release notes and export-compliance updates."""

from __future__ import annotations

import json

import httpx
import pytest

from conftest import json_response
from testflight_uploader.api.builds import BuildStateCollector
from testflight_uploader.errors import InvalidEncryptionValueError, PollTimeoutError
from testflight_uploader.metadata.release import (
    MAX_RELEASE_NOTES_LENGTH,
    ReleaseMetadataSubmitter,
    parse_uses_non_exempt_encryption,
    truncate_release_notes,
)
from testflight_uploader.models import Platform, PollPolicy


class FakeApi:
    """Records requests and answers localization lookups from a queue."""

    def __init__(self, localization_pages=None, build_pages=None) -> None:
        self.requests: list[tuple[str, str, dict]] = []
        self.localization_pages = list(localization_pages or [[{"id": "loc-1"}]])
        self.build_pages = list(build_pages or [[{"id": "build-1"}]])

    @staticmethod
    def _next(pages):
        return pages.pop(0) if len(pages) > 1 else pages[0]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else {}
        self.requests.append((request.method, request.url.path, body))
        path = request.url.path
        if request.method == "GET" and path.endswith("/betaBuildLocalizations"):
            return json_response({"data": self._next(self.localization_pages)})
        if request.method == "GET" and path.endswith("/builds"):
            return json_response({"data": self._next(self.build_pages)})
        if request.method == "PATCH":
            return json_response({"data": body.get("data", {})})
        return httpx.Response(404)

    def patches(self) -> list[tuple[str, dict]]:
        return [(path, body) for method, path, body in self.requests if method == "PATCH"]


def make_submitter(client, sleep) -> ReleaseMetadataSubmitter:
    return ReleaseMetadataSubmitter(
        client,
        localization_policy=PollPolicy(attempts=3, initial_delay=30),
        build_lookup_policy=PollPolicy(attempts=3, initial_delay=30),
        sleep=sleep,
    )


# ======================================================================
# Input parsing
# ======================================================================


class TestParseEncryption:
    @pytest.mark.parametrize(
        "value, expected",
        [
            ("true", True),
            ("TRUE", True),
            (" False ", False),
            ("false", False),
            ("", None),
            ("   ", None),
            (None, None),
        ],
    )
    def test_valid_values(self, value, expected):
        assert parse_uses_non_exempt_encryption(value) is expected

    def test_other_values_are_rejected(self):
        with pytest.raises(InvalidEncryptionValueError) as exc_info:
            parse_uses_non_exempt_encryption("yes")

        assert exc_info.value.value == "yes"


class TestTruncateReleaseNotes:
    def test_long_notes_are_clamped(self):
        assert len(truncate_release_notes("x" * 5000)) == MAX_RELEASE_NOTES_LENGTH

    def test_short_notes_untouched(self):
        assert truncate_release_notes("Fixed login") == "Fixed login"


# ======================================================================
# Submission
# ======================================================================


class TestReleaseMetadataSubmitter:
    async def test_nothing_requested_makes_no_calls(self, make_client, sleep):
        api = FakeApi()

        outcome = await make_submitter(make_client(api), sleep).submit("   \n", None, build_id="build-1")

        assert api.requests == []
        assert not outcome.release_notes_updated
        assert not outcome.encryption_updated

    async def test_invalid_encryption_fails_before_any_call(self, make_client, sleep):
        api = FakeApi()

        with pytest.raises(InvalidEncryptionValueError):
            await make_submitter(make_client(api), sleep).submit("notes", "maybe", build_id="build-1")

        assert api.requests == []

    async def test_release_notes_are_trimmed_and_truncated(self, make_client, sleep):
        api = FakeApi()
        notes = "  " + "a" * 4050 + "  "

        outcome = await make_submitter(make_client(api), sleep).submit(notes, None, build_id="build-1")

        assert outcome.release_notes_updated
        (path, body), = api.patches()
        assert path == "/v1/betaBuildLocalizations/loc-1"
        assert body["data"]["type"] == "betaBuildLocalizations"
        assert body["data"]["attributes"]["whatsNew"] == "a" * 4000

    async def test_waits_for_localization_to_appear(self, make_client, sleep):
        api = FakeApi(localization_pages=[[], [], [{"id": "loc-9"}]])

        await make_submitter(make_client(api), sleep).submit("notes", None, build_id="build-1")

        assert sleep.delays == [30, 30]
        assert api.patches()[0][0] == "/v1/betaBuildLocalizations/loc-9"

    async def test_localization_timeout(self, make_client, sleep):
        api = FakeApi(localization_pages=[[]])

        with pytest.raises(PollTimeoutError):
            await make_submitter(make_client(api), sleep).submit("notes", None, build_id="build-1")

        assert api.patches() == []
        lookups = [r for r in api.requests if r[1].endswith("/betaBuildLocalizations")]
        assert len(lookups) == 3

    async def test_encryption_only(self, make_client, sleep):
        api = FakeApi()

        outcome = await make_submitter(make_client(api), sleep).submit("", "false", build_id="build-1")

        assert outcome.encryption_updated
        assert not outcome.release_notes_updated
        assert api.patches() == [
            (
                "/v1/builds/build-1",
                {
                    "data": {
                        "id": "build-1",
                        "type": "builds",
                        "attributes": {"usesNonExemptEncryption": False},
                    }
                },
            )
        ]
        assert all(not path.endswith("/betaBuildLocalizations") for _, path, _ in api.requests)

    async def test_both_updates_in_order(self, make_client, sleep):
        api = FakeApi()

        outcome = await make_submitter(make_client(api), sleep).submit("notes", "TRUE", build_id="build-1")

        assert outcome.release_notes_updated and outcome.encryption_updated
        assert [path for path, _ in api.patches()] == [
            "/v1/betaBuildLocalizations/loc-1",
            "/v1/builds/build-1",
        ]

    async def test_build_id_resolved_through_collector(self, make_client, sleep):
        api = FakeApi(build_pages=[[], [{"id": "build-7", "attributes": {}}]])
        client = make_client(api)
        collector = BuildStateCollector(client, "app-1", "42", Platform.IOS)

        outcome = await make_submitter(client, sleep).submit(
            "", "true", collector=collector
        )

        assert outcome.build_id == "build-7"
        assert api.patches()[0][0] == "/v1/builds/build-7"
        assert sleep.delays == [30]
