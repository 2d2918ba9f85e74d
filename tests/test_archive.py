"""Tests for reading build metadata out of .ipa archives."""

from __future__ import annotations

import pytest

from testflight_uploader.errors import MetadataMissingError
from testflight_uploader.metadata.archive import extract_app_metadata
from testflight_uploader.models import AppMetadata


class TestExtractAppMetadata:
    def test_xml_plist(self, make_ipa):
        metadata = extract_app_metadata(make_ipa())

        assert metadata == AppMetadata(
            bundle_id="com.example.app",
            build_number="42",
            short_version="1.2.3",
        )

    def test_binary_plist(self, make_ipa):
        metadata = extract_app_metadata(make_ipa(binary=True))

        assert metadata.bundle_id == "com.example.app"

    def test_nested_bundle_plists_are_ignored(self, make_ipa):
        # The framework plist only has a bundle id; reading it would fail
        assert extract_app_metadata(make_ipa()).build_number == "42"

    def test_missing_key(self, make_ipa):
        path = make_ipa(info={"CFBundleIdentifier": "com.example.app", "CFBundleVersion": "42"})

        with pytest.raises(MetadataMissingError) as exc_info:
            extract_app_metadata(path)

        assert "CFBundleShortVersionString" in str(exc_info.value)

    def test_missing_info_plist(self, make_ipa):
        with pytest.raises(MetadataMissingError):
            extract_app_metadata(make_ipa(include_plist=False))

    def test_not_a_zip(self, tmp_path):
        path = tmp_path / "broken.ipa"
        path.write_bytes(b"not a zip archive")

        with pytest.raises(MetadataMissingError):
            extract_app_metadata(path)
