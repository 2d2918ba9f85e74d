"""Data models describing the application being published."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from testflight_uploader.errors import UnsupportedPlatformError


class Platform(Enum):
    """App Store Connect platform identifiers."""

    IOS = "IOS"
    MAC_OS = "MAC_OS"
    TV_OS = "TV_OS"
    VISION_OS = "VISION_OS"

    @classmethod
    def from_app_type(cls, app_type: str | None) -> "Platform":
        """
        Map a user-facing app type to a platform.

        An empty or missing app type selects ``IOS``.

        Raises:
            UnsupportedPlatformError: If the app type is not recognised
        """
        normalized = (app_type or "").strip().lower()
        if not normalized:
            return cls.IOS
        try:
            return _APP_TYPE_ALIASES[normalized]
        except KeyError:
            raise UnsupportedPlatformError(app_type) from None


_APP_TYPE_ALIASES: dict[str, Platform] = {
    "ios": Platform.IOS,
    "iphoneos": Platform.IOS,
    "macos": Platform.MAC_OS,
    "osx": Platform.MAC_OS,
    "appletvos": Platform.TV_OS,
    "tvos": Platform.TV_OS,
    "visionos": Platform.VISION_OS,
    "xros": Platform.VISION_OS,
}


@dataclass(frozen=True)
class AppMetadata:
    """
    Identifying metadata read from the build artifact's Info.plist.

    Attributes:
        bundle_id: CFBundleIdentifier
        build_number: CFBundleVersion
        short_version: CFBundleShortVersionString
    """

    bundle_id: str
    build_number: str
    short_version: str

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "bundle_id": self.bundle_id,
            "build_number": self.build_number,
            "short_version": self.short_version,
        }
