"""Read identifying metadata out of an .ipa archive."""

from __future__ import annotations

import plistlib
import re
import zipfile
from pathlib import Path

from testflight_uploader.errors import MetadataMissingError
from testflight_uploader.models import AppMetadata
from testflight_uploader.utils.logging import get_logger

logger = get_logger("metadata.archive")

INFO_PLIST_PATTERN = re.compile(r"^Payload/[^/]+\.app/Info\.plist$")

REQUIRED_KEYS = (
    "CFBundleIdentifier",
    "CFBundleVersion",
    "CFBundleShortVersionString",
)


def find_info_plist(archive: zipfile.ZipFile) -> str:
    """
    Locate the application's top-level Info.plist entry.

    Raises:
        MetadataMissingError: If the archive has no app bundle Info.plist
    """
    for name in archive.namelist():
        if INFO_PLIST_PATTERN.match(name):
            return name
    raise MetadataMissingError("Info.plist not found in build artifact.")


def extract_app_metadata(path: Path) -> AppMetadata:
    """
    Extract bundle id, build number and short version from an .ipa.

    Both XML and binary plists are accepted.

    Args:
        path: Path to the .ipa archive

    Returns:
        Metadata read from Info.plist

    Raises:
        MetadataMissingError: If the file is not a zip archive, has no
            Info.plist, or lacks one of the required keys
    """
    path = Path(path)
    try:
        with zipfile.ZipFile(path) as archive:
            entry = find_info_plist(archive)
            raw = archive.read(entry)
    except zipfile.BadZipFile as e:
        raise MetadataMissingError(f"Build artifact is not a valid archive: {path}") from e

    try:
        info = plistlib.loads(raw)
    except (plistlib.InvalidFileException, ValueError) as e:
        raise MetadataMissingError(f"Unable to parse {entry}: {e}") from e

    if not isinstance(info, dict):
        raise MetadataMissingError(f"{entry} is not a dictionary plist.")

    missing = [key for key in REQUIRED_KEYS if not str(info.get(key) or "").strip()]
    if missing:
        raise MetadataMissingError(
            f"Missing {', '.join(missing)} in build artifact Info.plist."
        )

    metadata = AppMetadata(
        bundle_id=str(info["CFBundleIdentifier"]).strip(),
        build_number=str(info["CFBundleVersion"]).strip(),
        short_version=str(info["CFBundleShortVersionString"]).strip(),
    )
    logger.info("app_metadata_extracted", path=str(path), **metadata.to_dict())
    return metadata
