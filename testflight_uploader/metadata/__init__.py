"""Build artifact metadata and TestFlight release metadata."""

from testflight_uploader.metadata.archive import extract_app_metadata
from testflight_uploader.metadata.release import (
    MAX_RELEASE_NOTES_LENGTH,
    ReleaseMetadataSubmitter,
    SubmissionOutcome,
    parse_uses_non_exempt_encryption,
    truncate_release_notes,
)

__all__ = [
    "extract_app_metadata",
    "ReleaseMetadataSubmitter",
    "SubmissionOutcome",
    "parse_uses_non_exempt_encryption",
    "truncate_release_notes",
    "MAX_RELEASE_NOTES_LENGTH",
]
