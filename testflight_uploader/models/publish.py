"""Data models for a publish run: inputs, polling policies and the result."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from testflight_uploader.models.app import AppMetadata
from testflight_uploader.models.build import BuildRecord


@dataclass(frozen=True)
class PollPolicy:
    """
    Bounded polling policy for a single wait.

    Attributes:
        attempts: Maximum number of probes
        initial_delay: Seconds to wait after the first unsuccessful probe
        backoff_cap: Upper bound for a doubling delay; None keeps the delay fixed
    """

    attempts: int
    initial_delay: float
    backoff_cap: Optional[float] = None

    @property
    def uses_backoff(self) -> bool:
        return self.backoff_cap is not None

    def to_dict(self) -> dict:
        return {
            "attempts": self.attempts,
            "initial_delay": self.initial_delay,
            "backoff_cap": self.backoff_cap,
        }


@dataclass
class UploadRequest:
    """
    Validated inputs for one publish run.

    Attributes:
        app_path: Path to the .ipa artifact
        app_type: User-facing app type (ios, macos, appletvos, visionos)
        issuer_id: App Store Connect API issuer id
        api_key_id: App Store Connect API key id
        api_private_key: PEM contents of the .p8 key
        backend: Upload backend name
        release_notes: TestFlight "What to Test" text (may be empty)
        uses_non_exempt_encryption: Raw tri-state compliance input
        transporter_path: Override for the iTMSTransporter executable
        wait_for_processing: Wait for VALID after a transporter upload
    """

    app_path: Path
    issuer_id: str
    api_key_id: str
    api_private_key: str
    app_type: str = "ios"
    backend: str = "appstore-api"
    release_notes: str = ""
    uses_non_exempt_encryption: Optional[str] = None
    transporter_path: Optional[str] = None
    wait_for_processing: bool = False

    def __repr__(self) -> str:
        # Keep the private key out of logs and tracebacks
        return (
            f"UploadRequest(app_path={str(self.app_path)!r}, app_type={self.app_type!r}, "
            f"backend={self.backend!r}, api_key_id={self.api_key_id!r})"
        )


@dataclass
class StageTiming:
    """Seconds spent in each stage of a publish run."""

    upload_seconds: float = 0.0
    processing_seconds: float = 0.0
    metadata_seconds: float = 0.0
    total_seconds: float = 0.0

    def to_dict(self) -> dict:
        return {
            "upload_seconds": round(self.upload_seconds, 3),
            "processing_seconds": round(self.processing_seconds, 3),
            "metadata_seconds": round(self.metadata_seconds, 3),
            "total_seconds": round(self.total_seconds, 3),
        }


@dataclass
class PublishResult:
    """
    Outcome of a successful publish run.

    Attributes:
        backend: Backend that performed the upload
        app_metadata: Metadata read from the artifact
        app_id: Resolved App Store Connect app id
        build_upload_id: buildUploads id (appstore-api backend only)
        build: Final build record once processing is VALID
        release_notes_updated: Whether "What to Test" was patched
        encryption_updated: Whether the compliance flag was patched
        timings: Stage durations
    """

    backend: str
    app_metadata: Optional[AppMetadata] = None
    app_id: Optional[str] = None
    build_upload_id: Optional[str] = None
    build: Optional[BuildRecord] = None
    release_notes_updated: bool = False
    encryption_updated: bool = False
    timings: StageTiming = field(default_factory=StageTiming)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "backend": self.backend,
            "app": self.app_metadata.to_dict() if self.app_metadata else None,
            "app_id": self.app_id,
            "build_upload_id": self.build_upload_id,
            "build": self.build.to_dict() if self.build else None,
            "release_notes_updated": self.release_notes_updated,
            "encryption_updated": self.encryption_updated,
            "timings": self.timings.to_dict(),
        }
