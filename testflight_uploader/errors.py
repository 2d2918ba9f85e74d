"""Exceptions raised during a publish run.

Every error aborts the run; there is no partial-success result. Each class
carries an ``exit_code`` so the CLI can translate it without inspecting the
message.
"""

from __future__ import annotations

from typing import Optional

from testflight_uploader.utils.result import ExitCode


class PublishError(Exception):
    """Base class for all publish run failures."""

    exit_code: int = ExitCode.GENERAL_ERROR


class MetadataMissingError(PublishError):
    """The build artifact has no usable Info.plist metadata."""

    exit_code = ExitCode.METADATA_MISSING


class AppNotFoundError(PublishError):
    """No App Store Connect app matches the bundle id."""

    exit_code = ExitCode.APP_LOOKUP_FAILED

    def __init__(self, bundle_id: str) -> None:
        self.bundle_id = bundle_id
        super().__init__(
            f"Unable to find App Store Connect app for bundle id {bundle_id}."
        )


class AppAmbiguousError(PublishError):
    """More than one App Store Connect app matches the bundle id."""

    exit_code = ExitCode.APP_LOOKUP_FAILED

    def __init__(self, bundle_id: str, app_ids: list[str]) -> None:
        self.bundle_id = bundle_id
        self.app_ids = app_ids
        super().__init__(
            f"Multiple apps found for bundle id {bundle_id} "
            f"({', '.join(app_ids)}); please disambiguate."
        )


class ApiRequestError(PublishError):
    """An App Store Connect API request failed."""

    exit_code = ExitCode.API_ERROR

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        body: str = "",
    ) -> None:
        self.message = message
        self.status = status
        self.body = body
        detail = f"status {status}" if status is not None else "no response"
        super().__init__(f"{message} ({detail}): {body}" if body else f"{message} ({detail})")


class UploadOperationsMissingError(PublishError):
    """The upload session has no file id or no upload operations."""

    exit_code = ExitCode.UPLOAD_FAILED


class ChunkUploadFailedError(PublishError):
    """A chunk transfer returned a non-2xx status. The whole session must restart."""

    exit_code = ExitCode.UPLOAD_FAILED

    def __init__(self, status: int, body: str, index: int = 0, total: int = 0) -> None:
        self.status = status
        self.body = body
        self.index = index
        self.total = total
        super().__init__(
            f"Failed to upload build chunk {index}/{total} (status {status}): {body}"
        )


class FinalizeFailedError(PublishError):
    """
    Chunks were transferred but the upload file could not be marked uploaded.

    The remote build upload is left in an uploaded-but-unfinalized state;
    nothing is rolled back.
    """

    exit_code = ExitCode.FINALIZE_FAILED

    def __init__(self, file_id: str, cause: Exception) -> None:
        self.file_id = file_id
        self.cause = cause
        super().__init__(
            f"Build upload file {file_id} was transferred but could not be "
            f"finalized: {cause}"
        )


class PollTimeoutError(PublishError):
    """Polling exhausted its attempts without reaching the awaited condition."""

    exit_code = ExitCode.POLL_TIMEOUT

    def __init__(self, label: str, attempts: int) -> None:
        self.label = label
        self.attempts = attempts
        super().__init__(f"Timed out waiting for {label} after {attempts} attempts.")


class BuildProcessingFailedError(PublishError):
    """The build reached INVALID or FAILED while fail-fast polling was enabled."""

    exit_code = ExitCode.POLL_TIMEOUT

    def __init__(self, build_number: str, state: str) -> None:
        self.build_number = build_number
        self.state = state
        super().__init__(f"Build {build_number} processing ended in state {state}.")


class InvalidEncryptionValueError(PublishError):
    """The uses-non-exempt-encryption input is neither 'true' nor 'false'."""

    exit_code = ExitCode.INVALID_INPUT

    def __init__(self, value: str) -> None:
        self.value = value
        super().__init__(
            f'Invalid uses-non-exempt-encryption value "{value}". Use "true" or "false".'
        )


class UnsupportedPlatformError(PublishError):
    """The app type does not map to an App Store Connect platform."""

    exit_code = ExitCode.GUARD_BACKEND

    def __init__(self, app_type: str) -> None:
        self.app_type = app_type
        super().__init__(f"Unsupported app type: {app_type!r}")


class BackendUnavailableError(PublishError):
    """The requested upload backend does not exist or cannot run here."""

    exit_code = ExitCode.GUARD_BACKEND


class TransporterFailedError(PublishError):
    """iTMSTransporter exited with a non-zero status."""

    exit_code = ExitCode.UPLOAD_FAILED

    def __init__(self, returncode: int, output: str) -> None:
        self.returncode = returncode
        self.output = output
        super().__init__(f"iTMSTransporter failed with exit code {returncode}")
