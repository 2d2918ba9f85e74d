"""Publish guards - precondition checks that fail fast before any upload work.

These guards run before the first network call, ensuring that credentials,
the build artifact and the selected backend are usable. If a guard fails,
the run exits immediately with a clear error message and exit code.
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from pathlib import Path

from testflight_uploader.backends import BACKENDS, list_backends
from testflight_uploader.errors import UnsupportedPlatformError
from testflight_uploader.models import Platform, UploadRequest
from testflight_uploader.utils.logging import get_logger
from testflight_uploader.utils.result import Err, ExitCode, GuardError, Ok, Result

logger = get_logger("pipeline.guards")

# Backends that shell out to macOS-only tooling
MACOS_ONLY_BACKENDS = frozenset({"transporter"})

PEM_MARKER = "-----BEGIN"


@dataclass
class GuardContext:
    """Context for guard checks."""

    request: UploadRequest
    require_backend: bool = True


class PublishGuards:
    """
    Precondition checks that fail the run immediately on critical issues.

    Each guard returns a Result type - Ok if the check passes, Err(GuardError)
    if it fails.
    """

    def __init__(self, context: GuardContext) -> None:
        self.context = context

    def check_all(self) -> Result[None, GuardError]:
        """
        Run all precondition checks.

        Returns:
            Result indicating success or first failure
        """
        logger.info("running_guards")
        request = self.context.request

        result = self.check_credentials(
            request.issuer_id,
            request.api_key_id,
            request.api_private_key,
        )
        if result.is_err():
            return result

        result = self.check_artifact(request.app_path)
        if result.is_err():
            return result

        result = self.check_platform(request.app_type)
        if result.is_err():
            return result

        if self.context.require_backend:
            result = self.check_backend_supported(request.backend)
            if result.is_err():
                return result

        logger.info("guards_passed")
        return Ok(None)

    def check_credentials(
        self,
        issuer_id: str,
        api_key_id: str,
        private_key: str,
    ) -> Result[None, GuardError]:
        """
        Check that all API credentials are present.

        Returns:
            Ok(None) if credentials look usable, Err(GuardError) otherwise
        """
        missing = [
            name
            for name, value in [
                ("issuer-id", issuer_id),
                ("api-key-id", api_key_id),
                ("api-private-key", private_key),
            ]
            if not (value or "").strip()
        ]
        if missing:
            return self._fail(
                "credentials",
                ExitCode.GUARD_CREDENTIALS,
                f"Missing App Store Connect credentials: {', '.join(missing)}",
                (
                    "Pass them as options or set APP_STORE_CONNECT_ISSUER_ID, "
                    "APP_STORE_CONNECT_API_KEY_ID and APP_STORE_CONNECT_API_PRIVATE_KEY."
                ),
            )

        # Basic format check, the key is parsed for real when signing
        if PEM_MARKER not in private_key:
            return self._fail(
                "credentials",
                ExitCode.GUARD_CREDENTIALS,
                "App Store Connect private key does not look like a PEM key",
                "Provide the contents of the AuthKey_<id>.p8 file, not its path.",
            )

        logger.debug("guard_passed", guard="credentials")
        return Ok(None)

    def check_artifact(self, path: Path) -> Result[Path, GuardError]:
        """
        Check that the build artifact exists and is readable.

        Returns:
            Ok(Path) with resolved path if valid, Err(GuardError) otherwise
        """
        path = Path(path)

        if not path.exists():
            return self._fail(
                "artifact",
                ExitCode.GUARD_ARTIFACT,
                f"Build artifact not found: {path}",
                "Ensure the path points at the exported .ipa file.",
            )

        if not path.is_file():
            return self._fail(
                "artifact",
                ExitCode.GUARD_ARTIFACT,
                f"Build artifact is not a file: {path}",
            )

        if not os.access(path, os.R_OK):
            return self._fail(
                "artifact",
                ExitCode.GUARD_ARTIFACT,
                f"Build artifact is not readable: {path}",
            )

        if path.stat().st_size == 0:
            return self._fail(
                "artifact",
                ExitCode.GUARD_ARTIFACT,
                f"Build artifact is empty: {path}",
            )

        logger.debug("guard_passed", guard="artifact", path=str(path))
        return Ok(path.resolve())

    def check_platform(self, app_type: str) -> Result[Platform, GuardError]:
        """
        Check that the app type maps to an App Store Connect platform.

        Returns:
            Ok(Platform) if supported, Err(GuardError) otherwise
        """
        try:
            platform = Platform.from_app_type(app_type)
        except UnsupportedPlatformError as e:
            return self._fail(
                "platform",
                ExitCode.GUARD_BACKEND,
                str(e),
                "Supported app types: ios, macos, appletvos, visionos.",
            )

        logger.debug("guard_passed", guard="platform", platform=platform.value)
        return Ok(platform)

    def check_backend_supported(self, backend: str) -> Result[None, GuardError]:
        """
        Check that the backend exists and can run on this host.

        Returns:
            Ok(None) if the backend is usable, Err(GuardError) otherwise
        """
        if backend not in BACKENDS:
            return self._fail(
                "backend",
                ExitCode.GUARD_BACKEND,
                f"Unknown upload backend: {backend}",
                f"Available backends: {', '.join(list_backends())}.",
            )

        if backend in MACOS_ONLY_BACKENDS and sys.platform != "darwin":
            return self._fail(
                "backend",
                ExitCode.GUARD_BACKEND,
                f"The {backend} backend requires a macOS runner.",
                f"Current platform is {sys.platform}; use the appstore-api backend instead.",
            )

        logger.debug("guard_passed", guard="backend", backend=backend)
        return Ok(None)

    @staticmethod
    def _fail(guard: str, code: int, message: str, details: str = "") -> Err[GuardError]:
        error = GuardError(code=code, message=message, details=details)
        logger.error("guard_failed", guard=guard, code=error.code, message=error.message)
        return Err(error)


def run_guards(
    request: UploadRequest,
    require_backend: bool = True,
) -> Result[None, GuardError]:
    """
    Convenience function to run all guards.

    Args:
        request: Publish inputs
        require_backend: Whether an upload backend will run

    Returns:
        Result indicating success or first guard failure
    """
    guards = PublishGuards(GuardContext(request=request, require_backend=require_backend))
    return guards.check_all()
