"""iTMSTransporter upload backend.

Delegates the upload to Apple's command-line transporter. Only available on
macOS hosts; the pipeline guards reject it elsewhere.
"""

from __future__ import annotations

import asyncio
import os
import time
from typing import Optional

from testflight_uploader.backends.base import BackendContext, BackendOutcome
from testflight_uploader.errors import TransporterFailedError
from testflight_uploader.models import UploadRequest
from testflight_uploader.utils.logging import get_logger, log_stage_timing, set_stage

logger = get_logger("backends.transporter")

# Transporter output kept in the failure error
MAX_OUTPUT_TAIL = 4000


def build_transporter_args(
    app_path: str,
    api_key_id: str,
    issuer_id: str,
    app_type: str = "",
) -> list[str]:
    """
    Build the transporter command-line arguments.

    ``-appPlatform`` is only passed when an app type was given.
    """
    args = [
        "-m", "upload",
        "-assetFile", app_path,
        "-apiKey", api_key_id,
        "-apiIssuer", issuer_id,
        "-v", "eXtreme",
    ]
    if app_type:
        args.extend(["-appPlatform", app_type])
    return args


def resolve_executable(override: Optional[str], default: str) -> str:
    """Pick the transporter executable; a blank override falls back to the default."""
    if override and override.strip():
        return override.strip()
    return default


class TransporterBackend:
    """Uploads by running iTMSTransporter as a subprocess."""

    name = "transporter"

    async def upload(self, request: UploadRequest, context: BackendContext) -> BackendOutcome:
        """
        Run the transporter upload.

        The build is not polled here; the orchestrator waits afterwards when
        asked to.

        Raises:
            TransporterFailedError: If the transporter exits non-zero or cannot start
        """
        executable = resolve_executable(
            request.transporter_path,
            context.config.transporter.executable,
        )
        args = build_transporter_args(
            str(request.app_path),
            request.api_key_id,
            request.issuer_id,
            (request.app_type or "").strip(),
        )

        set_stage("upload")
        logger.info("transporter_started", executable=executable, app_path=str(request.app_path))
        started = time.monotonic()

        try:
            process = await asyncio.create_subprocess_exec(
                executable, *args,
                env=os.environ.copy(),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
            stdout, _ = await process.communicate()
        except OSError as e:
            logger.error("transporter_unavailable", executable=executable, error=str(e))
            raise TransporterFailedError(-1, str(e)) from e

        output = stdout.decode(errors="replace")
        for line in output.splitlines():
            logger.debug("transporter_output", line=line)

        if process.returncode != 0:
            logger.error("transporter_failed", returncode=process.returncode)
            raise TransporterFailedError(process.returncode, output[-MAX_OUTPUT_TAIL:])

        upload_seconds = time.monotonic() - started
        log_stage_timing("upload", upload_seconds)
        logger.info("transporter_finished")
        return BackendOutcome(upload_seconds=upload_seconds)
