"""Direct App Store Connect API upload backend.

    metadata -> app id -> session -> chunks -> finalize -> wait for VALID
"""

from __future__ import annotations

import time
from pathlib import Path

from testflight_uploader.api.apps import lookup_app_id
from testflight_uploader.api.builds import BuildStateCollector
from testflight_uploader.backends.base import BackendContext, BackendOutcome
from testflight_uploader.metadata.archive import extract_app_metadata
from testflight_uploader.models import UploadRequest
from testflight_uploader.polling.waiter import BuildProcessingWaiter
from testflight_uploader.uploader.session import UploadSessionManager
from testflight_uploader.utils.logging import get_logger, log_stage_timing, set_stage

logger = get_logger("backends.appstore_api")


class AppStoreApiBackend:
    """Uploads through the buildUploads API and waits for processing."""

    name = "appstore-api"

    async def upload(self, request: UploadRequest, context: BackendContext) -> BackendOutcome:
        """
        Upload the artifact and wait until the build is VALID.

        Args:
            request: Publish inputs
            context: Client, configuration and platform

        Returns:
            Outcome with app id, build upload id and the VALID build
        """
        logger.info("appstore_api_upload_started", app_path=str(request.app_path))

        app_path = Path(request.app_path)
        metadata = extract_app_metadata(app_path)
        file_size = app_path.stat().st_size

        app_id = await lookup_app_id(context.client, metadata.bundle_id)
        logger.info(
            "upload_prepared",
            app_id=app_id,
            platform=context.platform.value,
            file_name=app_path.name,
            file_size=file_size,
        )

        set_stage("upload")
        started = time.monotonic()
        sessions = UploadSessionManager(context.client)
        session = await sessions.create_session(
            app_id=app_id,
            platform=context.platform,
            short_version=metadata.short_version,
            build_number=metadata.build_number,
            file_name=app_path.name,
            file_size=file_size,
        )

        await sessions.transfer(session, app_path.read_bytes())
        logger.info("chunks_uploaded", operations=len(session.operations), bytes=session.total_bytes)

        set_stage("finalize")
        await sessions.finalize(session.file_id)
        upload_seconds = time.monotonic() - started
        log_stage_timing("upload", upload_seconds)

        set_stage("processing")
        started = time.monotonic()
        polling = context.config.polling
        waiter = BuildProcessingWaiter(
            BuildStateCollector(context.client, app_id, metadata.build_number, context.platform),
            visibility=polling.visibility_policy(),
            processing=polling.processing_policy(),
            fail_fast=polling.processing.fail_fast,
            sleep=context.sleep,
        )
        build = await waiter.wait()
        processing_seconds = time.monotonic() - started
        log_stage_timing("processing", processing_seconds)

        return BackendOutcome(
            app_metadata=metadata,
            app_id=app_id,
            build_upload_id=session.id,
            build=build,
            upload_seconds=upload_seconds,
            processing_seconds=processing_seconds,
        )
