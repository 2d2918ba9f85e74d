"""Publish run orchestration.

Sequences one run strictly forward:

    backend upload -> (optional) wait for VALID -> (optional) metadata updates

Guards are expected to have passed before :func:`publish` is called. Every
failure raises a :class:`~testflight_uploader.errors.PublishError`; there is
no partial-success result.
"""

from __future__ import annotations

import time
import uuid
from pathlib import Path
from typing import Optional

import httpx

from testflight_uploader.api.apps import lookup_app_id
from testflight_uploader.api.auth import TokenProvider
from testflight_uploader.api.builds import BuildStateCollector
from testflight_uploader.api.client import AppStoreConnectClient
from testflight_uploader.backends import BackendContext, get_backend
from testflight_uploader.config.settings import UploaderConfig
from testflight_uploader.metadata.archive import extract_app_metadata
from testflight_uploader.metadata.release import (
    ReleaseMetadataSubmitter,
    SubmissionOutcome,
    parse_uses_non_exempt_encryption,
)
from testflight_uploader.models import Platform, PublishResult, UploadRequest
from testflight_uploader.polling.engine import Sleep
from testflight_uploader.polling.waiter import BuildProcessingWaiter
from testflight_uploader.utils.logging import (
    get_logger,
    log_stage_timing,
    set_run_context,
    set_stage,
)

logger = get_logger("pipeline.orchestrator")


def _token_provider(request: UploadRequest, config: UploaderConfig) -> TokenProvider:
    return TokenProvider(
        request.issuer_id,
        request.api_key_id,
        request.api_private_key,
        ttl=config.api.token_ttl,
        refresh_leeway=config.api.token_refresh_leeway,
    )


def _api_client(
    request: UploadRequest,
    config: UploaderConfig,
    http_client: Optional[httpx.AsyncClient],
) -> AppStoreConnectClient:
    return AppStoreConnectClient(
        _token_provider(request, config),
        base_url=config.api.base_url,
        timeout=config.api.request_timeout,
        http_client=http_client,
    )


def _metadata_requested(request: UploadRequest) -> bool:
    return bool((request.release_notes or "").strip()) or (
        parse_uses_non_exempt_encryption(request.uses_non_exempt_encryption) is not None
    )


def _submitter(
    client: AppStoreConnectClient,
    config: UploaderConfig,
    sleep: Optional[Sleep],
) -> ReleaseMetadataSubmitter:
    return ReleaseMetadataSubmitter(
        client,
        localization_policy=config.polling.localization_policy(),
        build_lookup_policy=config.polling.build_lookup_policy(),
        sleep=sleep,
    )


async def publish(
    request: UploadRequest,
    config: UploaderConfig,
    http_client: Optional[httpx.AsyncClient] = None,
    sleep: Optional[Sleep] = None,
) -> PublishResult:
    """
    Publish one build to TestFlight.

    Args:
        request: Publish inputs
        config: Uploader configuration
        http_client: Pre-built httpx client, used as-is and not closed
        sleep: Sleep coroutine for every poll (defaults to asyncio.sleep)

    Returns:
        Result describing the uploaded build and applied metadata

    Raises:
        PublishError: On any failure
    """
    run_id = str(uuid.uuid4())[:8]
    set_run_context(run_id, stage="prepare")
    run_started = time.monotonic()

    # Bad input is rejected before any upload work
    platform = Platform.from_app_type(request.app_type)
    wants_metadata = _metadata_requested(request)
    backend = get_backend(request.backend)

    logger.info(
        "publish_started",
        backend=backend.name,
        platform=platform.value,
        app_path=str(request.app_path),
        metadata_requested=wants_metadata,
    )

    result = PublishResult(backend=backend.name)

    async with _api_client(request, config, http_client) as client:
        outcome = await backend.upload(
            request,
            BackendContext(config=config, client=client, platform=platform, sleep=sleep),
        )
        result.app_metadata = outcome.app_metadata
        result.app_id = outcome.app_id
        result.build_upload_id = outcome.build_upload_id
        result.build = outcome.build
        result.timings.upload_seconds = outcome.upload_seconds
        result.timings.processing_seconds = outcome.processing_seconds

        if result.build is None and (request.wait_for_processing or wants_metadata):
            if result.app_metadata is None:
                result.app_metadata = extract_app_metadata(Path(request.app_path))
            if result.app_id is None:
                result.app_id = await lookup_app_id(client, result.app_metadata.bundle_id)

        collector = None
        if result.app_id is not None and result.app_metadata is not None:
            collector = BuildStateCollector(
                client, result.app_id, result.app_metadata.build_number, platform
            )

        if result.build is None and request.wait_for_processing:
            set_stage("processing")
            started = time.monotonic()
            waiter = BuildProcessingWaiter(
                collector,
                visibility=config.polling.visibility_policy(),
                processing=config.polling.processing_policy(),
                fail_fast=config.polling.processing.fail_fast,
                sleep=sleep,
            )
            result.build = await waiter.wait()
            result.timings.processing_seconds = time.monotonic() - started
            log_stage_timing("processing", result.timings.processing_seconds)

        if wants_metadata:
            set_stage("metadata")
            started = time.monotonic()
            submission = await _submitter(client, config, sleep).submit(
                request.release_notes,
                request.uses_non_exempt_encryption,
                build_id=result.build.id if result.build else None,
                collector=collector,
            )
            result.release_notes_updated = submission.release_notes_updated
            result.encryption_updated = submission.encryption_updated
            result.timings.metadata_seconds = time.monotonic() - started
            log_stage_timing("metadata", result.timings.metadata_seconds)

    result.timings.total_seconds = time.monotonic() - run_started
    set_stage("done")
    logger.info(
        "publish_completed",
        backend=result.backend,
        build_id=result.build.id if result.build else None,
        release_notes_updated=result.release_notes_updated,
        encryption_updated=result.encryption_updated,
        total_seconds=round(result.timings.total_seconds, 3),
    )
    return result


async def submit_metadata(
    request: UploadRequest,
    config: UploaderConfig,
    http_client: Optional[httpx.AsyncClient] = None,
    sleep: Optional[Sleep] = None,
) -> SubmissionOutcome:
    """
    Apply release notes and compliance to an already uploaded build.

    The build is located from the artifact's metadata and polled for until
    it becomes queryable.

    Raises:
        PublishError: On any failure
    """
    set_run_context(str(uuid.uuid4())[:8], stage="metadata")

    notes = (request.release_notes or "").strip()
    encryption = parse_uses_non_exempt_encryption(request.uses_non_exempt_encryption)
    if not notes and encryption is None:
        logger.info("metadata_update_skipped", reason="nothing requested")
        return SubmissionOutcome()

    metadata = extract_app_metadata(Path(request.app_path))
    platform = Platform.from_app_type(request.app_type)

    async with _api_client(request, config, http_client) as client:
        app_id = await lookup_app_id(client, metadata.bundle_id)
        collector = BuildStateCollector(client, app_id, metadata.build_number, platform)
        return await _submitter(client, config, sleep).submit(
            request.release_notes,
            request.uses_non_exempt_encryption,
            collector=collector,
        )
