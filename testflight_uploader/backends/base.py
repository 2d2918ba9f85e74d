"""Backend interface shared by every upload implementation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol

from testflight_uploader.api.client import AppStoreConnectClient
from testflight_uploader.config.settings import UploaderConfig
from testflight_uploader.models import AppMetadata, BuildRecord, Platform, UploadRequest
from testflight_uploader.polling.engine import Sleep


@dataclass
class BackendContext:
    """Everything a backend needs besides the request itself."""

    config: UploaderConfig
    client: AppStoreConnectClient
    platform: Platform
    sleep: Optional[Sleep] = None


@dataclass
class BackendOutcome:
    """
    What a backend learned while uploading.

    Attributes:
        app_metadata: Artifact metadata, if the backend read it
        app_id: Resolved app id, if the backend looked it up
        build_upload_id: buildUploads id, if a session was created
        build: Build record once processing is VALID, if the backend waited
        upload_seconds: Time spent transferring the artifact
        processing_seconds: Time spent waiting for processing
    """

    app_metadata: Optional[AppMetadata] = None
    app_id: Optional[str] = None
    build_upload_id: Optional[str] = None
    build: Optional[BuildRecord] = None
    upload_seconds: float = 0.0
    processing_seconds: float = 0.0


class Backend(Protocol):
    """An upload backend."""

    name: str

    async def upload(self, request: UploadRequest, context: BackendContext) -> BackendOutcome:
        ...
