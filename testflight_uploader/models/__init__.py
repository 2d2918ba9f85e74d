"""Data models for testflight-uploader."""

from testflight_uploader.models.app import AppMetadata, Platform
from testflight_uploader.models.build import BuildRecord, ProcessingState
from testflight_uploader.models.publish import (
    PollPolicy,
    PublishResult,
    StageTiming,
    UploadRequest,
)
from testflight_uploader.models.upload import BuildUploadSession, UploadOperation

__all__ = [
    # App models
    "AppMetadata",
    "Platform",
    # Build models
    "BuildRecord",
    "ProcessingState",
    # Upload models
    "UploadOperation",
    "BuildUploadSession",
    # Publish models
    "PollPolicy",
    "UploadRequest",
    "StageTiming",
    "PublishResult",
]
