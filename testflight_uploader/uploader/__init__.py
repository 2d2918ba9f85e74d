"""Build upload session protocol."""

from testflight_uploader.uploader.session import UploadSessionManager, reconcile_operations

__all__ = ["UploadSessionManager", "reconcile_operations"]
