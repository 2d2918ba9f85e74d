"""App Store Connect API access."""

from testflight_uploader.api.apps import lookup_app_id
from testflight_uploader.api.auth import TokenProvider
from testflight_uploader.api.builds import BuildStateCollector
from testflight_uploader.api.client import AppStoreConnectClient

__all__ = [
    "AppStoreConnectClient",
    "BuildStateCollector",
    "TokenProvider",
    "lookup_app_id",
]
