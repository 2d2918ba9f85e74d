"""Build state collection.

Queries the builds resource filtered by app, build number and platform and
extracts the processing state of the first match.
"""

from __future__ import annotations

from typing import Optional

from testflight_uploader.api.client import AppStoreConnectClient
from testflight_uploader.models import BuildRecord, Platform, ProcessingState
from testflight_uploader.utils.logging import get_logger

logger = get_logger("api.builds")


class BuildStateCollector:
    """Reads the build matching one app, build number and platform."""

    def __init__(
        self,
        client: AppStoreConnectClient,
        app_id: str,
        build_number: str,
        platform: Platform,
    ) -> None:
        self.client = client
        self.app_id = app_id
        self.build_number = build_number
        self.platform = platform

    def _filters(self) -> dict[str, str]:
        return {
            "filter[app]": self.app_id,
            "filter[version]": self.build_number,
            "filter[preReleaseVersion.platform]": self.platform.value,
        }

    async def lookup_build(self) -> Optional[BuildRecord]:
        """
        Fetch the build record.

        Returns:
            The first matching build, or None if the build is not visible yet
        """
        response = await self.client.fetch_json(
            "/builds",
            "Failed to query builds for processing state.",
            params=self._filters(),
        )

        builds = response.get("data") or []
        if not builds or not builds[0].get("id"):
            logger.debug("build_not_visible", build_number=self.build_number)
            return None

        build = builds[0]
        raw_state = (build.get("attributes") or {}).get("processingState")
        state = ProcessingState.parse(raw_state)
        if raw_state and state is None:
            logger.warning("unknown_processing_state", state=raw_state)
        if state is not None:
            logger.debug(
                "build_processing_state",
                build_number=self.build_number,
                state=state.value,
            )

        return BuildRecord(id=build["id"], processing_state=state)

    async def lookup_state(self) -> Optional[ProcessingState]:
        """Fetch only the processing state; None while the build is not visible."""
        record = await self.lookup_build()
        return record.processing_state if record else None

    async def lookup_build_id(self) -> Optional[str]:
        """Fetch only the build id; None while the build is not visible."""
        record = await self.lookup_build()
        return record.id if record else None
