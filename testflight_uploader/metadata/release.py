"""TestFlight release notes and export-compliance updates.

Both updates are optional and independent. The resources they patch only
become queryable some time after processing, so each lookup polls with a
fixed delay before patching.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Optional

from testflight_uploader.api.builds import BuildStateCollector
from testflight_uploader.api.client import AppStoreConnectClient
from testflight_uploader.errors import InvalidEncryptionValueError
from testflight_uploader.models import PollPolicy
from testflight_uploader.polling.engine import Sleep, poll_with_policy
from testflight_uploader.utils.logging import get_logger

logger = get_logger("metadata.release")

MAX_RELEASE_NOTES_LENGTH = 4000


def parse_uses_non_exempt_encryption(value: Optional[str]) -> Optional[bool]:
    """
    Parse the tri-state compliance input.

    Returns:
        True/False for "true"/"false" (any case), None when not provided

    Raises:
        InvalidEncryptionValueError: For any other value
    """
    if value is None:
        return None
    normalized = value.strip().lower()
    if not normalized:
        return None
    if normalized == "true":
        return True
    if normalized == "false":
        return False
    raise InvalidEncryptionValueError(value)


def truncate_release_notes(notes: str) -> str:
    """Clamp release notes to the "What to Test" field limit."""
    return notes[:MAX_RELEASE_NOTES_LENGTH]


@dataclass
class SubmissionOutcome:
    """Which metadata updates were applied."""

    release_notes_updated: bool = False
    encryption_updated: bool = False
    build_id: Optional[str] = None


class ReleaseMetadataSubmitter:
    """Applies release notes and the encryption flag to a processed build."""

    def __init__(
        self,
        client: AppStoreConnectClient,
        localization_policy: PollPolicy,
        build_lookup_policy: PollPolicy,
        sleep: Optional[Sleep] = None,
    ) -> None:
        self.client = client
        self.localization_policy = localization_policy
        self.build_lookup_policy = build_lookup_policy
        self._sleep = sleep or asyncio.sleep

    async def submit(
        self,
        release_notes: Optional[str],
        uses_non_exempt_encryption: Optional[str],
        build_id: Optional[str] = None,
        collector: Optional[BuildStateCollector] = None,
    ) -> SubmissionOutcome:
        """
        Apply the requested updates.

        Args:
            release_notes: "What to Test" text; blank means not requested
            uses_non_exempt_encryption: Raw "true"/"false" input; blank means not requested
            build_id: Build id, if already known
            collector: Used to resolve the build id when it is not known

        Returns:
            Outcome describing what was patched

        Raises:
            InvalidEncryptionValueError: Before any request, for a bad flag
            PollTimeoutError: If the build or localization never appears
            ApiRequestError: If a patch fails
        """
        notes = (release_notes or "").strip()
        encryption = parse_uses_non_exempt_encryption(uses_non_exempt_encryption)

        outcome = SubmissionOutcome(build_id=build_id)
        if not notes and encryption is None:
            logger.info("metadata_update_skipped", reason="nothing requested")
            return outcome

        if build_id is None:
            if collector is None:
                raise ValueError("build_id or collector is required to update metadata")
            build_id = await self._resolve_build_id(collector)
            outcome.build_id = build_id

        if notes:
            await self._update_release_notes(build_id, notes)
            outcome.release_notes_updated = True

        if encryption is not None:
            await self._update_encryption(build_id, encryption)
            outcome.encryption_updated = True

        return outcome

    async def _resolve_build_id(self, collector: BuildStateCollector) -> str:
        return await poll_with_policy(
            collector.lookup_build_id,
            lambda build_id: True,
            self.build_lookup_policy,
            on_retry=self._retry_logger("build_lookup"),
            label=f"build {collector.build_number} to be queryable",
            sleep=self._sleep,
        )

    async def _lookup_localization_id(self, build_id: str) -> Optional[str]:
        response = await self.client.fetch_json(
            f"/builds/{build_id}/betaBuildLocalizations",
            "Failed to fetch TestFlight localizations.",
        )
        localizations = response.get("data") or []
        if not localizations:
            return None
        return localizations[0].get("id")

    async def _update_release_notes(self, build_id: str, notes: str) -> None:
        localization_id = await poll_with_policy(
            lambda: self._lookup_localization_id(build_id),
            lambda localization_id: True,
            self.localization_policy,
            on_retry=self._retry_logger("localization"),
            label=f"TestFlight localization for build {build_id}",
            sleep=self._sleep,
        )

        whats_new = truncate_release_notes(notes)
        if len(whats_new) < len(notes):
            logger.warning(
                "release_notes_truncated",
                original_length=len(notes),
                max_length=MAX_RELEASE_NOTES_LENGTH,
            )

        await self.client.fetch_json(
            f"/betaBuildLocalizations/{localization_id}",
            "Failed to update TestFlight release notes.",
            method="PATCH",
            payload={
                "data": {
                    "id": localization_id,
                    "type": "betaBuildLocalizations",
                    "attributes": {"whatsNew": whats_new},
                }
            },
        )
        logger.info("release_notes_updated", build_id=build_id, length=len(whats_new))

    async def _update_encryption(self, build_id: str, value: bool) -> None:
        await self.client.fetch_json(
            f"/builds/{build_id}",
            "Failed to update export compliance.",
            method="PATCH",
            payload={
                "data": {
                    "id": build_id,
                    "type": "builds",
                    "attributes": {"usesNonExemptEncryption": value},
                }
            },
        )
        logger.info("encryption_updated", build_id=build_id, uses_non_exempt_encryption=value)

    @staticmethod
    def _retry_logger(phase: str):
        def on_retry(attempt: int, delay: float) -> None:
            logger.info("metadata_lookup_retry", phase=phase, attempt=attempt + 1, delay_seconds=delay)

        return on_retry
