"""Two-phase wait for an uploaded build.

    finalize -> pre-wait -> VISIBLE (PROCESSING or VALID) -> VALID

The visibility phase tolerates infrastructure lag right after finalize; the
processing phase waits for App Store Connect to validate the binary. Both
phases back off exponentially with independent policies.
"""

from __future__ import annotations

import asyncio
from typing import Optional

from testflight_uploader.api.builds import BuildStateCollector
from testflight_uploader.errors import BuildProcessingFailedError
from testflight_uploader.models import BuildRecord, PollPolicy
from testflight_uploader.polling.engine import DEFAULT_BACKOFF_CAP, Sleep, poll_with_backoff
from testflight_uploader.utils.logging import get_logger

logger = get_logger("polling.waiter")


class BuildProcessingWaiter:
    """
    Waits until a build is visible and then VALID.

    INVALID and FAILED are not terminal for the wait unless ``fail_fast`` is
    set; without it the waiter keeps polling until attempts run out.
    """

    def __init__(
        self,
        collector: BuildStateCollector,
        visibility: PollPolicy,
        processing: PollPolicy,
        fail_fast: bool = False,
        sleep: Optional[Sleep] = None,
    ) -> None:
        """
        Initialize the waiter.

        Args:
            collector: Build state source for one app/build/platform
            visibility: Policy for the visibility phase
            processing: Policy for the processing phase
            fail_fast: Abort as soon as INVALID or FAILED is observed
            sleep: Sleep coroutine (defaults to asyncio.sleep)
        """
        self.collector = collector
        self.visibility = visibility
        self.processing = processing
        self.fail_fast = fail_fast
        self._sleep = sleep or asyncio.sleep

    @property
    def build_number(self) -> str:
        return self.collector.build_number

    async def wait(self) -> BuildRecord:
        """
        Run the pre-wait, visibility and processing phases.

        Returns:
            The build record once its state is VALID

        Raises:
            PollTimeoutError: If a phase exhausts its attempts
            BuildProcessingFailedError: On INVALID/FAILED with fail_fast set
        """
        logger.info(
            "build_wait_started",
            build_number=self.build_number,
            initial_delay=self.visibility.initial_delay,
        )
        await self._sleep(self.visibility.initial_delay)

        await poll_with_backoff(
            self._probe,
            lambda record: record.processing_state is not None
            and record.processing_state.is_visible(),
            self.visibility.attempts,
            self.visibility.initial_delay,
            on_retry=self._retry_logger("visibility"),
            backoff_cap=self._cap(self.visibility),
            label=f"build {self.build_number} to appear in App Store Connect",
            sleep=self._sleep,
        )
        logger.info("build_visible", build_number=self.build_number)

        record = await poll_with_backoff(
            self._probe,
            lambda record: record.processing_state is not None
            and record.processing_state.is_success(),
            self.processing.attempts,
            self.processing.initial_delay,
            on_retry=self._retry_logger("processing"),
            backoff_cap=self._cap(self.processing),
            label=f"build {self.build_number} processing to finish",
            sleep=self._sleep,
        )
        logger.info("build_valid", build_number=self.build_number, build_id=record.id)
        return record

    async def _probe(self) -> Optional[BuildRecord]:
        record = await self.collector.lookup_build()
        state = record.processing_state if record else None
        if self.fail_fast and state is not None and state.is_failure():
            raise BuildProcessingFailedError(self.build_number, state.value)
        return record

    def _retry_logger(self, phase: str):
        def on_retry(attempt: int, delay: float) -> None:
            logger.warning(
                "build_wait_retry",
                phase=phase,
                build_number=self.build_number,
                attempt=attempt + 1,
                next_delay_seconds=delay,
            )

        return on_retry

    @staticmethod
    def _cap(policy: PollPolicy) -> float:
        return policy.backoff_cap if policy.backoff_cap is not None else DEFAULT_BACKOFF_CAP
