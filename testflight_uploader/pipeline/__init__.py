"""Publish pipeline: guards and orchestration."""

from testflight_uploader.pipeline.guards import PublishGuards, run_guards
from testflight_uploader.pipeline.orchestrator import publish, submit_metadata

__all__ = ["PublishGuards", "run_guards", "publish", "submit_metadata"]
