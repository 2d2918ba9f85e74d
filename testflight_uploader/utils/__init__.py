"""Utility modules for testflight-uploader."""

from testflight_uploader.utils.logging import (
    configure_logging,
    get_logger,
    log_stage_timing,
    set_run_context,
    set_stage,
)
from testflight_uploader.utils.result import (
    ConfigError,
    Err,
    ExitCode,
    GuardError,
    Ok,
    Result,
)

__all__ = [
    # Logging
    "configure_logging",
    "get_logger",
    "set_run_context",
    "set_stage",
    "log_stage_timing",
    # Result
    "Ok",
    "Err",
    "Result",
    "ConfigError",
    "GuardError",
    "ExitCode",
]
