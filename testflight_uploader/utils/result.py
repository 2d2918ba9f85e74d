"""Result type for explicit error handling at the configuration and guard seams.

Runtime failures of a publish run raise exceptions from
:mod:`testflight_uploader.errors`; checks that run *before* any network work
(configuration loading, preconditions) return a Result so the CLI can report
every problem with a dedicated exit code.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, NoReturn, TypeVar, Union

T = TypeVar("T")  # Success type
E = TypeVar("E")  # Error type


class ResultError(Exception):
    """Raised when unwrapping a Result fails."""

    pass


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Represents a successful result."""

    value: T

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        """Get the success value."""
        return self.value

    def unwrap_err(self) -> NoReturn:
        raise ResultError(f"Called unwrap_err on Ok value: {self.value}")

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


@dataclass(frozen=True)
class Err(Generic[E]):
    """Represents an error result."""

    error: E

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    def unwrap(self) -> NoReturn:
        raise ResultError(f"Called unwrap on Err value: {self.error}")

    def unwrap_err(self) -> E:
        """Get the error value."""
        return self.error

    def __repr__(self) -> str:
        return f"Err({self.error!r})"


Result = Union[Ok[T], Err[E]]


@dataclass(frozen=True)
class GuardError:
    """A precondition that failed before the publish run started."""

    code: int
    message: str
    details: str = ""

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}: {self.details}"
        return self.message


@dataclass(frozen=True)
class ConfigError:
    """Error in configuration."""

    field: str
    message: str

    def __str__(self) -> str:
        return f"Config error in '{self.field}': {self.message}"


class ExitCode:
    """Exit codes for the CLI."""

    SUCCESS = 0
    GENERAL_ERROR = 1
    CONFIG_ERROR = 2

    # Guard errors (10-19)
    GUARD_CREDENTIALS = 10
    GUARD_BACKEND = 11
    GUARD_ARTIFACT = 12

    # Publish errors (20-29)
    METADATA_MISSING = 20
    APP_LOOKUP_FAILED = 21
    UPLOAD_FAILED = 22
    FINALIZE_FAILED = 23
    POLL_TIMEOUT = 24
    INVALID_INPUT = 25
    API_ERROR = 26
