"""Processing state definitions for uploaded builds."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ProcessingState(Enum):
    """Server-reported lifecycle stage of an uploaded build."""

    PROCESSING = "PROCESSING"
    VALID = "VALID"
    INVALID = "INVALID"
    FAILED = "FAILED"

    def is_visible(self) -> bool:
        """Check if the build is visible to queries (processing or done)."""
        return self in (ProcessingState.PROCESSING, ProcessingState.VALID)

    def is_success(self) -> bool:
        """Check if this is the terminal success state."""
        return self is ProcessingState.VALID

    def is_failure(self) -> bool:
        """Check if processing ended without producing a usable build."""
        return self in (ProcessingState.INVALID, ProcessingState.FAILED)

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["ProcessingState"]:
        """Parse a server value; absent or unknown values return None."""
        if not value:
            return None
        try:
            return cls(value)
        except ValueError:
            return None


@dataclass(frozen=True)
class BuildRecord:
    """
    A build as returned by the builds query.

    Attributes:
        id: builds resource id
        processing_state: Observed state, None when the server omitted it
    """

    id: str
    processing_state: Optional[ProcessingState] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "processing_state": (
                self.processing_state.value if self.processing_state else None
            ),
        }
