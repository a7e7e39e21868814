"""
Execution outcome models.

Structured representation of one FFmpeg run. Cancellation is its own status,
distinct from failure.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


# Characters of stderr kept on failed outcomes
STDERR_TAIL_CHARS = 2000


class ExecutionStatus(str, Enum):
    """
    Execution outcome classification.

    COMPLETED: FFmpeg exited with code 0
    FAILED: Non-zero exit code or the process could not be launched
    CANCELLED: Cancellation was requested while the process ran
    """

    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ExecutionOutcome(BaseModel):
    """Result of a single FFmpeg run."""

    model_config = ConfigDict(extra="forbid")

    status: ExecutionStatus

    exit_code: Optional[int] = None
    """Process exit code; None when the process never started."""

    error_message: Optional[str] = None
    """Human-readable failure reason (set when status is FAILED)."""

    stderr_tail: str = ""
    """Last lines of FFmpeg stderr, for diagnosing failures."""

    started_at: datetime = Field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None

    @property
    def succeeded(self) -> bool:
        return self.status == ExecutionStatus.COMPLETED

    def duration_seconds(self) -> Optional[float]:
        """Wall-clock duration of the run in seconds."""
        if self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds()

    def summary(self) -> str:
        """Human-readable one-line summary."""
        duration = self.duration_seconds()
        duration_str = f" ({duration:.1f}s)" if duration is not None else ""

        if self.status == ExecutionStatus.FAILED:
            return f"FAILED{duration_str}: {self.error_message}"
        return f"{self.status.value.upper()}{duration_str}"
