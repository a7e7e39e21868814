"""
ConversionTask and BatchTask data models.

A task is one input -> output FFmpeg run. A batch groups tasks submitted
together; its status is derived from its children (see batch.py), never set
directly by callers.

All models use Pydantic for validation.
State transitions are validated externally (see state.py).
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class TaskStatus(str, Enum):
    """
    Task and batch status.

    COMPLETED, FAILED and CANCELLED are terminal.
    """

    PENDING = "pending"  # Created, command resolved, not started
    RUNNING = "running"  # FFmpeg process is live
    COMPLETED = "completed"  # Exit code 0
    FAILED = "failed"  # Non-zero exit or execution error
    CANCELLED = "cancelled"  # Cancelled by operator


class ConversionTask(BaseModel):
    """
    A single conversion task.

    Progress fields are written by the task service while the task runs;
    `progress` never decreases while RUNNING.
    """

    model_config = ConfigDict(extra="forbid")

    # Identity
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    input_path: str
    output_path: str
    template_id: str

    # Resolved FFmpeg arguments (without the executable)
    command: str

    # State
    status: TaskStatus = TaskStatus.PENDING

    # Progress tracking
    progress: float = 0.0  # 0.0 - 100.0
    total_duration: float = 0.0  # Seconds, 0 when the probe failed
    current_time: float = 0.0  # Seconds of media processed
    eta_seconds: Optional[float] = None
    speed: Optional[float] = None  # Processing speed multiplier, e.g. 2.5x

    # Accumulated FFmpeg progress lines
    log_output: str = ""

    # Outcome
    error_message: Optional[str] = None

    # Timestamps
    created_at: datetime = Field(default_factory=datetime.now)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    # File sizes in bytes
    input_file_size: int = 0
    output_file_size: Optional[int] = None

    # Owning batch, if any
    batch_id: Optional[str] = None


class BatchTask(BaseModel):
    """
    A group of tasks created from one submission.

    Invariant: completed_files + failed_files <= total_files.
    Cancelled children count as failed.
    """

    model_config = ConfigDict(extra="forbid")

    # Identity
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str
    template_id: str

    # Counts
    total_files: int = 0
    completed_files: int = 0
    failed_files: int = 0

    # Derived aggregate state
    status: TaskStatus = TaskStatus.PENDING

    # Timestamps
    created_at: datetime = Field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None
