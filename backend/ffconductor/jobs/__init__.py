"""
Conversion tasks and batches: models, state machine, aggregation and events.
"""

from .models import TaskStatus, ConversionTask, BatchTask
from .errors import (
    JobError,
    TaskNotFoundError,
    BatchNotFoundError,
    InvalidStateTransitionError,
)
from .state import TERMINAL_STATES, is_terminal, can_transition, validate_transition
from .batch import BatchAggregator, derive_batch_status
from .events import EventChannel, Subscription, TaskProgressEvent, TaskStatusEvent
from .service import TaskService, MAX_CONCURRENT_TASKS, CANCELLED_BY_USER

__all__ = [
    "TaskStatus",
    "ConversionTask",
    "BatchTask",
    "JobError",
    "TaskNotFoundError",
    "BatchNotFoundError",
    "InvalidStateTransitionError",
    "TERMINAL_STATES",
    "is_terminal",
    "can_transition",
    "validate_transition",
    "BatchAggregator",
    "derive_batch_status",
    "EventChannel",
    "Subscription",
    "TaskProgressEvent",
    "TaskStatusEvent",
    "TaskService",
    "MAX_CONCURRENT_TASKS",
    "CANCELLED_BY_USER",
]
