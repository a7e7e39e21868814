"""
Task and batch error types.

All errors inherit from JobError for easy catching.
"""


class JobError(Exception):
    """Base exception for all task and batch failures."""
    pass


class TaskNotFoundError(JobError):
    """Raised when a task id is not in the database."""

    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Task not found: {task_id}")


class BatchNotFoundError(JobError):
    """Raised when a batch id is not in the database."""

    def __init__(self, batch_id: str):
        self.batch_id = batch_id
        super().__init__(f"Batch not found: {batch_id}")


class InvalidStateTransitionError(JobError):
    """Raised when attempting an illegal state transition."""

    def __init__(self, entity_type: str, current_state: str, target_state: str):
        self.entity_type = entity_type
        self.current_state = current_state
        self.target_state = target_state
        super().__init__(
            f"Invalid {entity_type} state transition: "
            f"{current_state} -> {target_state}"
        )
