"""
Batch status aggregation.

A batch's status is derived from its children, never set by callers:
- every child terminal, none failed or cancelled → COMPLETED
- every child terminal, any failed or cancelled → FAILED
- otherwise any child running → RUNNING
- otherwise unchanged
"""

import logging
from datetime import datetime
from typing import Iterable, List, Optional, TYPE_CHECKING

from .models import BatchTask, ConversionTask, TaskStatus
from .state import is_terminal

if TYPE_CHECKING:
    from ..persistence.database import AppDatabase

logger = logging.getLogger(__name__)


_FAILED_STATES = (TaskStatus.FAILED, TaskStatus.CANCELLED)


def derive_batch_status(statuses: Iterable[TaskStatus], current: TaskStatus) -> TaskStatus:
    """
    Pure aggregation rule.

    Args:
        statuses: Child task statuses
        current: The batch's stored status, kept when no rule applies

    Returns:
        The batch status the children imply
    """
    statuses = list(statuses)
    if all(is_terminal(s) for s in statuses):
        failed = sum(1 for s in statuses if s in _FAILED_STATES)
        return TaskStatus.COMPLETED if failed == 0 else TaskStatus.FAILED
    if any(s == TaskStatus.RUNNING for s in statuses):
        return TaskStatus.RUNNING
    return current


class BatchAggregator:
    """Recomputes stored batch counters and status from child tasks."""

    def __init__(self, db: "AppDatabase"):
        self._db = db

    def children(self, batch_id: str) -> List[ConversionTask]:
        return self._db.tasks.find(
            where=lambda t: t.batch_id == batch_id,
            order_by=lambda t: t.created_at,
        )

    def recompute(self, batch_id: Optional[str]) -> Optional[BatchTask]:
        """
        Refresh counts and status of a batch.

        Returns:
            The updated batch, or None when there is no such batch
        """
        if batch_id is None:
            return None
        batch = self._db.batch_tasks.find_by_id(batch_id)
        if batch is None:
            logger.warning(f"[Batches] Batch {batch_id} vanished before recompute")
            return None

        statuses = [t.status for t in self.children(batch_id)]
        batch.completed_files = sum(1 for s in statuses if s == TaskStatus.COMPLETED)
        batch.failed_files = sum(1 for s in statuses if s in _FAILED_STATES)

        new_status = derive_batch_status(statuses, batch.status)
        if is_terminal(new_status):
            if batch.completed_at is None or batch.status != new_status:
                batch.completed_at = datetime.now()
        if new_status != batch.status:
            logger.info(f"[Batches] Batch {batch.id} {batch.status.value} -> {new_status.value}")
        batch.status = new_status

        self._db.batch_tasks.update(batch)
        return batch
