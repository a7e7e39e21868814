"""
Task service: the conversion task state machine.

Lifecycle:
    create_task / create_batch → PENDING (persisted immediately)
    start_task                 → RUNNING → COMPLETED | FAILED | CANCELLED
    cancel_task                → signals a running task, or cancels a
                                 pending one without launching it

Design rules:
- Transitions are serialized by one lock so a cancel racing a start cannot
  double-transition
- Execution failures end as FAILED tasks; only lookup and transition errors
  are raised out of start_task
- No task is left RUNNING once start_task returns
- Every terminal transition recomputes the owning batch and publishes a
  status event
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, List, Optional, Sequence, TYPE_CHECKING

from .models import BatchTask, ConversionTask, TaskStatus
from .errors import BatchNotFoundError, InvalidStateTransitionError, TaskNotFoundError
from .state import is_terminal, validate_transition
from .batch import BatchAggregator
from .events import EventChannel, TaskProgressEvent, TaskStatusEvent
from ..execution.cancellation import CancellationRegistry
from ..execution.progress import ConversionProgress
from ..execution.results import ExecutionOutcome, ExecutionStatus
from ..files import (
    OutputDirectoryError,
    apply_overwrite_flag,
    ensure_directory_exists,
    generate_output_path,
    get_file_size,
    is_directory_writable,
    output_suffix_for,
    path_key,
    resolve_output_conflict,
    scan_media_files,
)
from ..settings.models import FileExistsAction, OutputNamingRule
from ..templates.builder import build_command

if TYPE_CHECKING:
    from ..persistence.database import AppDatabase
    from ..templates.service import TemplateService
    from ..settings.service import SettingsService
    from ..execution.driver import ProcessDriver
    from ..execution.probe import ToolProbe

logger = logging.getLogger(__name__)


# One active conversion at a time; the executor enforces it
MAX_CONCURRENT_TASKS = 1

CANCELLED_BY_USER = "Cancelled by user"
INTERRUPTED_BY_RESTART = "Interrupted by application restart"

DEFAULT_HISTORY_LIMIT = 50


class TaskService:
    """
    Owns conversion tasks and batches from creation to a terminal state.
    """

    def __init__(
        self,
        db: "AppDatabase",
        template_service: "TemplateService",
        settings_service: "SettingsService",
        driver: "ProcessDriver",
        probe: "ToolProbe",
        events: Optional[EventChannel] = None,
        max_workers: int = MAX_CONCURRENT_TASKS,
    ):
        self._db = db
        self._templates = template_service
        self._settings = settings_service
        self._driver = driver
        self._probe = probe
        self.events = events or EventChannel()

        self._lock = threading.RLock()
        self._cancellations = CancellationRegistry()
        self._batches = BatchAggregator(db)
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="ffconductor-task",
        )

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_task(
        self,
        input_path: str,
        output_path: str,
        template_id: str,
        parameters: Optional[Dict[str, str]] = None,
        file_exists_action: Optional[FileExistsAction] = None,
    ) -> ConversionTask:
        """
        Create a pending task.

        Args:
            input_path: Source media file
            output_path: Target file
            template_id: Command template to expand
            parameters: Placeholder overrides for the template
            file_exists_action: Collision policy (defaults to settings);
                SKIP is treated like ASK for a single task

        Raises:
            TemplateNotFoundError: If the template does not exist
            OutputExistsError: If the output exists and may not be replaced
        """
        template = self._templates.get_template_or_raise(template_id)

        action = file_exists_action or self._settings.get_settings().file_exists_action
        if action == FileExistsAction.SKIP:
            action = FileExistsAction.ASK
        resolved_output, overwrite = resolve_output_conflict(output_path, action)

        task = self._new_task(template, input_path, resolved_output, parameters, overwrite)
        self._db.tasks.insert(task)
        logger.info(f"[Tasks] Created task {task.id}: {input_path} -> {resolved_output}")
        return task

    def create_batch(
        self,
        input_paths: Sequence[str],
        output_directory: str,
        template_id: str,
        name: Optional[str] = None,
        parameters: Optional[Dict[str, str]] = None,
        name_pattern: Optional[str] = None,
    ) -> BatchTask:
        """
        Create a batch and one pending child task per input.

        Output names come from the template's extension and the naming rule
        in settings, or from `name_pattern` when given. Collisions follow
        the settings' file-exists policy; outputs planned earlier in the
        same batch count as existing files. With ASK, nothing is created
        when any output is taken.

        Raises:
            TemplateNotFoundError: If the template does not exist
            OutputDirectoryError: If the output directory is not writable
            OutputExistsError: If an output is taken and the policy is ASK
        """
        template = self._templates.get_template_or_raise(template_id)
        settings = self._settings.get_settings()
        suffix = output_suffix_for(settings.output_naming, settings.output_suffix)
        if not name_pattern and settings.output_naming == OutputNamingRule.PATTERN:
            name_pattern = settings.output_name_pattern

        if not is_directory_writable(output_directory):
            raise OutputDirectoryError(output_directory)

        # Resolve every collision before anything is persisted
        planned = []
        claimed = set()
        for position, input_path in enumerate(input_paths, start=1):
            output_path = generate_output_path(
                input_path,
                output_directory,
                template.output_extension,
                suffix,
                name_pattern=name_pattern,
                counter=position,
            )
            resolved, overwrite = resolve_output_conflict(
                output_path, settings.file_exists_action, claimed
            )
            if resolved is None:
                continue
            claimed.add(path_key(resolved))
            planned.append((input_path, resolved, overwrite))

        batch = BatchTask(
            name=name or f"Batch - {datetime.now():%Y-%m-%d %H:%M}",
            template_id=template.id,
            total_files=len(planned),
        )
        self._db.batch_tasks.insert(batch)

        for input_path, output_path, overwrite in planned:
            task = self._new_task(template, input_path, output_path, parameters, overwrite)
            task.batch_id = batch.id
            self._db.tasks.insert(task)

        skipped = len(input_paths) - len(planned)
        logger.info(
            f"[Tasks] Created batch {batch.id} '{batch.name}' with {len(planned)} task(s)"
            + (f", {skipped} skipped" if skipped else "")
        )

        if not planned:
            batch = self._batches.recompute(batch.id) or batch
        return batch

    def create_batch_from_directory(
        self,
        input_directory: str,
        output_directory: str,
        template_id: str,
        recursive: bool = False,
        extensions: Optional[Sequence[str]] = None,
        name: Optional[str] = None,
        parameters: Optional[Dict[str, str]] = None,
        name_pattern: Optional[str] = None,
    ) -> BatchTask:
        """
        Batch every media file in a folder that the template accepts.

        Raises:
            Same as create_batch
        """
        template = self._templates.get_template_or_raise(template_id)
        found = scan_media_files(input_directory, recursive=recursive, extensions=extensions)
        inputs = [path for path in found if template.accepts_input(path)]
        logger.info(
            f"[Tasks] Scanned {input_directory}: {len(found)} media file(s), "
            f"{len(inputs)} accepted by '{template.name}'"
        )
        return self.create_batch(
            inputs,
            output_directory,
            template.id,
            name=name or Path(input_directory).name or None,
            parameters=parameters,
            name_pattern=name_pattern,
        )

    def _new_task(
        self,
        template,
        input_path: str,
        output_path: str,
        parameters: Optional[Dict[str, str]],
        overwrite: bool,
    ) -> ConversionTask:
        command = build_command(template, input_path, output_path, parameters)
        command = apply_overwrite_flag(command, overwrite)

        # Duration is best-effort; progress stays at 0% without it
        media = self._probe.get_media_info(input_path)

        return ConversionTask(
            input_path=input_path,
            output_path=output_path,
            template_id=template.id,
            command=command,
            total_duration=media.duration if media else 0.0,
            input_file_size=get_file_size(input_path),
        )

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def start_task(self, task_id: str) -> ConversionTask:
        """
        Run a pending task to completion on the calling thread.

        Returns:
            The task in its terminal state

        Raises:
            TaskNotFoundError: If the task does not exist
            InvalidStateTransitionError: If the task is not PENDING
        """
        with self._lock:
            task = self.get_task_or_raise(task_id)
            validate_transition(task.status, TaskStatus.RUNNING)

            task.status = TaskStatus.RUNNING
            task.started_at = datetime.now()
            self._db.tasks.update(task)
            token = self._cancellations.create(task_id)

        logger.info(f"[Tasks] Starting task {task_id}")
        self._publish_status(task_id, TaskStatus.PENDING, TaskStatus.RUNNING)
        self._batches.recompute(task.batch_id)

        def on_progress(progress: ConversionProgress) -> None:
            self._record_progress(task, progress)

        try:
            ensure_directory_exists(task.output_path)
            outcome = self._driver.execute(task, on_progress=on_progress, cancel_token=token)
        except Exception as e:
            logger.exception(f"[Tasks] Task {task_id} raised during execution: {e}")
            outcome = ExecutionOutcome(
                status=ExecutionStatus.FAILED,
                error_message=str(e),
                completed_at=datetime.now(),
            )
        finally:
            self._cancellations.remove(task_id)

        return self._finish(task, outcome)

    def _record_progress(self, task: ConversionTask, progress: ConversionProgress) -> None:
        with self._lock:
            task.progress = max(task.progress, progress.percentage)
            task.current_time = progress.current_time
            task.speed = progress.speed
            task.eta_seconds = progress.eta_seconds
            task.log_output += progress.raw_output + "\n"
            self._db.tasks.update(task)

        self.events.publish(TaskProgressEvent(
            task_id=task.id,
            percentage=task.progress,
            speed=progress.speed,
            eta=progress.eta_seconds,
        ))

    def _finish(self, task: ConversionTask, outcome: ExecutionOutcome) -> ConversionTask:
        with self._lock:
            old_status = task.status

            if outcome.status == ExecutionStatus.COMPLETED:
                task.status = TaskStatus.COMPLETED
                task.progress = 100.0
                task.eta_seconds = 0.0
                task.output_file_size = get_file_size(task.output_path)
            elif outcome.status == ExecutionStatus.CANCELLED:
                task.status = TaskStatus.CANCELLED
                task.error_message = CANCELLED_BY_USER
            else:
                task.status = TaskStatus.FAILED
                task.error_message = outcome.error_message or "FFmpeg execution failed"
                if outcome.stderr_tail:
                    logger.error(f"[Tasks] Task {task.id} stderr tail:\n{outcome.stderr_tail}")

            task.completed_at = datetime.now()
            self._db.tasks.update(task)

        logger.info(f"[Tasks] Task {task.id} finished: {task.status.value}")
        self._publish_status(task.id, old_status, task.status, task.error_message)
        self._batches.recompute(task.batch_id)
        return task

    def submit(self, task_id: str) -> Future:
        """
        Queue a pending task on the executor.

        Raises:
            TaskNotFoundError: If the task does not exist
            InvalidStateTransitionError: If the task is not PENDING
        """
        task = self.get_task_or_raise(task_id)
        validate_transition(task.status, TaskStatus.RUNNING)
        return self._executor.submit(self._run_submitted, task_id)

    def _run_submitted(self, task_id: str) -> Optional[ConversionTask]:
        try:
            return self.start_task(task_id)
        except InvalidStateTransitionError as e:
            # Cancelled or started elsewhere while queued
            logger.info(f"[Tasks] Skipping queued task {task_id}: {e}")
        except Exception as e:
            logger.exception(f"[Tasks] Queued task {task_id} failed to run: {e}")
        return None

    def run_batch(self, batch_id: str) -> BatchTask:
        """
        Run the batch's pending children one after another on this thread.

        Raises:
            BatchNotFoundError: If the batch does not exist
        """
        self.get_batch_or_raise(batch_id)

        for child in self.get_batch_tasks(batch_id):
            current = self.get_task(child.id)
            if current is None or current.status != TaskStatus.PENDING:
                continue
            try:
                self.start_task(child.id)
            except InvalidStateTransitionError as e:
                logger.info(f"[Tasks] Batch {batch_id} skipping task {child.id}: {e}")

        return self._batches.recompute(batch_id) or self.get_batch_or_raise(batch_id)

    def submit_batch(self, batch_id: str) -> Future:
        """
        Queue run_batch on the executor.

        Raises:
            BatchNotFoundError: If the batch does not exist
        """
        self.get_batch_or_raise(batch_id)
        return self._executor.submit(self.run_batch, batch_id)

    def cancel_task(self, task_id: str) -> ConversionTask:
        """
        Cancel a task.

        RUNNING: signal its token and terminate the process tree; the
        running start_task records CANCELLED.
        PENDING: straight to CANCELLED without launching.
        Terminal: no-op.

        Raises:
            TaskNotFoundError: If the task does not exist
        """
        with self._lock:
            task = self.get_task_or_raise(task_id)

            if task.status == TaskStatus.PENDING:
                validate_transition(task.status, TaskStatus.CANCELLED)
                task.status = TaskStatus.CANCELLED
                task.error_message = CANCELLED_BY_USER
                task.completed_at = datetime.now()
                self._db.tasks.update(task)
                pending_cancelled = True
            else:
                pending_cancelled = False

        if pending_cancelled:
            logger.info(f"[Tasks] Cancelled pending task {task_id}")
            self._publish_status(task_id, TaskStatus.PENDING, TaskStatus.CANCELLED, CANCELLED_BY_USER)
            self._batches.recompute(task.batch_id)
            return task

        if task.status == TaskStatus.RUNNING:
            logger.info(f"[Tasks] Cancelling running task {task_id}")
            # Process termination blocks, so it happens outside the lock
            self._cancellations.cancel(task_id)
            self._driver.cancel(task_id)

        return task

    def cancel_batch(self, batch_id: str) -> BatchTask:
        """
        Cancel every non-terminal child of a batch.

        Raises:
            BatchNotFoundError: If the batch does not exist
        """
        self.get_batch_or_raise(batch_id)
        for child in self.get_batch_tasks(batch_id):
            if not is_terminal(child.status):
                self.cancel_task(child.id)
        return self._batches.recompute(batch_id) or self.get_batch_or_raise(batch_id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_task(self, task_id: str) -> Optional[ConversionTask]:
        return self._db.tasks.find_by_id(task_id)

    def get_task_or_raise(self, task_id: str) -> ConversionTask:
        task = self.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    def get_batch(self, batch_id: str) -> Optional[BatchTask]:
        return self._db.batch_tasks.find_by_id(batch_id)

    def get_batch_or_raise(self, batch_id: str) -> BatchTask:
        batch = self.get_batch(batch_id)
        if batch is None:
            raise BatchNotFoundError(batch_id)
        return batch

    def get_batch_tasks(self, batch_id: str) -> List[ConversionTask]:
        """Children of a batch in creation order."""
        return self._batches.children(batch_id)

    def get_task_history(
        self,
        limit: int = DEFAULT_HISTORY_LIMIT,
        status: Optional[TaskStatus] = None,
    ) -> List[ConversionTask]:
        """Most recent tasks first, optionally filtered by status."""
        where = None if status is None else (lambda t: t.status == status)
        return self._db.tasks.find(
            where=where,
            order_by=lambda t: t.created_at,
            descending=True,
            limit=limit,
        )

    def get_running_task(self) -> Optional[ConversionTask]:
        return self._db.tasks.find_one(lambda t: t.status == TaskStatus.RUNNING)

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def cleanup_history(self, older_than: datetime) -> int:
        """
        Delete finished tasks created before `older_than`, then batches
        left without children.

        Returns:
            Number of tasks deleted
        """
        with self._lock:
            count = self._db.tasks.delete_many(
                lambda t: t.created_at < older_than and is_terminal(t.status)
            )
            remaining_batch_ids = {t.batch_id for t in self._db.tasks.find_all() if t.batch_id}
            batches = self._db.batch_tasks.delete_many(
                lambda b: b.created_at < older_than and b.id not in remaining_batch_ids
            )

        if count or batches:
            logger.info(f"[Tasks] Cleaned up {count} task(s) and {batches} batch(es)")
        return count

    def apply_retention(self, days: Optional[int] = None) -> int:
        """
        Sweep history older than `days` (defaults to the setting).

        Returns:
            Number of tasks deleted; 0 when retention is disabled (days <= 0)
        """
        if days is None:
            days = self._settings.get_settings().task_history_retention_days
        if days <= 0:
            return 0
        return self.cleanup_history(datetime.now() - timedelta(days=days))

    def recover_interrupted_tasks(self) -> int:
        """
        Fail tasks left RUNNING by a previous process.

        Call once at startup, before anything is submitted.

        Returns:
            Number of tasks recovered
        """
        with self._lock:
            stale = self._db.tasks.find(where=lambda t: t.status == TaskStatus.RUNNING)
            for task in stale:
                task.status = TaskStatus.FAILED
                task.error_message = INTERRUPTED_BY_RESTART
                task.completed_at = datetime.now()
                self._db.tasks.update(task)

        for task in stale:
            logger.warning(f"[Tasks] Task {task.id} was interrupted by a restart")
            self._publish_status(task.id, TaskStatus.RUNNING, TaskStatus.FAILED, INTERRUPTED_BY_RESTART)
        for batch_id in {t.batch_id for t in stale if t.batch_id}:
            self._batches.recompute(batch_id)
        return len(stale)

    def shutdown(self, wait: bool = True) -> None:
        """Cancel running conversions and stop the executor."""
        running = self._driver.cancel_all()
        if running:
            logger.info(f"[Tasks] Cancelled {running} running conversion(s) on shutdown")
        self._executor.shutdown(wait=wait, cancel_futures=True)

    # ------------------------------------------------------------------

    def _publish_status(
        self,
        task_id: str,
        old_status: TaskStatus,
        new_status: TaskStatus,
        error_message: Optional[str] = None,
    ) -> None:
        self.events.publish(TaskStatusEvent(
            task_id=task_id,
            old_status=old_status,
            new_status=new_status,
            error_message=error_message,
        ))
