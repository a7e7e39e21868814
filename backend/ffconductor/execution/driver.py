"""
FFmpeg process driver.

Design rules:
- One subprocess per task, registered under the task id while it lives
- stdin/stdout to the null device, stderr streamed line by line
- Every stderr line goes through parse_progress; hits are reported
  synchronously on the reading thread
- Exit code 0 = COMPLETED, even when a cancel arrived after FFmpeg finished;
  otherwise cancellation = CANCELLED and any other exit code = FAILED
- Cancellation kills the whole process tree: POSIX sessions get SIGTERM
  escalating to SIGKILL, Windows gets taskkill /T /F
"""

import logging
import os
import shlex
import signal
import subprocess
import threading
from collections import deque
from datetime import datetime
from typing import Callable, Dict, List, Optional, Union, TYPE_CHECKING

from .cancellation import CancellationToken
from .progress import ConversionProgress, parse_progress
from .results import ExecutionOutcome, ExecutionStatus, STDERR_TAIL_CHARS
from .tools import ToolLocator

if TYPE_CHECKING:
    from ..jobs.models import ConversionTask

logger = logging.getLogger(__name__)


# Seconds to wait after SIGTERM before escalating to SIGKILL
TERMINATE_GRACE_SECONDS = 5

# Number of stderr lines retained for failure diagnostics
STDERR_TAIL_LINES = 50

ProgressCallback = Callable[[ConversionProgress], None]


def build_argv(executable: str, command: str) -> Union[List[str], str]:
    """
    Combine the executable with a resolved template argument string.

    POSIX gets an argv list split with shell rules, so quotes written by the
    template author group arguments. Windows takes a single command line.
    """
    if os.name == "nt":
        return f'"{executable}" {command}'
    return [executable] + shlex.split(command)


class ProcessDriver:
    """
    Runs FFmpeg for conversion tasks.

    Safe to share between threads: the process registry and the cancelled
    set are guarded by one lock.
    """

    def __init__(self, locator: ToolLocator):
        self._locator = locator
        self._processes: Dict[str, subprocess.Popen] = {}
        self._cancelled: set[str] = set()
        self._lock = threading.Lock()

    @property
    def locator(self) -> ToolLocator:
        return self._locator

    def is_running(self, task_id: str) -> bool:
        with self._lock:
            return task_id in self._processes

    def running_task_ids(self) -> List[str]:
        with self._lock:
            return list(self._processes)

    def execute(
        self,
        task: "ConversionTask",
        on_progress: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> ExecutionOutcome:
        """
        Run FFmpeg with the task's resolved command and wait for it.

        Args:
            task: Task carrying id, command and total_duration
            on_progress: Called for every parsed progress line
            cancel_token: Signalling it terminates the process tree

        Returns:
            ExecutionOutcome; this method does not raise for process failures
        """
        started_at = datetime.now()

        if cancel_token is not None and cancel_token.is_cancelled:
            return ExecutionOutcome(
                status=ExecutionStatus.CANCELLED,
                started_at=started_at,
                completed_at=datetime.now(),
            )

        ffmpeg = self._locator.find_ffmpeg()
        if ffmpeg is None:
            return ExecutionOutcome(
                status=ExecutionStatus.FAILED,
                error_message="FFmpeg executable not found",
                started_at=started_at,
                completed_at=datetime.now(),
            )

        try:
            argv = build_argv(ffmpeg, task.command)
        except ValueError as e:
            # Unbalanced quotes in the template
            return ExecutionOutcome(
                status=ExecutionStatus.FAILED,
                error_message=f"Invalid FFmpeg command: {e}",
                started_at=started_at,
                completed_at=datetime.now(),
            )

        logger.info(f"[FFmpeg] Executing for task {task.id}: {ffmpeg} {task.command}")

        popen_kwargs = dict(
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.PIPE,
            text=True,
            encoding="utf-8",
            errors="replace",
        )
        if os.name == "nt":
            popen_kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP
        else:
            popen_kwargs["start_new_session"] = True

        try:
            process = subprocess.Popen(argv, **popen_kwargs)
        except OSError as e:
            logger.error(f"[FFmpeg] Failed to launch for task {task.id}: {e}")
            return ExecutionOutcome(
                status=ExecutionStatus.FAILED,
                error_message=f"Failed to launch FFmpeg: {e}",
                started_at=started_at,
                completed_at=datetime.now(),
            )

        with self._lock:
            self._processes[task.id] = process
        logger.info(f"[FFmpeg] Started PID {process.pid} for task {task.id}")

        if cancel_token is not None:
            cancel_token.on_cancel(lambda: self.cancel(task.id))

        tail: deque = deque(maxlen=STDERR_TAIL_LINES)
        try:
            # Universal newlines turn FFmpeg's \r progress updates into lines
            for raw_line in process.stderr:
                line = raw_line.rstrip("\n")
                if not line:
                    continue
                tail.append(line)

                progress = parse_progress(line, task.total_duration)
                if progress is not None and on_progress is not None:
                    try:
                        on_progress(progress)
                    except Exception as e:
                        logger.exception(f"[FFmpeg] Progress handler failed for task {task.id}: {e}")

            exit_code = process.wait()
        except Exception as e:
            logger.exception(f"[FFmpeg] Exception while running task {task.id}: {e}")
            self._kill_tree(process)
            return ExecutionOutcome(
                status=ExecutionStatus.FAILED,
                error_message=str(e),
                stderr_tail=self._format_tail(tail),
                started_at=started_at,
                completed_at=datetime.now(),
            )
        finally:
            if process.stderr is not None:
                process.stderr.close()
            with self._lock:
                self._processes.pop(task.id, None)
                was_cancelled = task.id in self._cancelled
                self._cancelled.discard(task.id)

        logger.info(f"[FFmpeg] PID {process.pid} exited with code {exit_code}")

        if exit_code == 0:
            if was_cancelled:
                logger.info(f"[FFmpeg] Task {task.id} finished before the cancel took effect")
            logger.info(f"[FFmpeg] Completed task {task.id}: {task.output_path}")
            return ExecutionOutcome(
                status=ExecutionStatus.COMPLETED,
                exit_code=exit_code,
                started_at=started_at,
                completed_at=datetime.now(),
            )

        if was_cancelled or (cancel_token is not None and cancel_token.is_cancelled):
            return ExecutionOutcome(
                status=ExecutionStatus.CANCELLED,
                exit_code=exit_code,
                stderr_tail=self._format_tail(tail),
                started_at=started_at,
                completed_at=datetime.now(),
            )

        message = f"FFmpeg exited with code {exit_code}"
        logger.error(f"[FFmpeg] Task {task.id} failed: {message}")
        return ExecutionOutcome(
            status=ExecutionStatus.FAILED,
            exit_code=exit_code,
            error_message=message,
            stderr_tail=self._format_tail(tail),
            started_at=started_at,
            completed_at=datetime.now(),
        )

    def cancel(self, task_id: str) -> bool:
        """
        Terminate the running process tree for a task.

        Returns:
            False if no process is registered for the task
        """
        with self._lock:
            process = self._processes.get(task_id)
            if process is None:
                return False
            self._cancelled.add(task_id)

        logger.info(f"[FFmpeg] Cancelling task {task_id} (PID {process.pid})")
        self._kill_tree(process)
        return True

    def cancel_all(self) -> int:
        """Cancel every running process; returns how many were signalled."""
        return sum(1 for task_id in self.running_task_ids() if self.cancel(task_id))

    def _kill_tree(self, process: subprocess.Popen) -> None:
        if process.poll() is not None:
            return

        if os.name == "nt":
            try:
                subprocess.run(
                    ["taskkill", "/T", "/F", "/PID", str(process.pid)],
                    capture_output=True,
                    timeout=10,
                )
            except (OSError, subprocess.TimeoutExpired) as e:
                logger.warning(f"[FFmpeg] taskkill failed for PID {process.pid}: {e}")
                process.kill()
            return

        # The child leads its own session, so its pgid is its pid
        try:
            logger.info(f"[FFmpeg] Sending SIGTERM to process group {process.pid}")
            os.killpg(process.pid, signal.SIGTERM)
        except ProcessLookupError:
            return

        try:
            process.wait(timeout=TERMINATE_GRACE_SECONDS)
        except subprocess.TimeoutExpired:
            logger.warning(f"[FFmpeg] PID {process.pid} did not terminate, sending SIGKILL")
            try:
                os.killpg(process.pid, signal.SIGKILL)
            except ProcessLookupError:
                pass  # Exited between the timeout and the kill

    @staticmethod
    def _format_tail(lines: deque) -> str:
        return "\n".join(lines)[-STDERR_TAIL_CHARS:]
