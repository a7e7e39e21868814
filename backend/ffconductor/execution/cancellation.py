"""
Per-task cooperative cancellation.
"""

import logging
import threading
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class CancellationToken:
    """
    One-shot cancellation flag.

    Callbacks registered before cancellation run once when it happens;
    callbacks registered afterwards run immediately.
    """

    def __init__(self):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: List[Callable[[], None]] = []

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks = list(self._callbacks)
            self._callbacks.clear()

        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                logger.exception(f"[Cancel] Callback failed: {e}")

    def on_cancel(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return
        callback()

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._event.wait(timeout)


class CancellationRegistry:
    """Task id → CancellationToken, guarded by a lock."""

    def __init__(self):
        self._tokens: Dict[str, CancellationToken] = {}
        self._lock = threading.Lock()

    def create(self, task_id: str) -> CancellationToken:
        """Register a fresh token for `task_id`, replacing any previous one."""
        token = CancellationToken()
        with self._lock:
            self._tokens[task_id] = token
        return token

    def get(self, task_id: str) -> Optional[CancellationToken]:
        with self._lock:
            return self._tokens.get(task_id)

    def cancel(self, task_id: str) -> bool:
        """
        Signal the token for `task_id`.

        Returns:
            False if no token is registered
        """
        with self._lock:
            token = self._tokens.get(task_id)
        if token is None:
            return False
        token.cancel()
        return True

    def remove(self, task_id: str) -> None:
        with self._lock:
            self._tokens.pop(task_id, None)

    def __contains__(self, task_id: str) -> bool:
        with self._lock:
            return task_id in self._tokens
