"""
Task notifications.

The task service publishes progress and status events on an EventChannel.
Each subscriber drains its own bounded queue; when a queue is full the oldest
event is dropped so a slow consumer never blocks a running conversion.
"""

import logging
import queue
import threading
from datetime import datetime
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from .models import TaskStatus

logger = logging.getLogger(__name__)


DEFAULT_QUEUE_SIZE = 1000


class TaskProgressEvent(BaseModel):
    """A running task reported progress."""

    model_config = ConfigDict(extra="forbid")

    task_id: str
    percentage: float
    speed: Optional[float] = None
    eta: Optional[float] = None
    timestamp: datetime = Field(default_factory=datetime.now)


class TaskStatusEvent(BaseModel):
    """A task changed status."""

    model_config = ConfigDict(extra="forbid")

    task_id: str
    old_status: TaskStatus
    new_status: TaskStatus
    error_message: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.now)


TaskEvent = Union[TaskProgressEvent, TaskStatusEvent]


class Subscription:
    """One subscriber's view of the channel."""

    def __init__(self, channel: "EventChannel", maxsize: int = DEFAULT_QUEUE_SIZE):
        self._channel = channel
        self._queue: "queue.Queue[TaskEvent]" = queue.Queue(maxsize=maxsize)
        self._lock = threading.Lock()
        self.dropped = 0
        self.closed = False

    def _offer(self, event: TaskEvent) -> None:
        with self._lock:
            while True:
                try:
                    self._queue.put_nowait(event)
                    return
                except queue.Full:
                    try:
                        self._queue.get_nowait()
                        self.dropped += 1
                    except queue.Empty:
                        pass

    def get(self, timeout: Optional[float] = None) -> Optional[TaskEvent]:
        """
        Next event, waiting up to `timeout` seconds (forever if None).

        Returns:
            None if nothing arrived in time
        """
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain(self) -> List[TaskEvent]:
        """Every queued event, without waiting."""
        events: List[TaskEvent] = []
        while True:
            try:
                events.append(self._queue.get_nowait())
            except queue.Empty:
                return events

    def close(self) -> None:
        """Stop receiving events."""
        self.closed = True
        self._channel._remove(self)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class EventChannel:
    """Fan-out of task events to independent subscribers."""

    def __init__(self, queue_size: int = DEFAULT_QUEUE_SIZE):
        self._queue_size = queue_size
        self._subscribers: List[Subscription] = []
        self._lock = threading.Lock()

    def subscribe(self, maxsize: Optional[int] = None) -> Subscription:
        subscription = Subscription(self, maxsize or self._queue_size)
        with self._lock:
            self._subscribers.append(subscription)
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscribers:
                self._subscribers.remove(subscription)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def publish(self, event: TaskEvent) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for subscription in subscribers:
            subscription._offer(event)
