"""
Application database: the named collections used by the services.
"""

from typing import Optional

from .store import DocumentStore
from ..templates.models import CommandTemplate
from ..jobs.models import ConversionTask, BatchTask
from ..encoders.models import HardwareEncoder
from ..settings.models import AppSettings


class AppDatabase:
    """
    Typed access to the `templates`, `tasks`, `batch_tasks`, `encoders` and
    `settings` collections.

    Template and encoder names are unique.
    """

    def __init__(self, db_path: Optional[str] = None, store: Optional[DocumentStore] = None):
        self.store = store or DocumentStore(db_path)

        self.templates = self.store.collection("templates", CommandTemplate, unique_field="name")
        self.tasks = self.store.collection("tasks", ConversionTask)
        self.batch_tasks = self.store.collection("batch_tasks", BatchTask)
        self.encoders = self.store.collection("encoders", HardwareEncoder, unique_field="name")
        self.settings = self.store.collection("settings", AppSettings)

    @classmethod
    def in_memory(cls) -> "AppDatabase":
        return cls(db_path=":memory:")

    def close(self) -> None:
        self.store.close()
