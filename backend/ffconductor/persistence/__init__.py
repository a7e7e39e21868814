"""
Persistence layer for ffconductor state.

SQLite-backed document collections for templates, tasks, batches,
encoder detection results and settings.
"""

from .errors import (
    PersistenceError,
    SchemaError,
    DuplicateKeyError,
)
from .store import DocumentStore, Collection
from .database import AppDatabase

__all__ = [
    "PersistenceError",
    "SchemaError",
    "DuplicateKeyError",
    "DocumentStore",
    "Collection",
    "AppDatabase",
]
