"""
SQLite-backed document store.

Every collection lives in one `documents` table as JSON-serialized pydantic
models. Queries load the collection and filter in Python: the collections are
small (templates, encoders, task history) and predicates stay ordinary
callables.

One connection is shared and guarded by a re-entrant lock so the store can be
used from executor threads and with ``:memory:`` databases.
"""

import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Generic, Iterable, List, Optional, Type, TypeVar

from pydantic import BaseModel

from .errors import (
    PersistenceError,
    SchemaError,
    DuplicateKeyError,
)

logger = logging.getLogger(__name__)


# Database schema version for migrations
SCHEMA_VERSION = 1

ModelT = TypeVar("ModelT", bound=BaseModel)


class DocumentStore:
    """
    Owns the SQLite connection and schema.

    Collections are obtained through `collection()`; the store itself knows
    nothing about the models kept in it.
    """

    def __init__(self, db_path: Optional[str] = None):
        """
        Open (or create) the database.

        Args:
            db_path: Path to SQLite database file, ``:memory:`` for a
                throwaway store (defaults to ./ffconductor.db)
        """
        if db_path is None:
            db_path = str(Path.cwd() / "ffconductor.db")

        if db_path != ":memory:":
            Path(db_path).expanduser().parent.mkdir(parents=True, exist_ok=True)
            db_path = str(Path(db_path).expanduser())

        self.db_path = db_path
        self._lock = threading.RLock()
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._ensure_schema()

    @contextmanager
    def _connect(self):
        """Serialized access to the shared connection, one transaction per block."""
        with self._lock:
            try:
                yield self._conn
                self._conn.commit()
            except PersistenceError:
                self._conn.rollback()
                raise
            except Exception as e:
                self._conn.rollback()
                raise PersistenceError(f"Database operation failed: {e}") from e

    def _ensure_schema(self) -> None:
        """Create schema if it doesn't exist."""
        with self._connect() as conn:
            cursor = conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY,
                    applied_at TEXT NOT NULL
                )
            """)

            cursor.execute("SELECT version FROM schema_version ORDER BY version DESC LIMIT 1")
            row = cursor.fetchone()
            current_version = row[0] if row else 0

            if current_version > SCHEMA_VERSION:
                raise SchemaError(
                    f"Database schema version {current_version} is newer than "
                    f"supported version {SCHEMA_VERSION}"
                )

            if current_version < SCHEMA_VERSION:
                self._migrate_schema(conn, current_version)

    def _migrate_schema(self, conn, from_version: int) -> None:
        """Apply schema migrations."""
        cursor = conn.cursor()

        if from_version < 1:
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS documents (
                    collection TEXT NOT NULL,
                    id TEXT NOT NULL,
                    unique_key TEXT,
                    data TEXT NOT NULL,
                    PRIMARY KEY (collection, id)
                )
            """)

            # NULL unique keys never collide, so collections without a
            # unique field share the index safely.
            cursor.execute("""
                CREATE UNIQUE INDEX IF NOT EXISTS idx_documents_unique
                ON documents (collection, unique_key)
            """)

            cursor.execute(
                "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
                (1, datetime.now().isoformat())
            )
            logger.info(f"[Store] Created schema v1 at {self.db_path}")

    def collection(
        self,
        name: str,
        model: Type[ModelT],
        unique_field: Optional[str] = None,
    ) -> "Collection[ModelT]":
        """Return a typed view over one named collection."""
        return Collection(self, name, model, unique_field)

    def close(self) -> None:
        with self._lock:
            self._conn.close()


class Collection(Generic[ModelT]):
    """
    Typed, key-indexed collection of pydantic documents.

    Documents must expose a string ``id`` attribute.
    """

    def __init__(
        self,
        store: DocumentStore,
        name: str,
        model: Type[ModelT],
        unique_field: Optional[str] = None,
    ):
        self._store = store
        self.name = name
        self.model = model
        self.unique_field = unique_field

    def _unique_value(self, doc: ModelT) -> Optional[str]:
        if not self.unique_field:
            return None
        value = getattr(doc, self.unique_field)
        return None if value is None else str(value)

    def _duplicate(self, doc: ModelT) -> DuplicateKeyError:
        return DuplicateKeyError(self.name, self.unique_field or "id", str(self._unique_value(doc) or doc.id))

    def _load_rows(self, conn) -> List[ModelT]:
        cursor = conn.execute(
            "SELECT data FROM documents WHERE collection = ? ORDER BY rowid",
            (self.name,),
        )
        return [self.model.model_validate_json(row["data"]) for row in cursor.fetchall()]

    # Writes

    def insert(self, doc: ModelT) -> ModelT:
        """
        Insert a new document.

        Raises:
            DuplicateKeyError: If the id or unique field already exists
        """
        with self._store._connect() as conn:
            try:
                conn.execute(
                    "INSERT INTO documents (collection, id, unique_key, data) VALUES (?, ?, ?, ?)",
                    (self.name, doc.id, self._unique_value(doc), doc.model_dump_json()),
                )
            except sqlite3.IntegrityError:
                raise self._duplicate(doc)
        return doc

    def insert_bulk(self, docs: Iterable[ModelT]) -> int:
        """Insert several documents in one transaction; all or nothing."""
        count = 0
        with self._store._connect() as conn:
            for doc in docs:
                try:
                    conn.execute(
                        "INSERT INTO documents (collection, id, unique_key, data) VALUES (?, ?, ?, ?)",
                        (self.name, doc.id, self._unique_value(doc), doc.model_dump_json()),
                    )
                except sqlite3.IntegrityError:
                    raise self._duplicate(doc)
                count += 1
        return count

    def update(self, doc: ModelT) -> bool:
        """
        Replace a stored document by id.

        Returns:
            False if no document with that id exists
        """
        with self._store._connect() as conn:
            try:
                cursor = conn.execute(
                    "UPDATE documents SET unique_key = ?, data = ? WHERE collection = ? AND id = ?",
                    (self._unique_value(doc), doc.model_dump_json(), self.name, doc.id),
                )
            except sqlite3.IntegrityError:
                raise self._duplicate(doc)
            return cursor.rowcount > 0

    def upsert(self, doc: ModelT) -> ModelT:
        """Insert or replace a document by id."""
        with self._store._connect() as conn:
            try:
                conn.execute(
                    """
                    INSERT INTO documents (collection, id, unique_key, data)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(collection, id) DO UPDATE SET
                        unique_key = excluded.unique_key,
                        data = excluded.data
                    """,
                    (self.name, doc.id, self._unique_value(doc), doc.model_dump_json()),
                )
            except sqlite3.IntegrityError:
                raise self._duplicate(doc)
        return doc

    def delete(self, doc_id: str) -> bool:
        with self._store._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM documents WHERE collection = ? AND id = ?",
                (self.name, doc_id),
            )
            return cursor.rowcount > 0

    def delete_all(self) -> int:
        with self._store._connect() as conn:
            cursor = conn.execute("DELETE FROM documents WHERE collection = ?", (self.name,))
            return cursor.rowcount

    def delete_many(self, where: Callable[[ModelT], bool]) -> int:
        """Delete every document matching the predicate; returns the count."""
        with self._store._connect() as conn:
            doomed = [doc.id for doc in self._load_rows(conn) if where(doc)]
            for doc_id in doomed:
                conn.execute(
                    "DELETE FROM documents WHERE collection = ? AND id = ?",
                    (self.name, doc_id),
                )
        return len(doomed)

    def replace_all(self, docs: Iterable[ModelT]) -> int:
        """Atomically swap the whole collection for `docs`."""
        docs = list(docs)
        with self._store._connect() as conn:
            conn.execute("DELETE FROM documents WHERE collection = ?", (self.name,))
            for doc in docs:
                try:
                    conn.execute(
                        "INSERT INTO documents (collection, id, unique_key, data) VALUES (?, ?, ?, ?)",
                        (self.name, doc.id, self._unique_value(doc), doc.model_dump_json()),
                    )
                except sqlite3.IntegrityError:
                    raise self._duplicate(doc)
        return len(docs)

    # Reads

    def find_by_id(self, doc_id: str) -> Optional[ModelT]:
        with self._store._connect() as conn:
            cursor = conn.execute(
                "SELECT data FROM documents WHERE collection = ? AND id = ?",
                (self.name, doc_id),
            )
            row = cursor.fetchone()
        return self.model.model_validate_json(row["data"]) if row else None

    def find_all(self) -> List[ModelT]:
        with self._store._connect() as conn:
            return self._load_rows(conn)

    def find(
        self,
        where: Optional[Callable[[ModelT], bool]] = None,
        order_by: Optional[Callable[[ModelT], Any]] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[ModelT]:
        """
        Predicate-filtered, ordered, limited query.

        Args:
            where: Keep documents for which this returns True (all if None)
            order_by: Sort key (insertion order if None)
            descending: Reverse the sort
            limit: Maximum number of documents returned
        """
        docs = self.find_all()
        if where is not None:
            docs = [doc for doc in docs if where(doc)]
        if order_by is not None:
            docs.sort(key=order_by, reverse=descending)
        elif descending:
            docs.reverse()
        if limit is not None:
            docs = docs[:max(0, limit)]
        return docs

    def find_one(self, where: Callable[[ModelT], bool]) -> Optional[ModelT]:
        for doc in self.find_all():
            if where(doc):
                return doc
        return None

    def count(self, where: Optional[Callable[[ModelT], bool]] = None) -> int:
        if where is None:
            with self._store._connect() as conn:
                cursor = conn.execute(
                    "SELECT COUNT(*) FROM documents WHERE collection = ?",
                    (self.name,),
                )
                return cursor.fetchone()[0]
        return sum(1 for doc in self.find_all() if where(doc))
