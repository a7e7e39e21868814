"""
Tests for the SQLite document store.

Documents round-trip as pydantic models; unique fields are enforced by the
database; predicates, ordering and limits are applied in Python.
"""

import sqlite3
from datetime import datetime, timedelta

import pytest

from ffconductor.jobs.models import ConversionTask, TaskStatus
from ffconductor.persistence import AppDatabase, DocumentStore, DuplicateKeyError, SchemaError
from ffconductor.persistence.store import SCHEMA_VERSION
from ffconductor.templates.models import CommandTemplate


def make_task(**overrides) -> ConversionTask:
    fields = dict(input_path="/in/a.mov", output_path="/out/a.mp4", template_id="t1", command="-i a b")
    fields.update(overrides)
    return ConversionTask(**fields)


class TestCollectionWrites:

    def test_insert_and_find_by_id(self, db):
        task = make_task(total_duration=12.5)

        db.tasks.insert(task)
        loaded = db.tasks.find_by_id(task.id)

        assert loaded == task
        assert loaded.status == TaskStatus.PENDING

    def test_duplicate_id_rejected(self, db):
        task = make_task()
        db.tasks.insert(task)

        with pytest.raises(DuplicateKeyError):
            db.tasks.insert(task)

    def test_unique_field_enforced(self, db):
        db.templates.insert(CommandTemplate(name="Same", command_args=""))

        with pytest.raises(DuplicateKeyError) as exc_info:
            db.templates.insert(CommandTemplate(name="Same", command_args="-x"))

        assert exc_info.value.field == "name"
        assert exc_info.value.value == "Same"
        assert db.templates.count() == 1

    def test_unique_field_enforced_on_update(self, db):
        first = db.templates.insert(CommandTemplate(name="A", command_args=""))
        db.templates.insert(CommandTemplate(name="B", command_args=""))

        with pytest.raises(DuplicateKeyError):
            db.templates.update(first.model_copy(update={"name": "B"}))

        assert db.templates.find_by_id(first.id).name == "A"

    def test_update_missing_returns_false(self, db):
        assert db.tasks.update(make_task()) is False

    def test_update_replaces_document(self, db):
        task = db.tasks.insert(make_task())
        task.status = TaskStatus.RUNNING
        task.progress = 40.0

        assert db.tasks.update(task) is True
        assert db.tasks.find_by_id(task.id).progress == 40.0

    def test_upsert_inserts_then_replaces(self, db):
        task = make_task()
        db.tasks.upsert(task)
        task.progress = 10.0
        db.tasks.upsert(task)

        assert db.tasks.count() == 1
        assert db.tasks.find_by_id(task.id).progress == 10.0

    def test_insert_bulk_is_all_or_nothing(self, db):
        docs = [
            CommandTemplate(name="One", command_args=""),
            CommandTemplate(name="Two", command_args=""),
            CommandTemplate(name="One", command_args=""),
        ]

        with pytest.raises(DuplicateKeyError):
            db.templates.insert_bulk(docs)

        assert db.templates.count() == 0

    def test_delete(self, db):
        task = db.tasks.insert(make_task())

        assert db.tasks.delete(task.id) is True
        assert db.tasks.delete(task.id) is False
        assert db.tasks.find_by_id(task.id) is None

    def test_delete_many_and_delete_all(self, db):
        for status in (TaskStatus.PENDING, TaskStatus.COMPLETED, TaskStatus.FAILED):
            db.tasks.insert(make_task(status=status))

        assert db.tasks.delete_many(lambda t: t.status != TaskStatus.PENDING) == 2
        assert [t.status for t in db.tasks.find_all()] == [TaskStatus.PENDING]
        assert db.tasks.delete_all() == 1
        assert db.tasks.count() == 0

    def test_replace_all(self, db):
        db.tasks.insert(make_task())
        fresh = [make_task(), make_task()]

        assert db.tasks.replace_all(fresh) == 2
        assert {t.id for t in db.tasks.find_all()} == {t.id for t in fresh}

    def test_collections_are_isolated(self, db):
        db.tasks.insert(make_task())

        assert db.batch_tasks.count() == 0
        assert db.tasks.count() == 1


class TestCollectionQueries:

    @pytest.fixture
    def tasks(self, db):
        base = datetime(2024, 1, 1, 12, 0, 0)
        created = []
        for i, status in enumerate([TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.COMPLETED, TaskStatus.PENDING]):
            created.append(db.tasks.insert(make_task(status=status, created_at=base + timedelta(minutes=i))))
        return created

    def test_find_all_keeps_insertion_order(self, db, tasks):
        assert [t.id for t in db.tasks.find_all()] == [t.id for t in tasks]

    def test_find_where(self, db, tasks):
        completed = db.tasks.find(where=lambda t: t.status == TaskStatus.COMPLETED)

        assert [t.id for t in completed] == [tasks[0].id, tasks[2].id]

    def test_find_ordered_descending_with_limit(self, db, tasks):
        newest = db.tasks.find(order_by=lambda t: t.created_at, descending=True, limit=2)

        assert [t.id for t in newest] == [tasks[3].id, tasks[2].id]

    def test_find_descending_without_key_reverses_insertion(self, db, tasks):
        assert [t.id for t in db.tasks.find(descending=True)] == [t.id for t in reversed(tasks)]

    def test_find_one(self, db, tasks):
        assert db.tasks.find_one(lambda t: t.status == TaskStatus.FAILED).id == tasks[1].id
        assert db.tasks.find_one(lambda t: t.status == TaskStatus.RUNNING) is None

    def test_count(self, db, tasks):
        assert db.tasks.count() == 4
        assert db.tasks.count(lambda t: t.status == TaskStatus.COMPLETED) == 2


class TestSchema:

    def test_file_database_persists_between_opens(self, tmp_path):
        path = tmp_path / "nested" / "data.db"
        first = AppDatabase(str(path))
        task = first.tasks.insert(make_task())
        first.close()

        second = AppDatabase(str(path))
        try:
            assert second.tasks.find_by_id(task.id) == task
        finally:
            second.close()

    def test_newer_schema_rejected(self, tmp_path):
        path = tmp_path / "future.db"
        DocumentStore(str(path)).close()
        conn = sqlite3.connect(str(path))
        conn.execute(
            "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
            (SCHEMA_VERSION + 1, datetime.now().isoformat()),
        )
        conn.commit()
        conn.close()

        with pytest.raises(SchemaError):
            DocumentStore(str(path))
