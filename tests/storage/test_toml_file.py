"""Tests for the TOML snapshot storage."""

from datetime import UTC, datetime

import pytest
import tomlkit

from tasktree.core.errors import ConfigError, NotFoundError, NotInitializedError
from tasktree.models import TaskPatch, TaskStatus
from tasktree.models.task import utc_now
from tasktree.storage import TomlFileStorage, TomlStorageConfig


def test_init_requires_file_path():
    """Test that init fails without a file path."""
    storage = TomlFileStorage()

    with pytest.raises(ConfigError):
        storage.init(TomlStorageConfig())

    with pytest.raises(ConfigError):
        storage.init({"file_path": ""})

    with pytest.raises(ConfigError):
        storage.init(None)


def test_operations_before_init_fail():
    """Test that every operation requires init()."""
    storage = TomlFileStorage()

    with pytest.raises(NotInitializedError) as exc_info:
        storage.get_tasks()
    assert "TomlFileStorage" in str(exc_info.value)

    with pytest.raises(NotInitializedError):
        storage.create_task({"title": "x"})

    with pytest.raises(NotInitializedError):
        storage.delete_task("x")


def test_init_creates_empty_snapshot(toml_path):
    """Test that init creates parent directories and an empty task array."""
    storage = TomlFileStorage()
    storage.init({"file_path": str(toml_path)})

    assert toml_path.exists()
    assert toml_path.read_text(encoding="utf-8").strip() == "tasks = []"
    assert storage.get_tasks() == []


def test_init_recovers_from_corrupt_file(toml_path):
    """Test that an unparseable file is replaced by an empty snapshot."""
    toml_path.parent.mkdir(parents=True)
    toml_path.write_text("this is = = not toml [", encoding="utf-8")

    storage = TomlFileStorage()
    storage.init(TomlStorageConfig(file_path=toml_path))

    assert storage.get_tasks() == []
    assert tomlkit.parse(toml_path.read_text(encoding="utf-8")).unwrap() == {"tasks": []}


def test_init_recovers_from_invalid_records(toml_path):
    """Test that records failing validation also reset the snapshot."""
    toml_path.parent.mkdir(parents=True)
    toml_path.write_text('[[tasks]]\ntitle = "no id"\n', encoding="utf-8")

    storage = TomlFileStorage()
    storage.init(TomlStorageConfig(file_path=toml_path))

    assert storage.get_tasks() == []


def test_create_task_fills_defaults(toml_storage):
    """Test that missing fields get defaults."""
    task = toml_storage.create_task({})

    assert task.id
    assert task.title == "Untitled Task"
    assert task.summary == ""
    assert task.contexts == []
    assert task.status == TaskStatus.PENDING
    assert task.parent_id is None
    assert task.created_at == task.updated_at


def test_create_task_timestamps_not_before_call(toml_storage):
    """Test that both timestamps are taken at or after the call."""
    before = utc_now()

    task = toml_storage.create_task({"title": "T"})

    assert task.created_at >= before
    assert task.updated_at >= before


def test_create_task_keeps_given_values(toml_storage):
    """Test that given fields, including the id, are kept."""
    task = toml_storage.create_task(
        TaskPatch(id="abc", title="Write docs", role="writer", contexts=["README.md"])
    )

    assert task.id == "abc"
    assert task.title == "Write docs"
    assert task.role == "writer"
    assert task.contexts == ["README.md"]


def test_snapshot_round_trip(toml_path, toml_storage):
    """Test that a fresh storage reads back what was written."""
    parent = toml_storage.create_task({"title": "Parent", "prompt": "Do it"})
    child = toml_storage.create_task({"title": "Child", "parent_id": parent.id})

    reloaded = TomlFileStorage()
    reloaded.init(TomlStorageConfig(file_path=toml_path))
    tasks = {t.id: t for t in reloaded.get_tasks()}

    assert tasks[parent.id] == parent
    assert tasks[child.id] == child
    assert tasks[child.id].parent_id == parent.id


def test_snapshot_omits_missing_parent(toml_path, toml_storage):
    """Test that top-level tasks are written without a parent_id key."""
    toml_storage.create_task({"title": "Solo"})

    document = tomlkit.parse(toml_path.read_text(encoding="utf-8")).unwrap()

    assert len(document["tasks"]) == 1
    assert "parent_id" not in document["tasks"][0]
    assert document["tasks"][0]["status"] == "PENDING"


def test_get_tasks_filters_by_parent(toml_storage):
    """Test listing all tasks and children of one parent."""
    parent = toml_storage.create_task({"title": "Parent"})
    child = toml_storage.create_task({"title": "Child", "parent_id": parent.id})
    toml_storage.create_task({"title": "Other"})

    assert len(toml_storage.get_tasks()) == 3
    assert [t.id for t in toml_storage.get_tasks(parent.id)] == [child.id]
    assert toml_storage.get_tasks("unknown") == []


def test_get_tasks_returns_copies(toml_storage):
    """Test that mutating returned tasks does not touch stored state."""
    toml_storage.create_task({"title": "Original"})

    toml_storage.get_tasks()[0].title = "Changed"

    assert toml_storage.get_tasks()[0].title == "Original"


def test_update_task_preserves_identity(toml_storage):
    """Test that id and created_at survive an update and updated_at moves."""
    task = toml_storage.create_task({"title": "Before"})

    updated = toml_storage.update_task(
        task.id,
        {"id": "other", "title": "After", "created_at": "2000-01-01T00:00:00+00:00"},
    )

    assert updated.id == task.id
    assert updated.title == "After"
    assert updated.created_at == task.created_at
    assert updated.updated_at >= task.updated_at


def test_update_task_can_detach(toml_storage):
    """Test that an explicit parent_id of None detaches the task."""
    parent = toml_storage.create_task({"title": "Parent"})
    child = toml_storage.create_task({"title": "Child", "parent_id": parent.id})

    updated = toml_storage.update_task(child.id, TaskPatch(parent_id=None))

    assert updated.parent_id is None


def test_update_task_ignores_unset_fields(toml_storage):
    """Test that fields absent from the patch keep their values."""
    parent = toml_storage.create_task({"title": "Parent"})
    child = toml_storage.create_task({"title": "Child", "parent_id": parent.id})

    updated = toml_storage.update_task(child.id, TaskPatch(status=TaskStatus.DONE))

    assert updated.parent_id == parent.id
    assert updated.title == "Child"
    assert updated.status == TaskStatus.DONE


def test_update_missing_task(toml_storage):
    """Test that updating an unknown id raises NotFoundError."""
    with pytest.raises(NotFoundError) as exc_info:
        toml_storage.update_task("missing", {"title": "x"})

    assert 'Task with id "missing" not found.' in str(exc_info.value)


def test_delete_task(toml_path, toml_storage):
    """Test that deletion is persisted and idempotent."""
    task = toml_storage.create_task({"title": "Doomed"})

    toml_storage.delete_task(task.id)
    toml_storage.delete_task(task.id)
    toml_storage.delete_task("never-existed")

    assert toml_storage.get_tasks() == []
    reloaded = TomlFileStorage()
    reloaded.init(TomlStorageConfig(file_path=toml_path))
    assert reloaded.get_tasks() == []


def test_update_task_keeps_given_updated_at(toml_path, toml_storage):
    """Test that updated_at from the patch is stored as is."""
    task = toml_storage.create_task({"title": "Task"})
    stamp = datetime(2030, 1, 2, 3, 4, 5, tzinfo=UTC)

    updated = toml_storage.update_task(task.id, TaskPatch(title="New", updated_at=stamp))

    assert updated.updated_at == stamp
    assert updated.created_at == task.created_at
    reloaded = TomlFileStorage()
    reloaded.init(TomlStorageConfig(file_path=toml_path))
    assert reloaded.get_tasks()[0].updated_at == stamp
