"""Snapshot storage: all tasks in one TOML file, rewritten on every change."""

import logging
from pathlib import Path
from typing import Any
from uuid import uuid4

import tomlkit

from tasktree.core.errors import (
    ConfigError,
    FileModifyError,
    NotFoundError,
    NotInitializedError,
)
from tasktree.models import Task, TaskPatch, TaskStatus, as_patch
from tasktree.models.task import utc_now

from .base import TomlStorageConfig

logger = logging.getLogger(__name__)

UNTITLED = "Untitled Task"


class TomlFileStorage:
    """Stores tasks as an array of tables under the ``tasks`` key.

    The whole list lives in memory and the file is rewritten after each
    mutation, so the file is always a complete snapshot of the last
    successful write.
    """

    def __init__(self) -> None:
        self.file_path: Path | None = None
        self._tasks: list[Task] = []

    def init(self, config: TomlStorageConfig | dict[str, Any] | None) -> None:
        """Load the snapshot file.

        A missing, unreadable or malformed file is replaced by an empty one.

        Raises:
            ConfigError: If no file path is configured
        """
        if isinstance(config, dict):
            config = TomlStorageConfig(**config)
        if config is None or not config.file_path:
            raise ConfigError("File path is required in config for TomlFileStorage.")

        self.file_path = Path(config.file_path)
        self.file_path.parent.mkdir(parents=True, exist_ok=True)

        try:
            content = self.file_path.read_text(encoding="utf-8")
            self._tasks = self._parse(content)
        except (OSError, ValueError) as e:
            logger.warning(
                f"Could not load {self.file_path} ({e.__class__.__name__}), "
                "starting with an empty task list"
            )
            self._tasks = []
            self._save()
            return

        logger.info(f"TomlFileStorage ready file={self.file_path} total={len(self._tasks)}")

    @staticmethod
    def _parse(content: str) -> list[Task]:
        document = tomlkit.parse(content).unwrap()
        records = document.get("tasks") or []
        if not isinstance(records, list):
            raise ValueError("'tasks' must be an array of tables")
        return [Task.model_validate(record) for record in records]

    @staticmethod
    def _to_record(task: Task) -> dict[str, Any]:
        record = task.model_dump(exclude_none=True)
        record["status"] = task.status.value
        return record

    def _ensure_initialized(self) -> Path:
        if self.file_path is None:
            raise NotInitializedError(self.__class__.__name__)
        return self.file_path

    def _save(self) -> None:
        file_path = self._ensure_initialized()
        content = tomlkit.dumps({"tasks": [self._to_record(t) for t in self._tasks]})
        try:
            file_path.write_text(content, encoding="utf-8")
        except OSError as e:
            raise FileModifyError(file_path, e) from e

    def create_task(self, task: TaskPatch | dict[str, Any]) -> Task:
        """Append a task, filling defaults for every field not given."""
        self._ensure_initialized()
        fields = as_patch(task).present()
        now = utc_now()

        values: dict[str, Any] = {
            "id": str(uuid4()),
            "title": UNTITLED,
            "summary": "",
            "description": "",
            "prompt": "",
            "role": "",
            "contexts": [],
            "status": TaskStatus.PENDING,
            "created_at": now,
            "updated_at": now,
        }
        values.update({k: v for k, v in fields.items() if v is not None or k == "parent_id"})
        new_task = Task(**values)

        self._tasks.append(new_task)
        self._save()
        logger.debug(f"Task created id={new_task.id} parent={new_task.parent_id}")
        return new_task.model_copy(deep=True)

    def get_tasks(self, parent_id: str | None = None) -> list[Task]:
        """Return copies of all tasks, or of the direct children of parent_id."""
        self._ensure_initialized()
        tasks = self._tasks
        if parent_id:
            tasks = [t for t in tasks if t.parent_id == parent_id]
        return [t.model_copy(deep=True) for t in tasks]

    def update_task(self, task_id: str, task: TaskPatch | dict[str, Any]) -> Task:
        """Merge the present fields of the patch into a stored task.

        ``id`` and ``created_at`` are kept. ``updated_at`` comes from the patch
        when given, otherwise it is set to now.

        Raises:
            NotFoundError: If no task has the given id
        """
        self._ensure_initialized()
        index = next((i for i, t in enumerate(self._tasks) if t.id == task_id), None)
        if index is None:
            raise NotFoundError(f'Task with id "{task_id}" not found.')

        existing = self._tasks[index]
        fields = as_patch(task).present()
        for immutable in ("id", "created_at"):
            fields.pop(immutable, None)
        updated_at = fields.pop("updated_at", None) or utc_now()
        fields = {k: v for k, v in fields.items() if v is not None or k == "parent_id"}

        updated = Task.model_validate(
            {**existing.model_dump(), **fields, "updated_at": updated_at}
        )

        self._tasks[index] = updated
        self._save()
        return updated.model_copy(deep=True)

    def delete_task(self, task_id: str) -> None:
        """Remove a task. Unknown ids are ignored."""
        self._ensure_initialized()
        remaining = [t for t in self._tasks if t.id != task_id]
        if len(remaining) == len(self._tasks):
            return
        self._tasks = remaining
        self._save()
