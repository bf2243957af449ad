"""Storage contract shared by the TOML and Markdown backends."""

from pathlib import Path
from typing import Any, Protocol

from pydantic import BaseModel

from tasktree.models import Task, TaskPatch


class TomlStorageConfig(BaseModel):
    """Configuration for TomlFileStorage."""

    file_path: str | Path | None = None


class MarkdownStorageConfig(BaseModel):
    """Configuration for MarkdownStorage. ``path`` is the storage directory."""

    path: str | Path | None = None


class TaskStorage(Protocol):
    def init(self, config: Any) -> None: ...

    def create_task(self, task: TaskPatch | dict[str, Any]) -> Task: ...

    def get_tasks(self, parent_id: str | None = None) -> list[Task]: ...

    def update_task(self, task_id: str, task: TaskPatch | dict[str, Any]) -> Task: ...

    def delete_task(self, task_id: str) -> None: ...
