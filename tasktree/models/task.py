"""Task model and the DTOs used to create and patch tasks."""

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


def utc_now() -> datetime:
    return datetime.now(UTC)


class TaskStatus(StrEnum):
    """Task lifecycle status."""

    PENDING = "PENDING"
    DONE = "DONE"
    DELETED = "DELETED"


class Task(BaseModel):
    """A unit of work in the task forest."""

    id: str = Field(description="Unique identifier for the task")
    parent_id: str | None = Field(
        default=None, description="Id of the parent task, None for top-level tasks"
    )
    title: str = Field(default="", description="Short title of the task")
    summary: str = Field(default="", description="One line summary")
    description: str = Field(default="", description="Full description")
    prompt: str = Field(
        default="", description="Prompt used by the agent when completing the task"
    )
    role: str = Field(default="", description="Role responsible for the task")
    contexts: list[str] = Field(
        default_factory=list, description="Related context entries (paths, URLs)"
    )
    status: TaskStatus = Field(default=TaskStatus.PENDING)
    created_at: datetime = Field(
        default_factory=utc_now,
        description="Timestamp when the task was created",
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        description="Timestamp when the task was last updated",
    )


class TaskCreate(BaseModel):
    """Data for creating a task through the repository.

    Required fields default to empty strings so that the repository can
    report the first missing one by name.
    """

    title: str = ""
    summary: str = ""
    description: str = ""
    prompt: str = ""
    role: str = ""
    parent_id: str | None = None
    contexts: list[str] | None = None


class TaskPatch(BaseModel):
    """A partial task.

    Only fields that were explicitly set count as present, so
    ``TaskPatch(parent_id=None)`` detaches a task while ``TaskPatch()`` leaves
    the parent alone.
    """

    id: str | None = None
    parent_id: str | None = None
    title: str | None = None
    summary: str | None = None
    description: str | None = None
    prompt: str | None = None
    role: str | None = None
    contexts: list[str] | None = None
    status: TaskStatus | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def present(self) -> dict[str, Any]:
        """Return the explicitly set fields."""
        return self.model_dump(exclude_unset=True)

    @classmethod
    def from_task(cls, task: Task) -> "TaskPatch":
        return cls(**task.model_dump())


def as_patch(data: "TaskPatch | dict[str, Any] | None") -> TaskPatch:
    """Accept either a TaskPatch or a plain mapping of fields."""
    if data is None:
        return TaskPatch()
    if isinstance(data, TaskPatch):
        return data
    return TaskPatch(**data)
