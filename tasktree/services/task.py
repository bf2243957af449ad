"""Task repository: the in-memory task forest and its invariants."""

import logging
from dataclasses import dataclass, field
from typing import Any
from uuid import uuid4

from tasktree.core.errors import (
    CycleError,
    MissingRequiredFieldError,
    NotFoundError,
    ParentNotFoundError,
)
from tasktree.models import Task, TaskCreate, TaskPatch, TaskStatus, as_patch
from tasktree.models.task import utc_now
from tasktree.storage import TaskStorage

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("title", "summary", "description", "prompt", "role")
PATCHABLE_FIELDS = (
    "title",
    "summary",
    "description",
    "prompt",
    "role",
    "contexts",
    "status",
)


@dataclass
class TaskNode:
    """A visible task with its visible children."""

    task: Task
    children: list["TaskNode"] = field(default_factory=list)


class TaskRepository:
    """Manages tasks and the parent-child relationships between them.

    The repository keeps every task (whatever its status) in a dict keyed by
    id, loaded once from the storage at construction. Reads only surface
    PENDING tasks and always return copies. Each mutation is persisted
    through the storage first and only then applied to the dict, so a
    storage failure leaves the dict unchanged.
    """

    def __init__(self, storage: TaskStorage):
        self.storage = storage
        self._tasks: dict[str, Task] = {}
        self._load()

    def _load(self) -> None:
        """Read the whole forest, one level at a time.

        Backends that return every task from get_tasks() and backends that
        return only the top level are both covered by walking children of
        every known id and skipping ids already seen.
        """
        queue = self.storage.get_tasks()
        while queue:
            task = queue.pop(0)
            if task.id in self._tasks:
                continue
            self._tasks[task.id] = task
            queue.extend(self.storage.get_tasks(task.id))
        logger.info(f"TaskRepository loaded {len(self._tasks)} tasks")

    def _check_for_cycle(self, task_id: str, potential_parent_id: str | None) -> None:
        """Walk up from the potential parent and fail if task_id is an ancestor.

        Raises:
            CycleError: If task_id appears in the ancestor chain
        """
        current = potential_parent_id
        while current:
            if current == task_id:
                raise CycleError(task_id, potential_parent_id)
            ancestor = self._tasks.get(current)
            if ancestor is None:
                # Missing ancestor ends the chain.
                return
            current = ancestor.parent_id

    def _descendants(self, task_id: str) -> list[str]:
        """Ids of all descendants, deepest first, regardless of status."""
        ordered: list[str] = []
        frontier = [task_id]
        while frontier:
            current = frontier.pop(0)
            children = [t.id for t in self._tasks.values() if t.parent_id == current]
            ordered.extend(children)
            frontier.extend(children)
        return list(reversed(ordered))

    def create(self, task_data: TaskCreate | dict[str, Any]) -> str:
        """Create a new task.

        Args:
            task_data: Title, summary, description, prompt and role are
                required; parent_id and contexts are optional

        Returns:
            The id of the new task

        Raises:
            MissingRequiredFieldError: If a required field is empty
            ParentNotFoundError: If parent_id does not name a visible task
            CycleError: If setting parent_id would create a cycle
        """
        if isinstance(task_data, dict):
            task_data = TaskCreate(**task_data)

        for name in REQUIRED_FIELDS:
            value = getattr(task_data, name)
            if not value or not value.strip():
                raise MissingRequiredFieldError(name)

        task_id = str(uuid4())
        now = utc_now()

        if task_data.parent_id:
            if self.find(task_data.parent_id) is None:
                raise ParentNotFoundError(task_data.parent_id)
            self._check_for_cycle(task_id, task_data.parent_id)

        task = Task(
            id=task_id,
            parent_id=task_data.parent_id or None,
            title=task_data.title,
            summary=task_data.summary,
            description=task_data.description,
            prompt=task_data.prompt,
            role=task_data.role,
            contexts=list(task_data.contexts or []),
            status=TaskStatus.PENDING,
            created_at=now,
            updated_at=now,
        )

        self.storage.create_task(TaskPatch.from_task(task))
        self._tasks[task_id] = task
        logger.info(f"Task created id={task_id} parent={task.parent_id}")
        return task_id

    def find(self, task_id: str) -> Task | None:
        """Return a copy of the task if it exists and is PENDING."""
        task = self._tasks.get(task_id)
        if task is not None and task.status == TaskStatus.PENDING:
            return task.model_copy(deep=True)
        return None

    def update(self, task_id: str, patch: TaskPatch | dict[str, Any]) -> None:
        """Update fields of a visible task.

        ``id``, ``created_at`` and ``updated_at`` in the patch are ignored.
        ``updated_at`` is refreshed on every call.

        Raises:
            NotFoundError: If the task is not found
            ParentNotFoundError: If a new parent_id does not name a visible task
            CycleError: If the new parent_id would create a cycle
        """
        task = self.find(task_id)
        if task is None:
            raise NotFoundError(f"Task with id {task_id} not found.")

        fields = as_patch(patch).present()
        changes: dict[str, Any] = {}

        if "parent_id" in fields:
            new_parent_id = fields["parent_id"] or None
            if new_parent_id != task.parent_id:
                if new_parent_id:
                    if self.find(new_parent_id) is None:
                        raise ParentNotFoundError(new_parent_id)
                    self._check_for_cycle(task_id, new_parent_id)
                changes["parent_id"] = new_parent_id

        for name in PATCHABLE_FIELDS:
            if fields.get(name) is not None:
                changes[name] = fields[name]

        now = utc_now()
        updated = Task.model_validate({**task.model_dump(), **changes, "updated_at": now})
        self.storage.update_task(task_id, TaskPatch(**changes, updated_at=now))
        self._tasks[task_id] = updated
        logger.info(f"Task updated id={task_id} fields={sorted(changes)}")

    def complete(self, task_id: str) -> None:
        """Mark a visible task as DONE."""
        self.update(task_id, TaskPatch(status=TaskStatus.DONE))

    def remove(self, task_id: str, cascade: bool = False) -> None:
        """Delete a task from the repository and the storage.

        With ``cascade`` every descendant is deleted as well. Without it the
        direct children are moved up to the removed task's parent.

        Raises:
            NotFoundError: If the task is not found
        """
        task = self.find(task_id)
        if task is None:
            raise NotFoundError(f"Task with id {task_id} not found.")

        if cascade:
            for descendant_id in self._descendants(task_id):
                self._delete(descendant_id)
        else:
            children = [t.id for t in self._tasks.values() if t.parent_id == task_id]
            for child_id in children:
                self._reparent(child_id, task.parent_id)

        self._delete(task_id)
        logger.info(f"Task removed id={task_id} cascade={cascade}")

    def _delete(self, task_id: str) -> None:
        self.storage.delete_task(task_id)
        self._tasks.pop(task_id, None)

    def _reparent(self, task_id: str, parent_id: str | None) -> None:
        # Children may be DONE, so this bypasses the visibility filter of update().
        now = utc_now()
        self.storage.update_task(task_id, TaskPatch(parent_id=parent_id, updated_at=now))
        self._tasks[task_id] = self._tasks[task_id].model_copy(
            update={"parent_id": parent_id, "updated_at": now}
        )

    def first_task(self, parent_id: str | None = None) -> Task | None:
        """First task of list(parent_id), or None."""
        tasks = self.list(parent_id)
        return tasks[0] if tasks else None

    def get_tree(self, parent_id: str | None = None) -> list[TaskNode]:
        """Visible tasks below parent_id as nested nodes."""
        return [
            TaskNode(task=task, children=self.get_tree(task.id))
            for task in self.list(parent_id)
        ]

    def list(self, parent_id: str | None = None) -> list[Task]:
        """List visible top-level tasks, or visible direct children of parent_id."""
        if parent_id is None:
            matches = [t for t in self._tasks.values() if not t.parent_id]
        else:
            matches = [t for t in self._tasks.values() if t.parent_id == parent_id]
        return [
            t.model_copy(deep=True) for t in matches if t.status == TaskStatus.PENDING
        ]
