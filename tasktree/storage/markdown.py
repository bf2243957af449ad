"""Markdown storage: the task forest as an indented checklist.

Layout of the storage directory::

    tasks.md            one bullet line per task, one tab per nesting level
    content/<id>.md     JSON payload with the fields that do not fit the line

A bullet line looks like::

    \t- [ ] [Write docs](./content/<id>.md) id:<id>

``- [x]`` marks a completed task. Lines are changed through the patch engine:
single-line patches for edits, whole-content patches for inserts, moves and
deletes.
"""

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from uuid import uuid4

from pydantic import ValidationError

from tasktree.core.errors import (
    CycleError,
    FileModifyError,
    FileReadError,
    NotFoundError,
    NotInitializedError,
)
from tasktree.models import Task, TaskPatch, TaskStatus, as_patch
from tasktree.models.task import utc_now

from .base import MarkdownStorageConfig
from .patch import FilePatch, apply_patches

logger = logging.getLogger(__name__)

TASKS_FILE = "tasks.md"
CONTENT_DIR = "content"
INDENT = "\t"
UNTITLED = "Untitled Task"

PAYLOAD_FIELDS = ("summary", "description", "prompt", "role", "contexts", "status")

LINE_RE = re.compile(
    r"^(?P<indent>\s*)- \[(?P<mark>[ xX])\] "
    r"\[(?P<title>(?:\\.|[^\]\\])*)\]"
    r"(?:\([^)]*\))?"
    r".*?\sid:(?P<id>\S+)\s*$"
)
INDENT_RE = re.compile(r"^\s*")


@dataclass
class TaskLine:
    """A parsed bullet line."""

    indent: str
    done: bool
    title: str
    task_id: str


def escape_title(title: str) -> str:
    title = " ".join(title.splitlines())
    return title.replace("\\", "\\\\").replace("]", "\\]")


def unescape_title(title: str) -> str:
    return re.sub(r"\\(.)", r"\1", title)


def parse_line(line: str) -> TaskLine | None:
    match = LINE_RE.match(line)
    if not match:
        return None
    return TaskLine(
        indent=match["indent"],
        done=match["mark"] in ("x", "X"),
        title=unescape_title(match["title"]),
        task_id=match["id"],
    )


def format_line(indent: str, task_id: str, title: str, done: bool) -> str:
    mark = "x" if done else " "
    return (
        f"{indent}- [{mark}] [{escape_title(title)}]"
        f"(./{CONTENT_DIR}/{task_id}.md) id:{task_id}"
    )


def indent_of(line: str) -> str:
    return INDENT_RE.match(line).group(0)


def find_line(lines: list[str], task_id: str) -> int:
    """Index of the bullet line carrying task_id, or -1."""
    for i, line in enumerate(lines):
        entry = parse_line(line)
        if entry is not None and entry.task_id == task_id:
            return i
    return -1


def subtree_indices(lines: list[str], index: int) -> list[int]:
    """Indices of the lines nested under lines[index].

    Scanning stops at the first line that is not indented deeper than the
    task line.
    """
    base = indent_of(lines[index])
    nested: list[int] = []
    for i in range(index + 1, len(lines)):
        indent = indent_of(lines[i])
        if len(indent) <= len(base):
            break
        if indent.startswith(base + INDENT):
            nested.append(i)
    return nested


def _split(content: str) -> list[str]:
    lines = content.split("\n")
    while lines and lines[-1] == "":
        lines.pop()
    return lines


def _task_lines(content: str) -> list[str]:
    """Non-blank lines. Blank lines carry no indentation and would end a subtree."""
    return [line for line in _split(content) if line.strip()]


def _join(lines: list[str]) -> str:
    return "\n".join(lines) + "\n" if lines else ""


class MarkdownStorage:
    """Stores the task forest as a nested Markdown checklist."""

    def __init__(self) -> None:
        self.storage_path: Path | None = None
        self.tasks_file_path: Path | None = None
        self.content_dir_path: Path | None = None

    def init(self, config: MarkdownStorageConfig | dict[str, Any] | None = None) -> None:
        """Create the storage directory, tasks.md and content/ when missing.

        Without a configured path the current working directory is used.
        """
        if isinstance(config, dict):
            config = MarkdownStorageConfig(**config)
        path = config.path if config is not None and config.path else Path.cwd()

        self.storage_path = Path(path)
        self.tasks_file_path = self.storage_path / TASKS_FILE
        self.content_dir_path = self.storage_path / CONTENT_DIR

        self.storage_path.mkdir(parents=True, exist_ok=True)
        if not self.tasks_file_path.exists():
            self.tasks_file_path.write_text("", encoding="utf-8")
        self.content_dir_path.mkdir(parents=True, exist_ok=True)
        logger.info(f"MarkdownStorage ready path={self.storage_path}")

    # ---- file helpers ----

    def _ensure_initialized(self) -> Path:
        if self.tasks_file_path is None:
            raise NotInitializedError(self.__class__.__name__)
        return self.tasks_file_path

    def _read_tasks_file(self) -> str:
        tasks_file = self._ensure_initialized()
        try:
            return tasks_file.read_text(encoding="utf-8")
        except FileNotFoundError:
            return ""
        except (OSError, UnicodeDecodeError) as e:
            raise FileReadError(tasks_file, e) from e

    def _rewrite(self, original: str, new: str) -> None:
        """Replace the whole tasks file through the patch engine."""
        if original == new:
            return
        result = apply_patches([FilePatch(self._ensure_initialized(), original, new)])[0]
        if result.err is not None:
            raise result.err

    def _content_path(self, task_id: str) -> Path:
        self._ensure_initialized()
        return self.content_dir_path / f"{task_id}.md"

    def _read_payload(self, task_id: str) -> dict[str, Any]:
        content_path = self._content_path(task_id)
        try:
            text = content_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Could not read content file {content_path} for task {task_id}: {e}")
            return {}

        if not text.strip():
            return {}
        try:
            payload = json.loads(text)
        except json.JSONDecodeError:
            return {"prompt": text}
        return payload if isinstance(payload, dict) else {"prompt": text}

    def _write_payload(self, task_id: str, payload: dict[str, Any]) -> None:
        content_path = self._content_path(task_id)
        try:
            content_path.write_text(
                json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8"
            )
        except OSError as e:
            raise FileModifyError(content_path, e) from e

    @staticmethod
    def _payload_for(task: Task) -> dict[str, Any]:
        return {
            "summary": task.summary,
            "description": task.description,
            "prompt": task.prompt,
            "role": task.role,
            "contexts": list(task.contexts),
            "status": task.status.value,
            "created_at": task.created_at.isoformat(),
            "updated_at": task.updated_at.isoformat(),
        }

    def _to_task(self, entry: TaskLine, parent_id: str | None) -> Task:
        payload = self._read_payload(entry.task_id)

        if entry.done:
            status = TaskStatus.DONE
        elif payload.get("status") == TaskStatus.DELETED:
            status = TaskStatus.DELETED
        else:
            status = TaskStatus.PENDING

        contexts = payload.get("contexts")
        if contexts is None and payload.get("context"):
            contexts = [payload["context"]]

        values: dict[str, Any] = {
            "id": entry.task_id,
            "parent_id": parent_id,
            "title": entry.title,
            "status": status,
        }
        extra = {
            "summary": payload.get("summary"),
            "description": payload.get("description"),
            "prompt": payload.get("prompt"),
            "role": payload.get("role"),
            "contexts": contexts,
            "created_at": payload.get("created_at"),
            "updated_at": payload.get("updated_at"),
        }
        values.update({k: v for k, v in extra.items() if v is not None})

        try:
            return Task.model_validate(values)
        except ValidationError as e:
            logger.warning(f"Ignoring malformed content for task {entry.task_id}: {e}")
            return Task(id=entry.task_id, parent_id=parent_id, title=entry.title, status=status)

    @staticmethod
    def _parent_of(lines: list[str], index: int) -> str | None:
        indent = indent_of(lines[index])
        if not indent:
            return None
        for i in range(index - 1, -1, -1):
            entry = parse_line(lines[i])
            if entry is not None and len(entry.indent) < len(indent):
                return entry.task_id
        return None

    # ---- storage contract ----

    def create_task(self, task: TaskPatch | dict[str, Any]) -> Task:
        """Add a bullet line directly below its parent, or at the end.

        A parent id that has no line in the file makes the task top-level.
        """
        tasks_file = self._ensure_initialized()
        fields = as_patch(task).present()
        now = utc_now()

        new_task = Task(
            id=fields.get("id") or str(uuid4()),
            parent_id=fields.get("parent_id"),
            title=fields.get("title") or UNTITLED,
            summary=fields.get("summary") or "",
            description=fields.get("description") or "",
            prompt=fields.get("prompt") or "",
            role=fields.get("role") or "",
            contexts=fields.get("contexts") or [],
            status=fields.get("status") or TaskStatus.PENDING,
            created_at=fields.get("created_at") or now,
            updated_at=fields.get("updated_at") or now,
        )

        content_path = self._content_path(new_task.id)
        if not content_path.exists():
            self._write_payload(new_task.id, self._payload_for(new_task))

        original = self._read_tasks_file()
        lines = _split(original)
        done = new_task.status == TaskStatus.DONE

        parent_index = find_line(lines, new_task.parent_id) if new_task.parent_id else -1
        if parent_index != -1:
            indent = indent_of(lines[parent_index]) + INDENT
            lines.insert(
                parent_index + 1, format_line(indent, new_task.id, new_task.title, done)
            )
        else:
            if new_task.parent_id:
                logger.warning(
                    f"Parent {new_task.parent_id} not in {tasks_file}, "
                    f"adding task {new_task.id} at top level"
                )
            lines.append(format_line("", new_task.id, new_task.title, done))

        self._rewrite(original, _join(lines))
        logger.debug(f"Task created id={new_task.id} parent={new_task.parent_id}")
        return new_task

    def get_task(self, task_id: str) -> Task:
        """Read one task from its line and payload file.

        Raises:
            NotFoundError: If no line carries the id
        """
        tasks_file = self._ensure_initialized()
        lines = _task_lines(self._read_tasks_file())
        index = find_line(lines, task_id)
        if index == -1:
            raise NotFoundError(f"Task with id {task_id} not found in {tasks_file}")
        return self._to_task(parse_line(lines[index]), self._parent_of(lines, index))

    def get_tasks(self, parent_id: str | None = None) -> list[Task]:
        """Top-level tasks, or the direct children of parent_id."""
        self._ensure_initialized()
        lines = _task_lines(self._read_tasks_file())
        tasks: list[Task] = []

        if not parent_id:
            for line in lines:
                entry = parse_line(line)
                if entry is not None and not entry.indent:
                    tasks.append(self._to_task(entry, None))
            return tasks

        parent_index = find_line(lines, parent_id)
        if parent_index == -1:
            return tasks

        parent_indent = indent_of(lines[parent_index])
        child_indent = parent_indent + INDENT
        for line in lines[parent_index + 1 :]:
            indent = indent_of(line)
            if len(indent) <= len(parent_indent):
                break
            if indent == child_indent:
                entry = parse_line(line)
                if entry is not None:
                    tasks.append(self._to_task(entry, parent_id))
        return tasks

    def update_task(self, task_id: str, task: TaskPatch | dict[str, Any]) -> Task:
        """Rewrite the task line and payload file with the present fields.

        A changed ``parent_id`` moves the task and its subtree. ``updated_at``
        comes from the patch when given, otherwise it is set to now. Nothing is
        written when the move would create a cycle.

        Raises:
            NotFoundError: If no line carries the id
            CycleError: If the new parent is inside the task's own subtree
        """
        tasks_file = self._ensure_initialized()
        fields = as_patch(task).present()
        for immutable in ("id", "created_at"):
            fields.pop(immutable, None)
        updated_at = fields.pop("updated_at", None) or utc_now()

        lines = _task_lines(self._read_tasks_file())
        index = find_line(lines, task_id)
        if index == -1:
            raise NotFoundError(f"Task with id {task_id} not found in {tasks_file}")

        new_parent_id = fields.get("parent_id")
        move = "parent_id" in fields and new_parent_id != self._parent_of(lines, index)
        if move and new_parent_id:
            self._check_cycle(lines, index, task_id, new_parent_id)

        entry = parse_line(lines[index])
        title = fields.get("title") or entry.title
        done = entry.done
        if fields.get("status") is not None:
            done = fields["status"] == TaskStatus.DONE

        original_line = lines[index]
        updated_line = format_line(entry.indent, task_id, title, done)
        if updated_line != original_line:
            result = apply_patches([FilePatch(tasks_file, original_line, updated_line)])[0]
            if result.err is not None:
                raise result.err

        payload = self._read_payload(task_id)
        for name in PAYLOAD_FIELDS:
            if fields.get(name) is not None:
                value = fields[name]
                payload[name] = value.value if isinstance(value, TaskStatus) else value
        payload.setdefault("created_at", updated_at.isoformat())
        payload["updated_at"] = updated_at.isoformat()
        self._write_payload(task_id, payload)

        if move:
            self._move(task_id, new_parent_id)

        return self.get_task(task_id)

    @staticmethod
    def _check_cycle(lines: list[str], index: int, task_id: str, new_parent_id: str) -> None:
        """Fail if new_parent_id is the task at lines[index] or nested under it."""
        for i in [index, *subtree_indices(lines, index)]:
            entry = parse_line(lines[i])
            if entry is not None and entry.task_id == new_parent_id:
                raise CycleError(task_id, new_parent_id)

    def _move(self, task_id: str, new_parent_id: str | None) -> None:
        """Move a task line and its nested lines under another parent."""
        original = self._read_tasks_file()
        lines = _task_lines(original)
        index = find_line(lines, task_id)
        block = [index, *subtree_indices(lines, index)]

        if new_parent_id:
            self._check_cycle(lines, index, task_id, new_parent_id)

        base = indent_of(lines[index])
        moved = [lines[i][len(base) :] for i in block]
        in_block = set(block)
        remaining = [line for i, line in enumerate(lines) if i not in in_block]

        parent_index = find_line(remaining, new_parent_id) if new_parent_id else -1
        if parent_index != -1:
            indent = indent_of(remaining[parent_index]) + INDENT
            remaining[parent_index + 1 : parent_index + 1] = [indent + m for m in moved]
        else:
            if new_parent_id:
                logger.warning(f"Parent {new_parent_id} not found, moving {task_id} to top level")
            remaining.extend(moved)

        self._rewrite(original, _join(remaining))

    def delete_task(self, task_id: str) -> None:
        """Remove a task line together with every line nested under it.

        Unknown ids are ignored.
        """
        self._ensure_initialized()
        self._remove_payload(task_id)

        original = self._read_tasks_file()
        if not original:
            return

        lines = _task_lines(original)
        index = find_line(lines, task_id)
        if index == -1:
            return

        removed = {index, *subtree_indices(lines, index)}
        for i in sorted(removed - {index}):
            entry = parse_line(lines[i])
            if entry is not None:
                self._remove_payload(entry.task_id)

        remaining = [line for i, line in enumerate(lines) if i not in removed]
        self._rewrite(original, _join(remaining))

    def _remove_payload(self, task_id: str) -> None:
        content_path = self._content_path(task_id)
        try:
            content_path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Error deleting content file {content_path}: {e}")
