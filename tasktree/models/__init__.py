"""Data models."""

from .task import Task, TaskCreate, TaskPatch, TaskStatus, as_patch

__all__ = ["Task", "TaskCreate", "TaskPatch", "TaskStatus", "as_patch"]
