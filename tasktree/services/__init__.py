"""Business logic services."""

from .task import TaskNode, TaskRepository

__all__ = ["TaskNode", "TaskRepository"]
