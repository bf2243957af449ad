"""Core exception classes for the task tree."""

from pathlib import Path


class TaskTreeError(Exception):
    """Base class for all task tree errors."""


class NotFoundError(TaskTreeError):
    """Raised when a task is not found."""


class ParentNotFoundError(NotFoundError):
    """Raised when a referenced parent task does not exist."""

    def __init__(self, parent_id: str):
        super().__init__(f"Parent task with id {parent_id} not found.")
        self.parent_id = parent_id


class CycleError(TaskTreeError):
    """Raised when a parent assignment would make a task its own ancestor."""

    def __init__(self, task_id: str, parent_id: str):
        super().__init__(
            f"Setting parent {parent_id} for task {task_id} would create a cycle."
        )
        self.task_id = task_id
        self.parent_id = parent_id


class MissingRequiredFieldError(TaskTreeError):
    """Raised when a required field is missing on creation."""

    def __init__(self, field_name: str):
        super().__init__(f"Required field '{field_name}' is missing.")
        self.field_name = field_name


class ImmutableFieldError(TaskTreeError):
    """Raised when an immutable field is updated."""

    def __init__(self, field_name: str):
        super().__init__(f"Field '{field_name}' is immutable and cannot be updated.")
        self.field_name = field_name


class ConfigError(TaskTreeError):
    """Raised when storage or application configuration is invalid."""


class NotInitializedError(TaskTreeError):
    """Raised when a storage is used before init() was called."""

    def __init__(self, storage_name: str):
        super().__init__(f"{storage_name} is not initialized. Call init() first.")


class FileError(TaskTreeError):
    """Base class for file level failures. Carries the offending path."""

    def __init__(self, message: str, file_path: str | Path):
        super().__init__(message)
        self.file_path = str(file_path)


class TargetFileNotFoundError(FileError, FileNotFoundError):
    """Raised when a file to read or patch does not exist."""

    def __init__(self, file_path: str | Path):
        super().__init__(f"File not found: {file_path}", file_path)


class FileReadError(FileError):
    """Raised when a file exists but cannot be read."""

    def __init__(self, file_path: str | Path, original_error: Exception | None = None):
        message = f"Unable to read file: {file_path}."
        if original_error is not None:
            message += f" Original error: {original_error}"
        super().__init__(message, file_path)


class FileModifyError(FileError):
    """Raised when a file cannot be written."""

    def __init__(self, file_path: str | Path, original_error: Exception | None = None):
        message = f"Unable to modify file: {file_path}."
        if original_error is not None:
            message += f" Original error: {original_error}"
        super().__init__(message, file_path)
