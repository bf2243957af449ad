"""Storage backends for the task repository."""

from tasktree.core.config import Settings
from tasktree.core.errors import ConfigError

from .base import MarkdownStorageConfig, TaskStorage, TomlStorageConfig
from .markdown import MarkdownStorage
from .toml_file import TomlFileStorage


def create_storage(settings: Settings) -> TaskStorage:
    """Build and initialize the backend selected by the settings."""
    backend = settings.storage_backend.strip().lower()
    if backend == "toml":
        storage = TomlFileStorage()
        storage.init(TomlStorageConfig(file_path=settings.toml_file))
        return storage
    if backend == "markdown":
        storage = MarkdownStorage()
        storage.init(MarkdownStorageConfig(path=settings.markdown_dir))
        return storage
    raise ConfigError(
        f"Unknown storage backend '{settings.storage_backend}'. Use 'toml' or 'markdown'."
    )


__all__ = [
    "MarkdownStorage",
    "MarkdownStorageConfig",
    "TaskStorage",
    "TomlFileStorage",
    "TomlStorageConfig",
    "create_storage",
]
