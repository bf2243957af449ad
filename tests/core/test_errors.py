"""Tests for error classes, settings and logging setup."""

import logging

import pytest

from tasktree.core.config import Settings
from tasktree.core.errors import (
    ConfigError,
    CycleError,
    FileError,
    FileModifyError,
    FileReadError,
    ImmutableFieldError,
    NotFoundError,
    NotInitializedError,
    ParentNotFoundError,
    TargetFileNotFoundError,
    TaskTreeError,
)
from tasktree.core.logging import setup_logging
from tasktree.storage import MarkdownStorage, TomlFileStorage, create_storage


def test_error_messages():
    """Test that errors carry readable messages and their context."""
    assert str(ParentNotFoundError("p1")) == "Parent task with id p1 not found."
    assert str(CycleError("t1", "p1")) == (
        "Setting parent p1 for task t1 would create a cycle."
    )
    assert str(ImmutableFieldError("id")) == (
        "Field 'id' is immutable and cannot be updated."
    )
    assert str(NotInitializedError("TomlFileStorage")) == (
        "TomlFileStorage is not initialized. Call init() first."
    )


def test_error_hierarchy():
    """Test that every error can be caught as TaskTreeError."""
    for error in (
        ParentNotFoundError("p"),
        CycleError("t", "p"),
        ConfigError("bad"),
        TargetFileNotFoundError("x.md"),
        FileReadError("x.md"),
        FileModifyError("x.md"),
    ):
        assert isinstance(error, TaskTreeError)

    assert isinstance(ParentNotFoundError("p"), NotFoundError)
    assert isinstance(TargetFileNotFoundError("x.md"), FileNotFoundError)
    assert isinstance(FileReadError("x.md"), FileError)


def test_file_errors_include_original_error():
    """Test that wrapped I/O errors keep the path and the cause."""
    error = FileReadError("notes.md", PermissionError("denied"))

    assert error.file_path == "notes.md"
    assert str(error) == "Unable to read file: notes.md. Original error: denied"
    assert str(FileModifyError("notes.md")) == "Unable to modify file: notes.md."


def test_create_storage_toml(tmp_path):
    """Test building the TOML backend from settings."""
    settings = Settings(storage_backend="toml", toml_file=str(tmp_path / "t.toml"))

    storage = create_storage(settings)

    assert isinstance(storage, TomlFileStorage)
    assert (tmp_path / "t.toml").exists()


def test_create_storage_markdown(tmp_path):
    """Test building the Markdown backend from settings."""
    settings = Settings(storage_backend=" Markdown ", markdown_dir=str(tmp_path / "md"))

    storage = create_storage(settings)

    assert isinstance(storage, MarkdownStorage)
    assert (tmp_path / "md" / "tasks.md").exists()


def test_create_storage_unknown_backend():
    """Test that an unknown backend name is a configuration error."""
    with pytest.raises(ConfigError) as exc_info:
        create_storage(Settings(storage_backend="sqlite"))

    assert "sqlite" in str(exc_info.value)


def test_setup_logging_replaces_handlers():
    """Test that repeated setup keeps a single handler."""
    logger = setup_logging("debug")
    setup_logging("WARNING")

    assert logger.name == "tasktree"
    assert len(logger.handlers) == 1
    assert logger.level == logging.WARNING

    setup_logging("INFO")
