"""Pytest configuration and fixtures."""

import os

import pytest

from tasktree.models import TaskCreate
from tasktree.services import TaskRepository
from tasktree.storage import (
    MarkdownStorage,
    MarkdownStorageConfig,
    TomlFileStorage,
    TomlStorageConfig,
)

# Set test environment
os.environ["APP_ENV"] = "test"


def create_test_task(repo: TaskRepository, **overrides) -> str:
    """Helper function to create a test task with default values."""
    data = {
        "title": "Test Task",
        "summary": "Test Summary",
        "description": "Test Description",
        "prompt": "Test Prompt",
        "role": "agent",
    }
    data.update(overrides)
    return repo.create(TaskCreate(**data))


@pytest.fixture(scope="function")
def toml_path(tmp_path):
    """Path of a TOML snapshot file inside a temporary directory."""
    return tmp_path / "data" / "tasks.toml"


@pytest.fixture(scope="function")
def toml_storage(toml_path):
    """Initialized TOML storage on an empty file."""
    storage = TomlFileStorage()
    storage.init(TomlStorageConfig(file_path=toml_path))
    return storage


@pytest.fixture(scope="function")
def markdown_dir(tmp_path):
    return tmp_path / "md"


@pytest.fixture(scope="function")
def markdown_storage(markdown_dir):
    """Initialized Markdown storage on an empty directory."""
    storage = MarkdownStorage()
    storage.init(MarkdownStorageConfig(path=markdown_dir))
    return storage


@pytest.fixture(scope="function", params=["toml", "markdown"])
def storage(request):
    """Each storage backend in turn."""
    return request.getfixturevalue(f"{request.param}_storage")


@pytest.fixture(scope="function")
def repo(storage):
    """Task repository on top of each storage backend."""
    return TaskRepository(storage)
