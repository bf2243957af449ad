"""Application configuration."""

import os

from dotenv import load_dotenv
from pydantic import BaseModel

load_dotenv()


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Environment
    env: str = os.getenv("APP_ENV", "development")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    # Storage backend: "toml" or "markdown"
    storage_backend: str = os.getenv("TASKTREE_STORAGE", "toml")
    toml_file: str = os.getenv("TASKTREE_TOML_FILE", ".tasktree/tasks.toml")
    markdown_dir: str = os.getenv("TASKTREE_MARKDOWN_DIR", ".tasktree")


settings = Settings()
