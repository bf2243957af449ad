"""Hierarchical task tracking persisted to TOML or Markdown files."""

__version__ = "0.1.0"
