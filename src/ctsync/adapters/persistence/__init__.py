"""Durable storage adapters."""

from .file_store import FileDefinitionStore
from .sqlite_store import SQLiteSyncStore


__all__ = ["FileDefinitionStore", "SQLiteSyncStore"]
