"""Memory system for conversation persistence."""

from .store import ContextStore, InMemoryContextStore, PersistenceError
from .sqlite_store import SQLiteContextStore
from .context_manager import ContextManager

__all__ = [
    "ContextStore",
    "InMemoryContextStore",
    "PersistenceError",
    "SQLiteContextStore",
    "ContextManager",
]
