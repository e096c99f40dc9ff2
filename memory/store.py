"""Persistent context store interface."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from schemas.context import ConversationContext


class PersistenceError(RuntimeError):
    """A context store read or write failed."""


class ContextStore(ABC):
    """Keyed by (user_id, phone); writes are upserts."""

    @abstractmethod
    async def load(self, user_id: str, phone: str) -> Optional[ConversationContext]:
        """
        Load a stored context.

        Returns:
            The stored context, or None if the key has never been written

        Raises:
            PersistenceError: If the store cannot be read
        """
        pass

    @abstractmethod
    async def upsert(self, context: ConversationContext):
        """
        Insert or replace the stored copy of a context.

        Raises:
            PersistenceError: If the store cannot be written
        """
        pass

    @abstractmethod
    async def list_active(self, since: datetime) -> List[ConversationContext]:
        """Contexts whose last interaction is at or after `since`."""
        pass


class InMemoryContextStore(ContextStore):
    """Store backed by a dict of serialized contexts."""

    def __init__(self):
        self._rows: Dict[Tuple[str, str], str] = {}

    async def load(self, user_id: str, phone: str) -> Optional[ConversationContext]:
        raw = self._rows.get((user_id, phone))
        if raw is None:
            return None
        return ConversationContext.model_validate_json(raw)

    async def upsert(self, context: ConversationContext):
        self._rows[(context.user_id, context.phone)] = context.model_dump_json()

    async def list_active(self, since: datetime) -> List[ConversationContext]:
        contexts = [ConversationContext.model_validate_json(raw) for raw in self._rows.values()]
        return [
            ctx for ctx in contexts
            if ctx.last_interaction is not None and ctx.last_interaction >= since
        ]
