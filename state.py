"""Process-local mutable state shared by the pipeline components."""

import asyncio
from typing import TYPE_CHECKING, Dict, Set, Tuple

from schemas.context import ConversationContext

if TYPE_CHECKING:
    from llm.provider_pool import ProviderState


ConversationKey = Tuple[str, str]
MessageKey = Tuple[str, str, str]


class OrchestratorState:
    """
    Caches, counters and in-flight markers for one process.

    Created by the entry point and handed to each component, so every test
    can start from a fresh instance.
    """

    def __init__(self):
        self.context_cache: Dict[ConversationKey, ConversationContext] = {}
        self.provider_states: Dict[str, "ProviderState"] = {}
        self.in_flight: Set[MessageKey] = set()
        self.conversation_locks: Dict[ConversationKey, asyncio.Lock] = {}
        self.background_tasks: Set[asyncio.Task] = set()

    def try_mark_in_flight(self, key: MessageKey) -> bool:
        """Mark a message as in flight. Returns False if it already was."""
        if key in self.in_flight:
            return False
        self.in_flight.add(key)
        return True

    def clear_in_flight(self, key: MessageKey):
        self.in_flight.discard(key)

    def conversation_lock(self, key: ConversationKey) -> asyncio.Lock:
        """Get the lock serializing updates to one conversation."""
        lock = self.conversation_locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self.conversation_locks[key] = lock
        return lock

    def track_task(self, task: asyncio.Task):
        """Keep a reference to a background task until it finishes."""
        self.background_tasks.add(task)
        task.add_done_callback(self.background_tasks.discard)
