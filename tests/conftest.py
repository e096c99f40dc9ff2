"""Shared fakes for provider and store tests."""

import asyncio
from datetime import datetime
from typing import List, Optional

import pytest

from llm.base_client import BaseLLMClient, LLMResponse, Message, ProviderError
from memory.store import ContextStore, InMemoryContextStore, PersistenceError
from schemas.context import ConversationContext


class FakeLLMClient(BaseLLMClient):
    """Returns canned replies and records every call."""

    def __init__(self, name: str, replies: Optional[List[str]] = None, default: str = "Happy to help."):
        self.name = name
        self.replies = list(replies or [])
        self.default = default
        self.calls: List[List[Message]] = []

    async def chat(self, messages, temperature=0.7, max_tokens=500, model=None) -> LLMResponse:
        self.calls.append(list(messages))
        content = self.replies.pop(0) if self.replies else self.default
        return LLMResponse(content=content)

    def get_provider_name(self) -> str:
        return self.name

    def get_model_name(self) -> str:
        return f"{self.name}-model"


class FailingLLMClient(FakeLLMClient):
    """Always raises a provider error."""

    async def chat(self, messages, temperature=0.7, max_tokens=500, model=None) -> LLMResponse:
        self.calls.append(list(messages))
        raise ProviderError(self.name, "simulated outage")


class SlowLLMClient(FakeLLMClient):
    """Sleeps before replying."""

    def __init__(self, name: str, delay: float):
        super().__init__(name)
        self.delay = delay

    async def chat(self, messages, temperature=0.7, max_tokens=500, model=None) -> LLMResponse:
        self.calls.append(list(messages))
        await asyncio.sleep(self.delay)
        return LLMResponse(content=self.default)


class BrokenContextStore(ContextStore):
    """Store whose every operation fails."""

    async def load(self, user_id: str, phone: str) -> Optional[ConversationContext]:
        raise PersistenceError("store unavailable")

    async def upsert(self, context: ConversationContext):
        raise PersistenceError("store unavailable")

    async def list_active(self, since: datetime) -> List[ConversationContext]:
        raise PersistenceError("store unavailable")


class FlakyContextStore(InMemoryContextStore):
    """In-memory store whose next `failures` reads fail."""

    def __init__(self, failures: int = 1):
        super().__init__()
        self.failures = failures
        self.upserts = 0

    async def load(self, user_id: str, phone: str) -> Optional[ConversationContext]:
        if self.failures > 0:
            self.failures -= 1
            raise PersistenceError("transient read failure")
        return await super().load(user_id, phone)

    async def upsert(self, context: ConversationContext):
        self.upserts += 1
        await super().upsert(context)


@pytest.fixture
def memory_store():
    return InMemoryContextStore()
