"""Tests for ContextManager caching, trimming and persistence."""

import asyncio
import pytest
from datetime import datetime, timedelta

from conftest import BrokenContextStore, FlakyContextStore
from memory.context_manager import ContextManager
from memory.store import InMemoryContextStore
from schemas.context import ContextUpdate, ConversationStage, MessageEntry, MessageRole
from state import OrchestratorState


class TestContextManager:
    """Test conversation memory."""

    def setup_method(self):
        """Set up test fixtures."""
        self.state = OrchestratorState()
        self.store = InMemoryContextStore()
        self.manager = ContextManager(store=self.store, state=self.state)

    @pytest.mark.asyncio
    async def test_get_returns_empty_context_on_miss(self):
        """Test a fresh context is created for an unknown conversation."""
        context = await self.manager.get("u1", "555")
        assert context.user_id == "u1"
        assert context.phone == "555"
        assert context.message_history == []
        assert context.emotional_state == "neutral"

    @pytest.mark.asyncio
    async def test_get_is_idempotent(self):
        """Test two reads without an update return equal values."""
        await self.manager.append_message("u1", "555", "Hello")
        first = await self.manager.get("u1", "555")
        second = await self.manager.get("u1", "555")
        assert first == second

    @pytest.mark.asyncio
    async def test_get_returns_copy(self):
        """Test mutating a returned context does not touch the cache."""
        context = await self.manager.get("u1", "555")
        context.message_history.append(MessageEntry(role=MessageRole.USER, content="x"))
        again = await self.manager.get("u1", "555")
        assert again.message_history == []

    @pytest.mark.asyncio
    async def test_message_log_capped_fifo(self):
        """Test the log keeps the 50 most recent messages in order."""
        for i in range(60):
            await self.manager.append_message("u1", "555", f"message {i}")

        context = await self.manager.get("u1", "555")
        assert len(context.message_history) == 50
        assert [m.content for m in context.message_history] == [f"message {i}" for i in range(10, 60)]

    @pytest.mark.asyncio
    async def test_fifty_first_message_evicts_oldest(self):
        """Test a full log drops its oldest entry for a new one."""
        messages = [MessageEntry(role=MessageRole.USER, content=f"m{i}") for i in range(50)]
        await self.manager.update("u1", "555", ContextUpdate(messages=messages))

        await self.manager.append_message("u1", "555", "newest")

        context = await self.manager.get("u1", "555")
        assert len(context.message_history) == 50
        assert context.message_history[0].content == "m1"
        assert context.message_history[-1].content == "newest"

    @pytest.mark.asyncio
    async def test_intent_and_emotion_logs_capped(self):
        """Test intent and emotional histories keep 20 entries."""
        for i in range(25):
            await self.manager.record_intent("u1", "555", f"intent{i}", 0.8)
            await self.manager.update_emotional_state("u1", "555", f"state{i}")

        context = await self.manager.get("u1", "555")
        assert len(context.intent_history) == 20
        assert context.intent_history[0].intent == "intent5"
        assert len(context.emotional_history) == 20
        assert context.emotional_state == "state24"

    @pytest.mark.asyncio
    async def test_update_persists_to_store(self):
        """Test every update is written through to the store."""
        await self.manager.append_message("u1", "555", "Hello")

        stored = await self.store.load("u1", "555")
        assert stored is not None
        assert stored.message_history[0].content == "Hello"
        assert stored.last_interaction is not None

    @pytest.mark.asyncio
    async def test_cache_miss_loads_from_store(self):
        """Test a new manager reads contexts written by a previous one."""
        await self.manager.append_message("u1", "555", "Hello")

        other = ContextManager(store=self.store, state=OrchestratorState())
        context = await other.get("u1", "555")
        assert [m.content for m in context.message_history] == ["Hello"]

    @pytest.mark.asyncio
    async def test_store_failure_degrades(self):
        """Test a broken store yields empty contexts and keeps cache updates."""
        manager = ContextManager(store=BrokenContextStore(), state=OrchestratorState())

        context = await manager.get("u1", "555")
        assert context.message_history == []

        await manager.append_message("u1", "555", "Hello")
        context = await manager.get("u1", "555")
        assert [m.content for m in context.message_history] == ["Hello"]

    @pytest.mark.asyncio
    async def test_preferences_merge(self):
        """Test preferences merge and are stamped."""
        await self.manager.set_user_preferences("u1", "555", {"language": "id"})
        prefs = await self.manager.set_user_preferences("u1", "555", {"style": "short"})
        assert prefs["language"] == "id"
        assert prefs["style"] == "short"
        assert "last_updated" in prefs

    def test_stage_thresholds(self):
        """Test conversation stage labels."""
        from schemas.context import ConversationContext

        def stage_for(count):
            context = ConversationContext(
                user_id="u", phone="p",
                message_history=[MessageEntry(role=MessageRole.USER, content="x")] * count
            )
            return ContextManager.conversation_stage(context)

        assert stage_for(0) == ConversationStage.INITIAL
        assert stage_for(1) == ConversationStage.GREETING
        assert stage_for(3) == ConversationStage.GREETING
        assert stage_for(4) == ConversationStage.INQUIRY
        assert stage_for(10) == ConversationStage.INQUIRY
        assert stage_for(11) == ConversationStage.ENGAGEMENT
        assert stage_for(20) == ConversationStage.ENGAGEMENT
        assert stage_for(21) == ConversationStage.ADVANCED

    @pytest.mark.asyncio
    async def test_summarize(self):
        """Test summary counts and dominant intents."""
        await self.manager.append_message("u1", "555", "Hi", intent="greeting",
                                          metadata={"topics": ["booking"]})
        await self.manager.append_message("u1", "555", "Hello!", role=MessageRole.ASSISTANT)
        for intent in ["question", "question", "booking"]:
            await self.manager.record_intent("u1", "555", intent, 0.8)

        summary = await self.manager.summarize("u1", "555")
        assert summary.total_messages == 2
        assert summary.user_messages == 1
        assert summary.assistant_messages == 1
        assert summary.intent_count == 3
        assert summary.dominant_intents[0].intent == "question"
        assert summary.dominant_intents[0].count == 2
        assert summary.topics == ["booking"]
        assert summary.stage == ConversationStage.GREETING
        assert 0.0 <= summary.engagement <= 1.0

    @pytest.mark.asyncio
    async def test_ai_context_flow(self):
        """Test the AI context reports the conversation flow."""
        await self.manager.append_message("u1", "555", "Do you have this item?", intent="product_inquiry")

        ai_context = await self.manager.get_ai_context("u1", "555")
        assert ai_context.conversation_flow == "product_focused"
        assert len(ai_context.recent_messages) == 1

        empty = await self.manager.get_ai_context("u2", "555")
        assert empty.conversation_flow == "none"

    @pytest.mark.asyncio
    async def test_sweep_evicts_idle_contexts_only(self):
        """Test the sweep drops idle contexts from the cache but not the store."""
        await self.manager.append_message("u1", "555", "old")
        await self.manager.append_message("u2", "555", "recent")
        self.state.context_cache[("u1", "555")].last_interaction = datetime.now() - timedelta(hours=25)

        evicted = self.manager.sweep()

        assert evicted == 1
        assert ("u1", "555") not in self.state.context_cache
        assert ("u2", "555") in self.state.context_cache
        assert await self.store.load("u1", "555") is not None

    @pytest.mark.asyncio
    async def test_failed_read_does_not_overwrite_stored_history(self):
        """Test an update after a failed read keeps the stored history."""
        store = FlakyContextStore(failures=0)
        writer = ContextManager(store=store, state=OrchestratorState())
        for i in range(30):
            await writer.append_message("u1", "555", f"message {i}")

        store.failures = 1
        upserts = store.upserts
        manager = ContextManager(store=store, state=OrchestratorState())
        await manager.append_message("u1", "555", "during outage")

        assert store.upserts == upserts
        stored = await store.load("u1", "555")
        assert len(stored.message_history) == 30

        await manager.append_message("u1", "555", "after outage")

        stored = await store.load("u1", "555")
        assert len(stored.message_history) == 32
        assert [m.content for m in stored.message_history[-2:]] == ["during outage", "after outage"]
        context = await manager.get("u1", "555")
        assert len(context.message_history) == 32

    @pytest.mark.asyncio
    async def test_unreadable_store_keeps_updates_in_memory(self):
        """Test updates accumulate in the cache while the store stays unreadable."""
        store = FlakyContextStore(failures=100)
        manager = ContextManager(store=store, state=OrchestratorState())

        await manager.append_message("u1", "555", "one")
        await manager.append_message("u1", "555", "two")

        assert store.upserts == 0
        context = await manager.get("u1", "555")
        assert [m.content for m in context.message_history] == ["one", "two"]

    @pytest.mark.asyncio
    async def test_sweep_evicts_contexts_never_updated(self):
        """Test contexts cached by reads alone are evicted once idle."""
        for i in range(100):
            await self.manager.get("u1", f"phone-{i}")
        for i in range(3):
            self.state.conversation_lock(("u1", f"phone-{i}"))
        self.state.conversation_lock(("u1", "never-cached"))

        evicted = self.manager.sweep(now=datetime.now() + timedelta(days=30))

        assert evicted == 100
        assert self.state.context_cache == {}
        assert self.state.conversation_locks == {}

    @pytest.mark.asyncio
    async def test_warm_up_loads_recent(self):
        """Test warm up fills the cache from recently active stored contexts."""
        await self.manager.append_message("u1", "555", "Hello")

        state = OrchestratorState()
        manager = ContextManager(store=self.store, state=state)
        loaded = await manager.warm_up()

        assert loaded == 1
        assert ("u1", "555") in state.context_cache

    @pytest.mark.asyncio
    async def test_start_and_stop(self):
        """Test the background sweep can be started and stopped."""
        manager = ContextManager(store=self.store, state=OrchestratorState(), sweep_interval=0.01)
        await manager.append_message("u1", "555", "Hello")
        manager.start()
        await asyncio.sleep(0.03)
        await manager.stop()
        assert manager.cache == {}
