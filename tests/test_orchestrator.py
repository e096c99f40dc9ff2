"""Tests for ConversationOrchestrator."""

import asyncio
import random
import pytest
from unittest.mock import AsyncMock

from conftest import BrokenContextStore, FailingLLMClient, FakeLLMClient, SlowLLMClient
from analytics.sink import AnalyticsSink
from config.settings import Settings
from knowledge.provider import KnowledgeProvider
from llm.provider_pool import FALLBACK_PROVIDER_ID, ProviderPool
from memory.context_manager import ContextManager
from memory.store import InMemoryContextStore
from nlu.analyzer import NLUAnalyzer
from orchestrator import ConversationOrchestrator, ERROR_RESPONSE, FOLLOW_UP_QUESTION, EMPATHY_PREFIX, clean_text
from personality.profiles import ProfileRegistry
from personality.transformer import PersonalityTransformer
from schemas.context import MessageRole
from schemas.knowledge import KnowledgeSnapshot
from schemas.nlu import EmotionResult, NLUResult, ResponseStrategy
from schemas.personality import PersonalityProfile, PersonalityType, ResponseLength
from schemas.responses import MessageRequest
from state import OrchestratorState


class RecordingSink(AnalyticsSink):
    def __init__(self):
        self.events = []

    async def log_event(self, event):
        self.events.append(event)


class ExplodingSink(AnalyticsSink):
    async def log_event(self, event):
        raise RuntimeError("sink down")


class StaticKnowledge(KnowledgeProvider):
    def __init__(self, snapshot=None, error=None):
        self.snapshot = snapshot
        self.error = error
        self.calls = []

    async def get_snapshot(self, user_id, query_type="general", params=None):
        self.calls.append((user_id, query_type, params))
        if self.error:
            raise self.error
        return self.snapshot


def build(clients, store=None, profiles=None, knowledge=None, sink=None):
    state = OrchestratorState()
    pool = ProviderPool(clients=clients, state=state, rng=random.Random(0))
    return ConversationOrchestrator(
        state=state,
        context_manager=ContextManager(store=store or InMemoryContextStore(), state=state),
        provider_pool=pool,
        nlu_analyzer=NLUAnalyzer(provider_pool=pool, use_ai=False),
        transformer=PersonalityTransformer(rng=random.Random(0), tone_probability=0.0),
        profiles=profiles,
        knowledge_provider=knowledge,
        analytics_sink=sink or RecordingSink(),
    )


def request(text="Hello", message_id="m1", user_id="u1", phone="555"):
    return MessageRequest(user_id=user_id, phone=phone, message_id=message_id, text=text)


class TestProcessMessage:
    """Test the end-to-end pipeline."""

    @pytest.mark.asyncio
    async def test_hello_on_empty_context(self):
        """Test a greeting on a new conversation stores both turns."""
        orchestrator = build([FakeLLMClient("A", default="Happy to help.")])

        response = await orchestrator.process_message(request("Hello"))

        assert response.success is True
        assert response.provider_id == "A"
        assert response.intent == "greeting"
        assert response.metadata.intent == "greeting"
        assert response.metadata.personality_applied is True

        context = await orchestrator.get_conversation("u1", "555")
        assert len(context.message_history) == 2
        assert context.message_history[0].role == MessageRole.USER
        assert context.message_history[0].content == "Hello"
        assert context.message_history[0].confidence == pytest.approx(0.9)
        assert context.message_history[1].role == MessageRole.ASSISTANT
        assert context.message_history[1].content == response.content
        assert [i.intent for i in context.intent_history] == ["greeting"]
        assert context.emotional_state == "neutral"

    @pytest.mark.asyncio
    async def test_concurrent_duplicate_is_dropped(self):
        """Test the same message id processed twice at once runs only once."""
        client = SlowLLMClient("A", delay=0.05)
        orchestrator = build([client])

        first, second = await asyncio.gather(
            orchestrator.process_message(request("Hello")),
            orchestrator.process_message(request("Hello")),
        )

        results = sorted([first, second], key=lambda r: r.success)
        assert results[0].success is False
        assert results[0].reason == "already_processing"
        assert results[1].success is True
        assert len(client.calls) == 1
        assert orchestrator.state.in_flight == set()

        context = await orchestrator.get_conversation("u1", "555")
        assert len(context.message_history) == 2

    @pytest.mark.asyncio
    async def test_same_id_after_completion_is_processed(self):
        """Test the dedupe marker is cleared once a message finishes."""
        orchestrator = build([FakeLLMClient("A")])

        await orchestrator.process_message(request("Hello"))
        again = await orchestrator.process_message(request("Hello"))

        assert again.success is True

    @pytest.mark.asyncio
    async def test_distinct_messages_of_one_conversation_are_serialized(self):
        """Test concurrent messages of one conversation are applied in order."""
        orchestrator = build([SlowLLMClient("A", delay=0.02)])

        await asyncio.gather(
            orchestrator.process_message(request("first message", message_id="m1")),
            orchestrator.process_message(request("second message", message_id="m2")),
        )

        context = await orchestrator.get_conversation("u1", "555")
        roles = [m.role for m in context.message_history]
        assert roles == [MessageRole.USER, MessageRole.ASSISTANT, MessageRole.USER, MessageRole.ASSISTANT]
        assert context.message_history[0].content == "first message"
        assert context.message_history[2].content == "second message"

    @pytest.mark.asyncio
    async def test_other_conversations_are_independent(self):
        """Test two conversations progress concurrently."""
        orchestrator = build([SlowLLMClient("A", delay=0.02)])

        a, b = await asyncio.gather(
            orchestrator.process_message(request("Hello", user_id="u1")),
            orchestrator.process_message(request("Hello", user_id="u2")),
        )

        assert a.success and b.success
        assert len((await orchestrator.get_conversation("u2", "555")).message_history) == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", ["", "   ", "<>", "< >"])
    async def test_invalid_input_short_circuits(self, text):
        """Test empty input never reaches a provider."""
        client = FakeLLMClient("A")
        orchestrator = build([client])

        response = await orchestrator.process_message(request(text))

        assert response.success is False
        assert response.reason == "invalid_input"
        assert response.intent == "invalid_input"
        assert response.content
        assert client.calls == []
        assert orchestrator.state.in_flight == set()

    @pytest.mark.asyncio
    async def test_unexpected_error_becomes_apology(self):
        """Test an exception inside the pipeline yields the canned error reply."""
        orchestrator = build([FakeLLMClient("A")])
        orchestrator.nlu_analyzer.analyze = AsyncMock(side_effect=RuntimeError("boom"))

        response = await orchestrator.process_message(request("Hello"))

        assert response.content == ERROR_RESPONSE
        assert response.intent == "error"
        assert response.confidence == 0.0
        assert response.success is False
        assert orchestrator.state.in_flight == set()

    @pytest.mark.asyncio
    async def test_providers_exhausted(self):
        """Test a fallback reply is still stored and returned."""
        orchestrator = build([FailingLLMClient("A"), FailingLLMClient("B")])

        response = await orchestrator.process_message(request("Hello"))

        assert response.success is False
        assert response.provider_id == FALLBACK_PROVIDER_ID
        assert response.content
        context = await orchestrator.get_conversation("u1", "555")
        assert len(context.message_history) == 2

    @pytest.mark.asyncio
    async def test_store_failure_does_not_abort(self):
        """Test a broken store still produces a reply."""
        orchestrator = build([FakeLLMClient("A")], store=BrokenContextStore())

        response = await orchestrator.process_message(request("Hello"))

        assert response.success is True
        context = await orchestrator.get_conversation("u1", "555")
        assert len(context.message_history) == 2

    @pytest.mark.asyncio
    async def test_knowledge_failure_uses_empty_snapshot(self):
        """Test a failing knowledge provider does not abort the pipeline."""
        knowledge = StaticKnowledge(error=RuntimeError("sheet offline"))
        orchestrator = build([FakeLLMClient("A")], knowledge=knowledge)

        response = await orchestrator.process_message(request("Hello"))

        assert response.success is True
        assert response.metadata.knowledge_used is False
        assert knowledge.calls

    @pytest.mark.asyncio
    async def test_knowledge_in_prompt(self):
        """Test snapshot data is included in the prompt."""
        snapshot = KnowledgeSnapshot(rows=[{"name": "Blue Shirt"}], summary="- [inventory] name: Blue Shirt")
        client = FakeLLMClient("A")
        orchestrator = build([client], knowledge=StaticKnowledge(snapshot=snapshot))

        response = await orchestrator.process_message(request("Do you sell shirts?"))

        assert response.metadata.knowledge_used is True
        assert "Blue Shirt" in client.calls[0][-1].content

    @pytest.mark.asyncio
    async def test_system_message_and_history_sent(self):
        """Test provider calls carry a system message and earlier turns."""
        client = FakeLLMClient("A")
        orchestrator = build([client])

        await orchestrator.process_message(request("Hello", message_id="m1"))
        await orchestrator.process_message(request("What time do you open?", message_id="m2"))

        second_call = client.calls[1]
        assert second_call[0].role == "system"
        assert second_call[1].content == "Hello"
        assert "What time do you open?" in second_call[-1].content

    @pytest.mark.asyncio
    async def test_profile_applied(self):
        """Test the configured personality rewrites the reply."""
        profiles = ProfileRegistry({
            "u1": PersonalityProfile(personality_type=PersonalityType.PROFESSIONAL),
        })
        orchestrator = build([FakeLLMClient("A", default="We can't ship today.")], profiles=profiles)

        response = await orchestrator.process_message(request("When can you ship my order?"))

        assert "cannot" in response.content

    @pytest.mark.asyncio
    async def test_profile_fallback_replies(self):
        """Test an exhausted pool answers with the profile's own fallback."""
        profiles = ProfileRegistry({
            "u1": PersonalityProfile(
                personality_type=PersonalityType.PROFESSIONAL,
                fallback_responses=["Our staff will reply shortly."],
            ),
        })
        orchestrator = build([FailingLLMClient("A")], profiles=profiles)

        response = await orchestrator.process_message(request("When can you ship my order?"))

        assert response.provider_id == FALLBACK_PROVIDER_ID
        assert "Our staff will reply shortly." in response.content

    @pytest.mark.asyncio
    async def test_greeting_message_only_on_first_reply(self):
        """Test the profile greeting is requested for the opening reply only."""
        client = FakeLLMClient("A")
        profiles = ProfileRegistry({
            "u1": PersonalityProfile(greeting_message="Welcome to Kopi Senja!"),
        })
        orchestrator = build([client], profiles=profiles)

        await orchestrator.process_message(request("Hello", message_id="m1"))
        await orchestrator.process_message(request("Hello", message_id="m2"))

        assert "Welcome to Kopi Senja!" in client.calls[0][-1].content
        assert "Welcome to Kopi Senja!" not in client.calls[1][-1].content

    @pytest.mark.asyncio
    async def test_analytics_event_logged(self):
        """Test one analytics event per processed message."""
        sink = RecordingSink()
        orchestrator = build([FakeLLMClient("A")], sink=sink)

        await orchestrator.process_message(request("Hello"))
        await orchestrator.stop()

        assert len(sink.events) == 1
        assert sink.events[0].provider_id == "A"
        assert sink.events[0].metadata["intent"] == "greeting"

    @pytest.mark.asyncio
    async def test_analytics_failure_swallowed(self):
        """Test a broken sink does not affect the response."""
        orchestrator = build([FakeLLMClient("A")], sink=ExplodingSink())

        response = await orchestrator.process_message(request("Hello"))
        await orchestrator.stop()

        assert response.success is True


class TestGenerationSettings:
    """Test prompt options and final refinements."""

    def setup_method(self):
        """Set up test fixtures."""
        self.orchestrator = build([FakeLLMClient("A")])

    def _nlu(self, emotion="neutral", length="balanced", follow_up=False):
        return NLUResult(
            emotion=EmotionResult(name=emotion),
            strategy=ResponseStrategy(length=length, follow_up_needed=follow_up),
        )

    def test_max_tokens(self):
        """Test token budgets per response length."""
        assert self.orchestrator.max_tokens_for(self._nlu(length="short")) == 50
        assert self.orchestrator.max_tokens_for(self._nlu(length="comprehensive")) == 500
        assert self.orchestrator.max_tokens_for(self._nlu(length="unknown")) == 150

    def test_profile_length_bounds_max_tokens(self):
        """Test the profile's preferred length caps or raises the budget."""
        concise = PersonalityProfile(response_length=ResponseLength.CONCISE)
        detailed = PersonalityProfile(response_length=ResponseLength.DETAILED)
        balanced = PersonalityProfile(response_length=ResponseLength.BALANCED)

        assert self.orchestrator.max_tokens_for(self._nlu(length="comprehensive"), concise) == 150
        assert self.orchestrator.max_tokens_for(self._nlu(length="short"), concise) == 50
        assert self.orchestrator.max_tokens_for(self._nlu(length="short"), detailed) == 300
        assert self.orchestrator.max_tokens_for(self._nlu(length="comprehensive"), balanced) == 500

    def test_temperature(self):
        """Test temperature per emotion."""
        assert self.orchestrator.temperature_for(self._nlu(emotion="excited")) == 0.9
        assert self.orchestrator.temperature_for(self._nlu(emotion="angry")) == 0.5
        assert self.orchestrator.temperature_for(self._nlu(emotion="confused")) == 0.7

    def test_follow_up_question(self):
        """Test a follow-up question is appended when needed."""
        refined = self.orchestrator.apply_final_refinements("Sorry about that.", self._nlu(follow_up=True))
        assert refined == f"Sorry about that. {FOLLOW_UP_QUESTION}"

    def test_empathy_prefix(self):
        """Test sad or worried users get an empathetic opening."""
        refined = self.orchestrator.apply_final_refinements("Let me check.", self._nlu(emotion="worried"))
        assert refined == f"{EMPATHY_PREFIX} Let me check."

    def test_excitement(self):
        """Test happy or excited users get exclamation marks."""
        refined = self.orchestrator.apply_final_refinements("Great choice. It costs 10.5 now.", self._nlu(emotion="happy"))
        assert refined == "Great choice! It costs 10.5 now!"

    def test_length_cap(self):
        """Test replies are capped at 500 characters."""
        refined = self.orchestrator.apply_final_refinements("x" * 800, self._nlu())
        assert len(refined) == 500
        assert refined.endswith("...")

    def test_clean_text(self):
        """Test input normalization."""
        assert clean_text("  hello \n\t world  ") == "hello world"
        assert clean_text("<b>hi</b>") == "bhi/b"
        assert clean_text(None) == ""


class TestFromSettings:
    """Test building the orchestrator from settings."""

    @pytest.mark.asyncio
    async def test_builds_without_api_keys(self, tmp_path, monkeypatch):
        """Test a keyless setup answers with the fallback reply."""
        for name in ("OPENAI_API_KEY", "ANTHROPIC_API_KEY", "GEMINI_API_KEY"):
            monkeypatch.delenv(name, raising=False)
        settings = Settings(db_path=str(tmp_path / "conversations.db"))

        orchestrator = ConversationOrchestrator.from_settings(settings)
        await orchestrator.start()
        try:
            response = await orchestrator.process_message(request("Hello"))
        finally:
            await orchestrator.stop()

        assert response.provider_id == FALLBACK_PROVIDER_ID
        assert response.success is False
        assert orchestrator.provider_pool.priority == []
