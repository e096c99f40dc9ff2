"""Conversation orchestrator sequencing memory, NLU, generation and personality."""

import asyncio
import logging
import random
import re
import time
from datetime import timedelta
from typing import Optional

from config.settings import Settings
from schemas.context import ContextUpdate, ConversationContext, IntentEntry, MessageEntry, MessageRole
from schemas.knowledge import AnalyticsEvent, KnowledgeSnapshot
from schemas.nlu import NLUResult
from schemas.personality import PersonalityProfile, ResponseLength
from schemas.responses import GeneratedResponse, GenerationOptions, MessageRequest, ResponseMetadata
from state import OrchestratorState

# LLM components
from llm.factory import create_clients_from_settings
from llm.provider_pool import FALLBACK_PROVIDER_ID, ProviderPool

# Memory components
from memory.sqlite_store import SQLiteContextStore
from memory.context_manager import ContextManager

# Analysis and rewriting
from nlu.analyzer import NLUAnalyzer
from personality.transformer import PersonalityTransformer
from personality.profiles import ProfileRegistry

# Collaborators
from knowledge.provider import KnowledgeProvider, EmptyKnowledgeProvider
from knowledge.csv_provider import CSVKnowledgeProvider
from analytics.sink import AnalyticsSink, LoggingAnalyticsSink, SQLiteAnalyticsSink, emit

logger = logging.getLogger(__name__)

ERROR_RESPONSE = (
    "I apologize, but I'm having trouble processing your request right now. "
    "Please try again in a moment."
)
INVALID_INPUT_RESPONSE = "I didn't quite catch that. Could you send your message again?"
FOLLOW_UP_QUESTION = "Is there anything else I can help you with?"
EMPATHY_PREFIX = "I understand this might be concerning."

SENTENCE_END_PATTERN = re.compile(r"\.(?=\s|$)")
WHITESPACE_PATTERN = re.compile(r"\s+")


def clean_text(text: Optional[str]) -> str:
    """Trim, collapse whitespace and strip angle brackets."""
    if not text or not isinstance(text, str):
        return ""
    cleaned = WHITESPACE_PATTERN.sub(" ", text.strip())
    return cleaned.replace("<", "").replace(">", "").strip()


class ConversationOrchestrator:
    """
    Processes inbound chat messages end to end.

    Steps per message: dedupe guard, context and profile lookup, knowledge
    snapshot, NLU analysis, generation, personality rewrite, context update,
    analytics. Callers always get a GeneratedResponse back.
    """

    MAX_RESPONSE_CHARS = 500

    MAX_TOKENS = {
        "short": 50,
        "balanced": 150,
        "detailed": 300,
        "comprehensive": 500,
    }
    DEFAULT_MAX_TOKENS = 150

    # Bounds the profile's preferred length puts on the NLU token budget
    CONCISE_MAX_TOKENS = 150
    DETAILED_MIN_TOKENS = 300

    TEMPERATURES = {
        "excited": 0.9,
        "happy": 0.8,
        "neutral": 0.7,
        "sad": 0.6,
        "angry": 0.5,
        "worried": 0.6,
    }
    DEFAULT_TEMPERATURE = 0.7

    def __init__(
        self,
        state: OrchestratorState,
        context_manager: ContextManager,
        provider_pool: ProviderPool,
        nlu_analyzer: NLUAnalyzer,
        transformer: PersonalityTransformer,
        profiles: Optional[ProfileRegistry] = None,
        knowledge_provider: Optional[KnowledgeProvider] = None,
        analytics_sink: Optional[AnalyticsSink] = None,
        rng: Optional[random.Random] = None
    ):
        """
        Initialize orchestrator.

        Args:
            state: Process state shared with the other components
            context_manager: Conversation memory
            provider_pool: Text generation with fallback
            nlu_analyzer: Intent, emotion and strategy analysis
            transformer: Personality rewrite
            profiles: Personality profiles (default profile for everyone if None)
            knowledge_provider: Business data source
            analytics_sink: Destination for analytics events
            rng: Random source for picking profile fallback replies
        """
        self.state = state
        self.context_manager = context_manager
        self.provider_pool = provider_pool
        self.nlu_analyzer = nlu_analyzer
        self.transformer = transformer
        self.profiles = profiles or ProfileRegistry()
        self.knowledge_provider = knowledge_provider or EmptyKnowledgeProvider()
        self.analytics_sink = analytics_sink or LoggingAnalyticsSink()
        self.rng = rng or random.Random()

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "ConversationOrchestrator":
        """
        Build an orchestrator and its collaborators from settings.

        Args:
            settings: Application settings

        Returns:
            ConversationOrchestrator with a fresh OrchestratorState
        """
        settings = settings or Settings()
        state = OrchestratorState()

        context_manager = ContextManager(
            store=SQLiteContextStore(db_path=settings.db_path),
            state=state,
            max_messages=settings.max_messages,
            max_intents=settings.max_intents,
            max_emotions=settings.max_emotions,
            inactivity_timeout=timedelta(hours=settings.inactivity_hours),
            sweep_interval=settings.sweep_interval_seconds,
        )
        logger.info(f"Memory initialized: {settings.db_path}")

        provider_pool = ProviderPool(
            clients=create_clients_from_settings(settings),
            state=state,
            request_limit=settings.provider_request_limit,
            window_seconds=settings.provider_window_seconds,
            max_consecutive_errors=settings.max_consecutive_errors,
            timeout=settings.provider_timeout,
            history_messages=settings.history_messages,
        )

        if settings.profiles_path:
            profiles = ProfileRegistry.from_yaml(settings.profiles_path)
        else:
            profiles = ProfileRegistry()

        if settings.knowledge_dir:
            knowledge_provider = CSVKnowledgeProvider(settings.knowledge_dir)
            logger.info(f"Using knowledge directory: {settings.knowledge_dir}")
        else:
            knowledge_provider = EmptyKnowledgeProvider()

        return cls(
            state=state,
            context_manager=context_manager,
            provider_pool=provider_pool,
            nlu_analyzer=NLUAnalyzer(
                provider_pool=provider_pool,
                use_ai=settings.ai_classification_enabled
            ),
            transformer=PersonalityTransformer(),
            profiles=profiles,
            knowledge_provider=knowledge_provider,
            analytics_sink=SQLiteAnalyticsSink(db_path=settings.db_path),
        )

    async def start(self):
        """Warm the context cache and start the periodic sweep."""
        await self.context_manager.warm_up()
        self.context_manager.start()

    async def stop(self):
        """Wait for pending analytics and stop the sweep."""
        if self.state.background_tasks:
            await asyncio.gather(*self.state.background_tasks, return_exceptions=True)
        await self.context_manager.stop()

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def process_message(self, request: MessageRequest) -> GeneratedResponse:
        """
        Process one inbound message.

        A message whose (user_id, phone, message_id) is already in flight is
        dropped with reason "already_processing". Distinct messages of the
        same conversation wait for each other.

        Args:
            request: Inbound message

        Returns:
            GeneratedResponse; never raises
        """
        start = time.perf_counter()
        key = (request.user_id, request.phone, request.message_id)

        if not self.state.try_mark_in_flight(key):
            logger.info(f"Message {request.message_id} already being processed")
            return GeneratedResponse(
                content="",
                provider_id="none",
                success=False,
                reason="already_processing",
            )

        try:
            text = clean_text(request.text)
            if not text:
                logger.warning(f"Empty message {request.message_id} from {request.phone}")
                return self._invalid_input_response(start)

            lock = self.state.conversation_lock((request.user_id, request.phone))
            async with lock:
                return await self._process(request, text, start)
        except Exception as e:
            logger.error(f"Error processing message {request.message_id}: {e}")
            return self._error_response(start)
        finally:
            self.state.clear_in_flight(key)

    async def _process(self, request: MessageRequest, text: str, start: float) -> GeneratedResponse:
        user_id, phone = request.user_id, request.phone

        context = await self.context_manager.get(user_id, phone)
        profile = self.profiles.get(user_id)
        knowledge = await self._fetch_knowledge(user_id, text)
        nlu = await self.nlu_analyzer.analyze(text, context)

        prompt = self.build_prompt(
            text, profile, knowledge, nlu,
            first_reply=not any(m.role == MessageRole.ASSISTANT for m in context.message_history)
        )
        options = GenerationOptions(
            system_message=self.build_system_message(profile, nlu),
            max_tokens=self.max_tokens_for(nlu, profile),
            temperature=self.temperature_for(nlu),
        )
        generated = await self.provider_pool.generate(prompt, context, options)
        generated = self.apply_profile_fallback(generated, profile)

        personalized = self.transformer.apply(generated.content, profile, context)
        final = self.apply_final_refinements(personalized, nlu)

        await self._remember(user_id, phone, text, final, nlu, generated)

        response = GeneratedResponse(
            content=final,
            provider_id=generated.provider_id,
            success=generated.success,
            confidence=generated.confidence,
            intent=nlu.intent.name,
            processing_time_ms=(time.perf_counter() - start) * 1000,
            metadata=ResponseMetadata(
                intent=nlu.intent.name,
                emotion=nlu.emotion.name,
                provider=generated.provider_id,
                knowledge_used=not knowledge.is_empty,
                personality_applied=True,
                response_strategy=nlu.strategy.model_dump(),
            ),
        )

        self._log_analytics(request, response)
        return response

    async def _fetch_knowledge(self, user_id: str, text: str) -> KnowledgeSnapshot:
        """Latest business data; an empty snapshot if the provider fails."""
        try:
            return await self.knowledge_provider.get_snapshot(
                user_id, "general", {"search": text}
            )
        except Exception as e:
            logger.error(f"Error loading knowledge: {e}")
            return KnowledgeSnapshot()

    async def _remember(
        self,
        user_id: str,
        phone: str,
        text: str,
        reply: str,
        nlu: NLUResult,
        generated: GeneratedResponse
    ):
        """Append both turns, the intent and the emotional state in one update."""
        topics = []
        for category in ("products", "services", "locations"):
            topics.extend(nlu.entities.get(category, []))

        await self.context_manager.update(user_id, phone, ContextUpdate(
            messages=[
                MessageEntry(
                    role=MessageRole.USER,
                    content=text,
                    intent=nlu.intent.name,
                    confidence=nlu.intent.confidence,
                    metadata={"emotion": nlu.emotion.name, "topics": topics},
                ),
                MessageEntry(
                    role=MessageRole.ASSISTANT,
                    content=reply,
                    intent=nlu.intent.name,
                    confidence=generated.confidence,
                    metadata={"provider": generated.provider_id},
                ),
            ],
            intents=[IntentEntry(intent=nlu.intent.name, confidence=nlu.intent.confidence)],
            emotional_state=nlu.emotion.name,
        ))

    def _log_analytics(self, request: MessageRequest, response: GeneratedResponse):
        event = AnalyticsEvent(
            event_type="message_processed",
            provider_id=response.provider_id,
            latency_ms=response.processing_time_ms,
            success=response.success,
            metadata={
                "user_id": request.user_id,
                "phone": request.phone,
                "message_id": request.message_id,
                "intent": response.metadata.intent,
                "emotion": response.metadata.emotion,
                "knowledge_used": response.metadata.knowledge_used,
            },
        )
        self.state.track_task(asyncio.create_task(emit(self.analytics_sink, event)))

    # ------------------------------------------------------------------
    # Prompt building
    # ------------------------------------------------------------------

    @staticmethod
    def build_prompt(
        text: str,
        profile: PersonalityProfile,
        knowledge: KnowledgeSnapshot,
        nlu: NLUResult,
        first_reply: bool = False
    ) -> str:
        """Prompt combining personality, business data and NLU insights."""
        parts = [
            "You are a helpful AI assistant for a WhatsApp business.",
            f"You have a {profile.personality_type.value} personality and use a "
            f"{profile.communication_style.value} communication style.",
        ]

        if profile.custom_instructions:
            parts.append(profile.custom_instructions.strip())

        if first_reply and nlu.intent.name == "greeting" and profile.greeting_message:
            parts.append(f'Welcome the user with this greeting: "{profile.greeting_message}"')

        if not knowledge.is_empty:
            parts.append(f"Here's current business information:\n{knowledge.summary}")

        parts.append(
            f"The user's message shows {nlu.intent.name} intent with {nlu.emotion.name} emotion."
        )
        parts.append(
            f"Use {nlu.strategy.tone} tone and provide a {nlu.strategy.length} response."
        )
        parts.append(f'User message: "{text}". Respond naturally and helpfully.')
        return "\n".join(parts)

    @staticmethod
    def build_system_message(profile: PersonalityProfile, nlu: NLUResult) -> str:
        return (
            "You are a professional WhatsApp business assistant. "
            f"You have a {profile.personality_type.value} personality. "
            f"Use {nlu.strategy.tone} tone and be {nlu.strategy.personality_type}. "
            "Always be helpful, accurate, and maintain a conversational tone."
        )

    def max_tokens_for(self, nlu: NLUResult, profile: Optional[PersonalityProfile] = None) -> int:
        """Token budget from the NLU length, bounded by the profile's preferred length."""
        tokens = self.MAX_TOKENS.get(nlu.strategy.length, self.DEFAULT_MAX_TOKENS)
        if profile is None:
            return tokens
        if profile.response_length == ResponseLength.CONCISE:
            return min(tokens, self.CONCISE_MAX_TOKENS)
        if profile.response_length == ResponseLength.DETAILED:
            return max(tokens, self.DETAILED_MIN_TOKENS)
        return tokens

    def apply_profile_fallback(
        self,
        generated: GeneratedResponse,
        profile: PersonalityProfile
    ) -> GeneratedResponse:
        """Swap the static fallback reply for one of the profile's own."""
        if generated.provider_id != FALLBACK_PROVIDER_ID or not profile.fallback_responses:
            return generated
        return generated.model_copy(update={"content": self.rng.choice(profile.fallback_responses)})

    def temperature_for(self, nlu: NLUResult) -> float:
        return self.TEMPERATURES.get(nlu.emotion.name, self.DEFAULT_TEMPERATURE)

    def apply_final_refinements(self, text: str, nlu: NLUResult) -> str:
        """Follow-up question, emotional framing and length cap."""
        try:
            refined = text

            if nlu.strategy.follow_up_needed and FOLLOW_UP_QUESTION not in refined:
                refined = f"{refined} {FOLLOW_UP_QUESTION}"

            if nlu.emotion.name in ("sad", "worried"):
                refined = f"{EMPATHY_PREFIX} {refined}"

            if nlu.emotion.name in ("excited", "happy"):
                refined = SENTENCE_END_PATTERN.sub("!", refined)

            if len(refined) > self.MAX_RESPONSE_CHARS:
                refined = refined[:self.MAX_RESPONSE_CHARS - 3] + "..."

            return refined
        except Exception as e:
            logger.error(f"Error applying final refinements: {e}")
            return text

    # ------------------------------------------------------------------
    # Canned responses
    # ------------------------------------------------------------------

    @staticmethod
    def _invalid_input_response(start: float) -> GeneratedResponse:
        return GeneratedResponse(
            content=INVALID_INPUT_RESPONSE,
            provider_id="none",
            success=False,
            confidence=0.0,
            intent="invalid_input",
            reason="invalid_input",
            processing_time_ms=(time.perf_counter() - start) * 1000,
        )

    @staticmethod
    def _error_response(start: float) -> GeneratedResponse:
        return GeneratedResponse(
            content=ERROR_RESPONSE,
            provider_id="none",
            success=False,
            confidence=0.0,
            intent="error",
            reason="error",
            processing_time_ms=(time.perf_counter() - start) * 1000,
        )

    async def get_conversation(self, user_id: str, phone: str) -> ConversationContext:
        """Current context of a conversation."""
        return await self.context_manager.get(user_id, phone)
