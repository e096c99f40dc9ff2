"""Conversation context cache with write-through persistence."""

import asyncio
import logging
from collections import Counter
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from schemas.context import (
    AIContext,
    ContextSummary,
    ContextUpdate,
    ConversationContext,
    ConversationStage,
    EmotionEntry,
    IntentCount,
    IntentEntry,
    MessageEntry,
    MessageRole,
)
from state import OrchestratorState
from .store import ContextStore, PersistenceError

logger = logging.getLogger(__name__)


class ContextManager:
    """
    Caches conversation contexts in memory and upserts every change.

    A failed store read degrades to an empty context and updates made on top
    of it stay in memory until the store can be read again, so the stored
    history is never replaced by a partial one. A failed store write is
    logged and the cache keeps the new value, so the stored copy may lag
    behind until the next successful write.
    """

    # Configuration
    MAX_MESSAGES = 50
    MAX_INTENTS = 20
    MAX_EMOTIONS = 20
    DOMINANT_INTENTS = 5
    INACTIVITY_TIMEOUT = timedelta(hours=24)
    SWEEP_INTERVAL_SECONDS = 3600.0

    def __init__(
        self,
        store: ContextStore,
        state: OrchestratorState,
        max_messages: int = MAX_MESSAGES,
        max_intents: int = MAX_INTENTS,
        max_emotions: int = MAX_EMOTIONS,
        inactivity_timeout: timedelta = INACTIVITY_TIMEOUT,
        sweep_interval: float = SWEEP_INTERVAL_SECONDS
    ):
        """
        Initialize context manager.

        Args:
            store: Persistent context store
            state: Process state holding the context cache
            max_messages: Cap on the message log
            max_intents: Cap on the intent log
            max_emotions: Cap on the emotional-state history
            inactivity_timeout: Idle time after which the sweep evicts a context
            sweep_interval: Seconds between sweeps when started
        """
        self.store = store
        self.state = state
        self.max_messages = max_messages
        self.max_intents = max_intents
        self.max_emotions = max_emotions
        self.inactivity_timeout = inactivity_timeout
        self.sweep_interval = sweep_interval
        self._sweep_task: Optional[asyncio.Task] = None
        self._pending: Dict[Tuple[str, str], List[ContextUpdate]] = {}

    @property
    def cache(self) -> Dict:
        return self.state.context_cache

    # ------------------------------------------------------------------
    # Read / write
    # ------------------------------------------------------------------

    async def _load(self, user_id: str, phone: str) -> Tuple[ConversationContext, bool]:
        """
        Cached context, else stored context, else a fresh empty one.

        The flag is False when the store could not be read, in which case the
        returned context does not reflect the stored history. Updates made
        while a key is unsynced are replayed onto the stored copy once a read
        succeeds again.
        """
        key = (user_id, phone)
        cached = self.cache.get(key)
        if cached is not None and key not in self._pending:
            return cached, True

        try:
            context = await self.store.load(user_id, phone)
        except PersistenceError as e:
            logger.error(f"Error loading context from store: {e}")
            if cached is not None:
                return cached, False
            return ConversationContext(user_id=user_id, phone=phone), False

        if context is None:
            context = ConversationContext(user_id=user_id, phone=phone)

        pending = self._pending.pop(key, None)
        if pending:
            for partial in pending:
                context = self._merge(context, partial)
            logger.info(f"Replayed {len(pending)} in-memory updates onto stored context")
            self.cache[key] = context
            return context, True

        # Another task may have filled the cache while the store was read
        return self.cache.setdefault(key, context), True

    async def get(self, user_id: str, phone: str) -> ConversationContext:
        """
        Get conversation context.

        Never raises; a store failure yields an empty context.

        Args:
            user_id: Business account ID
            phone: Channel address of the conversation

        Returns:
            A copy of the current context
        """
        context, _ = await self._load(user_id, phone)
        return context.model_copy(deep=True)

    def _merge(self, existing: ConversationContext, partial: ContextUpdate) -> ConversationContext:
        merged = existing.model_copy(deep=True)

        if partial.messages:
            merged.message_history = (
                merged.message_history + list(partial.messages)
            )[-self.max_messages:]

        if partial.intents:
            merged.intent_history = (
                merged.intent_history + list(partial.intents)
            )[-self.max_intents:]

        if partial.emotional_state is not None:
            merged.emotional_state = partial.emotional_state
            merged.emotional_history = (
                merged.emotional_history + [EmotionEntry(state=partial.emotional_state)]
            )[-self.max_emotions:]

        merged.user_preferences = {**merged.user_preferences, **partial.user_preferences}
        merged.business_context = {**merged.business_context, **partial.business_context}
        merged.context_data = {**merged.context_data, **partial.context_data}
        merged.last_interaction = datetime.now()
        return merged

    async def update(
        self,
        user_id: str,
        phone: str,
        partial: ContextUpdate
    ) -> ConversationContext:
        """
        Merge a partial update into the context, cache it and persist it.

        Args:
            user_id: Business account ID
            phone: Channel address of the conversation
            partial: Fields to append or replace

        Returns:
            A copy of the merged context
        """
        key = (user_id, phone)
        existing, synced = await self._load(user_id, phone)
        merged = self._merge(existing, partial)
        self.cache[key] = merged

        if not synced:
            # Writing now would replace the stored history with a partial one
            self._pending.setdefault(key, []).append(partial)
            logger.warning(f"Store unreadable, keeping update for {phone} in memory only")
            return merged.model_copy(deep=True)

        try:
            await self.store.upsert(merged)
        except PersistenceError as e:
            logger.error(f"Error saving context to store: {e}")

        return merged.model_copy(deep=True)

    async def append_message(
        self,
        user_id: str,
        phone: str,
        content: str,
        role: MessageRole = MessageRole.USER,
        intent: Optional[str] = None,
        confidence: Optional[float] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> MessageEntry:
        """Append one timestamped entry to the message log."""
        entry = MessageEntry(
            role=role,
            content=content,
            intent=intent,
            confidence=confidence,
            metadata=metadata or {}
        )
        await self.update(user_id, phone, ContextUpdate(messages=[entry]))
        return entry

    async def record_intent(self, user_id: str, phone: str, intent: str, confidence: float):
        """Append an entry to the intent log."""
        await self.update(
            user_id, phone,
            ContextUpdate(intents=[IntentEntry(intent=intent, confidence=confidence)])
        )

    async def update_emotional_state(self, user_id: str, phone: str, emotional_state: str) -> str:
        """Set the emotional state and append it to the emotional history."""
        await self.update(user_id, phone, ContextUpdate(emotional_state=emotional_state))
        return emotional_state

    async def set_user_preferences(
        self,
        user_id: str,
        phone: str,
        preferences: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Merge user preferences, stamping when they last changed."""
        context = await self.update(
            user_id, phone,
            ContextUpdate(user_preferences={
                **preferences,
                "last_updated": datetime.now().isoformat()
            })
        )
        return context.user_preferences

    # ------------------------------------------------------------------
    # Derived views
    # ------------------------------------------------------------------

    def dominant_intents(self, intent_history: List[IntentEntry]) -> List[IntentCount]:
        """Top intents by frequency."""
        counts = Counter(entry.intent for entry in intent_history)
        return [
            IntentCount(intent=intent, count=count)
            for intent, count in counts.most_common(self.DOMINANT_INTENTS)
        ]

    @staticmethod
    def conversation_stage(context: ConversationContext) -> ConversationStage:
        """Stage label from message count thresholds."""
        count = len(context.message_history)
        if count == 0:
            return ConversationStage.INITIAL
        if count <= 3:
            return ConversationStage.GREETING
        if count <= 10:
            return ConversationStage.INQUIRY
        if count <= 20:
            return ConversationStage.ENGAGEMENT
        return ConversationStage.ADVANCED

    @staticmethod
    def conversation_duration(context: ConversationContext) -> int:
        """Seconds from conversation start to last interaction (or now)."""
        end = context.last_interaction or datetime.now()
        return max(int((end - context.conversation_start).total_seconds()), 0)

    def engagement_level(self, context: ConversationContext) -> float:
        """Messages per minute, scaled so 5/min or more scores 1.0."""
        duration = self.conversation_duration(context)
        if duration == 0:
            return 0.0
        messages_per_minute = len(context.message_history) / (duration / 60)
        return min(messages_per_minute / 5, 1.0)

    @staticmethod
    def extract_topics(messages: List[MessageEntry]) -> List[str]:
        topics = []
        for message in messages:
            for topic in message.metadata.get("topics", []):
                if topic not in topics:
                    topics.append(topic)
        return topics

    @staticmethod
    def conversation_flow(messages: List[MessageEntry]) -> str:
        """Flow label from the intents of recent messages."""
        if not messages:
            return "none"

        recent_intents = [m.intent for m in messages if m.intent][-5:]
        if "product_inquiry" in recent_intents:
            return "product_focused"
        if "booking" in recent_intents:
            return "booking_focused"
        if "help" in recent_intents or "complaint" in recent_intents:
            return "support_focused"
        if "question" in recent_intents:
            return "information_seeking"
        return "general_conversation"

    async def summarize(self, user_id: str, phone: str) -> ContextSummary:
        """Counts, dominant intents, duration, engagement and stage."""
        context, _ = await self._load(user_id, phone)
        history = context.message_history

        return ContextSummary(
            total_messages=len(history),
            user_messages=sum(1 for m in history if m.role == MessageRole.USER),
            assistant_messages=sum(1 for m in history if m.role == MessageRole.ASSISTANT),
            intent_count=len(context.intent_history),
            dominant_intents=self.dominant_intents(context.intent_history),
            conversation_tone=context.emotional_state or "neutral",
            topics=self.extract_topics(history),
            duration_seconds=self.conversation_duration(context),
            engagement=self.engagement_level(context),
            stage=self.conversation_stage(context),
            last_interaction=context.last_interaction,
        )

    async def get_ai_context(self, user_id: str, phone: str, message_count: int = 10) -> AIContext:
        """The parts of a conversation relevant to prompt building."""
        context, _ = await self._load(user_id, phone)
        recent = context.message_history[-message_count:] if message_count > 0 else []

        return AIContext(
            recent_messages=[m.model_copy() for m in recent],
            dominant_intents=self.dominant_intents(context.intent_history),
            emotional_state=context.emotional_state or "neutral",
            stage=self.conversation_stage(context),
            user_preferences=dict(context.user_preferences),
            business_context=dict(context.business_context),
            conversation_flow=self.conversation_flow(recent),
            last_interaction=context.last_interaction,
        )

    # ------------------------------------------------------------------
    # Cache maintenance
    # ------------------------------------------------------------------

    def sweep(self, now: Optional[datetime] = None) -> int:
        """
        Evict cached contexts idle for longer than the inactivity timeout.

        The stored copies are left untouched.

        Returns:
            Number of evicted contexts
        """
        cutoff = (now or datetime.now()) - self.inactivity_timeout
        stale = [
            key for key, context in self.cache.items()
            if (context.last_interaction or context.conversation_start) < cutoff
        ]

        for key in stale:
            del self.cache[key]
            if self._pending.pop(key, None):
                logger.warning(f"Dropped unsaved updates for idle conversation {key[1]}")

        # Locks of conversations no longer cached, including ones whose load failed
        for key in [k for k in self.state.conversation_locks if k not in self.cache]:
            if not self.state.conversation_locks[key].locked():
                del self.state.conversation_locks[key]

        logger.info(f"Cleaned up {len(stale)} old conversations from memory")
        return len(stale)

    async def warm_up(self) -> int:
        """Load conversations active within the inactivity timeout into the cache."""
        since = datetime.now() - self.inactivity_timeout
        try:
            contexts = await self.store.list_active(since)
        except PersistenceError as e:
            logger.error(f"Error loading active conversations: {e}")
            return 0

        for context in contexts:
            self.cache.setdefault((context.user_id, context.phone), context)

        logger.info(f"Loaded {len(contexts)} active conversations into memory")
        return len(contexts)

    async def _sweep_loop(self):
        while True:
            await asyncio.sleep(self.sweep_interval)
            self.sweep()

    def start(self):
        """Start the periodic sweep on the running event loop."""
        if self._sweep_task is None or self._sweep_task.done():
            self._sweep_task = asyncio.create_task(self._sweep_loop())
            logger.info(f"Context sweep scheduled every {self.sweep_interval}s")

    async def stop(self):
        """Cancel the periodic sweep and clear the cache."""
        if self._sweep_task is not None:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None
        self.cache.clear()
        logger.info("Context manager stopped")
