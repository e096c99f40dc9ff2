"""Prioritized pool of LLM providers with rate limiting and circuit breaking."""

import asyncio
import logging
import random
import time
from typing import Callable, Dict, List, Optional

from pydantic import BaseModel

from schemas.context import ConversationContext, MessageRole
from schemas.responses import GeneratedResponse, GenerationOptions, ResponseMetadata
from state import OrchestratorState
from .base_client import BaseLLMClient, Message, ProviderError

logger = logging.getLogger(__name__)


FALLBACK_PROVIDER_ID = "fallback"

FALLBACK_RESPONSES = [
    "I'm sorry, I'm having trouble processing your request right now. Could you please try again?",
    "I apologize for the inconvenience. My AI system is temporarily unavailable. Please try again in a moment.",
    "I'm experiencing some technical difficulties. Let me try to help you in a different way.",
    "I'm sorry for the delay. Could you please rephrase your question?",
]


class ProviderState(BaseModel):
    """Rate window and consecutive-error counter for one provider."""
    provider_id: str
    request_count: int = 0
    window_start: float = 0.0
    window_duration: float = 3600.0
    request_limit: int = 1000
    consecutive_errors: int = 0
    max_consecutive_errors: int = 5

    def _roll_window(self, now: float):
        if now - self.window_start >= self.window_duration:
            self.request_count = 0
            self.window_start = now

    def can_use(self, now: float) -> bool:
        """True if the rate window has capacity and the circuit is closed."""
        self._roll_window(now)
        if self.request_count >= self.request_limit:
            return False
        return self.consecutive_errors <= self.max_consecutive_errors

    def record_success(self, now: float):
        self._roll_window(now)
        self.request_count += 1

    def record_failure(self):
        self.consecutive_errors += 1

    def reset(self):
        self.consecutive_errors = 0


class ProviderPool:
    """
    Tries providers in a fixed priority order and falls back to a canned reply.

    The pool never raises from generate(); a reply with success=False and
    provider_id="fallback" means every eligible provider was skipped or failed.
    """

    SUCCESS_CONFIDENCE = 0.95
    FALLBACK_CONFIDENCE = 0.5

    def __init__(
        self,
        clients: List[BaseLLMClient],
        state: OrchestratorState,
        request_limit: int = 1000,
        window_seconds: float = 3600.0,
        max_consecutive_errors: int = 5,
        timeout: float = 30.0,
        history_messages: int = 10,
        clock: Callable[[], float] = time.monotonic,
        rng: Optional[random.Random] = None
    ):
        """
        Initialize provider pool.

        Args:
            clients: Provider adapters in priority order
            state: Process state holding the provider counters
            request_limit: Successful requests allowed per window
            window_seconds: Rate window duration
            max_consecutive_errors: Errors tolerated before the circuit opens
            timeout: Per-call timeout in seconds
            history_messages: Recent context messages included in each call
            clock: Monotonic time source
            rng: Random source for picking fallback replies
        """
        self.clients: Dict[str, BaseLLMClient] = {}
        self.priority: List[str] = []
        self.state = state
        self.timeout = timeout
        self.history_messages = history_messages
        self.clock = clock
        self.rng = rng or random.Random()

        for client in clients:
            provider_id = client.get_provider_name()
            if provider_id in self.clients:
                raise ValueError(f"Duplicate provider: {provider_id}")
            self.clients[provider_id] = client
            self.priority.append(provider_id)
            if provider_id not in state.provider_states:
                state.provider_states[provider_id] = ProviderState(
                    provider_id=provider_id,
                    window_start=clock(),
                    window_duration=window_seconds,
                    request_limit=request_limit,
                    max_consecutive_errors=max_consecutive_errors,
                )

        logger.info(f"Provider pool initialized with priority: {self.priority or 'none'}")

    def _provider_state(self, provider_id: str) -> ProviderState:
        if provider_id not in self.clients:
            raise ValueError(f"Unknown provider: {provider_id}")
        return self.state.provider_states[provider_id]

    def can_use(self, provider_id: str) -> bool:
        """Check rate limit and circuit breaker for a provider."""
        if provider_id not in self.clients:
            return False
        return self._provider_state(provider_id).can_use(self.clock())

    def record_attempt(self, provider_id: str, success: bool):
        """
        Record the outcome of a call.

        Failures bump the consecutive-error counter; successes count against
        the rate window. Successes do not reset the error counter, use reset().

        Raises:
            ValueError: If the provider is not in the pool
        """
        provider_state = self._provider_state(provider_id)
        if success:
            provider_state.record_success(self.clock())
        else:
            provider_state.record_failure()

    def reset(self, provider_id: Optional[str] = None):
        """Close the circuit for one provider, or for all of them."""
        targets = [provider_id] if provider_id else list(self.clients)
        for target in targets:
            self._provider_state(target).reset()
        logger.info(f"Provider error counts reset: {targets}")

    def build_messages(
        self,
        prompt: str,
        context: Optional[ConversationContext],
        options: GenerationOptions
    ) -> List[Message]:
        """Build role-tagged messages from system instruction, history and prompt."""
        messages = []

        if options.system_message:
            messages.append(Message(role="system", content=options.system_message))

        if context and self.history_messages > 0:
            for entry in context.message_history[-self.history_messages:]:
                role = "user" if entry.role == MessageRole.USER else "assistant"
                messages.append(Message(role=role, content=entry.content))

        messages.append(Message(role="user", content=prompt))
        return messages

    async def _try_provider(
        self,
        provider_id: str,
        messages: List[Message],
        options: GenerationOptions
    ) -> Optional[str]:
        """Call one provider. Returns the reply text, or None on failure."""
        client = self.clients[provider_id]
        try:
            response = await asyncio.wait_for(
                client.chat(
                    messages=messages,
                    temperature=options.temperature,
                    max_tokens=options.max_tokens,
                    model=options.model
                ),
                timeout=self.timeout
            )
            if not response.content.strip():
                raise ProviderError(provider_id, "empty response")
        except asyncio.TimeoutError:
            logger.error(f"{provider_id} timed out after {self.timeout}s")
            self.record_attempt(provider_id, success=False)
            return None
        except Exception as e:
            logger.error(f"{provider_id} failed: {e}")
            self.record_attempt(provider_id, success=False)
            return None

        self.record_attempt(provider_id, success=True)
        return response.content

    async def generate(
        self,
        prompt: str,
        context: Optional[ConversationContext] = None,
        options: Optional[GenerationOptions] = None
    ) -> GeneratedResponse:
        """
        Generate a reply from the first healthy provider.

        Args:
            prompt: User-facing prompt
            context: Conversation whose recent history is sent along
            options: Generation options

        Returns:
            GeneratedResponse; never raises
        """
        start = time.perf_counter()
        options = options or GenerationOptions()

        try:
            messages = self.build_messages(prompt, context, options)

            for provider_id in self.priority:
                if not self.can_use(provider_id):
                    logger.debug(f"Skipping unavailable provider: {provider_id}")
                    continue

                content = await self._try_provider(provider_id, messages, options)
                if content is not None:
                    return GeneratedResponse(
                        content=content,
                        provider_id=provider_id,
                        success=True,
                        confidence=self.SUCCESS_CONFIDENCE,
                        processing_time_ms=(time.perf_counter() - start) * 1000,
                        metadata=ResponseMetadata(provider=provider_id),
                    )

            logger.warning("All AI providers failed or unavailable, using fallback")
        except Exception as e:
            logger.error(f"AI generation failed: {e}")

        return self.fallback_response((time.perf_counter() - start) * 1000)

    def fallback_response(self, processing_time_ms: float = 0.0) -> GeneratedResponse:
        """Canned reply used when no provider could answer."""
        return GeneratedResponse(
            content=self.rng.choice(FALLBACK_RESPONSES),
            provider_id=FALLBACK_PROVIDER_ID,
            success=False,
            confidence=self.FALLBACK_CONFIDENCE,
            processing_time_ms=processing_time_ms,
            metadata=ResponseMetadata(provider=FALLBACK_PROVIDER_ID),
        )

    def get_status(self) -> Dict[str, Dict]:
        """Per-provider availability and counters."""
        status = {}
        for provider_id in self.priority:
            provider_state = self._provider_state(provider_id)
            status[provider_id] = {
                "configured": self.clients[provider_id].is_configured(),
                "model": self.clients[provider_id].get_model_name(),
                "available": self.can_use(provider_id),
                "errors": provider_state.consecutive_errors,
                "requests": provider_state.request_count,
            }
        return status
