"""Google Gemini LLM client implementation."""

import os
import logging
from typing import Optional, List

import google.generativeai as genai

from .base_client import BaseLLMClient, Message, LLMResponse, ProviderError

logger = logging.getLogger(__name__)


class GeminiClient(BaseLLMClient):
    """Gemini client implementation."""

    DEFAULT_MODEL = "gemini-1.5-flash"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: float = 30.0
    ):
        """
        Initialize Gemini client.

        Args:
            api_key: Gemini API key (falls back to GEMINI_API_KEY env var)
            model: Model to use (default: gemini-1.5-flash)
            timeout: Request timeout in seconds
        """
        self.api_key = api_key or os.environ.get("GEMINI_API_KEY")
        self.model = model or self.DEFAULT_MODEL
        self.timeout = timeout
        self.configured = False

        if self.api_key:
            genai.configure(api_key=self.api_key)
            self.configured = True
            logger.info(f"Gemini client initialized with model: {self.model}")
        else:
            logger.warning("No Gemini API key provided")

    @staticmethod
    def _to_prompt(messages: List[Message]) -> str:
        """Flatten role-tagged messages into a single Gemini prompt."""
        parts = []
        for msg in messages:
            if msg.role == "system":
                parts.append(f"Instructions: {msg.content}\n")
            elif msg.role == "user":
                parts.append(f"User: {msg.content}")
            elif msg.role == "assistant":
                parts.append(f"Assistant: {msg.content}")
        return "\n".join(parts)

    async def chat(
        self,
        messages: List[Message],
        temperature: float = 0.7,
        max_tokens: int = 500,
        model: Optional[str] = None
    ) -> LLMResponse:
        """Send a generation request to Gemini."""
        if not self.configured:
            raise ProviderError("gemini", "client not initialized. Check API key.")

        generative_model = genai.GenerativeModel(
            model or self.model,
            generation_config=genai.GenerationConfig(
                temperature=temperature,
                max_output_tokens=max_tokens,
            ),
        )

        try:
            response = await generative_model.generate_content_async(
                self._to_prompt(messages),
                request_options={"timeout": self.timeout},
            )
            content = response.text
        except Exception as e:
            logger.error(f"Gemini API error: {e}")
            raise ProviderError("gemini", str(e)) from e

        return LLMResponse(content=content)

    def get_provider_name(self) -> str:
        """Get the provider name."""
        return "gemini"

    def get_model_name(self) -> str:
        """Get the model name."""
        return self.model

    def is_configured(self) -> bool:
        return self.configured
