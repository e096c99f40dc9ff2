"""LLM client factory."""

import logging
from enum import Enum
from typing import List, Optional

from config.settings import Settings
from .base_client import BaseLLMClient
from .openai_client import OpenAIClient
from .anthropic_client import AnthropicClient
from .gemini_client import GeminiClient

logger = logging.getLogger(__name__)


class LLMProvider(str, Enum):
    """Supported LLM providers."""
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"


def create_llm_client(
    provider: LLMProvider,
    api_key: Optional[str] = None,
    model: Optional[str] = None,
    timeout: float = 30.0
) -> BaseLLMClient:
    """
    Create an LLM client for the specified provider.

    Args:
        provider: LLM provider
        api_key: API key for the provider
        model: Optional model override
        timeout: Request timeout in seconds

    Returns:
        Configured LLM client

    Raises:
        ValueError: If provider is not supported
    """
    if provider == LLMProvider.OPENAI:
        return OpenAIClient(api_key=api_key, model=model, timeout=timeout)
    elif provider == LLMProvider.ANTHROPIC:
        return AnthropicClient(api_key=api_key, model=model, timeout=timeout)
    elif provider == LLMProvider.GEMINI:
        return GeminiClient(api_key=api_key, model=model, timeout=timeout)
    else:
        raise ValueError(f"Unsupported LLM provider: {provider}")


def create_clients_from_settings(settings: Settings) -> List[BaseLLMClient]:
    """
    Build the prioritized list of clients for every provider with an API key.

    Providers without a key are skipped; unknown names raise ValueError.
    """
    clients = []
    for name in settings.provider_priority:
        provider = LLMProvider(name)
        api_key = settings.get_api_key(provider.value)
        if not api_key:
            logger.warning(f"No API key for {provider.value}, provider disabled")
            continue
        clients.append(create_llm_client(
            provider=provider,
            api_key=api_key,
            model=settings.get_model(provider.value),
            timeout=settings.provider_timeout
        ))
    return clients
