"""LLM client abstraction layer."""

from .base_client import BaseLLMClient, Message, LLMResponse, ProviderError
from .factory import create_llm_client, create_clients_from_settings, LLMProvider
from .provider_pool import ProviderPool, ProviderState, FALLBACK_PROVIDER_ID, FALLBACK_RESPONSES

__all__ = [
    "BaseLLMClient",
    "Message",
    "LLMResponse",
    "ProviderError",
    "create_llm_client",
    "create_clients_from_settings",
    "LLMProvider",
    "ProviderPool",
    "ProviderState",
    "FALLBACK_PROVIDER_ID",
    "FALLBACK_RESPONSES",
]
