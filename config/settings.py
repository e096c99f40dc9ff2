"""Application settings."""

import os
from typing import List, Optional
from pydantic import BaseModel, Field


class Settings(BaseModel):
    """Application configuration settings."""

    # Provider settings, tried in this order
    provider_priority: List[str] = Field(
        default_factory=lambda: ["openai", "anthropic", "gemini"]
    )
    openai_model: Optional[str] = None
    anthropic_model: Optional[str] = None
    gemini_model: Optional[str] = None

    # API Keys
    openai_api_key: Optional[str] = None
    anthropic_api_key: Optional[str] = None
    gemini_api_key: Optional[str] = None

    # Rate limiting and circuit breaking (per process)
    provider_timeout: float = 30.0  # seconds
    provider_request_limit: int = 1000
    provider_window_seconds: float = 3600.0
    max_consecutive_errors: int = 5

    # Memory settings
    db_path: str = "data/conversations.db"
    max_messages: int = 50
    max_intents: int = 20
    max_emotions: int = 20
    inactivity_hours: float = 24.0
    sweep_interval_seconds: float = 3600.0
    history_messages: int = 10  # Recent turns sent to the provider

    # Personality and knowledge
    profiles_path: Optional[str] = None
    knowledge_dir: Optional[str] = None

    # NLU
    ai_classification_enabled: bool = True

    # Logging
    verbose: bool = False

    def __init__(self, **data):
        # Auto-load API keys from environment if not provided
        env_keys = {
            "openai_api_key": "OPENAI_API_KEY",
            "anthropic_api_key": "ANTHROPIC_API_KEY",
            "gemini_api_key": "GEMINI_API_KEY",
        }
        for field_name, env_name in env_keys.items():
            if data.get(field_name) is None:
                data[field_name] = os.environ.get(env_name)

        if data.get("db_path") is None and os.environ.get("CONVERSATION_DB_PATH"):
            data["db_path"] = os.environ["CONVERSATION_DB_PATH"]
        if data.get("profiles_path") is None:
            data["profiles_path"] = os.environ.get("PERSONALITY_PROFILES_PATH")
        if data.get("knowledge_dir") is None:
            data["knowledge_dir"] = os.environ.get("KNOWLEDGE_DIR")

        # Drop explicit Nones so field defaults apply
        data = {k: v for k, v in data.items() if v is not None}
        super().__init__(**data)

    def get_api_key(self, provider: str) -> Optional[str]:
        """Get the API key for a provider name."""
        return {
            "openai": self.openai_api_key,
            "anthropic": self.anthropic_api_key,
            "gemini": self.gemini_api_key,
        }.get(provider)

    def get_model(self, provider: str) -> Optional[str]:
        """Get the model override for a provider name."""
        return {
            "openai": self.openai_model,
            "anthropic": self.anthropic_model,
            "gemini": self.gemini_model,
        }.get(provider)
