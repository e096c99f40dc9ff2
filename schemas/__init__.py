"""Pydantic schemas for the conversation pipeline."""

from .context import (
    MessageRole,
    ConversationStage,
    MessageEntry,
    IntentEntry,
    EmotionEntry,
    ConversationContext,
    ContextUpdate,
    IntentCount,
    ContextSummary,
    AIContext,
)
from .personality import (
    PersonalityType,
    CommunicationStyle,
    ResponseLength,
    EmotionalTone,
    PersonalityProfile,
    default_profile,
)
from .nlu import (
    IntentResult,
    EmotionResult,
    BasicInfo,
    BusinessSignals,
    ContextAnalysis,
    ResponseStrategy,
    NLUResult,
)
from .responses import MessageRequest, GenerationOptions, ResponseMetadata, GeneratedResponse
from .knowledge import KnowledgeSnapshot, AnalyticsEvent

__all__ = [
    "MessageRole",
    "ConversationStage",
    "MessageEntry",
    "IntentEntry",
    "EmotionEntry",
    "ConversationContext",
    "ContextUpdate",
    "IntentCount",
    "ContextSummary",
    "AIContext",
    "PersonalityType",
    "CommunicationStyle",
    "ResponseLength",
    "EmotionalTone",
    "PersonalityProfile",
    "default_profile",
    "IntentResult",
    "EmotionResult",
    "BasicInfo",
    "BusinessSignals",
    "ContextAnalysis",
    "ResponseStrategy",
    "NLUResult",
    "MessageRequest",
    "GenerationOptions",
    "ResponseMetadata",
    "GeneratedResponse",
    "KnowledgeSnapshot",
    "AnalyticsEvent",
]
