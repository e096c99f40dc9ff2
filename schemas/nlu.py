"""Natural language understanding schemas."""

from typing import Dict, List
from pydantic import BaseModel, Field


class IntentResult(BaseModel):
    """Detected intent."""
    name: str = "general"
    confidence: float = Field(0.5, ge=0.0, le=1.0)
    method: str = "default"  # "rule-based", "ai-based" or "default"


class EmotionResult(BaseModel):
    """Detected emotion."""
    name: str = "neutral"
    confidence: float = Field(0.5, ge=0.0, le=1.0)
    intensity: str = "medium"  # "low", "medium" or "high"
    method: str = "default"


class BasicInfo(BaseModel):
    """Surface features of the input text."""
    length: int = 0
    word_count: int = 0
    has_question: bool = False
    has_exclamation: bool = False
    has_numbers: bool = False
    has_email: bool = False
    has_phone: bool = False
    has_url: bool = False
    language: str = "unknown"


class BusinessSignals(BaseModel):
    is_business_inquiry: bool = False
    requires_escalation: bool = False
    has_commercial_intent: bool = False


class ContextAnalysis(BaseModel):
    """How the input relates to the ongoing conversation."""
    conversation_flow: str = "new"
    topic_continuity: str = "new_topic"
    urgency: str = "normal"
    complexity: str = "low"
    personality_hints: List[str] = Field(default_factory=list)
    business: BusinessSignals = Field(default_factory=BusinessSignals)


class ResponseStrategy(BaseModel):
    """How the reply should be shaped."""
    response_type: str = "conversational"
    tone: str = "friendly"
    length: str = "balanced"
    personality_type: str = "friendly"
    urgency: str = "normal"
    include_entities: bool = False
    follow_up_needed: bool = False


class NLUResult(BaseModel):
    """Complete analysis of one inbound message."""
    input: str = ""
    basic_info: BasicInfo = Field(default_factory=BasicInfo)
    intent: IntentResult = Field(default_factory=IntentResult)
    emotion: EmotionResult = Field(default_factory=EmotionResult)
    entities: Dict[str, List[str]] = Field(default_factory=dict)
    context_analysis: ContextAnalysis = Field(default_factory=ContextAnalysis)
    strategy: ResponseStrategy = Field(default_factory=ResponseStrategy)
