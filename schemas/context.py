"""Conversation context schemas."""

from datetime import datetime
from enum import Enum
from typing import Optional, Any, Dict, List
from pydantic import BaseModel, Field


class MessageRole(str, Enum):
    """Author of a message in the conversation log."""
    USER = "user"
    ASSISTANT = "assistant"


class ConversationStage(str, Enum):
    """Stage label derived from the message count."""
    INITIAL = "initial"
    GREETING = "greeting"
    INQUIRY = "inquiry"
    ENGAGEMENT = "engagement"
    ADVANCED = "advanced"


class MessageEntry(BaseModel):
    """A single entry in the message log."""
    role: MessageRole
    content: str
    timestamp: datetime = Field(default_factory=datetime.now)
    intent: Optional[str] = None
    confidence: Optional[float] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class IntentEntry(BaseModel):
    """A detected intent recorded in the intent log."""
    intent: str
    confidence: float = 0.0
    timestamp: datetime = Field(default_factory=datetime.now)


class EmotionEntry(BaseModel):
    """A recorded emotional state."""
    state: str
    timestamp: datetime = Field(default_factory=datetime.now)


class ConversationContext(BaseModel):
    """Accumulated state for one (user_id, phone) conversation."""
    user_id: str
    phone: str
    message_history: List[MessageEntry] = Field(default_factory=list)
    intent_history: List[IntentEntry] = Field(default_factory=list)
    emotional_state: str = "neutral"
    emotional_history: List[EmotionEntry] = Field(default_factory=list)
    user_preferences: Dict[str, Any] = Field(default_factory=dict)
    business_context: Dict[str, Any] = Field(default_factory=dict)
    context_data: Dict[str, Any] = Field(default_factory=dict)
    last_interaction: Optional[datetime] = None
    conversation_start: datetime = Field(default_factory=datetime.now)

    @property
    def conversation_id(self) -> str:
        return f"{self.user_id}-{self.phone}"


class ContextUpdate(BaseModel):
    """
    Partial update merged into a context.

    List fields are appended to the existing logs, dict fields are merged
    key by key, scalar fields replace the stored value.
    """
    messages: List[MessageEntry] = Field(default_factory=list)
    intents: List[IntentEntry] = Field(default_factory=list)
    emotional_state: Optional[str] = None
    user_preferences: Dict[str, Any] = Field(default_factory=dict)
    business_context: Dict[str, Any] = Field(default_factory=dict)
    context_data: Dict[str, Any] = Field(default_factory=dict)


class IntentCount(BaseModel):
    """Frequency of an intent in the intent log."""
    intent: str
    count: int


class ContextSummary(BaseModel):
    """Derived statistics for a conversation."""
    total_messages: int = 0
    user_messages: int = 0
    assistant_messages: int = 0
    intent_count: int = 0
    dominant_intents: List[IntentCount] = Field(default_factory=list)
    conversation_tone: str = "neutral"
    topics: List[str] = Field(default_factory=list)
    duration_seconds: int = 0
    engagement: float = Field(0.0, ge=0.0, le=1.0)
    stage: ConversationStage = ConversationStage.INITIAL
    last_interaction: Optional[datetime] = None


class AIContext(BaseModel):
    """The slice of a conversation handed to prompt building."""
    recent_messages: List[MessageEntry] = Field(default_factory=list)
    dominant_intents: List[IntentCount] = Field(default_factory=list)
    emotional_state: str = "neutral"
    stage: ConversationStage = ConversationStage.INITIAL
    user_preferences: Dict[str, Any] = Field(default_factory=dict)
    business_context: Dict[str, Any] = Field(default_factory=dict)
    conversation_flow: str = "none"
    last_interaction: Optional[datetime] = None
