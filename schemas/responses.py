"""Request and response schemas for the conversation pipeline."""

from datetime import datetime
from typing import Optional, Any, Dict
from pydantic import BaseModel, Field


class MessageRequest(BaseModel):
    """An inbound chat message."""
    user_id: str
    phone: str
    message_id: str
    text: str


class GenerationOptions(BaseModel):
    """Options for a single generation call."""
    system_message: Optional[str] = None
    model: Optional[str] = None
    max_tokens: int = 500
    temperature: float = 0.7


class ResponseMetadata(BaseModel):
    """Pipeline details attached to a generated response."""
    intent: Optional[str] = None
    emotion: Optional[str] = None
    provider: Optional[str] = None
    knowledge_used: bool = False
    personality_applied: bool = False
    response_strategy: Dict[str, Any] = Field(default_factory=dict)


class GeneratedResponse(BaseModel):
    """Result of generation, or of a whole processed message."""
    content: str
    provider_id: str
    success: bool
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    intent: Optional[str] = None
    reason: Optional[str] = None  # Set when the message was not processed normally
    timestamp: datetime = Field(default_factory=datetime.now)
    processing_time_ms: float = 0.0
    metadata: ResponseMetadata = Field(default_factory=ResponseMetadata)
