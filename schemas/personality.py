"""Personality profile schemas."""

from enum import Enum
from typing import Dict, List, Any
from pydantic import BaseModel, Field


class PersonalityType(str, Enum):
    """Base personality used to rewrite replies."""
    PROFESSIONAL = "professional"
    FRIENDLY = "friendly"
    EXPERT = "expert"
    CARING = "caring"
    TRENDY = "trendy"


class CommunicationStyle(str, Enum):
    FORMAL = "formal"
    CASUAL = "casual"
    MIXED = "mixed"


class ResponseLength(str, Enum):
    CONCISE = "concise"
    DETAILED = "detailed"
    BALANCED = "balanced"


class EmotionalTone(str, Enum):
    ENTHUSIASTIC = "enthusiastic"
    CALM = "calm"
    EMPATHETIC = "empathetic"
    CONFIDENT = "confident"


class PersonalityProfile(BaseModel):
    """Tone and style configuration for one business account."""
    personality_type: PersonalityType = PersonalityType.FRIENDLY
    communication_style: CommunicationStyle = CommunicationStyle.CASUAL
    response_length: ResponseLength = ResponseLength.BALANCED
    emotional_tone: EmotionalTone = EmotionalTone.EMPATHETIC
    industry_type: str = "general"
    brand_voice_settings: Dict[str, Any] = Field(default_factory=dict)
    custom_instructions: str = ""
    greeting_message: str = ""
    fallback_responses: List[str] = Field(default_factory=list)


def default_profile() -> PersonalityProfile:
    """Profile used for conversations with no configured personality."""
    return PersonalityProfile(
        personality_type=PersonalityType.FRIENDLY,
        communication_style=CommunicationStyle.CASUAL,
        response_length=ResponseLength.BALANCED,
        emotional_tone=EmotionalTone.EMPATHETIC,
        industry_type="general",
        brand_voice_settings={"tone": "helpful", "style": "conversational"},
        custom_instructions="Be helpful, friendly, and natural in all responses.",
        greeting_message="Hi there! How can I help you today?",
        fallback_responses=[
            "I'm here to help! Could you tell me more about what you need?",
        ],
    )
