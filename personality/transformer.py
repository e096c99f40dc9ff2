"""Rewrites generated replies according to a personality profile."""

import logging
import random
import re
from typing import Dict, List, Optional

from schemas.context import ConversationContext, MessageRole
from schemas.personality import (
    CommunicationStyle,
    EmotionalTone,
    PersonalityProfile,
    PersonalityType,
    default_profile,
)
from .phrases import (
    CASUALIZE,
    CLOSING_KEYWORDS,
    CLOSINGS,
    ENTHUSIASTIC_WORDS,
    EXPERT_INDICATORS,
    FORMALIZE,
    FRIENDLY_EMOJIS,
    GREETING_KEYWORDS,
    GREETINGS,
    INDUSTRY_TERMS,
    SUPPORTIVE_PHRASES,
    TONE_PHRASES,
    TRENDY_EMOJIS,
    TRENDY_WORDS,
)

logger = logging.getLogger(__name__)

USE_INSTEAD_PATTERN = re.compile(r'use\s+"([^"]+)"\s+instead\s+of\s+"([^"]+)"', re.IGNORECASE)
ARROW_PATTERN = re.compile(r'^\s*"?([^"=\n]+?)"?\s*=>\s*"?([^"\n]+?)"?\s*$', re.MULTILINE)
SENTENCE_END_PATTERN = re.compile(r"\.(?=\s|$)")


def _word_regex(term: str) -> re.Pattern:
    return re.compile(r"\b" + re.escape(term) + r"\b", re.IGNORECASE)


def _match_case(source: str, replacement: str) -> str:
    if len(source) > 1 and source.isupper():
        return replacement.upper()
    if source[:1].isupper():
        return replacement[:1].upper() + replacement[1:]
    return replacement


def substitute(text: str, table: Dict[str, str]) -> str:
    """
    Replace whole words or phrases, keeping the case of the first letter.

    Args:
        text: Text to rewrite
        table: Map of term to replacement

    Returns:
        Rewritten text
    """
    for term, replacement in table.items():
        text = _word_regex(term).sub(lambda m, r=replacement: _match_case(m.group(0), r), text)
    return text


def contains_term(text: str, terms: List[str]) -> bool:
    return any(_word_regex(term).search(text) for term in terms)


class PersonalityTransformer:
    """
    Four-stage rewrite: personality type, emotional tone, industry, brand voice.

    A stage that fails hands its input unchanged to the next stage, so the
    generated reply is never lost.
    """

    def __init__(self, rng: Optional[random.Random] = None, tone_probability: float = 0.3):
        """
        Initialize transformer.

        Args:
            rng: Random source for phrase selection (seed it for reproducible output)
            tone_probability: Chance of prepending a tone or supportive phrase
        """
        self.rng = rng or random.Random()
        self.tone_probability = tone_probability

    def apply(
        self,
        text: str,
        profile: Optional[PersonalityProfile] = None,
        context: Optional[ConversationContext] = None
    ) -> str:
        """
        Apply every stage in order.

        Args:
            text: Generated reply
            profile: Personality profile (default profile if None)
            context: Conversation the reply belongs to

        Returns:
            Rewritten reply
        """
        profile = profile or default_profile()
        stages = [
            ("personality type", lambda t: self.rewrite_type(t, profile, context)),
            ("emotional tone", lambda t: self.adjust_tone(t, profile)),
            ("industry style", lambda t: self.apply_industry(t, profile)),
            ("brand voice", lambda t: self.apply_brand_voice(t, profile)),
        ]

        for name, stage in stages:
            try:
                text = stage(text)
            except Exception as e:
                logger.error(f"Error applying {name}: {e}")
        return text

    # ------------------------------------------------------------------
    # Stage 1: personality type
    # ------------------------------------------------------------------

    @staticmethod
    def is_greeting(text: str) -> bool:
        return contains_term(text, GREETING_KEYWORDS)

    @staticmethod
    def is_closing(text: str) -> bool:
        return contains_term(text, CLOSING_KEYWORDS)

    @staticmethod
    def lexical_table(profile: PersonalityProfile) -> Optional[Dict[str, str]]:
        """Formal or casual substitutions for the profile, if any."""
        if profile.personality_type == PersonalityType.PROFESSIONAL:
            return FORMALIZE
        if profile.personality_type in (PersonalityType.FRIENDLY, PersonalityType.TRENDY):
            return CASUALIZE
        if profile.communication_style == CommunicationStyle.FORMAL:
            return FORMALIZE
        if profile.communication_style == CommunicationStyle.CASUAL:
            return CASUALIZE
        return None

    @staticmethod
    def add_emojis(text: str, emojis: Dict[str, str]) -> str:
        """Place each emoji after the first occurrence of its word."""
        for word, emoji in emojis.items():
            if emoji in text:
                continue
            text = _word_regex(word).sub(lambda m, e=emoji: f"{m.group(0)} {e}", text, count=1)
        return text

    def _prepend(self, text: str, phrases: List[str]) -> str:
        return f"{self.rng.choice(phrases)} {text}"

    def _append(self, text: str, phrases: List[str]) -> str:
        return f"{text} {self.rng.choice(phrases)}"

    @staticmethod
    def _has_replied(context: Optional[ConversationContext]) -> bool:
        if not context:
            return False
        return any(m.role == MessageRole.ASSISTANT for m in context.message_history)

    def rewrite_type(
        self,
        text: str,
        profile: PersonalityProfile,
        context: Optional[ConversationContext] = None
    ) -> str:
        personality = profile.personality_type
        greeting = self.is_greeting(text) and not self._has_replied(context)
        closing = self.is_closing(text)

        if greeting and personality.value in GREETINGS:
            text = self._prepend(text, GREETINGS[personality.value])

        if personality == PersonalityType.TRENDY:
            text = substitute(text, TRENDY_WORDS)

        table = self.lexical_table(profile)
        if table:
            text = substitute(text, table)

        if personality == PersonalityType.EXPERT:
            if not any(text.startswith(p) for p in EXPERT_INDICATORS):
                text = self._prepend(text, EXPERT_INDICATORS)
        elif personality == PersonalityType.CARING:
            if self.rng.random() < self.tone_probability:
                text = self._append(text, SUPPORTIVE_PHRASES)
        elif personality == PersonalityType.FRIENDLY:
            text = self.add_emojis(text, FRIENDLY_EMOJIS)
        elif personality == PersonalityType.TRENDY:
            text = self.add_emojis(text, TRENDY_EMOJIS)

        if closing and personality.value in CLOSINGS:
            text = self._append(text, CLOSINGS[personality.value])

        return text

    # ------------------------------------------------------------------
    # Stage 2: emotional tone
    # ------------------------------------------------------------------

    def adjust_tone(self, text: str, profile: PersonalityProfile) -> str:
        tone = profile.emotional_tone

        if tone == EmotionalTone.ENTHUSIASTIC:
            text = substitute(text, ENTHUSIASTIC_WORDS)
            text = SENTENCE_END_PATTERN.sub("!", text)

        if self.rng.random() < self.tone_probability:
            text = self._prepend(text, TONE_PHRASES[tone.value])

        return text

    # ------------------------------------------------------------------
    # Stage 3: industry
    # ------------------------------------------------------------------

    @staticmethod
    def apply_industry(text: str, profile: PersonalityProfile) -> str:
        terms = INDUSTRY_TERMS.get(profile.industry_type.strip().lower())
        if not terms:
            return text
        return substitute(text, terms)

    # ------------------------------------------------------------------
    # Stage 4: brand voice
    # ------------------------------------------------------------------

    @staticmethod
    def parse_custom_instructions(instructions: str) -> Dict[str, str]:
        """
        Substitutions written in custom instructions.

        Recognizes `use "new" instead of "old"` and `old => new` lines.
        """
        table = {}
        for new, old in USE_INSTEAD_PATTERN.findall(instructions):
            table[old] = new
        for old, new in ARROW_PATTERN.findall(instructions):
            table[old.strip()] = new.strip()
        return table

    def apply_brand_voice(self, text: str, profile: PersonalityProfile) -> str:
        if profile.custom_instructions:
            text = substitute(text, self.parse_custom_instructions(profile.custom_instructions))

        settings = profile.brand_voice_settings
        terminology = settings.get("terminology")
        if isinstance(terminology, dict):
            text = substitute(text, {str(k): str(v) for k, v in terminology.items()})

        sign_off = settings.get("sign_off")
        if sign_off and not text.rstrip().endswith(sign_off):
            text = f"{text.rstrip()} {sign_off}"

        return text
