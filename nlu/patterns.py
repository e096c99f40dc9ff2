"""Keyword tables and scoring for rule-based classification."""

import re
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel


class PatternCategory(BaseModel):
    """Keyword patterns for one intent or emotion, with a confidence weight."""
    patterns: List[str]
    confidence: float


INTENT_CATEGORIES: Dict[str, PatternCategory] = {
    "greeting": PatternCategory(
        patterns=["hello", "hi", "hey", "good morning", "good afternoon", "good evening"],
        confidence=0.9,
    ),
    "question": PatternCategory(
        patterns=["what", "how", "when", "where", "why", "who", "which"],
        confidence=0.8,
    ),
    "booking": PatternCategory(
        patterns=["book", "reserve", "schedule", "appointment", "meeting"],
        confidence=0.85,
    ),
    "complaint": PatternCategory(
        patterns=["problem", "issue", "wrong", "error", "complain", "disappointed"],
        confidence=0.8,
    ),
    "appreciation": PatternCategory(
        patterns=["thank", "thanks", "appreciate", "grateful", "awesome", "great"],
        confidence=0.85,
    ),
    "goodbye": PatternCategory(
        patterns=["bye", "goodbye", "see you", "farewell", "later"],
        confidence=0.9,
    ),
    "help": PatternCategory(
        patterns=["help", "assist", "support", "guide", "explain"],
        confidence=0.8,
    ),
    "product_inquiry": PatternCategory(
        patterns=["product", "item", "service", "price", "cost", "available"],
        confidence=0.75,
    ),
}

EMOTION_CATEGORIES: Dict[str, PatternCategory] = {
    "happy": PatternCategory(
        patterns=["happy", "great", "awesome", "wonderful", "excellent", "fantastic", "love"],
        confidence=0.8,
    ),
    "sad": PatternCategory(
        patterns=["sad", "disappointed", "upset", "unhappy", "depressed", "down"],
        confidence=0.8,
    ),
    "angry": PatternCategory(
        patterns=["angry", "mad", "furious", "irritated", "annoyed", "frustrated"],
        confidence=0.85,
    ),
    "excited": PatternCategory(
        patterns=["excited", "thrilled", "amazing", "incredible", "wow", "fantastic"],
        confidence=0.8,
    ),
    "worried": PatternCategory(
        patterns=["worried", "concerned", "nervous", "anxious", "scared", "afraid"],
        confidence=0.8,
    ),
    "neutral": PatternCategory(
        patterns=["okay", "fine", "alright", "sure", "yes", "no"],
        confidence=0.6,
    ),
}

# Labels accepted from the AI classifier
AI_INTENTS = list(INTENT_CATEGORIES) + ["general"]
AI_EMOTIONS = list(EMOTION_CATEGORIES) + ["frustrated", "grateful", "confused"]

INTENSITY_MARKERS = ["very", "extremely", "really", "so", "totally", "completely"]

URGENCY_MARKERS = ["urgent", "emergency", "asap", "immediately", "help", "problem"]

PERSONALITY_HINTS: Dict[str, List[str]] = {
    "formal": ["please", "thank you", "could you", "would you"],
    "casual": ["hey", "hi", "cool", "awesome", "yeah"],
    "technical": ["system", "process", "configure", "settings"],
    "emotional": ["feel", "love", "hate", "excited", "disappointed"],
}

BUSINESS_KEYWORDS = ["price", "cost", "buy", "purchase", "order", "booking", "service"]
ESCALATION_KEYWORDS = ["manager", "supervisor", "complaint", "refund", "cancel"]
COMMERCIAL_KEYWORDS = ["buy", "purchase", "order", "payment", "price", "cost"]

INDONESIAN_WORDS = ["saya", "anda", "dengan", "untuk", "dari", "ini", "itu", "dan", "atau", "tidak"]
ENGLISH_WORDS = ["the", "and", "or", "but", "in", "on", "at", "to", "for", "of"]


_compiled: Dict[str, re.Pattern] = {}


def keyword_regex(keyword: str) -> re.Pattern:
    """Case-insensitive whole-word regex for a keyword or phrase."""
    regex = _compiled.get(keyword)
    if regex is None:
        # Inflections only for longer words, so "hi" does not match "his"
        suffix = r"(?:s|es|ed|ing|ful)?" if len(keyword) >= 4 else ""
        regex = re.compile(r"\b" + re.escape(keyword) + suffix + r"\b", re.IGNORECASE)
        _compiled[keyword] = regex
    return regex


def contains_keyword(text: str, keyword: str) -> bool:
    return keyword_regex(keyword).search(text) is not None


def count_matches(text: str, patterns: List[str]) -> int:
    return sum(1 for pattern in patterns if contains_keyword(text, pattern))


def contains_any(text: str, keywords: List[str]) -> bool:
    return any(contains_keyword(text, keyword) for keyword in keywords)


def best_category(
    text: str,
    categories: Dict[str, PatternCategory]
) -> Optional[Tuple[str, float, int]]:
    """
    Pick the highest-scoring category.

    Score is (matched patterns / patterns in category) x category weight.
    Ties keep the category listed first.

    Returns:
        (name, score, matched count) or None if nothing matched
    """
    best = None
    best_score = 0.0
    for name, category in categories.items():
        matched = count_matches(text, category.patterns)
        score = matched / len(category.patterns) * category.confidence
        if score > best_score:
            best_score = score
            best = (name, score, matched)
    return best
