"""Phrase banks and substitution tables used by the personality transformer."""

from typing import Dict, List


GREETING_KEYWORDS = ["hello", "hi", "hey", "good morning", "good afternoon", "welcome"]
CLOSING_KEYWORDS = ["goodbye", "bye", "see you", "have a great", "thank you"]

GREETINGS: Dict[str, List[str]] = {
    "professional": [
        "Good day,",
        "Thank you for contacting us.",
        "I'm pleased to assist you.",
        "How may I be of service?",
    ],
    "friendly": [
        "Hey there! 👋",
        "Hi! Great to hear from you!",
        "Hello! How's your day going?",
        "Hey! What can I help you with?",
    ],
}

CLOSINGS: Dict[str, List[str]] = {
    "professional": [
        "Please do not hesitate to contact us again.",
        "We appreciate your business.",
    ],
    "friendly": [
        "Talk soon! 😊",
        "Have an awesome day!",
    ],
    "caring": [
        "Take good care of yourself.",
        "I'm always here if you need anything.",
    ],
}

EXPERT_INDICATORS = [
    "Based on our experience,",
    "From a practical standpoint,",
    "In most cases,",
]

SUPPORTIVE_PHRASES = [
    "You're not alone in this.",
    "We'll sort this out together.",
    "I'm glad you reached out.",
]

TONE_PHRASES: Dict[str, List[str]] = {
    "enthusiastic": [
        "That's fantastic!",
        "I'm excited to help!",
        "This is going to be great!",
        "Perfect!",
    ],
    "calm": [
        "Let me help you with that.",
        "No worries,",
        "I understand.",
        "Let's take this step by step.",
    ],
    "empathetic": [
        "I understand how you feel.",
        "That makes sense.",
        "I can help you with that.",
        "I'm here for you.",
    ],
    "confident": [
        "I can definitely help with that.",
        "Here's exactly what you need:",
        "I've got the perfect solution:",
        "This is what I recommend:",
    ],
}

ENTHUSIASTIC_WORDS = {
    "good": "great",
    "yes": "absolutely",
}

FORMALIZE = {
    "can't": "cannot",
    "won't": "will not",
    "don't": "do not",
    "isn't": "is not",
    "aren't": "are not",
    "hey": "hello",
    "yeah": "yes",
    "nope": "no",
}

CASUALIZE = {
    "cannot": "can't",
    "will not": "won't",
    "do not": "don't",
    "is not": "isn't",
    "are not": "aren't",
    "hello": "hey",
    "certainly": "sure",
    "absolutely": "totally",
}

TRENDY_WORDS = {
    "very good": "on point",
    "amazing": "epic",
    "excellent": "top-notch",
    "popular": "trending",
}

FRIENDLY_EMOJIS = {
    "great": "😊",
    "perfect": "✨",
    "thank you": "🙏",
    "welcome": "🎉",
    "help": "💪",
}

TRENDY_EMOJIS = {
    "new": "🔥",
    "great": "💯",
    "love": "😍",
    "cool": "😎",
    "thanks": "🙌",
}

INDUSTRY_TERMS: Dict[str, Dict[str, str]] = {
    "healthcare": {
        "problem": "concern",
        "fix": "address",
        "issue": "matter",
    },
    "retail": {
        "item": "product",
        "buy": "purchase",
        "get": "receive",
    },
    "hospitality": {
        "help": "serve",
        "problem": "concern",
        "good": "wonderful",
    },
    "finance": {
        "money": "funds",
        "cost": "fee",
        "problem": "discrepancy",
    },
    "technology": {
        "problem": "issue",
        "fix": "resolve",
        "thing": "feature",
    },
    "education": {
        "customer": "student",
        "buy": "enroll in",
        "product": "course",
    },
}
