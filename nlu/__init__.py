"""Natural language understanding: intent, emotion, entities, strategy."""

from .analyzer import NLUAnalyzer
from .entities import EntityExtractor, DEFAULT_LEXICON

__all__ = [
    "NLUAnalyzer",
    "EntityExtractor",
    "DEFAULT_LEXICON",
]
