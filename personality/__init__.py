"""Personality profiles and reply rewriting."""

from .transformer import PersonalityTransformer, substitute
from .profiles import ProfileRegistry

__all__ = [
    "PersonalityTransformer",
    "ProfileRegistry",
    "substitute",
]
