"""Read-only business knowledge snapshots."""

from .provider import KnowledgeProvider, EmptyKnowledgeProvider
from .csv_provider import CSVKnowledgeProvider

__all__ = [
    "KnowledgeProvider",
    "EmptyKnowledgeProvider",
    "CSVKnowledgeProvider",
]
