"""Knowledge snapshot provider interface."""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from schemas.knowledge import KnowledgeSnapshot


class KnowledgeProvider(ABC):
    """Read-only source of business data for prompt building."""

    @abstractmethod
    async def get_snapshot(
        self,
        user_id: str,
        query_type: str = "general",
        params: Optional[Dict[str, Any]] = None
    ) -> KnowledgeSnapshot:
        """
        Get the latest known business data.

        Args:
            user_id: Business account the data belongs to
            query_type: Data set name ("general" for every data set)
            params: Provider-specific options (search text, limit)

        Returns:
            KnowledgeSnapshot, possibly empty
        """
        pass


class EmptyKnowledgeProvider(KnowledgeProvider):
    """Provider for deployments without business data."""

    async def get_snapshot(
        self,
        user_id: str,
        query_type: str = "general",
        params: Optional[Dict[str, Any]] = None
    ) -> KnowledgeSnapshot:
        return KnowledgeSnapshot(query_type=query_type)
