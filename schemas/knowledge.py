"""Knowledge snapshot and analytics event schemas."""

from datetime import datetime
from typing import Optional, Any, Dict, List
from pydantic import BaseModel, Field


class KnowledgeSnapshot(BaseModel):
    """Read-only business data handed to prompt building."""
    query_type: str = "general"
    rows: List[Dict[str, Any]] = Field(default_factory=list)
    summary: str = ""
    content_hash: Optional[str] = None
    fetched_at: datetime = Field(default_factory=datetime.now)

    @property
    def is_empty(self) -> bool:
        return not self.rows


class AnalyticsEvent(BaseModel):
    """A fire-and-forget analytics record."""
    event_type: str
    provider_id: Optional[str] = None
    latency_ms: float = 0.0
    success: bool = True
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.now)
