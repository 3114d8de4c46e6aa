"""
Contains base class for pipelines and their request / result shapes
"""
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from core.entities import SourcesRequested


class PipelineRequest(BaseModel):
    """
    ``source_ids`` omitted means every configured source; ``batch_mode``
    omitted means the configured default.
    """
    source_ids: Optional[List[str]] = None
    batch_mode: Optional[bool] = None


class PipelineResult(BaseModel):
    fetched: int
    processed: int
    sources_requested: SourcesRequested
    new_items: int = 0
    failures: Dict[str, str] = {}
    message: str = ""
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class Pipeline(ABC):
    """
    Orchestrates ingestion → normalization → summarization → storage.
    """

    name: str

    @abstractmethod
    async def run(self, request: PipelineRequest) -> PipelineResult:
        """
        Execute one cycle. Partial failures degrade gracefully; only a
        cycle that obtains no content because every source failed raises.
        """
        raise NotImplementedError
