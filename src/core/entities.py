from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, Field

from core.schemas import ContentCategory

SourceType = Literal["blog", "video", "microblog"]
SOURCE_TYPES = ("blog", "video", "microblog")

TIE = "tie"


@dataclass(frozen=True)
class Source:
    """
    Configured content source. Loaded once at startup.
    """
    id: str
    name: str
    type: str
    locator: str  # feed URL, channel feed URL or @handle
    icon: Optional[str] = None


@dataclass(frozen=True)
class ModelConfig:
    """
    Declarative model definition from the configured pool.
    """
    id: str
    name: str
    provider: str = "ollama"


class SummaryMetrics(BaseModel):
    word_count: int
    sentence_count: int
    readability_score: float
    highlight_count: int
    processing_time_ms: int


class ManualRating(BaseModel):
    score: int = Field(..., ge=1, le=5)
    rated_at: datetime


class ModelSummary(BaseModel):
    """
    Output of one model invocation. ``rating`` is the only field
    changed after creation.
    """
    id: str
    model_id: str
    model_name: str
    summary: str
    highlights: List[str]
    category: ContentCategory
    metrics: SummaryMetrics
    rating: Optional[ManualRating] = None


class ProcessedContent(BaseModel):
    """
    A content item (or a whole-cycle digest) with its model summaries.
    """
    id: str
    raw_content_id: str
    raw_content_ids: List[str] = []  # items folded into a digest
    source_id: str
    source_name: str
    source_type: SourceType
    title: str
    url: str
    published_at: datetime
    thumbnail: Optional[str] = None
    author: Optional[str] = None
    processed_at: datetime
    summaries: List[ModelSummary] = Field(..., min_length=1)


class ModelComparison(BaseModel):
    """
    Append-only record of a human vote between two models.
    """
    id: str
    content_id: str
    model_a: str
    model_b: str
    winner: str  # model_a, model_b or "tie"
    compared_at: datetime


class ModelStats(BaseModel):
    """
    Derived per-model statistics, never stored.
    """
    model_id: str
    model_name: str
    total_summaries: int = 0
    average_rating: float = 0.0
    average_word_count: int = 0
    average_readability: int = 0
    average_processing_time: int = 0
    wins: int = 0
    losses: int = 0
    ties: int = 0


class StorageData(BaseModel):
    contents: List[ProcessedContent] = []
    comparisons: List[ModelComparison] = []
    last_fetched_at: Optional[datetime] = None
    last_email_sent_at: Optional[datetime] = None


class NewsResponse(BaseModel):
    contents: List[ProcessedContent]
    stats: List[ModelStats]
    last_updated: Optional[datetime] = None


SourcesRequested = Union[int, Literal["all"]]
