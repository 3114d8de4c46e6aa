"""
Pydantic schema for structured model output
"""
from typing import List, Literal

from pydantic import BaseModel, Field

ContentCategory = Literal[
    "research",
    "product-launch",
    "tutorial",
    "opinion",
    "news",
    "analysis",
    "other",
]

CATEGORIES = (
    "research",
    "product-launch",
    "tutorial",
    "opinion",
    "news",
    "analysis",
    "other",
)


class SummaryResponse(BaseModel):
    """
    Pydantic schema for a single summarization response
    """
    summary: str = Field(..., min_length=1)
    highlights: List[str] = []
    category: ContentCategory
