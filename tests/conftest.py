"""Shared fixtures: fake chat clients, recorded sleeps and entity factories."""
import json
from datetime import datetime, timezone

import pytest

from core.entities import ModelConfig, ModelSummary, ProcessedContent, SummaryMetrics
from ingestion.base import RawContent

VALID_RESPONSE = json.dumps({
    "summary": "Researchers released a compact model that matches larger systems on reasoning tasks.",
    "highlights": ["Compact model", "Strong reasoning", "Open weights"],
    "category": "research",
})


class FakeClient:
    """Stands in for LLMClient: returns canned text and records prompts."""

    def __init__(self, content=VALID_RESPONSE, latency_ms=120, error=None):
        self.content = content
        self.latency_ms = latency_ms
        self.error = error
        self.prompts = []

    async def evaluate(self, prompt):
        self.prompts.append(prompt)
        if self.error:
            raise self.error
        return {"content": self.content, "latency_ms": self.latency_ms}


class RecordingSleep:
    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


@pytest.fixture
def fake_client():
    return FakeClient


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def models():
    return [
        ModelConfig(id="model-a", name="Model A"),
        ModelConfig(id="model-b", name="Model B"),
        ModelConfig(id="model-c", name="Model C"),
        ModelConfig(id="model-d", name="Model D"),
    ]


@pytest.fixture
def make_raw():
    def _make(index=1, source_id="openai", content=None, published_at=None, **overrides):
        data = dict(
            id=f"blog-{source_id}-{index:012d}",
            source_id=source_id,
            title=f"Article {index} about new language models",
            url=f"https://example.com/posts/{index}",
            published_at=published_at or datetime(2025, 1, index, tzinfo=timezone.utc),
            content=content or "A long enough body of text describing the announcement in detail. " * 3,
            author="Example Author",
        )
        data.update(overrides)
        return RawContent(**data)

    return _make


@pytest.fixture
def make_summary():
    def _make(model_id="model-a", word_count=50, readability=65, highlights=3, time_ms=100, rating=None):
        return ModelSummary(
            id=f"summary-{model_id}-{word_count}-{time_ms}",
            model_id=model_id,
            model_name=model_id.title(),
            summary="A short summary.",
            highlights=["h"] * highlights,
            category="news",
            metrics=SummaryMetrics(
                word_count=word_count,
                sentence_count=1,
                readability_score=readability,
                highlight_count=highlights,
                processing_time_ms=time_ms,
            ),
            rating=rating,
        )

    return _make


@pytest.fixture
def make_processed(make_summary):
    def _make(raw_id, summaries=None, source_id="openai", source_type="blog"):
        return ProcessedContent(
            id=f"processed-{raw_id}",
            raw_content_id=raw_id,
            source_id=source_id,
            source_name="OpenAI Blog",
            source_type=source_type,
            title=f"Title for {raw_id}",
            url=f"https://example.com/{raw_id}",
            published_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
            processed_at=datetime(2025, 1, 2, tzinfo=timezone.utc),
            summaries=summaries or [make_summary()],
        )

    return _make
