"""
Summarization of content items by one or more chat models.

Two modes are supported:
- per-item: every item is summarized by an A/B pair of models in parallel
- batch digest: all items are folded into one prompt for a single low-cost model
"""
import asyncio
import json
import logging
import re
import time
import uuid
from collections import Counter, defaultdict
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence

from pydantic import ValidationError

from core.entities import ModelConfig, ModelSummary, ProcessedContent, Source
from core.schemas import CATEGORIES, SummaryResponse
from ingestion.base import RawContent
from processing.metrics import calculate_metrics
from processing.model_selector import ModelPairSelector
from services.logging import log_event

logger = logging.getLogger(__name__)

_FENCE_START_RE = re.compile(r"^```(?:json)?\s*\n?", re.IGNORECASE)
_FENCE_END_RE = re.compile(r"\n?\s*```\s*$")


class ParseFailureReason(str, Enum):
    EMPTY = "empty"
    NO_JSON_OBJECT = "no_json_object"
    INVALID_JSON = "invalid_json"
    SCHEMA_MISMATCH = "schema_mismatch"


@dataclass(frozen=True)
class ParseResult:
    """Either a validated response or the reason it was rejected."""
    value: Optional[SummaryResponse] = None
    reason: Optional[ParseFailureReason] = None
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.value is not None


def strip_code_fences(text: str) -> str:
    text = text.strip()
    text = _FENCE_START_RE.sub("", text)
    return _FENCE_END_RE.sub("", text)


def extract_json_object(text: str) -> Optional[Any]:
    """
    Decode the first top-level JSON object in ``text``.
    Returns None when there is no opening brace; raises ValueError when
    the object does not decode.
    """
    start = text.find("{")
    if start == -1:
        return None
    obj, _ = json.JSONDecoder().raw_decode(text[start:])
    return obj


def parse_summary_response(raw: str) -> ParseResult:
    """
    Repair and validate raw model output: strip markdown fences, pull out
    the first JSON object, then validate it against ``SummaryResponse``.
    """
    if not raw or not raw.strip():
        return ParseResult(reason=ParseFailureReason.EMPTY)

    cleaned = strip_code_fences(raw)
    try:
        payload = extract_json_object(cleaned)
    except ValueError as e:
        return ParseResult(reason=ParseFailureReason.INVALID_JSON, detail=str(e))

    if payload is None:
        return ParseResult(reason=ParseFailureReason.NO_JSON_OBJECT)

    try:
        return ParseResult(value=SummaryResponse.model_validate(payload))
    except ValidationError as e:
        return ParseResult(reason=ParseFailureReason.SCHEMA_MISMATCH, detail=str(e))


def build_item_prompt(content: RawContent, max_chars: int) -> str:
    full_content = f"{content.title}\n\n{content.content}"
    return f"""Summarize this news article. Return ONLY a JSON object, no markdown.

{full_content[:max_chars]}

Return this exact JSON structure (no code blocks, no explanation):
{{"summary": "2-3 sentence summary (max 300 chars)", "highlights": ["point 1", "point 2", "point 3"], "category": "research"}}

Valid categories: {", ".join(CATEGORIES)}"""


def build_digest_prompt(contents: Sequence[RawContent], max_chars: int) -> str:
    combined = "\n\n".join(
        f"[{i + 1}] @{c.author or 'unknown'}: {c.content}"
        for i, c in enumerate(contents)
    )
    return f"""You are summarizing {len(contents)} posts and articles from AI companies and researchers.

Here are the posts:
{combined[:max_chars]}

Create a combined summary that captures the key announcements, insights, and themes.
Return ONLY a JSON object (no markdown code blocks):

{{"summary": "2-4 sentence summary of the main themes and announcements (max 500 chars)", "highlights": ["key point 1", "key point 2", "key point 3", "key point 4", "key point 5"], "category": "news"}}

Valid categories: {", ".join(CATEGORIES)}"""


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _summary_id(prefix: str, model_id: str) -> str:
    return f"{prefix}-{model_id}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:6]}"


class SummarizationOrchestrator:
    """
    Fans content out to chat models and turns validated responses into
    ``ProcessedContent`` records.

    ``clients`` maps a model id to an object exposing
    ``async evaluate(prompt) -> {"content": str, "latency_ms": int}``.
    """

    def __init__(
        self,
        *,
        clients: Mapping[str, Any],
        selector: ModelPairSelector,
        sources: Mapping[str, Source],
        batch_model: Optional[ModelConfig] = None,
        chunk_size: int = 3,
        chunk_delay: float = 1.0,
        prompt_content_length: int = 10000,
        min_content_length: int = 50,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.clients = clients
        self.selector = selector
        self.sources = sources
        self.batch_model = batch_model
        self.chunk_size = max(1, chunk_size)
        self.chunk_delay = chunk_delay
        self.prompt_content_length = prompt_content_length
        self.min_content_length = min_content_length
        self._sleep = sleep

    async def _invoke(self, model: ModelConfig, prompt: str) -> Optional[Dict[str, Any]]:
        client = self.clients.get(model.id)
        if client is None:
            logger.error(f"No client configured for model {model.id}")
            return None
        try:
            return await client.evaluate(prompt)
        except Exception as e:
            logger.error(f"Model call failed for {model.name}: {e}")
            return None

    def _to_summary(
        self,
        model: ModelConfig,
        response: Dict[str, Any],
        id_prefix: str,
    ) -> Optional[ModelSummary]:
        result = parse_summary_response(response["content"])
        if not result.ok:
            log_event(
                logger,
                "summary.parse_failed",
                f"Discarding {model.name} response: {result.reason.value}",
                level=logging.WARNING,
                model_id=model.id,
                reason=result.reason.value,
                detail=result.detail[:300],
            )
            return None

        parsed = result.value
        return ModelSummary(
            id=_summary_id(id_prefix, model.id),
            model_id=model.id,
            model_name=model.name,
            summary=parsed.summary,
            highlights=parsed.highlights,
            category=parsed.category,
            metrics=calculate_metrics(parsed.summary, parsed.highlights, response["latency_ms"]),
        )

    async def summarize_with_model(self, content: RawContent, model: ModelConfig) -> Optional[ModelSummary]:
        full_length = len(f"{content.title}\n\n{content.content}")
        if full_length < self.min_content_length:
            logger.info(f"Skipping '{content.title}' - content too short ({full_length} chars)")
            return None

        response = await self._invoke(model, build_item_prompt(content, self.prompt_content_length))
        if response is None:
            return None

        summary = self._to_summary(model, response, "summary")
        if summary:
            log_event(
                logger,
                "summary.succeeded",
                level=logging.DEBUG,
                model_id=model.id,
                content_id=content.id,
                processing_time_ms=summary.metrics.processing_time_ms,
            )
        return summary

    def _source_info(self, source_id: str) -> tuple:
        source = self.sources.get(source_id)
        if source is None:
            return "Unknown", "blog"
        return source.name, source.type

    async def process_content(self, content: RawContent) -> Optional[ProcessedContent]:
        """
        Summarize one item with an A/B pair. Kept when at least one model succeeds.
        """
        model_a, model_b = self.selector.select()

        results = await asyncio.gather(
            self.summarize_with_model(content, model_a),
            self.summarize_with_model(content, model_b),
        )
        summaries = [s for s in results if s is not None]

        if not summaries:
            logger.error(f"Failed to generate any summaries for: {content.title}")
            return None

        source_name, source_type = self._source_info(content.source_id)
        return ProcessedContent(
            id=f"processed-{content.id}",
            raw_content_id=content.id,
            source_id=content.source_id,
            source_name=source_name,
            source_type=source_type,
            title=content.title,
            url=content.url,
            published_at=content.published_at,
            thumbnail=content.thumbnail,
            author=content.author,
            processed_at=_now(),
            summaries=summaries,
        )

    async def process_all(self, contents: Sequence[RawContent]) -> List[ProcessedContent]:
        """
        Per-item mode, in chunks of ``chunk_size`` with a pause between chunks.
        """
        results: List[ProcessedContent] = []

        for start in range(0, len(contents), self.chunk_size):
            chunk = contents[start:start + self.chunk_size]
            processed = await asyncio.gather(*(self.process_content(c) for c in chunk))
            results.extend(p for p in processed if p is not None)

            if start + self.chunk_size < len(contents):
                await self._sleep(self.chunk_delay)

        logger.info(f"Processed {len(results)}/{len(contents)} items")
        return results

    async def create_digest(
        self,
        contents: Sequence[RawContent],
        source_name: str = "All Sources",
        source_id: Optional[str] = None,
    ) -> Optional[ProcessedContent]:
        """
        Batch-digest mode: one call to the designated low-cost model for
        all items. Returns None when the call or its output fails.
        """
        if not contents:
            return None
        if self.batch_model is None:
            logger.error("No batch model configured")
            return None

        model = self.batch_model
        prompt = build_digest_prompt(contents, self.prompt_content_length)

        response = await self._invoke(model, prompt)
        if response is None:
            return None

        summary = self._to_summary(model, response, "summary-batch")
        if summary is None:
            logger.error("Batch processing failed: model output rejected")
            return None

        now = _now()
        millis = int(now.timestamp() * 1000)
        batch_id = f"batch-{source_id}-{millis}" if source_id else f"batch-{millis}"
        most_recent = max(contents, key=lambda c: c.published_at)
        source_type = Counter(self._source_info(c.source_id)[1] for c in contents).most_common(1)[0][0]

        digest = ProcessedContent(
            id=batch_id,
            raw_content_id=batch_id,
            raw_content_ids=[c.id for c in contents],
            source_id=source_id or "batch-summary",
            source_name=f"{source_name} Daily Digest",
            source_type=source_type,
            title=f"AI News Digest - {len(contents)} posts from {now:%Y-%m-%d}",
            url=contents[0].url or "#",
            published_at=most_recent.published_at,
            processed_at=now,
            author=f"{len(contents)} sources",
            summaries=[summary],
        )
        log_event(
            logger,
            "digest.created",
            model_id=model.id,
            items=len(contents),
            digest_id=batch_id,
        )
        return digest

    async def batch_by_source(self, contents: Sequence[RawContent]) -> List[ProcessedContent]:
        """One digest per source."""
        grouped: Dict[str, List[RawContent]] = defaultdict(list)
        for content in contents:
            grouped[content.source_id].append(content)

        results: List[ProcessedContent] = []
        for source_id, group in grouped.items():
            source_name, _ = self._source_info(source_id)
            digest = await self.create_digest(group, source_name=source_name, source_id=source_id)
            if digest:
                results.append(digest)

        return results
