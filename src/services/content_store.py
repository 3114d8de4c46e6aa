"""
ContentStore - the persisted aggregate of processed content, comparison
votes and fetch metadata, kept under three keys of a KeyValueStore.

Every mutation is a whole-value read-modify-write of one key. A per-key
lock serializes writers inside this process only; separate processes
writing the same store can still lose updates.
"""
import asyncio
import logging
import time
import uuid
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from pydantic import TypeAdapter

from core.entities import (
    TIE,
    ManualRating,
    ModelComparison,
    ModelConfig,
    ModelStats,
    NewsResponse,
    ProcessedContent,
    StorageData,
)
from core.errors import InvalidRequestError
from processing.deduplicator import merge_contents
from processing.stats import aggregate_stats
from services.database import KeyValueStore
from services.logging import log_event

logger = logging.getLogger(__name__)

CONTENTS_KEY = "contents"
COMPARISONS_KEY = "comparisons"
METADATA_KEY = "metadata"

_contents_adapter = TypeAdapter(List[ProcessedContent])
_comparisons_adapter = TypeAdapter(List[ModelComparison])


class ContentStore:
    def __init__(
        self,
        kv: KeyValueStore,
        max_contents: int = 100,
        max_comparisons: int = 500,
    ):
        self.kv = kv
        self.max_contents = max_contents
        self.max_comparisons = max_comparisons
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    # ----------------------------
    # Raw key access
    # ----------------------------
    async def get_contents(self) -> List[ProcessedContent]:
        return _contents_adapter.validate_python(await self.kv.get(CONTENTS_KEY) or [])

    async def _write_contents(self, contents: List[ProcessedContent]) -> None:
        await self.kv.set(CONTENTS_KEY, _contents_adapter.dump_python(contents, mode="json"))

    async def get_comparisons(self) -> List[ModelComparison]:
        return _comparisons_adapter.validate_python(await self.kv.get(COMPARISONS_KEY) or [])

    async def _get_metadata_raw(self) -> Dict[str, Any]:
        return await self.kv.get(METADATA_KEY) or {}

    async def _touch_metadata(self, field: str) -> None:
        async with self._locks[METADATA_KEY]:
            metadata = await self._get_metadata_raw()
            metadata[field] = datetime.now(timezone.utc).isoformat()
            await self.kv.set(METADATA_KEY, metadata)

    async def read_storage_data(self) -> StorageData:
        metadata = await self._get_metadata_raw()
        return StorageData(
            contents=await self.get_contents(),
            comparisons=await self.get_comparisons(),
            last_fetched_at=metadata.get("last_fetched_at"),
            last_email_sent_at=metadata.get("last_email_sent_at"),
        )

    # ----------------------------
    # Mutations
    # ----------------------------
    async def add_contents(self, new_contents: Sequence[ProcessedContent]) -> int:
        """
        Prepend new content, skipping stored ids, and enforce retention.
        Returns the number of stored entries afterwards.
        """
        async with self._locks[CONTENTS_KEY]:
            existing = await self.get_contents()
            merged = merge_contents(new_contents, existing, limit=self.max_contents)
            await self._write_contents(merged)

        await self._touch_metadata("last_fetched_at")
        log_event(
            logger,
            "storage.written",
            key=CONTENTS_KEY,
            added=len(new_contents),
            total=len(merged),
        )
        return len(merged)

    async def update_rating(self, content_id: str, summary_id: str, score: int) -> bool:
        """
        Attach a 1-5 rating to a summary. Returns False when the content
        or summary does not exist.
        """
        if not 1 <= score <= 5:
            raise InvalidRequestError(f"Rating must be between 1 and 5, got {score}")

        async with self._locks[CONTENTS_KEY]:
            contents = await self.get_contents()
            content = next((c for c in contents if c.id == content_id), None)
            if content is None:
                return False
            summary = next((s for s in content.summaries if s.id == summary_id), None)
            if summary is None:
                return False

            summary.rating = ManualRating(score=score, rated_at=datetime.now(timezone.utc))
            await self._write_contents(contents)

        return True

    async def record_comparison(
        self,
        content_id: str,
        model_a: str,
        model_b: str,
        winner: str,
    ) -> ModelComparison:
        if model_a == model_b:
            raise InvalidRequestError("A comparison needs two different models")
        if winner not in (model_a, model_b, TIE):
            raise InvalidRequestError(
                f"Winner must be '{model_a}', '{model_b}' or '{TIE}', got '{winner}'"
            )

        comparison = ModelComparison(
            id=f"comparison-{int(time.time() * 1000)}-{uuid.uuid4().hex[:6]}",
            content_id=content_id,
            model_a=model_a,
            model_b=model_b,
            winner=winner,
            compared_at=datetime.now(timezone.utc),
        )

        async with self._locks[COMPARISONS_KEY]:
            comparisons = await self.get_comparisons()
            comparisons.append(comparison)
            comparisons = comparisons[-self.max_comparisons:]
            await self.kv.set(
                COMPARISONS_KEY,
                _comparisons_adapter.dump_python(comparisons, mode="json"),
            )

        return comparison

    async def update_last_email_sent(self) -> None:
        await self._touch_metadata("last_email_sent_at")

    # ----------------------------
    # Read models
    # ----------------------------
    async def get_model_stats(self, models: Sequence[ModelConfig]) -> List[ModelStats]:
        contents = await self.get_contents()
        summaries = [s for c in contents for s in c.summaries]
        return aggregate_stats(models, summaries, await self.get_comparisons())

    async def get_metadata(self) -> Dict[str, Any]:
        metadata = await self._get_metadata_raw()
        return {
            "last_fetched_at": metadata.get("last_fetched_at"),
            "last_email_sent_at": metadata.get("last_email_sent_at"),
            "content_count": len(await self.get_contents()),
            "comparison_count": len(await self.get_comparisons()),
        }

    async def get_news(
        self,
        models: Sequence[ModelConfig],
        category: Optional[str] = None,
        source_id: Optional[str] = None,
        source_type: Optional[str] = None,
    ) -> NewsResponse:
        """Stored content filtered by category, source and source type, with stats."""
        contents = await self.get_contents()

        if category:
            contents = [c for c in contents if any(s.category == category for s in c.summaries)]
        if source_id:
            contents = [c for c in contents if c.source_id == source_id]
        if source_type:
            contents = [c for c in contents if c.source_type == source_type]

        metadata = await self._get_metadata_raw()
        return NewsResponse(
            contents=contents,
            stats=await self.get_model_stats(models),
            last_updated=metadata.get("last_fetched_at"),
        )
