"""
Base classes for Ingestion
"""
import hashlib
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from pydantic import BaseModel, field_validator

from core.entities import Source
from core.errors import NewsPipelineError, RateLimitError
from services.logging import log_event

logger = logging.getLogger(__name__)


class RawContent(BaseModel):
    """
    Normalized content item produced by every source type.
    """
    id: str
    source_id: str
    title: str
    url: str
    published_at: datetime
    content: str
    thumbnail: Optional[str] = None
    author: Optional[str] = None

    @field_validator("published_at")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


def stable_hash(value: str, length: int = 12) -> str:
    """Deterministic short hash used to build content ids."""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()[:length]


def content_id(kind: str, *parts: str, key: str) -> str:
    """
    Build a RawContent id: source kind prefix, optional qualifiers,
    and a hash of the stable key (feed link or post id).
    """
    return "-".join([kind, *parts, stable_hash(key)])


def truncate(text: str, limit: int) -> str:
    if len(text) > limit:
        return text[:limit] + "..."
    return text


@dataclass
class FetchReport:
    """
    Outcome of fetching one source type. Per-source failures are
    collected instead of raised.
    """
    source_type: str
    attempted: List[str] = field(default_factory=list)
    items: List[RawContent] = field(default_factory=list)
    failures: Dict[str, Exception] = field(default_factory=dict)

    def record_failure(self, source_id: str, error: Exception) -> None:
        self.failures[source_id] = error

    @property
    def all_failed(self) -> bool:
        return bool(self.attempted) and len(self.failures) == len(self.attempted)

    @property
    def rate_limited(self) -> bool:
        return any(isinstance(e, RateLimitError) for e in self.failures.values())


def describe_error(error: Exception) -> str:
    if isinstance(error, NewsPipelineError):
        return error.message
    return str(error) or error.__class__.__name__


class SourceAdapter(ABC):
    """
    Base interface for all ingestion source types.
    """

    source_type: str
    source_label: str = "source"

    @abstractmethod
    async def fetch_items(self, sources: Sequence[Source]) -> FetchReport:
        """
        Fetch recent items for the given sources of this adapter's type.
        Must NEVER raise for a single failing source; failures go into the report.
        """
        raise NotImplementedError

    def record_success(self, report: FetchReport, source: Source, items: List[RawContent]) -> None:
        report.items.extend(items)
        log_event(
            logger,
            "fetch.succeeded",
            source_id=source.id,
            source_type=self.source_type,
            items=len(items),
        )

    def record_failure(self, report: FetchReport, source: Source, error: Exception, **fields) -> None:
        report.record_failure(source.id, error)
        log_event(
            logger,
            "fetch.failed",
            f"Failed to fetch {self.source_label} {source.name}: {describe_error(error)}",
            level=logging.ERROR,
            source_id=source.id,
            source_type=self.source_type,
            **fields,
        )

    def collect_results(self, report: FetchReport, sources: Sequence[Source], results: Sequence) -> FetchReport:
        """
        Fold the output of ``asyncio.gather(..., return_exceptions=True)``
        into the report, one result per source in the same order.
        """
        for source, result in zip(sources, results):
            report.attempted.append(source.id)
            if isinstance(result, BaseException):
                self.record_failure(report, source, result)
            else:
                self.record_success(report, source, result)
        return report
