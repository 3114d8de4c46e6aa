# src/workflows/news_pipeline.py
import asyncio
import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from core.entities import SOURCE_TYPES, Source
from core.errors import InvalidRequestError, PipelineFailure
from ingestion.base import FetchReport, RawContent, SourceAdapter, describe_error
from ingestion.source_factory import create_source_adapter
from processing.deduplicator import filter_new_content
from processing.summarizer import SummarizationOrchestrator
from services.config import Config
from services.content_store import ContentStore
from services.logging import log_event
from workflows.base import Pipeline, PipelineRequest, PipelineResult
from workflows.session import PipelineSession

logger = logging.getLogger(__name__)


class NewsPipeline(Pipeline):
    """
    Fetches every requested source type concurrently, drops content that
    is already stored, summarizes the rest and stores the result.
    """

    name = "news"

    def __init__(
        self,
        config: Config,
        store: ContentStore,
        clients: Mapping[str, Any],
        session: Optional[PipelineSession] = None,
        adapters: Optional[Dict[str, SourceAdapter]] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.config = config
        self.store = store
        self.session = session or PipelineSession.from_config(config)

        if adapters is None:
            adapters = {
                source_type: create_source_adapter(source_type, config, self.session.user_cache)
                for source_type in SOURCE_TYPES
            }
        self.adapters = adapters

        summarization = config.summarization
        self.orchestrator = SummarizationOrchestrator(
            clients=clients,
            selector=self.session.selector,
            sources={s.id: s for s in config.enabled_sources()},
            batch_model=config.batch_model(),
            chunk_size=summarization.chunk_size,
            chunk_delay=summarization.chunk_delay,
            prompt_content_length=config.fetch.prompt_content_length,
            min_content_length=config.fetch.min_content_length,
            sleep=sleep,
        )

    def resolve_sources(self, source_ids: Optional[Sequence[str]]) -> List[Source]:
        """
        All enabled sources when ``source_ids`` is None; otherwise the known
        subset. A request naming no known source is rejected.
        """
        sources = self.config.enabled_sources()
        if source_ids is None:
            return sources

        known = {s.id for s in sources}
        unknown = [sid for sid in source_ids if sid not in known]
        if unknown:
            logger.warning(f"Ignoring unknown source ids: {', '.join(unknown)}")

        selected = [s for s in sources if s.id in set(source_ids)]
        if not selected:
            raise InvalidRequestError("No valid source IDs provided")
        return selected

    async def fetch_all(self, sources: Sequence[Source]) -> Tuple[List[RawContent], List[FetchReport]]:
        """
        One task per source type, joined before returning. A source type
        whose adapter raises is recorded as failed for all of its sources.
        """
        by_type: Dict[str, List[Source]] = defaultdict(list)
        for source in sources:
            by_type[source.type].append(source)

        types = [t for t in SOURCE_TYPES if by_type.get(t) and t in self.adapters]
        results = await asyncio.gather(
            *(self.adapters[t].fetch_items(by_type[t]) for t in types),
            return_exceptions=True,
        )

        reports: List[FetchReport] = []
        for source_type, result in zip(types, results):
            if isinstance(result, BaseException):
                logger.error(f"Source type {source_type} failed: {describe_error(result)}")
                report = FetchReport(source_type=source_type)
                for source in by_type[source_type]:
                    report.attempted.append(source.id)
                    report.record_failure(source.id, result)
                reports.append(report)
                continue
            reports.append(result)

        items = [item for report in reports for item in report.items]
        counts = ", ".join(f"{len(r.items)} {r.source_type}" for r in reports)
        logger.info(f"Fetched {len(items)} items ({counts})")
        return items, reports

    async def run(self, request: Optional[PipelineRequest] = None) -> PipelineResult:
        request = request or PipelineRequest()
        sources = self.resolve_sources(request.source_ids)
        sources_requested = len(sources) if request.source_ids is not None else "all"

        logger.info(
            f"[{self.name}] Starting selective fetch for {len(sources)} source(s)"
            if request.source_ids is not None
            else f"[{self.name}] Starting full fetch from all sources"
        )

        items, reports = await self.fetch_all(sources)
        failures = {
            source_id: describe_error(error)
            for report in reports
            for source_id, error in report.failures.items()
        }

        if not items:
            attempted = [sid for r in reports for sid in r.attempted]
            if attempted and len(failures) == len(attempted):
                rate_limited = any(r.rate_limited for r in reports)
                log_event(
                    logger,
                    "pipeline.failed",
                    level=logging.ERROR,
                    rate_limited=rate_limited,
                    failures=failures,
                )
                raise PipelineFailure(
                    "Rate limited, no content obtained" if rate_limited else "All sources failed",
                    rate_limited=rate_limited,
                    failures=failures,
                )
            return PipelineResult(
                fetched=0,
                processed=0,
                sources_requested=sources_requested,
                failures=failures,
                message="No new content found",
            )

        existing = await self.store.get_contents()
        new_items = filter_new_content(items, existing)

        processed = []
        if new_items:
            batch_mode = self.config.batch_mode if request.batch_mode is None else request.batch_mode
            if batch_mode:
                digest = await self.orchestrator.create_digest(new_items)
                processed = [digest] if digest else []
            else:
                processed = await self.orchestrator.process_all(new_items)

        if processed:
            await self.store.add_contents(processed)

        log_event(
            logger,
            "pipeline.completed",
            f"[{self.name}] Fetched {len(items)}, new {len(new_items)}, processed {len(processed)}",
            fetched=len(items),
            new_items=len(new_items),
            processed=len(processed),
            failed_sources=len(failures),
        )

        return PipelineResult(
            fetched=len(items),
            processed=len(processed),
            sources_requested=sources_requested,
            new_items=len(new_items),
            failures=failures,
            message="Content fetched and processed successfully" if processed else "No new content processed",
        )
