"""
Ingestion from blog RSS / Atom / RDF feeds
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import List, Optional, Sequence

import httpx

from core.entities import Source
from ingestion.base import FetchReport, RawContent, SourceAdapter, content_id, truncate
from ingestion.feed_parser import parse_feed
from ingestion.http_client import USER_AGENT, fetch_text
from services.logging import log_event

logger = logging.getLogger(__name__)

FEED_HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept": "application/rss+xml, application/xml, text/xml, application/atom+xml",
}


class RSSAdapter(SourceAdapter):
    source_type = "blog"
    source_label = "blog"

    def __init__(
        self,
        max_items: int = 5,
        max_content_length: int = 15000,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.max_items = max_items
        self.max_content_length = max_content_length
        self.timeout = timeout
        self.transport = transport

    async def fetch_items(self, sources: Sequence[Source]) -> FetchReport:
        report = FetchReport(source_type=self.source_type)
        if not sources:
            return report

        logger.info(f"Fetching from {len(sources)} blog(s): {', '.join(s.name for s in sources)}")

        async with httpx.AsyncClient(
            timeout=self.timeout,
            headers=FEED_HEADERS,
            transport=self.transport,
            follow_redirects=True,
        ) as client:
            results = await asyncio.gather(
                *(self._fetch_source(client, source) for source in sources),
                return_exceptions=True,
            )

        return self.collect_results(report, sources, results)

    async def _fetch_source(self, client: httpx.AsyncClient, source: Source) -> List[RawContent]:
        log_event(logger, "fetch.attempted", level=logging.DEBUG, source_id=source.id, url=source.locator)
        xml = await fetch_text(client, source.locator)

        items: List[RawContent] = []
        for entry in parse_feed(xml, self.max_items):
            content = truncate(entry.content or entry.description, self.max_content_length)
            items.append(
                RawContent(
                    id=content_id("blog", source.id, key=entry.link),
                    source_id=source.id,
                    title=entry.title,
                    url=entry.link,
                    published_at=entry.published or datetime.now(timezone.utc),
                    content=content or f"Article: {entry.title}",
                    thumbnail=entry.thumbnail,
                    author=entry.author,
                )
            )

        return items
