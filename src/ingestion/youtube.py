"""
Ingest videos from channel feeds, using caption transcripts as content
"""
import asyncio
import logging
import re
from datetime import datetime, timezone
from typing import Any, List, Optional, Sequence
from urllib.parse import parse_qs, urlparse

import httpx
from youtube_transcript_api import YouTubeTranscriptApi

from core.entities import Source
from ingestion.base import FetchReport, RawContent, SourceAdapter, content_id, truncate
from ingestion.feed_parser import FeedItem, parse_feed
from ingestion.http_client import fetch_text
from ingestion.rss import FEED_HEADERS
from services.logging import log_event

logger = logging.getLogger(__name__)

_WS_RE = re.compile(r"\s+")


def video_feed_url(channel_id: str) -> str:
    """Channel feed URL for a channel id, for adding new video sources."""
    return f"https://www.youtube.com/feeds/videos.xml?channel_id={channel_id}"


def video_id_from_item(item: FeedItem) -> Optional[str]:
    if item.guid and item.guid.startswith("yt:video:"):
        return item.guid[len("yt:video:"):]
    query = parse_qs(urlparse(item.link).query)
    if query.get("v"):
        return query["v"][0]
    return None


class ChannelTranscriptFetcher:
    """
    Retrieves caption text for a video. Any failure means "no transcript".
    """

    def __init__(
        self,
        max_length: int = 15000,
        timeout: float = 30.0,
        languages: Sequence[str] = ("en",),
        api: Optional[Any] = None,
    ):
        self.max_length = max_length
        self.timeout = timeout
        self.languages = list(languages)
        self.api = api or YouTubeTranscriptApi()

    def _fetch_text(self, video_id: str) -> str:
        transcript = self.api.fetch(video_id, languages=self.languages)
        return " ".join(snippet.text for snippet in transcript)

    async def fetch_transcript(self, video_id: str) -> str:
        try:
            text = await asyncio.wait_for(
                asyncio.to_thread(self._fetch_text, video_id),
                timeout=self.timeout,
            )
        except Exception as e:
            log_event(
                logger,
                "transcript.missing",
                f"No transcript for {video_id}: {e.__class__.__name__}",
                level=logging.WARNING,
                video_id=video_id,
            )
            return ""

        text = _WS_RE.sub(" ", text).strip()
        return truncate(text, self.max_length)


class YouTubeAdapter(SourceAdapter):
    source_type = "video"
    source_label = "channel"

    def __init__(
        self,
        transcripts: ChannelTranscriptFetcher,
        max_items: int = 5,
        min_transcript_length: int = 100,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.transcripts = transcripts
        self.max_items = max_items
        self.min_transcript_length = min_transcript_length
        self.timeout = timeout
        self.transport = transport

    async def fetch_items(self, sources: Sequence[Source]) -> FetchReport:
        report = FetchReport(source_type=self.source_type)
        if not sources:
            return report

        async with httpx.AsyncClient(
            timeout=self.timeout,
            headers=FEED_HEADERS,
            transport=self.transport,
            follow_redirects=True,
        ) as client:
            results = await asyncio.gather(
                *(self._fetch_channel(client, source) for source in sources),
                return_exceptions=True,
            )

        return self.collect_results(report, sources, results)

    async def _fetch_channel(self, client: httpx.AsyncClient, source: Source) -> List[RawContent]:
        log_event(logger, "fetch.attempted", level=logging.DEBUG, source_id=source.id, url=source.locator)
        xml = await fetch_text(client, source.locator)

        videos = []
        for item in parse_feed(xml, self.max_items):
            video_id = video_id_from_item(item)
            if video_id:
                videos.append((item, video_id))
        transcripts = await asyncio.gather(
            *(self.transcripts.fetch_transcript(video_id) for _, video_id in videos)
        )

        contents: List[RawContent] = []
        for (item, video_id), transcript in zip(videos, transcripts):
            if len(transcript) < self.min_transcript_length:
                log_event(
                    logger,
                    "fetch.skipped",
                    f"Dropping '{item.title}': no usable transcript",
                    source_id=source.id,
                    video_id=video_id,
                )
                continue

            contents.append(
                RawContent(
                    id=content_id("video", key=video_id),
                    source_id=source.id,
                    title=item.title,
                    url=item.link,
                    published_at=item.published or datetime.now(timezone.utc),
                    content=transcript,
                    thumbnail=item.thumbnail,
                    author=item.author,
                )
            )

        return contents
