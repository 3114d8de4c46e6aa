"""
Source Factory - Creates ingestion adapters from configuration.
"""
import logging
from typing import Dict, Optional

import httpx

from ingestion.base import SourceAdapter
from ingestion.demo import DemoAdapter
from ingestion.http_client import RateLimitedAPIClient
from ingestion.rss import RSSAdapter
from ingestion.twitter import TimelineFetcher, TimelineUser, TwitterAdapter
from ingestion.youtube import ChannelTranscriptFetcher, YouTubeAdapter
from services.config import Config

logger = logging.getLogger(__name__)


def create_source_adapter(
    source_type: str,
    config: Config,
    user_cache: Optional[Dict[str, TimelineUser]] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> SourceAdapter:
    """
    Create the adapter for one source type.

    Args:
        source_type: blog, video or microblog
        config: Loaded configuration
        user_cache: Handle resolution cache owned by the pipeline session
        transport: Optional httpx transport, used to stub the network

    Raises:
        ValueError: If source type is unknown
    """
    fetch = config.fetch

    if config.DEMO_MODE:
        return DemoAdapter(source_type, demo_posts=config.demo_posts)

    if source_type == "blog":
        return RSSAdapter(
            max_items=fetch.max_items_per_source,
            max_content_length=fetch.max_content_length,
            timeout=fetch.fetch_timeout,
            transport=transport,
        )

    elif source_type == "video":
        return YouTubeAdapter(
            transcripts=ChannelTranscriptFetcher(
                max_length=fetch.max_content_length,
                timeout=fetch.fetch_timeout,
                languages=fetch.transcript_languages,
            ),
            max_items=fetch.max_items_per_source,
            min_transcript_length=fetch.transcript_min_length,
            timeout=fetch.fetch_timeout,
            transport=transport,
        )

    elif source_type == "microblog":
        client = RateLimitedAPIClient(
            max_attempts=config.rate_limit.max_attempts,
            base_delay=config.rate_limit.base_delay,
            max_delay=config.rate_limit.max_delay,
            timeout=fetch.fetch_timeout,
            transport=transport,
        )
        fetcher = TimelineFetcher(
            client=client,
            bearer_token=config.TWITTER_BEARER_TOKEN,
            user_cache=user_cache,
            base_url=config.TWITTER_API_BASE_URL,
        )
        return TwitterAdapter(
            fetcher=fetcher,
            max_items=fetch.max_items_per_source,
            max_content_length=fetch.max_content_length,
            delay=fetch.microblog_delay,
        )

    else:
        raise ValueError(f"Unknown source type: {source_type}")
