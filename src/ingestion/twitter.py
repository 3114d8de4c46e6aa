"""
Ingest posts from microblog (Twitter/X API v2) user timelines
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from core.entities import Source
from core.errors import ConfigurationError, InvalidRequestError, NewsPipelineError
from ingestion.base import FetchReport, RawContent, SourceAdapter, content_id, truncate
from ingestion.http_client import RateLimitedAPIClient
from services.logging import log_event

logger = logging.getLogger(__name__)

API_BASE_URL = "https://api.twitter.com/2"


@dataclass(frozen=True)
class TimelineUser:
    id: str
    display_name: str
    avatar_url: Optional[str] = None


@dataclass(frozen=True)
class TimelinePost:
    id: str
    text: str
    created_at: Optional[str]
    link: str
    thumbnail: Optional[str] = None


def clean_handle(handle: str) -> str:
    return handle.strip().lstrip("@").lower()


def is_search_locator(locator: str) -> bool:
    """Hashtag and free-text search locators need a paid API tier."""
    locator = locator.strip()
    if locator.startswith("@"):
        return False
    return locator.startswith("#") or " " in locator


def _expanded_url(post: Dict[str, Any]) -> Optional[str]:
    urls = (post.get("entities") or {}).get("urls") or []
    if urls:
        return urls[0].get("expanded_url") or urls[0].get("url")
    return None


def _thumbnail(post: Dict[str, Any], includes: Dict[str, Any]) -> Optional[str]:
    keys = (post.get("attachments") or {}).get("media_keys") or []
    if not keys:
        return None
    for media in includes.get("media") or []:
        if media.get("media_key") in keys:
            return media.get("preview_image_url") or media.get("url")
    return None


class TimelineFetcher:
    """
    Resolves handles to user ids and pulls recent original posts.

    ``user_cache`` is owned by the pipeline session and maps a lowercased
    handle to its resolved user for the lifetime of that session.
    """

    def __init__(
        self,
        client: RateLimitedAPIClient,
        bearer_token: Optional[str],
        user_cache: Optional[Dict[str, TimelineUser]] = None,
        base_url: str = API_BASE_URL,
    ):
        self.client = client
        self.bearer_token = bearer_token
        self.user_cache = user_cache if user_cache is not None else {}
        self.base_url = base_url.rstrip("/")

    def _headers(self) -> Dict[str, str]:
        if not self.bearer_token:
            raise ConfigurationError(
                "TWITTER_BEARER_TOKEN is not configured.",
                suggestion="Set TWITTER_BEARER_TOKEN to an API v2 bearer token (no quotes).",
            )
        return {"Authorization": f"Bearer {self.bearer_token}"}

    async def fetch_user_id(self, handle: str) -> TimelineUser:
        username = clean_handle(handle)
        if username in self.user_cache:
            return self.user_cache[username]

        response = await self.client.request(
            f"{self.base_url}/users/by/username/{username}",
            headers=self._headers(),
            params={"user.fields": "profile_image_url"},
        )

        errors = response.get("errors") or []
        if errors:
            raise InvalidRequestError(
                f"User lookup failed for @{username}: {errors[0].get('detail', 'unknown error')}",
                suggestion="The account may not exist or may be private.",
            )
        data = response.get("data")
        if not data:
            raise InvalidRequestError(f"User @{username} not found")

        user = TimelineUser(
            id=data["id"],
            display_name=data.get("name") or username,
            avatar_url=data.get("profile_image_url"),
        )
        self.user_cache[username] = user
        return user

    async def fetch_timeline(
        self,
        user_id: str,
        max_results: int = 10,
        handle: Optional[str] = None,
    ) -> List[TimelinePost]:
        params = {
            "max_results": str(min(max(5, max_results), 100)),
            "tweet.fields": "created_at,author_id,public_metrics,attachments,entities",
            "expansions": "author_id,attachments.media_keys",
            "user.fields": "username,name,profile_image_url",
            "media.fields": "type,url,preview_image_url",
            "exclude": "retweets,replies",
        }
        response = await self.client.request(
            f"{self.base_url}/users/{user_id}/tweets",
            headers=self._headers(),
            params=params,
        )

        if response.get("errors"):
            logger.warning(f"Timeline API returned errors for {user_id}: {response['errors']}")

        includes = response.get("includes") or {}
        username = clean_handle(handle) if handle else None

        posts: List[TimelinePost] = []
        for post in response.get("data") or []:
            permalink = (
                f"https://twitter.com/{username}/status/{post['id']}"
                if username
                else f"https://twitter.com/i/web/status/{post['id']}"
            )
            posts.append(
                TimelinePost(
                    id=post["id"],
                    text=post.get("text", ""),
                    created_at=post.get("created_at"),
                    link=_expanded_url(post) or permalink,
                    thumbnail=_thumbnail(post, includes),
                )
            )

        return posts[:max_results]


class TwitterAdapter(SourceAdapter):
    """
    Microblog sources are fetched one after another with a fixed delay
    between them to stay inside the per-endpoint rate budget.
    """

    source_type = "microblog"
    source_label = "microblog source"

    def __init__(
        self,
        fetcher: TimelineFetcher,
        max_items: int = 5,
        max_content_length: int = 15000,
        delay: float = 1.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.fetcher = fetcher
        self.max_items = max_items
        self.max_content_length = max_content_length
        self.delay = delay
        self._sleep = sleep

    async def fetch_items(self, sources: Sequence[Source]) -> FetchReport:
        report = FetchReport(source_type=self.source_type)
        if not sources:
            return report

        logger.info(f"Fetching from {len(sources)} microblog source(s): {', '.join(s.name for s in sources)}")

        for index, source in enumerate(sources):
            report.attempted.append(source.id)

            if is_search_locator(source.locator):
                log_event(
                    logger,
                    "fetch.skipped",
                    f"Search queries like '{source.locator}' are not available on the free API tier",
                    source_id=source.id,
                    source_type=self.source_type,
                )
            else:
                try:
                    items = await self._fetch_source(source)
                except Exception as e:
                    hint = e.suggestion if isinstance(e, NewsPipelineError) else None
                    self.record_failure(report, source, e, hint=hint)
                else:
                    self.record_success(report, source, items)

            if index < len(sources) - 1:
                await self._sleep(self.delay)

        return report

    async def _fetch_source(self, source: Source) -> List[RawContent]:
        log_event(logger, "fetch.attempted", level=logging.DEBUG, source_id=source.id, handle=source.locator)
        user = await self.fetcher.fetch_user_id(source.locator)
        posts = await self.fetcher.fetch_timeline(user.id, self.max_items, handle=source.locator)

        if not posts:
            logger.info(f"No posts found for {source.locator}")

        return [
            RawContent(
                id=content_id("microblog", source.id, key=post.id),
                source_id=source.id,
                title=post.text[:200] or "Post",
                url=post.link,
                published_at=post.created_at or datetime.now(timezone.utc),
                content=truncate(post.text, self.max_content_length),
                thumbnail=post.thumbnail or user.avatar_url,
                author=user.display_name,
            )
            for post in posts
        ]
