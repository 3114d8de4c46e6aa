"""
HTTP helpers shared by the ingestion adapters.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from core.errors import APIError, RateLimitError, TransientNetworkError
from services.logging import log_event

logger = logging.getLogger(__name__)

USER_AGENT = "ai-news-ab/1.0"

DEFAULT_RATE_LIMIT_HINT = (
    "The free API tier allows roughly one timeline request per 15 seconds. "
    "Wait a minute and try again."
)


async def send(
    client: httpx.AsyncClient,
    url: str,
    *,
    headers: Optional[Dict[str, str]] = None,
    params: Optional[Dict[str, Any]] = None,
) -> httpx.Response:
    """
    GET ``url`` and map transport failures to ``TransientNetworkError``.
    The response is returned whatever its status.
    """
    try:
        return await client.get(url, headers=headers, params=params)
    except httpx.TimeoutException as e:
        raise TransientNetworkError(f"Request to {url} timed out") from e
    except httpx.TransportError as e:
        raise TransientNetworkError(f"Request to {url} failed: {e}") from e


def check_status(response: httpx.Response, url: str) -> None:
    if response.status_code >= 400:
        raise APIError(
            f"HTTP {response.status_code} from {url}: {response.text[:200]}",
            status_code=response.status_code,
        )


async def fetch_text(
    client: httpx.AsyncClient,
    url: str,
    headers: Optional[Dict[str, str]] = None,
) -> str:
    response = await send(client, url, headers=headers)
    check_status(response, url)
    return response.text


class RateLimitedAPIClient:
    """
    JSON API client that backs off on HTTP 429.

    On a 429 the client waits ``Retry-After`` seconds when the header is
    present, otherwise ``min(base_delay * 2 ** attempt, max_delay)``, and
    tries again up to ``max_attempts`` in total. Any other failure is
    raised immediately.
    """

    def __init__(
        self,
        *,
        max_attempts: int = 3,
        base_delay: float = 15.0,
        max_delay: float = 60.0,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rate_limit_hint: str = DEFAULT_RATE_LIMIT_HINT,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.timeout = timeout
        self.transport = transport
        self.rate_limit_hint = rate_limit_hint
        self._sleep = sleep

    def backoff_delay(self, attempt: int, retry_after: Optional[str] = None) -> float:
        """Seconds to wait after the given zero-based attempt was rate limited."""
        if retry_after:
            try:
                return min(max(float(retry_after), 0.0), self.max_delay)
            except ValueError:
                # HTTP-date form is not worth parsing here
                pass
        return min(self.base_delay * (2 ** attempt), self.max_delay)

    async def request(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        merged_headers = {"User-Agent": USER_AGENT, **(headers or {})}

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            for attempt in range(self.max_attempts):
                response = await send(client, url, headers=merged_headers, params=params)

                if response.status_code == 429:
                    wait = self.backoff_delay(attempt, response.headers.get("retry-after"))
                    log_event(
                        logger,
                        "rate_limited",
                        f"Rate limited on attempt {attempt + 1}/{self.max_attempts}",
                        level=logging.WARNING,
                        url=url,
                        attempt=attempt + 1,
                        wait_seconds=wait,
                    )
                    if attempt < self.max_attempts - 1:
                        await self._sleep(wait)
                        continue
                    break

                check_status(response, url)
                return response.json()

        raise RateLimitError(
            f"Rate limit exceeded for {url} after {self.max_attempts} attempts.",
            attempts=self.max_attempts,
            suggestion=self.rate_limit_hint,
        )
