"""Fetch an endpoint and confirm it serves a parseable feed."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import feedparser
import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..errors import FeedkeeperError

LOGGER = logging.getLogger(__name__)
_DEFAULT_USER_AGENT = "feedkeeper/0.1 (+https://github.com/feedkeeper/feedkeeper)"


class FeedProbeError(FeedkeeperError):
    """Raised when an endpoint cannot be fetched or does not look like a feed."""


@dataclass(frozen=True, slots=True)
class FeedInfo:
    """What a successful probe learned about a feed."""

    url: str
    title: str | None = None
    link: str | None = None
    icon_url: str | None = None
    entry_count: int = 0


class HttpFeedProbe:
    """Download a feed with ``httpx`` and parse it with ``feedparser``.

    Transport failures and timeouts are retried with exponential backoff;
    HTTP error statuses and unparseable bodies fail immediately.
    """

    def __init__(
        self,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 20.0,
        max_retries: int = 3,
        retry_min_seconds: float = 0.5,
        retry_max_seconds: float = 6.0,
        user_agent: str | None = None,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            headers={"User-Agent": user_agent or _DEFAULT_USER_AGENT},
        )
        self._max_retries = max(1, max_retries)
        self._retry_min_seconds = retry_min_seconds
        self._retry_max_seconds = retry_max_seconds

    async def __aenter__(self) -> HttpFeedProbe:
        return self

    async def __aexit__(self, *_exc: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def probe(self, url: str) -> FeedInfo:
        """Fetch ``url`` and return the parsed feed metadata.

        Raises:
            FeedProbeError: On network failure, HTTP error status or a body
                that is not a recognizable feed.
        """
        try:
            response = await self._fetch(url)
        except httpx.TransportError as exc:
            raise FeedProbeError(f"network error: {exc}") from exc

        if response.status_code >= 400:
            raise FeedProbeError(f"{response.status_code} {response.reason_phrase}".strip())

        parsed = feedparser.parse(
            response.content,
            response_headers={"content-type": response.headers.get("content-type", "")},
        )
        if not parsed.get("version") and not parsed.entries:
            reason = parsed.get("bozo_exception")
            raise FeedProbeError(f"not a valid feed{f': {reason}' if reason else ''}")

        feed = parsed.feed
        image = feed.get("image") or {}
        info = FeedInfo(
            url=url,
            title=(feed.get("title") or "").strip() or None,
            link=feed.get("link"),
            icon_url=feed.get("icon") or image.get("href"),
            entry_count=len(parsed.entries),
        )
        LOGGER.debug("Probed %s: title=%r, entries=%d", url, info.title, info.entry_count)
        return info

    async def _fetch(self, url: str) -> httpx.Response:
        async for attempt in self._retrying():
            with attempt:
                return await self._client.get(url)
        raise AssertionError("unreachable")  # pragma: no cover - reraise=True

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(self._max_retries),
            wait=wait_exponential(
                multiplier=self._retry_min_seconds,
                max=self._retry_max_seconds,
            ),
            retry=retry_if_exception_type(httpx.TransportError),
        )


__all__ = ["FeedInfo", "FeedProbeError", "HttpFeedProbe"]
