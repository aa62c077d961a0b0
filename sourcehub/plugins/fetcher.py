"""Artifact fetcher - downloads bytes over HTTP with timeout and retry."""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import aiohttp

from sourcehub.constants import FETCH_BACKOFF_BASE, FETCH_RETRIES, FETCH_TIMEOUT, USER_AGENT
from sourcehub.plugins.errors import FetchError, FetchTimeoutError

logger = logging.getLogger(__name__)


def is_absolute_http_url(url: str) -> bool:
    """Check that url is an absolute http:// or https:// URL."""
    try:
        parsed = urlparse(url or "")
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def looks_like_html(content: bytes) -> bool:
    """Detect an HTML page (error page, login wall) served where source code was expected.

    Python source never starts with "<", so any markup opening the body counts:
    doctype, comment, XML prolog or a bare tag.
    """
    head = content[:1024].lstrip(b"\xef\xbb\xbf \t\r\n\f\v")
    return head.startswith(b"<")


@dataclass(frozen=True)
class FetchResult:
    """Outcome of a fetch: either content or error, never both."""

    content: Optional[bytes] = None
    error: Optional[FetchError] = None

    def __post_init__(self):
        if (self.content is None) == (self.error is None):
            raise ValueError("FetchResult requires exactly one of content or error")

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> bytes:
        """Return the content or raise the carried FetchError."""
        if self.error is not None:
            raise self.error
        return self.content


class ArtifactFetcher:
    """HTTP GET with per-attempt timeout and exponential backoff.

    4xx responses are terminal. 5xx responses, connection errors and timeouts are
    retried up to max_retries times.
    """

    def __init__(
        self,
        timeout: float = FETCH_TIMEOUT,
        max_retries: int = FETCH_RETRIES,
        backoff_base: float = FETCH_BACKOFF_BASE,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.headers = {"User-Agent": USER_AGENT}
        if headers:
            self.headers.update(headers)

    async def fetch(
        self,
        url: str,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> FetchResult:
        """Fetch raw bytes for url.

        Args:
            url: Absolute http(s) URL
            timeout: Seconds allowed per attempt (defaults to the fetcher's timeout)
            max_retries: Retries after the first attempt (defaults to the fetcher's setting)
            headers: Extra request headers

        Returns:
            FetchResult with content on success, or with a FetchError
        """
        timeout = self.timeout if timeout is None else timeout
        max_retries = self.max_retries if max_retries is None else max_retries
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")

        if not is_absolute_http_url(url):
            return FetchResult(
                error=FetchError(f"Not an absolute http(s) URL: {url!r}", url=url, attempts=0)
            )

        request_headers = dict(self.headers)
        if headers:
            request_headers.update(headers)

        attempts = 0
        last_status: Optional[int] = None
        last_problem = ""
        timed_out = False

        client_timeout = aiohttp.ClientTimeout(total=timeout)
        async with aiohttp.ClientSession(timeout=client_timeout, headers=request_headers) as session:
            for attempt in range(max_retries + 1):
                attempts = attempt + 1
                try:
                    async with session.get(url) as response:
                        last_status = response.status
                        if 200 <= response.status < 300:
                            content = await response.read()
                            logger.debug(f"Fetched {url} ({len(content)} bytes, attempt {attempts})")
                            return FetchResult(content=content)
                        if response.status < 500:
                            logger.warning(f"Fetch {url} failed with HTTP {response.status}, not retrying")
                            return FetchResult(
                                error=FetchError(
                                    f"HTTP {response.status} for {url}",
                                    url=url,
                                    status=response.status,
                                    attempts=attempts,
                                )
                            )
                        timed_out = False
                        last_problem = f"HTTP {response.status}"
                except asyncio.TimeoutError:
                    timed_out = True
                    last_problem = f"timed out after {timeout}s"
                except aiohttp.ClientError as e:
                    timed_out = False
                    last_problem = str(e) or e.__class__.__name__

                if attempt < max_retries:
                    delay = self.backoff_base * (2 ** attempt)
                    logger.info(
                        f"Fetch {url} failed ({last_problem}), "
                        f"retrying in {delay:.2f}s [{attempts}/{max_retries + 1}]"
                    )
                    await asyncio.sleep(delay)

        error_cls = FetchTimeoutError if timed_out else FetchError
        logger.error(f"Fetch {url} gave up after {attempts} attempt(s): {last_problem}")
        return FetchResult(
            error=error_cls(
                f"Fetch failed after {attempts} attempt(s): {last_problem}",
                url=url,
                status=last_status,
                attempts=attempts,
            )
        )

    async def fetch_text(self, url: str, **kwargs) -> str:
        """Fetch url and decode it as UTF-8. Raises FetchError on failure."""
        result = await self.fetch(url, **kwargs)
        return result.unwrap().decode("utf-8", errors="replace")

    async def fetch_json(self, url: str, **kwargs) -> Any:
        """Fetch url and parse it as JSON. Raises FetchError on failure."""
        kwargs.setdefault("headers", {"Accept": "application/json"})
        return json.loads(await self.fetch_text(url, **kwargs))

