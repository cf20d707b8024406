"""
HTTP client for playlists, keys and segments.
Wraps an aiohttp session with fixed headers, a request timeout and retry with backoff.
"""

import asyncio
from dataclasses import dataclass
from typing import Dict, Optional

import aiohttp

from .logger import get_logger


RETRYABLE_STATUSES = {429, 500, 502, 503, 504}


@dataclass
class HttpResponse:
    """Fully read HTTP response."""
    status: int
    body: bytes
    url: str

    @property
    def ok(self) -> bool:
        return self.status == 200


def parse_headers(header_str: str = "", cookie_str: str = "") -> Dict[str, str]:
    """
    Parse extra request headers from command-style strings.

    Args:
        header_str: Headers as "Name=Value;Other=Value". Pairs that do not
            split into exactly one name and one value are ignored.
        cookie_str: Raw Cookie header value.

    Returns:
        Header mapping.
    """
    headers: Dict[str, str] = {}
    if header_str:
        for header in header_str.split(';'):
            parts = header.split('=')
            if len(parts) != 2:
                continue
            key, value = parts
            headers[key.strip()] = value.strip()

    if cookie_str:
        headers['Cookie'] = cookie_str

    return headers


class HttpClient:
    """
    Async HTTP client used by one recording session.

    Transport errors and transient statuses (429, 5xx) are retried with
    exponential backoff. Other non-200 responses are returned to the caller.
    """

    def __init__(
        self,
        headers: Optional[Dict[str, str]] = None,
        timeout: float = 60.0,
        retries: int = 3,
        retry_wait_min: float = 1.0,
        retry_wait_max: float = 30.0
    ):
        """
        Initialize HTTP client.

        Args:
            headers: Headers added to every request.
            timeout: Total timeout per request in seconds.
            retries: Extra attempts for transient failures.
            retry_wait_min: First backoff delay in seconds.
            retry_wait_max: Backoff delay cap in seconds.
        """
        self.headers = dict(headers or {})
        self.timeout = timeout
        self.retries = retries
        self.retry_wait_min = retry_wait_min
        self.retry_wait_max = retry_wait_max

        self._session: Optional[aiohttp.ClientSession] = None
        self._logger = get_logger('http')

    async def connect(self) -> None:
        """Open the underlying session."""
        if self._session is None:
            self._session = aiohttp.ClientSession(
                headers=self.headers,
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )

    async def close(self) -> None:
        """Close session."""
        if self._session:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> 'HttpClient':
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _backoff(self, attempt: int) -> float:
        return min(self.retry_wait_max, self.retry_wait_min * (2 ** attempt))

    async def get(self, url: str) -> HttpResponse:
        """
        GET a URL and read the whole body.

        Raises:
            aiohttp.ClientError: Transport failure after all retries.
            asyncio.TimeoutError: Timeout after all retries.
        """
        await self.connect()

        attempt = 0
        while True:
            try:
                async with self._session.get(url) as resp:
                    body = await resp.read()
                    response = HttpResponse(status=resp.status, body=body, url=str(resp.url))
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                if attempt >= self.retries:
                    raise
                self._logger.debug(f"GET {url} failed ({e!r}), retrying")
            else:
                if response.status not in RETRYABLE_STATUSES or attempt >= self.retries:
                    return response
                self._logger.debug(f"GET {url} returned {response.status}, retrying")

            await asyncio.sleep(self._backoff(attempt))
            attempt += 1

