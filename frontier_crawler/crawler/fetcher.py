"""
Web page fetcher. Failed fetches are reported once and never retried.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Dict, Optional

import aiohttp
from aiohttp import ClientError, ClientSession, ClientTimeout


TEXT_CONTENT_TYPES = (
    'text/html',
    'application/xhtml+xml',
    'text/plain',
)


@dataclass
class FetchResult:
    """Result of a fetch operation."""
    url: str
    status_code: int
    content: Optional[str] = None
    error: Optional[str] = None
    fetch_time: float = 0.0
    content_type: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.content is not None and 200 <= self.status_code < 400


class WebFetcher:
    """
    Fetches web pages over a shared aiohttp session.
    """

    def __init__(self, user_agent: str, request_timeout: int = 30,
                 max_concurrent_requests: int = 10,
                 max_content_size: int = 10 * 1024 * 1024):
        self.user_agent = user_agent
        self.request_timeout = request_timeout
        self.max_concurrent_requests = max_concurrent_requests
        self.max_content_size = max_content_size

        self.logger = logging.getLogger(__name__)
        self.session: Optional[ClientSession] = None
        self.semaphore = asyncio.Semaphore(max_concurrent_requests)

        self.stats = {
            'total_requests': 0,
            'successful_requests': 0,
            'failed_requests': 0,
            'skipped_non_text': 0,
            'total_bytes_downloaded': 0,
        }

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def start(self):
        """Initialize the fetcher session."""
        if self.session is None:
            self.session = aiohttp.ClientSession(
                timeout=ClientTimeout(total=self.request_timeout),
                headers={'User-Agent': self.user_agent},
                connector=aiohttp.TCPConnector(limit=self.max_concurrent_requests * 2),
            )
            self.logger.info("WebFetcher session started")

    async def close(self):
        """Close the fetcher session."""
        if self.session:
            await self.session.close()
            self.session = None
            self.logger.info("WebFetcher session closed")

    async def fetch(self, url: str) -> FetchResult:
        """
        Fetch a single URL.

        Args:
            url: The URL to fetch

        Returns:
            FetchResult with the page body, or with ``error`` set on failure
        """
        if self.session is None:
            await self.start()

        start_time = time.monotonic()

        async with self.semaphore:
            self.stats['total_requests'] += 1
            try:
                async with self.session.get(url) as response:
                    content_type = response.headers.get('content-type', '').lower()

                    if not any(text_type in content_type for text_type in TEXT_CONTENT_TYPES):
                        self.stats['skipped_non_text'] += 1
                        self.logger.debug(f"Skipping non-text content: {url} ({content_type})")
                        return FetchResult(
                            url=url,
                            status_code=response.status,
                            content_type=content_type,
                            error="Non-text content type",
                            fetch_time=time.monotonic() - start_time,
                        )

                    content = await self._read_content(response)
                    if content is None:
                        error = "Content too large"
                    elif response.status >= 400:
                        error = f"HTTP {response.status}"
                    else:
                        error = None
                    if content is not None:
                        self.stats['total_bytes_downloaded'] += len(content)
                    self.stats['failed_requests' if error else 'successful_requests'] += 1

                    return FetchResult(
                        url=url,
                        status_code=response.status,
                        content=content,
                        error=error,
                        content_type=content_type,
                        fetch_time=time.monotonic() - start_time,
                    )

            except asyncio.TimeoutError:
                error_msg = "Request timeout"
                self.logger.warning(f"Timeout fetching {url}")
            except ClientError as e:
                error_msg = f"Client error: {e}"
                self.logger.warning(f"Client error fetching {url}: {e}")

            self.stats['failed_requests'] += 1
            return FetchResult(
                url=url,
                status_code=0,
                error=error_msg,
                fetch_time=time.monotonic() - start_time,
            )

    async def _read_content(self, response: aiohttp.ClientResponse) -> Optional[str]:
        """Read and decode the body, or return None if it exceeds max_content_size."""
        content_length = response.headers.get('content-length')
        if content_length and content_length.isdigit() and int(content_length) > self.max_content_size:
            self.logger.warning(f"Content too large ({content_length} bytes): {response.url}")
            return None

        body = bytearray()
        async for chunk in response.content.iter_chunked(8192):
            body.extend(chunk)
            if len(body) > self.max_content_size:
                self.logger.warning(f"Content exceeded size limit during reading: {response.url}")
                return None

        try:
            return bytes(body).decode(response.charset or 'utf-8', errors='replace')
        except LookupError:
            # Unknown charset label
            return bytes(body).decode('utf-8', errors='replace')

    def get_stats(self) -> Dict[str, int]:
        """Get fetcher statistics."""
        return self.stats.copy()
