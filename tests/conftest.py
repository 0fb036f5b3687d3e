"""
Test configuration and fixtures for crawler tests
"""

import asyncio
from typing import Dict, Iterable, Optional

import pytest

from frontier_crawler.crawler.fetcher import FetchResult
from frontier_crawler.utils.config import Config, CrawlerConfig


def page(*hrefs: str) -> str:
    """Build a minimal HTML page linking to the given hrefs."""
    anchors = "".join(f'<a href="{href}">link</a>' for href in hrefs)
    return f"<html><head><title>t</title></head><body>{anchors}</body></html>"


class FakeFetcher:
    """In-memory stand-in for WebFetcher serving a fixed set of pages."""

    def __init__(self, pages: Dict[str, str], delays: Optional[Dict[str, float]] = None,
                 default_delay: float = 0.0, blockers: Optional[Dict[str, asyncio.Event]] = None):
        self.pages = pages
        self.delays = delays or {}
        self.default_delay = default_delay
        self.blockers = blockers or {}
        self.fetched = []
        self.closed = False

    async def fetch(self, url: str) -> FetchResult:
        self.fetched.append(url)
        if url in self.blockers:
            await self.blockers[url].wait()
        await asyncio.sleep(self.delays.get(url, self.default_delay))

        if url not in self.pages:
            return FetchResult(url=url, status_code=404, content="", error="HTTP 404")
        return FetchResult(url=url, status_code=200, content=self.pages[url], content_type="text/html")

    async def close(self):
        self.closed = True


def make_config(allow: Iterable[str] = ("https://site.test/*",), disallow: Iterable[str] = (),
                thread_count: int = 4, rate_limit: int = 1000, **crawler_options) -> Config:
    return Config(crawler=CrawlerConfig(
        allow_urls=tuple(allow),
        disallow_urls=tuple(disallow),
        thread_count=thread_count,
        rate_limit=rate_limit,
        **crawler_options,
    ))


@pytest.fixture
def site_pages():
    """A small site with cycles, an external link, a private area and a dead link."""
    return {
        "https://site.test/": page("/a", "/b", "https://other.test/x", "/private/secret"),
        "https://site.test/a": page("/", "/b", "/c"),
        "https://site.test/b": page("/a", "/d#section"),
        "https://site.test/c": page(),
        "https://site.test/d": page("/c", "/missing", "mailto:someone@site.test"),
        "https://site.test/private/secret": page("/a"),
    }
