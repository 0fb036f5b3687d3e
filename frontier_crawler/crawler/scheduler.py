"""
Crawler scheduler that runs the worker pool against a shared URL frontier.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Optional, Set

from ..utils.config import Config
from ..utils.monitoring import CrawlerMonitor
from .admission import AdmissionPolicy, create_admission_policy
from .fetcher import WebFetcher
from .parser import LinkExtractor
from .rate_limiter import RateLimiter, create_rate_limiter
from .url_frontier import FrontierCorruptedError, URLFrontier


@dataclass
class CrawlStats:
    """Statistics for crawl operations."""
    start_time: float
    urls_crawled: int = 0
    fetch_errors: int = 0
    errors: int = 0
    links_discovered: int = 0
    links_admitted: int = 0
    links_rejected: int = 0
    average_response_time: float = 0.0

    @property
    def elapsed_time(self) -> float:
        return time.time() - self.start_time

    @property
    def pages_per_minute(self) -> float:
        elapsed_minutes = self.elapsed_time / 60
        return self.urls_crawled / elapsed_minutes if elapsed_minutes > 0 else 0


class CrawlerScheduler:
    """
    Runs ``thread_count`` workers against one URLFrontier.

    Each worker takes a URL, waits on the rate limiter, fetches the page,
    filters its links through the admission policy and pushes the
    survivors back. The crawl is finished only when the frontier is empty,
    every worker is idle and no URL is in flight; an empty frontier on its
    own says nothing, since an in-flight fetch may still push new URLs.
    """

    def __init__(self, config: Config, start_url: str,
                 fetcher: Optional[WebFetcher] = None,
                 extractor: Optional[LinkExtractor] = None,
                 rate_limiter: Optional[RateLimiter] = None,
                 admission_policy: Optional[AdmissionPolicy] = None,
                 monitor: Optional[CrawlerMonitor] = None):
        crawler_config = config.crawler

        self.config = config
        self.start_url = start_url
        self.thread_count = crawler_config.thread_count
        self.logger = logging.getLogger(__name__)

        self.frontier = URLFrontier([start_url])
        self.fetcher = fetcher or WebFetcher(
            user_agent=crawler_config.user_agent,
            request_timeout=crawler_config.request_timeout,
            max_concurrent_requests=crawler_config.thread_count,
            max_content_size=crawler_config.max_content_size,
        )
        self.extractor = extractor or LinkExtractor()
        self.rate_limiter = rate_limiter or create_rate_limiter(
            crawler_config.rate_limiter, crawler_config.rate_limit
        )
        self.admission_policy = admission_policy or create_admission_policy(
            crawler_config.pattern_syntax,
            crawler_config.allow_urls,
            crawler_config.disallow_urls,
        )
        self.monitor = monitor

        # Crawl state
        self.stats = CrawlStats(start_time=time.time())
        self.is_running = False
        self.workers: List[asyncio.Task] = []

        # Termination and cancellation bookkeeping, guarded by _work_changed
        self._work_changed: Optional[asyncio.Condition] = None
        self._in_flight: Set[str] = set()
        self._idle_workers = 0
        self._taken = 0
        self._max_pages: Optional[int] = None
        self._finished = False
        self._stopping = False
        self._fatal_error: Optional[FrontierCorruptedError] = None

    @property
    def in_flight(self) -> FrozenSet[str]:
        """URLs taken from the frontier whose processing has not completed."""
        return frozenset(self._in_flight)

    @property
    def idle_workers(self) -> int:
        return self._idle_workers

    @property
    def is_stopping(self) -> bool:
        return self._stopping

    async def start_crawling(self, max_pages: Optional[int] = None,
                             max_duration: Optional[float] = None) -> CrawlStats:
        """
        Run the crawl until it finishes or is stopped.

        Args:
            max_pages: Maximum number of pages to crawl (None for unlimited)
            max_duration: Maximum duration in seconds (None for unlimited)

        Returns:
            Final crawl statistics

        Raises:
            FrontierCorruptedError: if the frontier lost its invariants
        """
        if self.is_running:
            self.logger.warning("Crawler is already running")
            return self.stats

        if max_pages is not None and max_pages < 1:
            raise ValueError(f"max_pages must be positive, got {max_pages}")

        self.is_running = True
        self.stats = CrawlStats(start_time=time.time())
        self._work_changed = asyncio.Condition()
        self._max_pages = max_pages
        self._finished = False
        self._stopping = False

        self.logger.info(f"Crawling from {self.start_url} with {self.thread_count} workers")

        background = [asyncio.create_task(self._stats_reporter())]
        if max_duration:
            background.append(asyncio.create_task(self._duration_limit(max_duration)))

        try:
            self.workers = [
                asyncio.create_task(self._worker(f"worker-{i}"))
                for i in range(self.thread_count)
            ]
            await asyncio.gather(*self.workers, return_exceptions=True)
        finally:
            for task in background:
                task.cancel()
            await asyncio.gather(*background, return_exceptions=True)
            self.is_running = False
            await self._cleanup_workers()

        if self._fatal_error is not None:
            raise self._fatal_error

        self._log_final_stats()
        return self.stats

    async def _worker(self, worker_id: str):
        """
        Worker coroutine that processes URLs from the frontier.
        """
        self.logger.debug(f"Worker {worker_id} started")

        try:
            while True:
                url = await self._next_url()
                if url is None:
                    break

                links: List[str] = []
                try:
                    links = await self._process_url(url)
                except Exception as e:
                    self.logger.error(f"Worker {worker_id} error processing {url}: {e}", exc_info=True)
                    self.stats.errors += 1
                finally:
                    await self._complete(url, links)

        except asyncio.CancelledError:
            self.logger.debug(f"Worker {worker_id} cancelled")
            return
        except FrontierCorruptedError as e:
            self.logger.critical(f"Worker {worker_id} aborting crawl: {e}")
            self._abort(e)
            raise

        self.logger.debug(f"Worker {worker_id} finished")

    async def _next_url(self) -> Optional[str]:
        """
        Take the next URL, waiting while other workers still have URLs in flight.
        Returns None once the crawl is finished or stopping.
        """
        async with self._work_changed:
            while not (self._finished or self._stopping):
                url = self.frontier.take()
                if url is not None:
                    self._in_flight.add(url)
                    self._taken += 1
                    if self._max_pages is not None and self._taken >= self._max_pages:
                        self.logger.info(f"Reached max pages limit: {self._max_pages}")
                        self._stop_locked()
                    self._update_monitor()
                    return url

                if self._idle_workers + 1 == self.thread_count and not self._in_flight:
                    self.logger.info("Frontier exhausted and all workers idle")
                    self._finished = True
                    self._work_changed.notify_all()
                    break

                self._idle_workers += 1
                self._update_monitor()
                try:
                    await self._work_changed.wait()
                finally:
                    self._idle_workers -= 1

            return None

    async def _complete(self, url: str, links: List[str]):
        """Push a finished URL's admitted links and release it from in-flight."""
        async with self._work_changed:
            if links and not self._stopping:
                self.frontier.push(links)
            self._in_flight.discard(url)
            self._update_monitor()
            self._work_changed.notify_all()

    async def _process_url(self, url: str) -> List[str]:
        """Fetch a single URL and return its admitted links."""
        await self.rate_limiter.acquire()

        result = await self.fetcher.fetch(url)
        self.stats.urls_crawled += 1
        self.stats.average_response_time = (
            (self.stats.average_response_time * (self.stats.urls_crawled - 1) + result.fetch_time)
            / self.stats.urls_crawled
        )
        if self.monitor:
            self.monitor.record_url_crawled(url, result.fetch_time, result.ok)

        if not result.ok:
            self.stats.fetch_errors += 1
            self.logger.warning(f"Failed to fetch {url}: {result.error or result.status_code}")
            return []

        links = self.extractor.extract_links(url, result.content)
        admitted = [link for link in links if self.admission_policy.admits(link)]

        self.stats.links_discovered += len(links)
        self.stats.links_admitted += len(admitted)
        self.stats.links_rejected += len(links) - len(admitted)
        if self.monitor:
            self.monitor.record_links(len(admitted), len(links) - len(admitted))

        self.logger.info(f"Crawled {url} ({result.status_code}, {len(admitted)} links admitted)")
        return admitted

    def _stop_locked(self):
        # Caller holds _work_changed
        self._stopping = True
        self._work_changed.notify_all()

    def _abort(self, error: FrontierCorruptedError):
        self._fatal_error = error
        self._stopping = True
        current = asyncio.current_task()
        for worker in self.workers:
            if worker is not current and not worker.done():
                worker.cancel()

    def _update_monitor(self):
        if self.monitor:
            self.monitor.update_workers(
                queue_size=self.frontier.pending_count(),
                idle=self._idle_workers,
                in_flight=len(self._in_flight),
            )

    async def _duration_limit(self, max_duration: float):
        await asyncio.sleep(max_duration)
        self.logger.info(f"Reached max duration: {max_duration} seconds")
        await self.stop_crawling(graceful=True)

    async def _stats_reporter(self):
        """Periodically log crawl statistics."""
        interval = self.config.crawler.stats_interval
        while self.is_running:
            await asyncio.sleep(interval)
            self._log_current_stats()

    def _log_current_stats(self):
        self.logger.info(
            f"Crawl Progress: "
            f"Crawled={self.stats.urls_crawled}, "
            f"Queued={self.frontier.pending_count()}, "
            f"Seen={self.frontier.seen_count()}, "
            f"InFlight={len(self._in_flight)}, "
            f"Errors={self.stats.fetch_errors + self.stats.errors}, "
            f"Rate={self.stats.pages_per_minute:.1f} pages/min"
        )

    def _log_final_stats(self):
        self.logger.info("=== CRAWL COMPLETED ===")
        self.logger.info(f"Total URLs crawled: {self.stats.urls_crawled}")
        self.logger.info(f"Links discovered: {self.stats.links_discovered} "
                         f"(admitted {self.stats.links_admitted}, rejected {self.stats.links_rejected})")
        self.logger.info(f"Fetch errors: {self.stats.fetch_errors}, other errors: {self.stats.errors}")
        self.logger.info(f"Total time: {self.stats.elapsed_time:.2f} seconds")
        self.logger.info(f"Average rate: {self.stats.pages_per_minute:.1f} pages/min")
        self.logger.info(f"URLs seen: {self.frontier.seen_count()}, "
                         f"remaining in queue: {self.frontier.pending_count()}")

    async def stop_crawling(self, graceful: bool = False):
        """
        Stop the crawl. No worker pushes new URLs once this is called.

        Args:
            graceful: Let in-flight URLs finish instead of cancelling workers
        """
        self.logger.info("Stopping crawler...")
        if self._work_changed is None:
            self._stopping = True
        else:
            async with self._work_changed:
                self._stop_locked()

        if not graceful:
            await self._cleanup_workers()

    async def _cleanup_workers(self):
        """Cancel and cleanup worker tasks."""
        if self.workers:
            for worker in self.workers:
                if not worker.done():
                    worker.cancel()

            await asyncio.gather(*self.workers, return_exceptions=True)

    async def close(self):
        """Close the fetcher and stop any running crawl."""
        if self.is_running:
            await self.stop_crawling()

        await self.fetcher.close()

        self.logger.info("Crawler scheduler closed")

    def get_stats(self) -> Dict:
        """Get current crawl statistics."""
        return {
            'urls_crawled': self.stats.urls_crawled,
            'fetch_errors': self.stats.fetch_errors,
            'errors': self.stats.errors,
            'links_discovered': self.stats.links_discovered,
            'links_admitted': self.stats.links_admitted,
            'links_rejected': self.stats.links_rejected,
            'elapsed_time': self.stats.elapsed_time,
            'pages_per_minute': self.stats.pages_per_minute,
            'average_response_time': self.stats.average_response_time,
            'urls_in_queue': self.frontier.pending_count(),
            'urls_seen': self.frontier.seen_count(),
            'in_flight': len(self._in_flight),
            'idle_workers': self._idle_workers,
            'is_running': self.is_running,
        }
