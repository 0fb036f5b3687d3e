"""
Tests for the crawler scheduler (worker pool, termination and cancellation)
"""

import asyncio

import pytest

from frontier_crawler.crawler.parser import LinkExtractor
from frontier_crawler.crawler.scheduler import CrawlerScheduler
from frontier_crawler.crawler.url_frontier import FrontierCorruptedError
from frontier_crawler.utils.monitoring import CrawlerMonitor
from tests.conftest import FakeFetcher, make_config, page

ROOT = "https://site.test/"

REACHABLE = sorted([
    "https://site.test/",
    "https://site.test/a",
    "https://site.test/b",
    "https://site.test/c",
    "https://site.test/d",
    "https://site.test/missing",
])


def make_scheduler(fetcher, **config_options):
    config_options.setdefault("disallow", ("*/private/*",))
    return CrawlerScheduler(make_config(**config_options), ROOT, fetcher=fetcher)


async def crawl(scheduler, **kwargs):
    return await asyncio.wait_for(scheduler.start_crawling(**kwargs), timeout=10)


async def test_crawls_every_admitted_url_exactly_once(site_pages):
    fetcher = FakeFetcher(site_pages, default_delay=0.01)
    scheduler = make_scheduler(fetcher)

    stats = await crawl(scheduler)

    assert sorted(fetcher.fetched) == REACHABLE
    assert stats.urls_crawled == len(REACHABLE)
    assert stats.fetch_errors == 1
    assert scheduler.frontier.take() is None
    assert scheduler.in_flight == frozenset()
    assert not scheduler.is_running


async def test_disallowed_and_external_links_are_not_crawled(site_pages):
    fetcher = FakeFetcher(site_pages)
    scheduler = make_scheduler(fetcher)

    stats = await crawl(scheduler)

    assert "https://site.test/private/secret" not in fetcher.fetched
    assert "https://other.test/x" not in fetcher.fetched
    assert not scheduler.frontier.has_seen("https://other.test/x")
    assert stats.links_rejected >= 2


async def test_single_worker_crawls_most_recent_discovery_first():
    pages = {
        ROOT: page("/a", "/b"),
        "https://site.test/a": page(),
        "https://site.test/b": page("/c"),
        "https://site.test/c": page(),
    }
    fetcher = FakeFetcher(pages)
    scheduler = make_scheduler(fetcher, thread_count=1)

    await crawl(scheduler)

    assert fetcher.fetched == [
        ROOT,
        "https://site.test/b",
        "https://site.test/c",
        "https://site.test/a",
    ]


async def test_idle_workers_wait_for_in_flight_fetch(site_pages):
    # Every other worker finds the frontier empty while the seed is still in flight
    fetcher = FakeFetcher(site_pages, delays={ROOT: 0.2})
    scheduler = make_scheduler(fetcher, thread_count=3)

    await crawl(scheduler)

    assert sorted(fetcher.fetched) == REACHABLE


async def test_terminates_when_seed_has_no_links():
    fetcher = FakeFetcher({ROOT: page()})
    scheduler = make_scheduler(fetcher, thread_count=5)

    stats = await crawl(scheduler)

    assert fetcher.fetched == [ROOT]
    assert stats.urls_crawled == 1


async def test_failed_seed_fetch_ends_crawl():
    fetcher = FakeFetcher({})
    scheduler = make_scheduler(fetcher, thread_count=2)

    stats = await crawl(scheduler)

    assert fetcher.fetched == [ROOT]
    assert stats.fetch_errors == 1
    assert scheduler.frontier.seen_count() == 1


async def test_extraction_error_is_contained(site_pages):
    class BrokenExtractor:
        def extract_links(self, base_url, html):
            if base_url == "https://site.test/a":
                raise RuntimeError("parser exploded")
            return LinkExtractor().extract_links(base_url, html)

    fetcher = FakeFetcher(site_pages)
    scheduler = CrawlerScheduler(
        make_config(disallow=("*/private/*",)), ROOT,
        fetcher=fetcher, extractor=BrokenExtractor(),
    )

    stats = await crawl(scheduler)

    assert stats.errors == 1
    assert "https://site.test/a" in fetcher.fetched
    assert fetcher.fetched.count("https://site.test/a") == 1


async def test_max_pages_stops_taking_new_urls():
    pages = {f"https://site.test/{i}": page(f"/{i + 1}") for i in range(10)}
    pages[ROOT] = page("/0")
    fetcher = FakeFetcher(pages)
    scheduler = make_scheduler(fetcher, thread_count=1)

    stats = await crawl(scheduler, max_pages=3)

    assert fetcher.fetched == [ROOT, "https://site.test/0", "https://site.test/1"]
    assert stats.urls_crawled == 3
    assert scheduler.is_stopping


async def test_max_duration_stops_gracefully(site_pages):
    fetcher = FakeFetcher(site_pages, delays={ROOT: 0.3})
    scheduler = make_scheduler(fetcher, thread_count=2)

    stats = await crawl(scheduler, max_duration=0.1)

    assert fetcher.fetched == [ROOT]
    assert stats.urls_crawled == 1
    # The seed finished after the stop, so its links were never pushed
    assert scheduler.frontier.seen_count() == 1


async def test_no_push_after_graceful_stop(site_pages):
    release = asyncio.Event()
    fetcher = FakeFetcher(site_pages, blockers={ROOT: release})
    scheduler = make_scheduler(fetcher, thread_count=1)

    task = asyncio.create_task(scheduler.start_crawling())
    while not fetcher.fetched:
        await asyncio.sleep(0.01)

    await scheduler.stop_crawling(graceful=True)
    release.set()
    stats = await asyncio.wait_for(task, timeout=5)

    assert stats.urls_crawled == 1
    assert scheduler.frontier.seen_count() == 1
    assert scheduler.frontier.take() is None


async def test_hard_stop_abandons_in_flight_fetches(site_pages):
    never = asyncio.Event()
    fetcher = FakeFetcher(site_pages, blockers={ROOT: never})
    scheduler = make_scheduler(fetcher, thread_count=2)

    task = asyncio.create_task(scheduler.start_crawling())
    while not fetcher.fetched:
        await asyncio.sleep(0.01)

    await scheduler.stop_crawling()
    stats = await asyncio.wait_for(task, timeout=5)

    assert stats.urls_crawled == 0
    assert scheduler.frontier.seen_count() == 1
    assert all(worker.done() for worker in scheduler.workers)
    assert not scheduler.is_running


async def test_frontier_corruption_aborts_crawl(site_pages):
    fetcher = FakeFetcher(site_pages)
    scheduler = make_scheduler(fetcher, thread_count=3)

    def corrupted_push(urls):
        raise FrontierCorruptedError("push", "boom")

    scheduler.frontier.push = corrupted_push

    with pytest.raises(FrontierCorruptedError):
        await crawl(scheduler)

    assert not scheduler.is_running
    assert all(worker.done() for worker in scheduler.workers)


async def test_monitor_records_progress(site_pages):
    monitor = CrawlerMonitor()
    fetcher = FakeFetcher(site_pages)
    scheduler = CrawlerScheduler(
        make_config(disallow=("*/private/*",)), ROOT,
        fetcher=fetcher, monitor=monitor,
    )

    await crawl(scheduler)

    assert monitor.get_value('crawler_urls_crawled_total') == len(REACHABLE)
    assert monitor.get_value('crawler_fetch_errors_total') == 1
    assert monitor.get_value('crawler_queue_size') == 0
    assert monitor.get_value('crawler_in_flight') == 0
    assert monitor.get_summary()['urls_crawled'] == len(REACHABLE)


async def test_get_stats_and_close(site_pages):
    fetcher = FakeFetcher(site_pages)
    scheduler = make_scheduler(fetcher)

    await crawl(scheduler)
    stats = scheduler.get_stats()
    await scheduler.close()

    assert stats['urls_crawled'] == len(REACHABLE)
    assert stats['urls_in_queue'] == 0
    assert stats['urls_seen'] == len(REACHABLE)
    assert stats['is_running'] is False
    assert fetcher.closed


async def test_start_while_running_is_ignored(site_pages):
    release = asyncio.Event()
    fetcher = FakeFetcher(site_pages, blockers={ROOT: release})
    scheduler = make_scheduler(fetcher, thread_count=1)

    task = asyncio.create_task(scheduler.start_crawling())
    while not fetcher.fetched:
        await asyncio.sleep(0.01)

    second = await scheduler.start_crawling()
    release.set()
    stats = await asyncio.wait_for(task, timeout=5)

    assert second is stats
    assert fetcher.fetched.count(ROOT) == 1


class RecordingRateLimiter:
    """Rate limiter that never waits and records each grant."""

    def __init__(self, events):
        self.events = events
        self.calls = 0

    async def acquire(self):
        self.calls += 1
        self.events.append(("acquire", None))


class RecordingFetcher(FakeFetcher):
    def __init__(self, pages, events, **kwargs):
        super().__init__(pages, **kwargs)
        self.events = events

    async def fetch(self, url):
        self.events.append(("fetch", url))
        return await super().fetch(url)


def record_takes(scheduler, events):
    take = scheduler.frontier.take

    def recording_take():
        url = take()
        if url is not None:
            events.append(("take", url))
        return url

    scheduler.frontier.take = recording_take


async def test_rate_limiter_acquired_between_take_and_fetch(site_pages):
    events = []
    fetcher = RecordingFetcher(site_pages, events)
    limiter = RecordingRateLimiter(events)
    scheduler = CrawlerScheduler(
        make_config(disallow=("*/private/*",), thread_count=1), ROOT,
        fetcher=fetcher, rate_limiter=limiter,
    )
    record_takes(scheduler, events)

    await crawl(scheduler)

    assert sorted(fetcher.fetched) == REACHABLE
    assert limiter.calls == len(fetcher.fetched)
    expected = []
    for url in fetcher.fetched:
        expected += [("take", url), ("acquire", None), ("fetch", url)]
    assert events == expected


async def test_rate_limiter_acquired_once_per_fetch_with_many_workers(site_pages):
    events = []
    fetcher = RecordingFetcher(site_pages, events, default_delay=0.01)
    limiter = RecordingRateLimiter(events)
    scheduler = CrawlerScheduler(
        make_config(disallow=("*/private/*",), thread_count=4), ROOT,
        fetcher=fetcher, rate_limiter=limiter,
    )
    record_takes(scheduler, events)

    await crawl(scheduler)

    assert limiter.calls == len(fetcher.fetched) == len(REACHABLE)
    # Every fetch is preceded by an unmatched grant
    granted = 0
    for kind, _ in events:
        if kind == "acquire":
            granted += 1
        elif kind == "fetch":
            assert granted > 0
            granted -= 1
    assert granted == 0


async def test_non_positive_max_pages_is_rejected(site_pages):
    scheduler = make_scheduler(FakeFetcher(site_pages))

    with pytest.raises(ValueError):
        await scheduler.start_crawling(max_pages=0)

    assert not scheduler.is_running


async def test_max_pages_of_one_crawls_only_the_seed(site_pages):
    fetcher = FakeFetcher(site_pages)
    scheduler = make_scheduler(fetcher, thread_count=2)

    stats = await crawl(scheduler, max_pages=1)

    assert fetcher.fetched == [ROOT]
    assert stats.urls_crawled == 1
