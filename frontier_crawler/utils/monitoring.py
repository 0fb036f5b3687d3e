"""
Monitoring and metrics collection for the web crawler.
"""

import logging
import time
from typing import Any, Dict, Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, start_http_server


class CrawlerMonitor:
    """
    Prometheus metrics for a crawl run.

    Each monitor owns its own registry so several crawls (or tests) in one
    process do not collide on metric names.
    """

    def __init__(self, enable_server: bool = False, port: int = 8000):
        self.logger = logging.getLogger(__name__)
        self.enable_server = enable_server
        self.port = port
        self.start_time = time.time()
        self.registry = CollectorRegistry()

        self.urls_crawled = Counter(
            'crawler_urls_crawled', 'Total number of URLs fetched',
            registry=self.registry,
        )
        self.fetch_errors = Counter(
            'crawler_fetch_errors', 'Total number of failed fetches',
            registry=self.registry,
        )
        self.links_admitted = Counter(
            'crawler_links_admitted', 'Discovered links accepted by the admission policy',
            registry=self.registry,
        )
        self.links_rejected = Counter(
            'crawler_links_rejected', 'Discovered links rejected by the admission policy',
            registry=self.registry,
        )
        self.response_time = Histogram(
            'crawler_response_time_seconds', 'Response time for HTTP requests',
            registry=self.registry,
        )
        self.queue_size = Gauge(
            'crawler_queue_size', 'Number of URLs waiting in the frontier',
            registry=self.registry,
        )
        self.idle_workers = Gauge(
            'crawler_idle_workers', 'Number of workers waiting for work',
            registry=self.registry,
        )
        self.in_flight = Gauge(
            'crawler_in_flight', 'Number of URLs taken but not yet completed',
            registry=self.registry,
        )

    def start_server(self):
        """Start the Prometheus metrics HTTP server if enabled."""
        if not self.enable_server:
            return
        start_http_server(self.port, registry=self.registry)
        self.logger.info(f"Prometheus metrics server started on port {self.port}")

    def record_url_crawled(self, url: str, response_time: float, success: bool):
        self.urls_crawled.inc()
        self.response_time.observe(response_time)
        if not success:
            self.fetch_errors.inc()

    def record_links(self, admitted: int, rejected: int):
        self.links_admitted.inc(admitted)
        self.links_rejected.inc(rejected)

    def update_workers(self, queue_size: int, idle: int, in_flight: int):
        self.queue_size.set(queue_size)
        self.idle_workers.set(idle)
        self.in_flight.set(in_flight)

    def get_value(self, name: str) -> Optional[float]:
        """Read a sample by its exported name, e.g. ``crawler_urls_crawled_total``."""
        return self.registry.get_sample_value(name)

    def get_summary(self) -> Dict[str, Any]:
        """Get a summary of the current metric values."""
        runtime = time.time() - self.start_time
        crawled = self.get_value('crawler_urls_crawled_total') or 0

        return {
            'runtime_seconds': runtime,
            'urls_crawled': crawled,
            'fetch_errors': self.get_value('crawler_fetch_errors_total') or 0,
            'links_admitted': self.get_value('crawler_links_admitted_total') or 0,
            'links_rejected': self.get_value('crawler_links_rejected_total') or 0,
            'queue_size': self.get_value('crawler_queue_size') or 0,
            'urls_per_second': crawled / runtime if runtime > 0 else 0,
        }
