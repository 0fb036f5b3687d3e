"""
URL Frontier implementation for managing URLs to crawl.
Implements a deduplicating LIFO work list shared by all crawler workers.
"""

import logging
import threading
from typing import Iterable, List, Optional, Set


class FrontierCorruptedError(RuntimeError):
    """Raised when the frontier can no longer guarantee its own invariants."""

    def __init__(self, section: str, detail: str):
        super().__init__(f"URL frontier corrupted in {section}(): {detail}")
        self.section = section
        self.detail = detail


class URLFrontier:
    """
    Thread-safe URL frontier that remembers every URL it has ever admitted.

    ``pending`` holds URLs waiting to be crawled, ``seen`` holds every URL
    ever admitted to ``pending``. Both are guarded by one lock so that the
    check-seen/insert-seen/append-pending sequence is a single critical
    section. URLs come back out most-recently-pushed first.

    Example::

        frontier = URLFrontier(["https://example.com"])
        frontier.push([
            "https://example.com/home",
            "https://example.com/example",
        ])
        url = frontier.take()  # "https://example.com/example"
    """

    def __init__(self, start_urls: Iterable[str] = ()):
        self.logger = logging.getLogger(__name__)
        self._lock = threading.Lock()
        self._pending: List[str] = []
        self._seen: Set[str] = set()

        self.push(start_urls)

    def push(self, urls: Iterable[str]) -> None:
        """
        Append URLs to the back of the frontier.

        URLs already seen are dropped silently, so every URL is admitted
        at most once for the lifetime of the frontier.
        """
        added = 0
        with self._lock:
            for url in urls:
                if url in self._seen:
                    continue
                self._seen.add(url)
                self._pending.append(url)
                added += 1

            if len(self._pending) > len(self._seen):
                raise FrontierCorruptedError(
                    "push",
                    f"{len(self._pending)} pending URLs but only {len(self._seen)} seen",
                )

        if added:
            self.logger.debug(f"Added {added} URLs to frontier")

    def take(self) -> Optional[str]:
        """
        Take the most recently pushed URL off the frontier.
        Returns None if the frontier is currently empty.
        """
        with self._lock:
            if not self._pending:
                return None
            url = self._pending.pop()
            if url not in self._seen:
                raise FrontierCorruptedError("take", f"pending URL {url!r} was never seen")
        return url

    def has_seen(self, url: str) -> bool:
        """Check whether a URL has ever been admitted."""
        with self._lock:
            return url in self._seen

    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def seen_count(self) -> int:
        with self._lock:
            return len(self._seen)

    def __len__(self) -> int:
        return self.pending_count()

    def get_stats(self) -> dict:
        """Get frontier statistics."""
        with self._lock:
            return {
                'total_queued': len(self._pending),
                'total_seen': len(self._seen),
            }
