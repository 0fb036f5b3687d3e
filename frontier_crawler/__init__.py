"""
Frontier Crawler

A concurrent web crawler built around a deduplicating LIFO URL frontier.
"""

__version__ = "1.0.0"
__description__ = "A rate-limited web crawler with a thread-safe deduplicating URL frontier"
