"""
Web crawler core components.
"""

from .url_frontier import URLFrontier, FrontierCorruptedError
from .rate_limiter import RateLimiter, IntervalRateLimiter, TokenBucketRateLimiter, create_rate_limiter
from .admission import (
    AdmissionPolicy, GlobAdmissionPolicy, RegexAdmissionPolicy,
    create_admission_policy, is_admitted,
)
from .fetcher import WebFetcher, FetchResult
from .parser import LinkExtractor
from .scheduler import CrawlerScheduler, CrawlStats

__all__ = [
    'URLFrontier', 'FrontierCorruptedError',
    'RateLimiter', 'IntervalRateLimiter', 'TokenBucketRateLimiter', 'create_rate_limiter',
    'AdmissionPolicy', 'GlobAdmissionPolicy', 'RegexAdmissionPolicy',
    'create_admission_policy', 'is_admitted',
    'WebFetcher', 'FetchResult',
    'LinkExtractor',
    'CrawlerScheduler', 'CrawlStats',
]
