"""
Admission policies deciding which discovered URLs may enter the frontier.
"""

import re
from fnmatch import fnmatchcase
from typing import Iterable, List, Pattern, Protocol, Sequence

from ..utils.config import ConfigError


def is_admitted(url: str, allow_patterns: Sequence[str], disallow_patterns: Sequence[str]) -> bool:
    """
    Check a URL against glob allow/disallow patterns.

    A URL is admitted when it matches at least one allow pattern and no
    disallow pattern. Disallow takes priority over allow.
    """
    if any(fnmatchcase(url, pattern) for pattern in disallow_patterns):
        return False
    return any(fnmatchcase(url, pattern) for pattern in allow_patterns)


class AdmissionPolicy(Protocol):
    """Decides whether a URL may be added to the frontier."""

    def admits(self, url: str) -> bool:
        ...


class GlobAdmissionPolicy:
    """Shell-style glob matching, e.g. ``https://example.com/*``."""

    def __init__(self, allow_patterns: Iterable[str], disallow_patterns: Iterable[str] = ()):
        self.allow_patterns = tuple(allow_patterns)
        self.disallow_patterns = tuple(disallow_patterns)

    def admits(self, url: str) -> bool:
        return is_admitted(url, self.allow_patterns, self.disallow_patterns)


class RegexAdmissionPolicy:
    """Regular expression matching; a pattern matches anywhere in the URL."""

    def __init__(self, allow_patterns: Iterable[str], disallow_patterns: Iterable[str] = ()):
        self.allow_patterns = self._compile(allow_patterns)
        self.disallow_patterns = self._compile(disallow_patterns)

    @staticmethod
    def _compile(patterns: Iterable[str]) -> List[Pattern]:
        compiled = []
        for pattern in patterns:
            try:
                compiled.append(re.compile(pattern))
            except re.error as e:
                raise ConfigError(f"Invalid URL pattern {pattern!r}: {e}") from e
        return compiled

    def admits(self, url: str) -> bool:
        if any(pattern.search(url) for pattern in self.disallow_patterns):
            return False
        return any(pattern.search(url) for pattern in self.allow_patterns)


def create_admission_policy(syntax: str, allow_patterns: Iterable[str],
                            disallow_patterns: Iterable[str] = ()) -> AdmissionPolicy:
    """Create an admission policy for the given pattern syntax ('glob' or 'regex')."""
    if syntax == 'glob':
        return GlobAdmissionPolicy(allow_patterns, disallow_patterns)
    if syntax == 'regex':
        return RegexAdmissionPolicy(allow_patterns, disallow_patterns)
    raise ConfigError(f"Unknown pattern syntax: {syntax}")
