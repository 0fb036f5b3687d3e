"""
Link extraction from HTML pages.
"""

import logging
from typing import List
from urllib.parse import urljoin, urlparse, urlunparse

from bs4 import BeautifulSoup


class LinkExtractor:
    """
    Extracts absolute, fragment-free http(s) links from HTML content.
    """

    def __init__(self, parser: str = 'lxml'):
        self.parser = parser
        self.logger = logging.getLogger(__name__)

    def extract_links(self, base_url: str, html_content: str) -> List[str]:
        """
        Extract links from a page.

        Args:
            base_url: The URL the page was fetched from
            html_content: Raw HTML content

        Returns:
            Normalized links in order of first appearance, without duplicates
        """
        try:
            soup = BeautifulSoup(html_content, self.parser)
        except Exception as e:
            self.logger.warning(f"Error parsing content from {base_url}: {e}")
            return []

        base_tag = soup.find('base', href=True)
        if base_tag:
            base_url = urljoin(base_url, base_tag['href'].strip())

        links: List[str] = []
        found = set()
        for anchor in soup.find_all('a', href=True):
            href = anchor['href'].strip()
            if not href or href.startswith('#'):
                continue

            url = self.normalize_url(urljoin(base_url, href))
            if url is None or url in found:
                continue
            found.add(url)
            links.append(url)

        self.logger.debug(f"Extracted {len(links)} links from {base_url}")
        return links

    @staticmethod
    def normalize_url(url: str):
        """Drop the fragment and lower-case the host. Returns None for non-http(s) URLs."""
        try:
            parsed = urlparse(url)
        except ValueError:
            return None

        if parsed.scheme not in ('http', 'https') or not parsed.netloc:
            return None

        return urlunparse((
            parsed.scheme,
            parsed.netloc.lower(),
            parsed.path,
            parsed.params,
            parsed.query,
            '',
        ))
