"""Discovery of iCal subscription URLs on community calendar pages."""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional
from urllib.parse import parse_qs, urljoin, urlparse

import requests
from bs4 import BeautifulSoup

from scraper.ical_feeds import USER_AGENT, is_retryable_request_error
from resilience.retry import retryable

logger = logging.getLogger(__name__)


@dataclass
class DiscoveryResult:
    """Outcome of an iCal URL discovery pass."""
    urls: Dict[str, str] = field(default_factory=dict)
    failures: Dict[str, str] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return len(self.urls) + len(self.failures)


class IcalUrlScraper:
    """Finds the iCal feed behind each community's public calendar page."""

    BASE_URL = 'https://lu.ma'

    def __init__(self, timeout: int = 30, base_url: Optional[str] = None):
        """
        Args:
            timeout: HTTP request timeout in seconds (default: 30)
            base_url: Calendar site root (default: https://lu.ma)
        """
        self.timeout = timeout
        self.base_url = (base_url or self.BASE_URL).rstrip('/')

    def discover(self, slugs: List[str]) -> DiscoveryResult:
        """
        Discover iCal URLs for a list of community slugs.

        Args:
            slugs: Community handles, e.g. "ns" for lu.ma/ns

        Returns:
            DiscoveryResult with found URLs and per-slug failure reasons
        """
        result = DiscoveryResult()

        for slug in slugs:
            try:
                html_content = self._fetch_page(slug)
                ical_url = self.find_ical_url(html_content, self.base_url)
            except requests.RequestException as e:
                logger.warning(f"Failed to fetch calendar page for {slug}: {e}")
                result.failures[slug] = str(e)
                continue

            if ical_url:
                result.urls[slug] = ical_url
            else:
                result.failures[slug] = 'iCal link not found'

        logger.info(
            f"Discovered {len(result.urls)}/{result.total} iCal URLs"
        )
        return result

    @retryable(max_attempts=2, should_retry=is_retryable_request_error)
    def _fetch_page(self, slug: str) -> str:
        response = requests.get(
            f"{self.base_url}/{slug}",
            headers={'User-Agent': USER_AGENT},
            timeout=self.timeout
        )
        response.raise_for_status()
        return response.text

    @staticmethod
    def find_ical_url(html_content: str, base_url: str = BASE_URL) -> Optional[str]:
        """
        Extract an iCal URL from a calendar page.

        Checks, in order: webcal:// links, direct .ics/ics endpoint links,
        and Google Calendar subscribe links carrying the feed in `cid`.

        Args:
            html_content: Page HTML
            base_url: Page origin that relative .ics links resolve against

        Returns:
            Absolute https iCal URL or None
        """
        soup = BeautifulSoup(html_content, 'html.parser')
        hrefs = [a.get('href') for a in soup.find_all('a') if a.get('href')]

        for href in hrefs:
            if href.startswith('webcal://'):
                return 'https://' + href[len('webcal://'):]

        for href in hrefs:
            if '/ics/' in href or href.endswith('.ics'):
                return urljoin(base_url + '/', href)

        for href in hrefs:
            if 'google.com/calendar' in href and 'cid=' in href:
                cid = parse_qs(urlparse(href).query).get('cid')
                if cid:
                    feed = cid[0]
                    if feed.startswith('webcal://'):
                        feed = 'https://' + feed[len('webcal://'):]
                    return feed

        return None
