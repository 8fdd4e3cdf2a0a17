"""iCal feed fetcher for community event calendars."""
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Iterator, List, Optional

import requests
from icalendar import Calendar

from processor.models import GeoPoint, RawEvent, SourceBatch
from resilience.retry import is_retryable, retry

logger = logging.getLogger(__name__)

USER_AGENT = 'community-events-sync/1.0 (+ical)'
RETRYABLE_STATUS = {429, 500, 502, 503, 504}


def is_retryable_request_error(error: BaseException) -> bool:
    """Retry network failures and 429/5xx responses."""
    if isinstance(error, (requests.Timeout, requests.ConnectionError)):
        return True
    if isinstance(error, requests.HTTPError) and error.response is not None:
        return error.response.status_code in RETRYABLE_STATUS
    return is_retryable(error)


class IcalFeedScraper:
    """Fetches and parses iCal feeds, one feed per community."""

    def __init__(self, timeout: int = 30, concurrency: int = 5, max_attempts: int = 3):
        """
        Initialize the feed scraper.

        Args:
            timeout: HTTP request timeout in seconds (default: 30)
            concurrency: Feeds fetched in parallel per window (default: 5)
            max_attempts: HTTP attempts per feed (default: 3)
        """
        self.timeout = timeout
        self.concurrency = max(1, concurrency)
        self.max_attempts = max_attempts

    def fetch_feed(self, key: str, url: str) -> SourceBatch:
        """
        Fetch and parse a single feed.

        Args:
            key: Community slug the feed belongs to
            url: iCal feed URL (webcal:// is fetched over https)

        Returns:
            SourceBatch; failures are reported, never raised
        """
        try:
            ical_text = self._fetch_ical(url)
            events = self.parse_ical(ical_text)
        except Exception as e:
            logger.warning(f"Failed to fetch feed {key}: {e}")
            return SourceBatch(key=key, success=False, error=str(e))

        logger.info(f"Fetched {len(events)} events from feed {key}")
        return SourceBatch(key=key, success=True, events=events)

    def stream_feeds(self, url_map: Dict[str, str]) -> Iterator[SourceBatch]:
        """
        Fetch many feeds, yielding each result as its window completes.

        Feeds are fetched in windows of `concurrency`; results are yielded
        in the order of url_map so consumers see a stable sequence.

        Args:
            url_map: Community slug -> iCal URL

        Yields:
            SourceBatch per community
        """
        items = list(url_map.items())
        logger.info(
            f"Fetching {len(items)} feeds in windows of {self.concurrency}"
        )

        with ThreadPoolExecutor(max_workers=self.concurrency) as executor:
            for i in range(0, len(items), self.concurrency):
                window = items[i:i + self.concurrency]
                futures = [
                    executor.submit(self.fetch_feed, key, url)
                    for key, url in window
                ]
                for future in futures:
                    yield future.result()

    def _fetch_ical(self, url: str) -> str:
        if url.startswith('webcal://'):
            url = 'https://' + url[len('webcal://'):]

        def get():
            response = requests.get(
                url,
                headers={'User-Agent': USER_AGENT},
                timeout=self.timeout
            )
            response.raise_for_status()
            return response.text

        return retry(
            get,
            max_attempts=self.max_attempts,
            initial_delay=1.0,
            should_retry=is_retryable_request_error,
        )

    def parse_ical(self, ical_text: str) -> List[RawEvent]:
        """
        Parse VEVENT components into RawEvent objects.

        Events missing UID, SUMMARY or DTSTART are dropped.

        Args:
            ical_text: VCALENDAR document

        Returns:
            List of RawEvent objects
        """
        calendar = Calendar.from_ical(ical_text)
        events = []

        for component in calendar.walk('VEVENT'):
            try:
                event = self._parse_vevent(component)
                if event:
                    events.append(event)
            except Exception as e:
                logger.warning(f"Failed to parse VEVENT: {e}")
                continue

        return events

    def _parse_vevent(self, component) -> Optional[RawEvent]:
        uid = str(component.get('UID', '')).strip()
        title = str(component.get('SUMMARY', '')).strip()
        if not uid or not title or component.get('DTSTART') is None:
            return None

        end_date = None
        if component.get('DTEND') is not None:
            end_date = component.decoded('DTEND')

        geo = None
        geo_value = component.get('GEO')
        if geo_value is not None:
            geo = GeoPoint(lat=float(geo_value.latitude), lon=float(geo_value.longitude))

        sequence = component.get('SEQUENCE')

        return RawEvent(
            uid=uid,
            title=title,
            start_date=component.decoded('DTSTART'),
            end_date=end_date,
            description=self._text(component.get('DESCRIPTION')),
            location=self._text(component.get('LOCATION')),
            geo=geo,
            organizer=self._organizer_name(component.get('ORGANIZER')),
            status=self._text(component.get('STATUS')),
            sequence=int(sequence) if sequence is not None else None,
            url=self._text(component.get('URL')),
        )

    @staticmethod
    def _text(value) -> Optional[str]:
        if value is None:
            return None
        return str(value).strip() or None

    @staticmethod
    def _organizer_name(value) -> Optional[str]:
        """Organizer CN parameter, falling back to the mailto address."""
        if value is None:
            return None
        params = getattr(value, 'params', {}) or {}
        name = params.get('CN')
        if name:
            return str(name).strip()
        text = str(value)
        if text.lower().startswith('mailto:'):
            text = text[len('mailto:'):]
        return text.strip() or None
