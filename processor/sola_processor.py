"""Sola.day-specific normalization rules."""
import logging
import re
from datetime import datetime, timezone
from typing import Dict, List, Optional

from bs4 import BeautifulSoup

from geocoding.location_resolver import LocationResolver
from processor.event_processor import POPUP_CITY_TAG, EventProcessor, parse_instant
from processor.fingerprint import generate_fingerprint
from processor.location_text import extract_city
from processor.models import Event, EventSource, EventStatus, Organizer, RawEvent

logger = logging.getLogger(__name__)

BOILERPLATE_LINE = re.compile(r'Get up to date information at:.*$', re.MULTILINE)
HTML_TAG = re.compile(r'<[a-zA-Z][^>]*>')

INVISIBLE_GARDEN_TAG = 'invisible-garden'
POPUP_CITY_CONFIDENCE = 0.95


class SolaEventProcessor(EventProcessor):
    """Normalizer for Sola.day events and popup cities."""

    source = EventSource.SOLADAY
    CONFIDENCE = 0.98
    DEFAULT_URL_TEMPLATE = 'https://app.sola.day/event/detail/{uid}'

    def __init__(
        self,
        location_resolver: LocationResolver,
        city_titles: Optional[Dict[str, str]] = None
    ):
        """
        Args:
            location_resolver: Shared resolver for coordinate lookups
            city_titles: popup city slug -> display title, for organizers
        """
        super().__init__(location_resolver)
        self.city_titles = city_titles or {}

    def textual_city(
        self,
        raw_event: RawEvent,
        context_slug: Optional[str]
    ) -> Optional[str]:
        location = raw_event.location
        if location and not location.startswith('http') and 'online' in location.lower():
            return 'Online'
        return extract_city(location) or context_slug

    def clean_description(self, description: Optional[str]) -> Optional[str]:
        return clean_sola_description(description)

    def build_organizers(
        self,
        raw_event: RawEvent,
        context_slug: Optional[str]
    ) -> List[Organizer]:
        if not raw_event.organizer:
            return []
        name = self.city_titles.get(raw_event.organizer, raw_event.organizer)
        return [Organizer(name=name)]

    def normalize_popup_city(self, city_detail: dict) -> Optional[Event]:
        """
        Normalize a popup city (a multi-week gathering) into an Event.

        Args:
            city_detail: Dict with success, citySlug, title and optional id,
                description, startDate, endDate, location, timezone,
                imageUrl, website

        Returns:
            Event tagged as a popup city, or None if unusable
        """
        if not city_detail.get('success') or not city_detail.get('title'):
            return None

        slug = city_detail.get('citySlug') or ''
        start_at = parse_instant(city_detail.get('startDate'))
        if start_at is None:
            logger.warning(f"Skipping popup city {slug}: missing start date")
            return None

        end_at = parse_instant(city_detail.get('endDate'))
        detail_id = city_detail.get('id')

        tags = [POPUP_CITY_TAG]
        if 'invisiblegarden' in slug:
            tags.append(INVISIBLE_GARDEN_TAG)

        now = datetime.now(timezone.utc)

        # Popup city location text is inconsistent, so city/country stay None
        return Event(
            uid=f"soladay-city-{detail_id or slug}",
            fingerprint=generate_fingerprint(city_detail['title'], start_at),
            source=self.source,
            source_url=f"https://app.sola.day/event/{slug}",
            source_event_id=str(detail_id) if detail_id else slug,
            title=city_detail['title'],
            description=city_detail.get('description') or None,
            start_at=start_at,
            end_at=end_at,
            timezone=city_detail.get('timezone') or None,
            address=city_detail.get('location') or None,
            tags=tags,
            image_url=city_detail.get('imageUrl') or None,
            website=city_detail.get('website') or None,
            status=EventStatus.SCHEDULED,
            confidence=POPUP_CITY_CONFIDENCE,
            first_seen=now,
            last_seen=now,
            last_checked=now,
        )

    def normalize_popup_cities(self, city_details: List[dict]) -> List[Event]:
        """Normalize a list of popup city details, dropping unusable ones."""
        events = []
        for detail in city_details:
            event = self.normalize_popup_city(detail)
            if event:
                events.append(event)

        logger.info(f"Normalized {len(events)}/{len(city_details)} popup cities")
        return events


def clean_sola_description(description: Optional[str]) -> Optional[str]:
    """Drop iCal boilerplate lines and HTML markup from a description."""
    if not description:
        return None

    cleaned = BOILERPLATE_LINE.sub('', description)
    if HTML_TAG.search(cleaned):
        cleaned = BeautifulSoup(cleaned, 'html.parser').get_text('\n')

    return cleaned.strip() or None
