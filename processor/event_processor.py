"""Event processor for normalizing raw provider events."""
import logging
from datetime import date, datetime, timedelta, timezone
from typing import List, Optional, Union

from geocoding.location_resolver import LocationResolver
from processor.fingerprint import generate_fingerprint
from processor.location_text import (
    extract_city,
    extract_country,
    extract_venue_name,
)
from processor.models import (
    EMPTY_PLACE,
    Event,
    EventSource,
    EventStatus,
    NormalizationOptions,
    Organizer,
    PlaceDescriptor,
    RawEvent,
)

logger = logging.getLogger(__name__)

STATUS_MAP = {
    'CONFIRMED': EventStatus.SCHEDULED,
    'TENTATIVE': EventStatus.TENTATIVE,
    'CANCELLED': EventStatus.CANCELLED,
}

POPUP_CITY_TAG = 'popup-city'
POPUP_MIN_DURATION = timedelta(days=2)


def parse_instant(value: Union[str, datetime, date, None]) -> Optional[datetime]:
    """
    Parse a feed timestamp into an aware UTC datetime.

    Naive values are taken to be UTC; bare dates become midnight UTC.

    Args:
        value: ISO 8601 string, datetime, date or None

    Returns:
        Aware datetime in UTC, or None for empty input
    """
    if value is None or value == '':
        return None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        text = value.strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        parsed = datetime.fromisoformat(text)

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def map_status(status: Optional[str]) -> EventStatus:
    """Map iCal STATUS vocabulary to the canonical status."""
    if not status:
        return EventStatus.SCHEDULED
    return STATUS_MAP.get(status.upper(), EventStatus.SCHEDULED)


def is_popup_event(start_at: datetime, end_at: Optional[datetime]) -> bool:
    """
    Long-running events are tagged as popups.

    Without an end, an event starting exactly at midnight UTC is assumed
    to be multi-day.
    """
    if end_at is None:
        return start_at.hour == 0 and start_at.minute == 0
    return end_at - start_at > POPUP_MIN_DURATION


class EventProcessor:
    """Base normalizer turning RawEvent objects into canonical Events.

    Subclasses supply the per-source rules (description cleanup, deep
    links, organizers, tags, place hints).
    """

    source: EventSource
    CONFIDENCE = 0.98
    DEFAULT_URL_TEMPLATE = ''

    def __init__(self, location_resolver: LocationResolver):
        """
        Args:
            location_resolver: Shared resolver for coordinate lookups
        """
        self.location_resolver = location_resolver

    def normalize(
        self,
        raw_event: RawEvent,
        context_slug: Optional[str] = None,
        options: Optional[NormalizationOptions] = None
    ) -> Event:
        """
        Normalize a single raw event.

        Place priority: reused place > coordinate lookup > source place
        hint > textual address parsing > context slug.

        Args:
            raw_event: Provider event, assumed well-formed
            context_slug: Community/city slug the event was fetched for
            options: Geocoding skip/reuse options

        Returns:
            Canonical Event
        """
        options = options or NormalizationOptions()

        start_at = parse_instant(raw_event.start_date)
        end_at = parse_instant(raw_event.end_date)
        lat, lng = self._coordinates(raw_event)

        place = self.determine_place(raw_event, context_slug, options)

        fingerprint = generate_fingerprint(
            raw_event.title, start_at, place.city, lat, lng
        )

        now = datetime.now(timezone.utc)

        return Event(
            uid=raw_event.uid,
            fingerprint=fingerprint,
            source=self.source,
            source_url=self.extract_source_url(raw_event),
            source_event_id=raw_event.uid,
            title=raw_event.title,
            description=self.clean_description(raw_event.description),
            start_at=start_at,
            end_at=end_at,
            timezone=place.timezone,
            venue_name=extract_venue_name(raw_event.location),
            address=raw_event.location,
            lat=lat,
            lng=lng,
            city=place.city,
            country=place.country,
            organizers=self.build_organizers(raw_event, context_slug),
            tags=self.build_tags(start_at, end_at, context_slug),
            image_url=None,
            status=map_status(raw_event.status),
            sequence=raw_event.sequence or 0,
            confidence=self.CONFIDENCE,
            first_seen=now,
            last_seen=now,
            last_checked=now,
        )

    def determine_place(
        self,
        raw_event: RawEvent,
        context_slug: Optional[str],
        options: NormalizationOptions
    ) -> PlaceDescriptor:
        """Resolve the place of an event without touching other fields."""
        if options.skip_geocoding and options.reuse_location is not None:
            return options.reuse_location

        lat, lng = self._coordinates(raw_event)
        place = EMPTY_PLACE
        if not options.skip_geocoding and lat and lng:
            place = self.location_resolver.resolve(lat, lng)
            if place.is_empty:
                logger.debug(
                    f"No geocoded place for {raw_event.uid}, falling back to location text"
                )
        elif not (lat and lng):
            place = self.hinted_place(raw_event, context_slug) or EMPTY_PLACE

        return PlaceDescriptor(
            city=place.city or self.textual_city(raw_event, context_slug),
            country=place.country or extract_country(raw_event.location),
            timezone=place.timezone,
        )

    def textual_place(
        self,
        raw_event: RawEvent,
        context_slug: Optional[str]
    ) -> PlaceDescriptor:
        """Place derived without any external lookup."""
        return self.determine_place(
            raw_event, context_slug, NormalizationOptions(skip_geocoding=True)
        )

    def hinted_place(
        self,
        raw_event: RawEvent,
        context_slug: Optional[str]
    ) -> Optional[PlaceDescriptor]:
        """Source-specific place hint for events without coordinates."""
        return None

    def textual_city(
        self,
        raw_event: RawEvent,
        context_slug: Optional[str]
    ) -> Optional[str]:
        return extract_city(raw_event.location) or context_slug

    def extract_source_url(self, raw_event: RawEvent) -> str:
        return (
            raw_event.source_url
            or raw_event.url
            or self.DEFAULT_URL_TEMPLATE.format(uid=raw_event.uid)
        )

    def clean_description(self, description: Optional[str]) -> Optional[str]:
        if not description:
            return None
        return description.strip() or None

    def build_organizers(
        self,
        raw_event: RawEvent,
        context_slug: Optional[str]
    ) -> List[Organizer]:
        if raw_event.organizer:
            return [Organizer(name=raw_event.organizer)]
        return []

    def build_tags(
        self,
        start_at: datetime,
        end_at: Optional[datetime],
        context_slug: Optional[str]
    ) -> List[str]:
        return []

    @staticmethod
    def _coordinates(raw_event: RawEvent):
        if raw_event.geo is None:
            return None, None
        return raw_event.geo.lat, raw_event.geo.lon
