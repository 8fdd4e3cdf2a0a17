"""Luma-specific normalization rules."""
import re
from datetime import datetime
from typing import Dict, List, Optional

from geocoding.location_resolver import LocationResolver
from processor.event_processor import POPUP_CITY_TAG, EventProcessor, is_popup_event
from processor.location_text import is_internal_room_reference
from processor.models import EventSource, Organizer, PlaceDescriptor, RawEvent

UP_TO_DATE_LINE = re.compile(
    r'Get up-to-date information at:\s*(https?://[^\s\\]+)', re.IGNORECASE
)
UP_TO_DATE_PREFIX = re.compile(r'^Get up-to-date information at:', re.IGNORECASE)
ADDRESS_PREFIX = re.compile(r'^Address:', re.IGNORECASE)


class LumaEventProcessor(EventProcessor):
    """Normalizer for events from Luma iCal feeds.

    Feeds are fetched per community handle. A handle's place hint (its
    home city) is applied when an event's location only names a room.
    """

    source = EventSource.LUMA
    CONFIDENCE = 0.98
    DEFAULT_URL_TEMPLATE = 'https://lu.ma/event/{uid}'

    def __init__(
        self,
        location_resolver: LocationResolver,
        handle_locations: Optional[Dict[str, dict]] = None
    ):
        """
        Args:
            location_resolver: Shared resolver for coordinate lookups
            handle_locations: handle -> {name, city, country, timezone}
        """
        super().__init__(location_resolver)
        self.handle_locations = handle_locations or {}

    def hinted_place(
        self,
        raw_event: RawEvent,
        context_slug: Optional[str]
    ) -> Optional[PlaceDescriptor]:
        hint = self.handle_locations.get(context_slug) if context_slug else None
        if not hint or not is_internal_room_reference(raw_event.location):
            return None
        return PlaceDescriptor(
            city=hint.get('city'),
            country=hint.get('country'),
            timezone=hint.get('timezone'),
        )

    def extract_source_url(self, raw_event: RawEvent) -> str:
        # The feed URL field is often a generic calendar link
        return extract_luma_url(raw_event.description) or super().extract_source_url(raw_event)

    def clean_description(self, description: Optional[str]) -> Optional[str]:
        return clean_luma_description(description)

    def build_organizers(
        self,
        raw_event: RawEvent,
        context_slug: Optional[str]
    ) -> List[Organizer]:
        organizers = super().build_organizers(raw_event, context_slug)

        hint = self.handle_locations.get(context_slug) if context_slug else None
        handle_name = hint.get('name') if hint else None
        if handle_name and not any(o.name == handle_name for o in organizers):
            organizers.append(Organizer(name=handle_name))

        return organizers

    def build_tags(
        self,
        start_at: datetime,
        end_at: Optional[datetime],
        context_slug: Optional[str]
    ) -> List[str]:
        if is_popup_event(start_at, end_at):
            return [POPUP_CITY_TAG]
        return []


def extract_luma_url(description: Optional[str]) -> Optional[str]:
    """Event page URL from the "Get up-to-date information at:" line."""
    if not description:
        return None
    match = UP_TO_DATE_LINE.search(description)
    return match.group(1) if match else None


def clean_luma_description(description: Optional[str]) -> Optional[str]:
    """
    Strip Luma boilerplate from an event description.

    Removes the leading "Get up-to-date information at:" line and a
    leading "Address:" block running up to the first blank line.

    Args:
        description: Raw DESCRIPTION text

    Returns:
        Cleaned description, or None when nothing else remains
    """
    if not description:
        return None

    cleaned = description.replace('\r\n', '\n')

    if UP_TO_DATE_PREFIX.match(cleaned):
        first_line_end = cleaned.find('\n')
        if first_line_end == -1:
            return None
        cleaned = cleaned[first_line_end:].lstrip('\n')

    if ADDRESS_PREFIX.match(cleaned):
        blank_line = cleaned.find('\n\n')
        if blank_line == -1:
            return None
        cleaned = cleaned[blank_line:].lstrip('\n')

    return cleaned.strip() or None
