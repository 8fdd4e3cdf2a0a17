"""Unit tests for EventProcessor."""
from datetime import date, datetime, timedelta, timezone

import pytest

from processor.event_processor import (
    EventProcessor,
    is_popup_event,
    map_status,
    parse_instant,
)
from processor.fingerprint import generate_fingerprint
from processor.models import (
    EventSource,
    EventStatus,
    GeoPoint,
    NormalizationOptions,
    PlaceDescriptor,
    RawEvent,
)


class PlainProcessor(EventProcessor):
    source = EventSource.LUMA
    DEFAULT_URL_TEMPLATE = 'https://example.com/e/{uid}'


@pytest.fixture
def processor(resolver):
    return PlainProcessor(resolver)


class TestParseInstant:
    """Test cases for parse_instant."""

    def test_zulu_string(self):
        assert parse_instant('2025-05-01T10:00:00Z') == \
            datetime(2025, 5, 1, 10, tzinfo=timezone.utc)

    def test_offset_string_converted_to_utc(self):
        assert parse_instant('2025-05-01T12:00:00+02:00') == \
            datetime(2025, 5, 1, 10, tzinfo=timezone.utc)

    def test_naive_is_utc(self):
        assert parse_instant(datetime(2025, 5, 1, 10)) == \
            datetime(2025, 5, 1, 10, tzinfo=timezone.utc)

    def test_date_is_midnight_utc(self):
        assert parse_instant(date(2025, 5, 1)) == datetime(2025, 5, 1, tzinfo=timezone.utc)

    def test_empty(self):
        assert parse_instant(None) is None
        assert parse_instant('') is None

    def test_malformed_raises(self):
        with pytest.raises(ValueError):
            parse_instant('next tuesday')


class TestStatusAndPopup:
    """Test cases for status mapping and popup detection."""

    def test_map_status(self):
        assert map_status('CONFIRMED') == EventStatus.SCHEDULED
        assert map_status('tentative') == EventStatus.TENTATIVE
        assert map_status('CANCELLED') == EventStatus.CANCELLED
        assert map_status(None) == EventStatus.SCHEDULED
        assert map_status('WHATEVER') == EventStatus.SCHEDULED

    def test_popup_by_duration(self):
        start = datetime(2025, 5, 1, 9, tzinfo=timezone.utc)
        assert is_popup_event(start, start + timedelta(days=3))
        assert not is_popup_event(start, start + timedelta(days=2))

    def test_popup_by_midnight_start_without_end(self):
        assert is_popup_event(datetime(2025, 5, 1, tzinfo=timezone.utc), None)
        assert not is_popup_event(datetime(2025, 5, 1, 9, tzinfo=timezone.utc), None)


class TestEventProcessor:
    """Test cases for EventProcessor.normalize."""

    def test_normalize_street_address_without_coordinates(self, processor, resolver):
        """Test textual place extraction from a street address."""
        raw = RawEvent(
            uid='evt-1',
            title='Hack Night',
            start_date='2025-05-01T18:00:00Z',
            location='Main St 5, Springfield, USA',
            status='CONFIRMED',
        )

        event = processor.normalize(raw)

        assert event.city == 'Springfield'
        assert event.country == 'USA'
        assert event.confidence == 0.98
        assert event.status == EventStatus.SCHEDULED
        assert event.venue_name == 'Main St 5'
        assert event.address == 'Main St 5, Springfield, USA'
        assert event.fingerprint == generate_fingerprint(
            'Hack Night', parse_instant('2025-05-01T18:00:00Z'), 'Springfield'
        )
        resolver.resolve.assert_not_called()

    def test_normalize_internal_room_uses_context_slug(self, processor):
        """Test that a room-only location falls back to the community slug."""
        raw = RawEvent(
            uid='evt-2',
            title='Standup',
            start_date='2025-05-01T09:00:00Z',
            location='Conference Room 2',
        )

        event = processor.normalize(raw, context_slug='ns')

        assert event.city == 'ns'
        assert event.country is None

    def test_normalize_with_coordinates_uses_resolver(self, processor, resolver):
        """Test that coordinates are reverse geocoded."""
        resolver.resolve.return_value = PlaceDescriptor('Lisbon', 'Portugal', 'Europe/Lisbon')
        raw = RawEvent(
            uid='evt-3',
            title='Meetup',
            start_date='2025-05-01T18:00:00Z',
            geo=GeoPoint(38.7223, -9.1393),
        )

        event = processor.normalize(raw)

        resolver.resolve.assert_called_once_with(38.7223, -9.1393)
        assert (event.city, event.country, event.timezone) == ('Lisbon', 'Portugal', 'Europe/Lisbon')
        assert (event.lat, event.lng) == (38.7223, -9.1393)

    def test_failed_lookup_falls_back_to_text(self, processor, resolver):
        """Test that an empty resolver answer degrades to textual parsing."""
        raw = RawEvent(
            uid='evt-4',
            title='Meetup',
            start_date='2025-05-01T18:00:00Z',
            location='Cafe Central, Vienna, Austria',
            geo=GeoPoint(48.21, 16.37),
        )

        event = processor.normalize(raw)

        assert event.city == 'Vienna'
        assert event.country == 'Austria'
        assert event.timezone is None

    def test_reuse_location_skips_resolver(self, processor, resolver):
        """Test that a reused place is applied verbatim without lookups."""
        raw = RawEvent(
            uid='evt-5',
            title='Meetup',
            start_date='2025-05-01T18:00:00Z',
            location='Cafe Central, Vienna, Austria',
            geo=GeoPoint(48.21, 16.37),
        )
        stored = PlaceDescriptor('Wien', 'Österreich', 'Europe/Vienna')

        event = processor.normalize(
            raw, options=NormalizationOptions(skip_geocoding=True, reuse_location=stored)
        )

        resolver.resolve.assert_not_called()
        assert event.place == stored

    def test_default_fields(self, processor):
        """Test timestamps, sequence and default source url."""
        raw = RawEvent(uid='evt-6', title='Talk', start_date='2025-05-01T18:00:00Z')

        event = processor.normalize(raw)

        assert event.source_url == 'https://example.com/e/evt-6'
        assert event.source_event_id == 'evt-6'
        assert event.sequence == 0
        assert event.first_seen == event.last_seen == event.last_checked
        assert event.first_seen.tzinfo is not None
        assert event.end_at is None
        assert event.organizers == []

    def test_url_field_used_as_source_url(self, processor):
        raw = RawEvent(
            uid='evt-7', title='Talk', start_date='2025-05-01T18:00:00Z',
            url='https://example.com/talk', sequence=4
        )

        event = processor.normalize(raw)

        assert event.source_url == 'https://example.com/talk'
        assert event.sequence == 4
