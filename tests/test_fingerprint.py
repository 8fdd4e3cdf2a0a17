"""Unit tests for event fingerprints."""
from datetime import datetime, timedelta, timezone

from processor.fingerprint import (
    format_utc_timestamp,
    generate_fingerprint,
    location_token,
    normalize_title,
)

START = datetime(2025, 3, 14, 18, 30, tzinfo=timezone.utc)


class TestNormalizeTitle:
    """Test cases for title normalization."""

    def test_collapses_punctuation_and_case(self):
        """Test that case and punctuation runs do not matter."""
        assert normalize_title("Builders' Breakfast!!") == 'builders-breakfast'
        assert normalize_title('  BUILDERS   breakfast ') == 'builders-breakfast'

    def test_empty_title(self):
        """Test that a title without alphanumerics normalizes to empty."""
        assert normalize_title('!!!') == ''


class TestFormatUtcTimestamp:
    """Test cases for the timestamp part of a fingerprint."""

    def test_offset_converted_to_utc(self):
        """Test that an offset instant is rendered in UTC."""
        local = datetime(2025, 3, 14, 20, 30, 45, 123456,
                         tzinfo=timezone(timedelta(hours=2)))
        assert format_utc_timestamp(local) == '2025-03-14T18:30:45Z'

    def test_naive_treated_as_utc(self):
        """Test that naive datetimes are interpreted as UTC."""
        assert format_utc_timestamp(datetime(2025, 3, 14, 18, 30)) == '2025-03-14T18:30:00Z'


class TestLocationToken:
    """Test cases for the location part of a fingerprint."""

    def test_place_wins_over_coordinates(self):
        """Test that a place name is used, lowercased, when present."""
        assert location_token('Lisbon', 38.7223, -9.1393) == 'lisbon'

    def test_coordinates_rounded_to_two_decimals(self):
        """Test coordinate fallback on a two-decimal grid."""
        assert location_token(None, 38.72231, -9.13931) == '38.72,-9.14'

    def test_no_location(self):
        """Test that missing place and coordinates give an empty token."""
        assert location_token() == ''
        assert location_token(None, 0.0, 0.0) == ''


class TestGenerateFingerprint:
    """Test cases for generate_fingerprint."""

    def test_deterministic_and_32_hex_chars(self):
        """Test that identical inputs give an identical 32 char hex digest."""
        first = generate_fingerprint('Demo Day', START, 'Lisbon')
        second = generate_fingerprint('Demo Day', START, 'Lisbon')

        assert first == second
        assert len(first) == 32
        int(first, 16)

    def test_insensitive_to_title_formatting(self):
        """Test that cosmetic title changes keep the fingerprint."""
        assert generate_fingerprint('Demo Day!', START, 'Lisbon') == \
            generate_fingerprint('demo   day', START, 'LISBON')

    def test_sensitive_to_meaningful_changes(self):
        """Test that title, start time and place each change the fingerprint."""
        base = generate_fingerprint('Demo Day', START, 'Lisbon')

        assert generate_fingerprint('Demo Night', START, 'Lisbon') != base
        assert generate_fingerprint('Demo Day', START + timedelta(hours=1), 'Lisbon') != base
        assert generate_fingerprint('Demo Day', START, 'Porto') != base
        assert generate_fingerprint('Demo Day', START) != base

    def test_same_instant_in_other_offset(self):
        """Test that the same instant expressed in another offset matches."""
        shifted = START.astimezone(timezone(timedelta(hours=-5)))
        assert generate_fingerprint('Demo Day', shifted, 'Lisbon') == \
            generate_fingerprint('Demo Day', START, 'Lisbon')

    def test_subsecond_precision_ignored(self):
        """Test that fractional seconds do not change the fingerprint."""
        assert generate_fingerprint('Demo Day', START.replace(microsecond=999), 'Lisbon') == \
            generate_fingerprint('Demo Day', START, 'Lisbon')
