"""Stable content fingerprints for deduplication and change detection."""
import hashlib
import re
from datetime import datetime, timezone
from typing import Optional

FINGERPRINT_LENGTH = 32

_NON_ALNUM = re.compile(r'[^a-z0-9]+')


def normalize_title(title: str) -> str:
    """
    Lowercase a title and collapse non-alphanumeric runs to single hyphens.

    Args:
        title: Raw event title

    Returns:
        Slug-like title with no leading or trailing hyphens
    """
    return _NON_ALNUM.sub('-', title.lower()).strip('-')


def format_utc_timestamp(start_at: datetime) -> str:
    """Format an instant as UTC ISO-8601 truncated to whole seconds."""
    if start_at.tzinfo is None:
        start_at = start_at.replace(tzinfo=timezone.utc)
    return start_at.astimezone(timezone.utc).strftime('%Y-%m-%dT%H:%M:%SZ')


def location_token(
    place: Optional[str] = None,
    lat: Optional[float] = None,
    lng: Optional[float] = None
) -> str:
    """
    Build the location part of a fingerprint.

    A place name wins over coordinates; coordinates are rounded to a
    two-decimal (~1 km) grid.
    """
    if place:
        return place.lower()
    if lat and lng:
        return f"{lat:.2f},{lng:.2f}"
    return ''


def generate_fingerprint(
    title: str,
    start_at: datetime,
    place: Optional[str] = None,
    lat: Optional[float] = None,
    lng: Optional[float] = None
) -> str:
    """
    Generate a stable fingerprint from title + start time + location.

    Args:
        title: Event title
        start_at: Event start instant
        place: Resolved place name (usually the city)
        lat: Latitude, used only when no place name is available
        lng: Longitude, used only when no place name is available

    Returns:
        32 character hex string (truncated SHA256)
    """
    composite = '::'.join([
        normalize_title(title),
        format_utc_timestamp(start_at),
        location_token(place, lat, lng),
    ])

    hash_obj = hashlib.sha256(composite.encode('utf-8'))
    return hash_obj.hexdigest()[:FINGERPRINT_LENGTH]
