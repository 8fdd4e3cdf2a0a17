"""Heuristic place extraction from free-text event locations."""
import re
from typing import List, Optional

# US 12345(-6789), Singapore 6 digits, Canada A1A 1A1, UK SW1A 1AA
POSTAL_CODE_PATTERN = re.compile(
    r'\b\d{5,6}(-\d{4})?\b'
    r'|\b[A-Z]\d[A-Z]\s?\d[A-Z]\d\b'
    r'|\b[A-Z]{1,2}\d{1,2}\s?\d[A-Z]{2}\b',
    re.IGNORECASE
)
NUMERIC_POSTAL_CODE = re.compile(r'\b\d{5,6}(-\d{4})?\b')

STREET_INDICATORS = re.compile(
    r'\b(street|st|avenue|ave|road|rd|drive|dr|boulevard|blvd|lane|ln|jalan|jln)\b',
    re.IGNORECASE
)
INTERNAL_ROOM_KEYWORDS = re.compile(
    r'\b(room|floor|corridor|suite|vip|ping pong|karaoke|conference|lift|'
    r'elevator|alleyway|beach shack|volleyball|library|opposite|branching|'
    r'near the)\b',
    re.IGNORECASE
)
GEO_INDICATORS = re.compile(
    r'\b(city|state|province|country|region|district)\b', re.IGNORECASE
)
BUILDING_INDICATORS = re.compile(
    r'\b(hotel|resort|mall|center|centre|plaza|tower|building)\b', re.IGNORECASE
)


def _split_parts(location: str) -> List[str]:
    return [part.strip() for part in location.split(',')]


def _is_url(location: str) -> bool:
    return location.startswith('http')


def is_internal_room_reference(location: Optional[str]) -> bool:
    """
    Detect whether a location string names a room inside a venue rather
    than a street address.

    Uses structural signals (postal codes, street tokens, part count)
    instead of a list of known room names.
    """
    if not location:
        return False

    parts = _split_parts(location)

    if POSTAL_CODE_PATTERN.search(location):
        return False

    if STREET_INDICATORS.search(location):
        return False

    if INTERNAL_ROOM_KEYWORDS.search(location):
        # Long addresses that mention a region are still real addresses
        if len(parts) >= 4 and GEO_INDICATORS.search(location):
            return False
        return True

    if BUILDING_INDICATORS.search(location) and len(parts) < 3:
        return True

    if len(parts) == 1 and len(location) < 30:
        return True

    if len(parts) <= 2 and len(location) < 80:
        return True

    return False


def extract_city(location: Optional[str]) -> Optional[str]:
    """
    Guess the city from an address: the second-to-last comma part.

    "Venue Name, Amsterdam, Netherlands" -> "Amsterdam"
    """
    if not location or _is_url(location):
        return None

    parts = _split_parts(location)
    if len(parts) >= 2:
        return parts[-2] or None

    return None


def extract_country(location: Optional[str]) -> Optional[str]:
    """
    Guess the country from an address: the last comma part, minus any
    embedded postal code. Internal room references have no country.

    "1 Marina Blvd, Singapore 059191" -> "Singapore"
    """
    if not location or _is_url(location):
        return None

    if is_internal_room_reference(location):
        return None

    parts = _split_parts(location)
    if len(parts) <= 1:
        return None

    last_part = parts[-1]
    if NUMERIC_POSTAL_CODE.search(last_part):
        country_name = NUMERIC_POSTAL_CODE.sub('', last_part).strip()
        if country_name:
            return country_name

    return last_part or None


def extract_venue_name(location: Optional[str]) -> Optional[str]:
    """First comma part of a location, or None for URLs and blanks."""
    if not location or _is_url(location):
        return None

    first_part = location.split(',')[0].strip()
    return first_part or None
