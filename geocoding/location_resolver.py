"""Reverse geocoding of event coordinates to a place descriptor.

Lookups go to OpenStreetMap Nominatim through geopy. The service blocks
bulk callers, so every lookup is rate limited, cached for the lifetime of
the process (negative results included), and cut off entirely after a
run of consecutive failures.
"""
import logging
import time
from typing import Dict, Optional

from geopy.exc import (
    GeocoderQuotaExceeded,
    GeocoderServiceError,
    GeocoderTimedOut,
    GeocoderUnavailable,
)
from geopy.geocoders import Nominatim
from timezonefinder import TimezoneFinder

from processor.models import EMPTY_PLACE, PlaceDescriptor
from resilience.retry import PermanentError, TransientError, categorize_error, retry

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = 'community-events-sync/1.0'

# Address keys in order of preference for the "city" of a place
CITY_KEYS = ('city', 'town', 'village', 'municipality', 'county', 'state')

# ISO 3166-1 alpha-2 code -> English country name
COUNTRY_CODE_TO_NAME: Dict[str, str] = {
    'AR': 'Argentina',
    'AT': 'Austria',
    'AU': 'Australia',
    'BE': 'Belgium',
    'BR': 'Brazil',
    'CA': 'Canada',
    'CH': 'Switzerland',
    'CL': 'Chile',
    'CN': 'China',
    'CO': 'Colombia',
    'CZ': 'Czechia',
    'DE': 'Germany',
    'DK': 'Denmark',
    'ES': 'Spain',
    'FI': 'Finland',
    'FR': 'France',
    'GB': 'United Kingdom',
    'GE': 'Georgia',
    'GR': 'Greece',
    'HK': 'Hong Kong',
    'HN': 'Honduras',
    'HR': 'Croatia',
    'HU': 'Hungary',
    'ID': 'Indonesia',
    'IE': 'Ireland',
    'IN': 'India',
    'IT': 'Italy',
    'JP': 'Japan',
    'KR': 'South Korea',
    'ME': 'Montenegro',
    'MX': 'Mexico',
    'MY': 'Malaysia',
    'NL': 'Netherlands',
    'NO': 'Norway',
    'NZ': 'New Zealand',
    'PL': 'Poland',
    'PT': 'Portugal',
    'RO': 'Romania',
    'RS': 'Serbia',
    'SE': 'Sweden',
    'SG': 'Singapore',
    'TH': 'Thailand',
    'TR': 'Turkey',
    'TW': 'Taiwan',
    'UA': 'Ukraine',
    'US': 'United States',
    'VN': 'Vietnam',
    'ZA': 'South Africa',
}


def country_name_from_code(country_code: Optional[str]) -> Optional[str]:
    """English display name for a country code, or the upper-cased code."""
    if not country_code:
        return None
    code = country_code.upper()
    return COUNTRY_CODE_TO_NAME.get(code, code)


def _cache_key(lat: float, lng: float) -> str:
    # 4 decimal places is roughly 11 m
    return f"{lat:.4f},{lng:.4f}"


class LocationResolver:
    """Rate-limited, cached reverse geocoder.

    One instance is built per process and shared by every normalizer, so
    the cache and the last-request watermark cover all lookups of a run.
    """

    def __init__(
        self,
        geocoder=None,
        user_agent: str = DEFAULT_USER_AGENT,
        min_interval: float = 1.0,
        base_backoff: float = 2.0,
        max_consecutive_failures: int = 3,
        timeout: int = 10,
        timezone_finder: Optional[TimezoneFinder] = None,
        retry_attempts: int = 2
    ):
        """
        Initialize the resolver.

        Args:
            geocoder: Object exposing geopy's reverse(); defaults to Nominatim
            user_agent: Client signature sent to Nominatim
            min_interval: Minimum seconds between two lookups
            base_backoff: Extra wait after the first failure, doubled per
                consecutive failure
            max_consecutive_failures: Failures after which lookups stop
            timeout: Per-request timeout in seconds
            timezone_finder: Offline coordinate -> timezone table
            retry_attempts: Attempts per lookup for transient errors
        """
        self.geocoder = geocoder or Nominatim(user_agent=user_agent, timeout=timeout)
        self.min_interval = min_interval
        self.base_backoff = base_backoff
        self.max_consecutive_failures = max_consecutive_failures
        self.retry_attempts = retry_attempts
        self._timezone_finder = timezone_finder
        self._cache: Dict[str, PlaceDescriptor] = {}
        self._last_request_time: Optional[float] = None
        self._consecutive_failures = 0
        self.stats = {'lookups': 0, 'cache_hits': 0, 'failures': 0, 'skipped': 0}

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    def resolve(self, lat: Optional[float], lng: Optional[float]) -> PlaceDescriptor:
        """
        Resolve coordinates to {city, country, timezone}.

        Never raises: any failure yields an all-None descriptor, which is
        cached so the same coordinates are not retried in this process.

        Args:
            lat: Latitude
            lng: Longitude

        Returns:
            PlaceDescriptor, possibly with every field None
        """
        if not lat or not lng:
            return EMPTY_PLACE

        cache_key = _cache_key(lat, lng)
        if cache_key in self._cache:
            self.stats['cache_hits'] += 1
            return self._cache[cache_key]

        if self._consecutive_failures >= self.max_consecutive_failures:
            logger.warning(
                f"Skipping geocoding for {cache_key}: "
                f"{self._consecutive_failures} consecutive failures"
            )
            self.stats['skipped'] += 1
            self._cache[cache_key] = EMPTY_PLACE
            return EMPTY_PLACE

        try:
            self._wait_for_rate_limit()
            place = retry(
                lambda: self._lookup(lat, lng),
                max_attempts=self.retry_attempts,
                initial_delay=self.base_backoff,
                max_delay=self.base_backoff * 8,
                on_retry=self._log_retry,
            )
        except Exception as e:
            self._consecutive_failures += 1
            self.stats['failures'] += 1
            logger.warning(
                f"Geocoding failed for {lat},{lng}: {e}",
                extra={
                    'consecutive_failures': self._consecutive_failures,
                    'error_category': categorize_error(e),
                }
            )
            self._cache[cache_key] = EMPTY_PLACE
            return EMPTY_PLACE

        self._consecutive_failures = 0
        self._cache[cache_key] = place
        return place

    def cache_stats(self) -> dict:
        """Cache size and keys, for diagnostics."""
        return {'size': len(self._cache), 'keys': list(self._cache.keys())}

    def clear_cache(self) -> None:
        self._cache.clear()

    def reset(self) -> None:
        """Forget cached places and the failure streak."""
        self._cache.clear()
        self._consecutive_failures = 0
        self._last_request_time = None

    def _wait_for_rate_limit(self) -> None:
        wait = self.min_interval
        if self._consecutive_failures > 0:
            backoff = self.base_backoff * (2 ** (self._consecutive_failures - 1))
            logger.warning(
                f"Geocoding backoff: waiting {backoff}s after "
                f"{self._consecutive_failures} consecutive failures"
            )
            wait = max(wait, backoff)

        if self._last_request_time is not None:
            elapsed = time.monotonic() - self._last_request_time
            if elapsed < wait:
                time.sleep(wait - elapsed)

        self._last_request_time = time.monotonic()

    def _lookup(self, lat: float, lng: float) -> PlaceDescriptor:
        self.stats['lookups'] += 1
        try:
            location = self.geocoder.reverse(
                (lat, lng), language='en', exactly_one=True
            )
        except (GeocoderTimedOut, GeocoderUnavailable, GeocoderQuotaExceeded) as e:
            raise TransientError(f"Geocoder unavailable: {e}", cause=e)
        except GeocoderServiceError as e:
            raise PermanentError(f"Geocoder rejected request: {e}", cause=e)

        if location is None:
            return EMPTY_PLACE

        raw = getattr(location, 'raw', None)
        if not isinstance(raw, dict):
            raise PermanentError(f"Malformed geocoder response: {raw!r}")

        address = raw.get('address') or {}
        city = next((address[key] for key in CITY_KEYS if address.get(key)), None)
        country = address.get('country') or country_name_from_code(
            address.get('country_code')
        )

        return PlaceDescriptor(
            city=city,
            country=country,
            timezone=self._timezone_at(lat, lng),
        )

    def _timezone_at(self, lat: float, lng: float) -> Optional[str]:
        if self._timezone_finder is None:
            self._timezone_finder = TimezoneFinder()
        try:
            return self._timezone_finder.timezone_at(lng=lng, lat=lat)
        except ValueError as e:
            logger.warning(f"Timezone lookup failed for {lat},{lng}: {e}")
            return None

    def _log_retry(self, error: BaseException, attempt: int, delay: float) -> None:
        logger.info(
            f"Retrying geocoding lookup (attempt {attempt}/{self.retry_attempts}) "
            f"in {delay}s: {error}"
        )
