"""Data models for event normalization and sync."""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Union


class EventSource(str, Enum):
    """Supported event providers."""
    LUMA = 'luma'
    SOLADAY = 'soladay'


class EventStatus(str, Enum):
    """Canonical event lifecycle status."""
    SCHEDULED = 'scheduled'
    UPDATED = 'updated'
    CANCELLED = 'cancelled'
    TENTATIVE = 'tentative'


@dataclass(frozen=True)
class GeoPoint:
    """Latitude/longitude pair as published by a feed."""
    lat: float
    lon: float


@dataclass
class Organizer:
    """Event organizer."""
    name: str
    email: Optional[str] = None
    url: Optional[str] = None


@dataclass(frozen=True)
class PlaceDescriptor:
    """Resolved place; every field may be None independently."""
    city: Optional[str] = None
    country: Optional[str] = None
    timezone: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return self.city is None and self.country is None and self.timezone is None


EMPTY_PLACE = PlaceDescriptor()


@dataclass
class RawEvent:
    """Source-shaped event from a provider feed. Never persisted."""
    uid: str
    title: str
    start_date: Union[str, datetime]
    end_date: Optional[Union[str, datetime]] = None
    description: Optional[str] = None
    location: Optional[str] = None
    geo: Optional[GeoPoint] = None
    organizer: Optional[str] = None
    status: Optional[str] = None
    sequence: Optional[int] = None
    url: Optional[str] = None
    source_url: Optional[str] = None


@dataclass
class Event:
    """Canonical, source-agnostic event record."""
    uid: str
    fingerprint: str
    source: EventSource
    source_url: str
    source_event_id: str
    title: str
    start_at: datetime
    first_seen: datetime
    last_seen: datetime
    last_checked: datetime
    description: Optional[str] = None
    end_at: Optional[datetime] = None
    timezone: Optional[str] = None
    venue_name: Optional[str] = None
    address: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    city: Optional[str] = None
    country: Optional[str] = None
    organizers: List[Organizer] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    image_url: Optional[str] = None
    website: Optional[str] = None
    status: EventStatus = EventStatus.SCHEDULED
    sequence: int = 0
    confidence: float = 0.9

    @property
    def place(self) -> PlaceDescriptor:
        return PlaceDescriptor(
            city=self.city, country=self.country, timezone=self.timezone
        )


@dataclass
class ExistingEventRef:
    """Narrow view of a stored event used for change detection."""
    uid: str
    fingerprint: Optional[str]
    place: PlaceDescriptor


@dataclass
class SourceBatch:
    """Result of fetching one logical sub-source (a community feed)."""
    key: str
    success: bool
    events: List[RawEvent] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def event_count(self) -> int:
        return len(self.events)


@dataclass
class NormalizationOptions:
    """Controls location resolution during normalization."""
    skip_geocoding: bool = False
    reuse_location: Optional[PlaceDescriptor] = None


@dataclass
class BatchStats:
    """Counts reported by the incremental sync optimizer per batch."""
    reused: int = 0
    resolved: int = 0
    skipped: int = 0
