"""Store interface consumed by the sync pipeline."""
from abc import ABC, abstractmethod
from typing import List, Optional

from processor.models import Event, ExistingEventRef


class EventStore(ABC):
    """Persistent event store keyed by uid.

    Implementations must keep the first stored first_seen of a uid when
    the event is written again.
    """

    @abstractmethod
    def upsert_event(self, event: Event) -> None:
        """Insert or update a single event."""

    @abstractmethod
    def upsert_events(self, events: List[Event]) -> int:
        """Insert or update events, returning how many were written."""

    @abstractmethod
    def get_event_by_uid(self, uid: str) -> Optional[Event]:
        """Full event for a uid, or None."""

    @abstractmethod
    def get_events_by_uids(self, uids: List[str]) -> List[ExistingEventRef]:
        """Fingerprint and place of the stored events among the given uids."""
