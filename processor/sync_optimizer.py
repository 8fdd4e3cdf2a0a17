"""Incremental normalization that skips geocoding for unchanged events."""
import logging
from typing import Callable, Dict, List, Optional

from processor.event_processor import EventProcessor, parse_instant
from processor.fingerprint import generate_fingerprint
from processor.models import (
    BatchStats,
    Event,
    ExistingEventRef,
    NormalizationOptions,
    RawEvent,
)

logger = logging.getLogger(__name__)

ExistingLookup = Callable[[List[str]], List[ExistingEventRef]]


class IncrementalSyncOptimizer:
    """Normalizes batches, reusing stored places for unchanged events.

    An incoming event is fingerprinted with a place signal that needs no
    external lookup. If that matches the stored fingerprint for its uid,
    the stored place is reused and the location resolver is never called.
    """

    def __init__(self, processor: EventProcessor):
        """
        Args:
            processor: Source-specific normalizer
        """
        self.processor = processor
        self.last_stats = BatchStats()

    def normalize_batch(
        self,
        raw_events: List[RawEvent],
        context_slug: Optional[str] = None,
        existing_lookup: Optional[ExistingLookup] = None
    ) -> List[Event]:
        """
        Normalize a batch of raw events from one sub-source.

        Args:
            raw_events: Raw events, processed strictly in order
            context_slug: Community/city slug of the sub-source
            existing_lookup: Batched uid -> stored fingerprint/place query

        Returns:
            Normalized events; malformed raw events are logged and skipped
        """
        stats = BatchStats()
        existing = self._fetch_existing(raw_events, existing_lookup)

        normalized = []
        for raw_event in raw_events:
            try:
                stored = existing.get(raw_event.uid)
                if stored and stored.fingerprint == self.provisional_fingerprint(
                    raw_event, context_slug, stored
                ):
                    options = NormalizationOptions(
                        skip_geocoding=True, reuse_location=stored.place
                    )
                    event = self.processor.normalize(raw_event, context_slug, options)
                    stats.reused += 1
                else:
                    event = self.processor.normalize(raw_event, context_slug)
                    stats.resolved += 1
            except Exception as e:
                logger.warning(
                    f"Failed to normalize event '{getattr(raw_event, 'uid', '?')}': {e}"
                )
                stats.skipped += 1
                continue

            normalized.append(event)

        self.last_stats = stats
        if existing_lookup is not None and raw_events:
            logger.info(
                f"[geocoding] {stats.resolved} resolved, {stats.reused} reused, "
                f"{stats.skipped} skipped",
                extra={
                    'context_slug': context_slug,
                    'reused': stats.reused,
                    'resolved': stats.resolved,
                    'skipped': stats.skipped,
                }
            )

        return normalized

    def provisional_fingerprint(
        self,
        raw_event: RawEvent,
        context_slug: Optional[str],
        stored: Optional[ExistingEventRef] = None
    ) -> str:
        """
        Fingerprint an event without any external location lookup.

        Events with coordinates use the stored city (else the context
        slug) as their place; events without coordinates use the textual
        place, which is exactly what full normalization would produce.
        """
        start_at = parse_instant(raw_event.start_date)
        geo = raw_event.geo
        lat, lng = (geo.lat, geo.lon) if geo else (None, None)

        if lat and lng:
            city = (stored.place.city if stored else None) or context_slug
        else:
            city = self.processor.textual_place(raw_event, context_slug).city

        return generate_fingerprint(raw_event.title, start_at, city, lat, lng)

    def _fetch_existing(
        self,
        raw_events: List[RawEvent],
        existing_lookup: Optional[ExistingLookup]
    ) -> Dict[str, ExistingEventRef]:
        if existing_lookup is None or not raw_events:
            return {}

        try:
            uids = [event.uid for event in raw_events]
            return {ref.uid: ref for ref in existing_lookup(uids)}
        except Exception as e:
            logger.warning(
                f"Could not fetch existing events, resolving all locations: {e}"
            )
            return {}
