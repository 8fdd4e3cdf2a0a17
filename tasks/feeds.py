"""Shared streaming extraction for iCal-backed providers."""
import logging
from typing import Dict, Iterator, List

from processor.event_processor import EventProcessor
from processor.models import Event
from processor.sync_optimizer import IncrementalSyncOptimizer
from scraper.ical_feeds import IcalFeedScraper
from storage.base import EventStore
from tasks.models import enforce_success_rate

logger = logging.getLogger(__name__)


def stream_feed_events(
    feed_scraper: IcalFeedScraper,
    processor: EventProcessor,
    url_map: Dict[str, str],
    store: EventStore,
    min_success_rate: float,
    label: str
) -> Iterator[List[Event]]:
    """
    Fetch every feed in url_map and yield one normalized batch per feed.

    Batches are yielded as soon as each feed is normalized, so the caller
    can persist them before later feeds are fetched. The success-rate gate
    runs after the last feed; it raises only once everything that did
    succeed has already been yielded.

    Args:
        feed_scraper: Fetches and parses the feeds
        processor: Source-specific normalizer
        url_map: Community slug -> iCal URL
        store: Store queried for existing fingerprints and places
        min_success_rate: Minimum ratio of feeds that must succeed
        label: Provider name for logs and gate errors

    Yields:
        Lists of normalized events, one per successful non-empty feed
    """
    if not url_map:
        logger.warning(f"No {label} feed URLs configured, nothing to fetch")
        return

    optimizer = IncrementalSyncOptimizer(processor)
    successes = 0
    total = 0

    for batch in feed_scraper.stream_feeds(url_map):
        total += 1
        if not batch.success:
            logger.warning(
                f"Skipping {label} feed {batch.key}: {batch.error}",
                extra={'feed': batch.key}
            )
            continue

        successes += 1
        if not batch.events:
            continue

        events = optimizer.normalize_batch(
            batch.events, batch.key, store.get_events_by_uids
        )
        logger.info(
            f"Normalized {len(events)}/{batch.event_count} events from {batch.key}",
            extra={'feed': batch.key, 'events': len(events)}
        )
        if events:
            yield events

    logger.info(f"{successes}/{total} {label} feeds fetched successfully")
    enforce_success_rate(successes, total, min_success_rate, f"{label} feeds")
