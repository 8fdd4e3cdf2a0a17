"""Luma tasks: weekly iCal URL discovery and polling event sync."""
import logging
from typing import Dict, List

from processor.luma_processor import LumaEventProcessor
from scraper.artifacts import ICAL_URLS_FILE
from storage.base import EventStore
from tasks.feeds import stream_feed_events
from tasks.models import (
    SideEffectTask,
    StreamingTask,
    Task,
    TaskContext,
    enforce_success_rate,
)

logger = logging.getLogger(__name__)

PROVIDER = 'luma'


def compare_ical_urls(previous: Dict[str, str], current: Dict[str, str]) -> Dict[str, List[str]]:
    """
    Diff two slug to iCal URL maps.

    Returns:
        Slugs whose URL 'changed', slugs 'added' and slugs 'removed'
    """
    return {
        'changed': [slug for slug in current if slug in previous and previous[slug] != current[slug]],
        'added': [slug for slug in current if slug not in previous],
        'removed': [slug for slug in previous if slug not in current],
    }


def get_tasks(context: TaskContext) -> List[Task]:
    """Task definitions for the Luma provider."""
    settings = context.settings

    def discover_ical_urls() -> dict:
        handles = settings.luma_handles
        if not handles:
            logger.warning("No Luma handles configured; keeping existing iCal URLs")
            return {'skipped': True, 'reason': 'no handles configured'}

        logger.info(f"Discovering iCal URLs for {len(handles)} Luma handles")

        result = context.url_scraper.discover(handles)
        for slug, reason in result.failures.items():
            logger.warning(f"No iCal URL for {slug}: {reason}")

        # The previous artifact survives a failed gate
        enforce_success_rate(
            len(result.urls), result.total, settings.min_success_rate, 'Luma handles'
        )

        changes = compare_ical_urls(context.artifacts.ical_urls(PROVIDER), result.urls)
        logger.info(
            f"iCal URL changes: {len(changes['changed'])} changed, "
            f"{len(changes['added'])} added, {len(changes['removed'])} removed",
            extra={key: sorted(slugs) for key, slugs in changes.items()}
        )
        context.artifacts.save(PROVIDER, ICAL_URLS_FILE, result.urls)

        return {
            'discovered': len(result.urls),
            'failed': len(result.failures),
            'changed': len(changes['changed']),
            'added': len(changes['added']),
            'removed': len(changes['removed']),
        }

    def extract_events(store: EventStore):
        processor = LumaEventProcessor(
            context.location_resolver,
            handle_locations=context.artifacts.handle_locations(PROVIDER),
        )
        return stream_feed_events(
            context.feed_scraper,
            processor,
            context.artifacts.ical_urls(PROVIDER),
            store,
            settings.min_success_rate,
            'Luma',
        )

    return [
        SideEffectTask(
            id='luma:ical-urls',
            schedule='weekly',
            description='Discover iCal feed URLs for configured Luma handles',
            run=discover_ical_urls,
        ),
        StreamingTask(
            id='luma:events',
            schedule='polling',
            description='Sync events from Luma community iCal feeds',
            enabled=lambda: settings.luma_events_enabled,
            extract_stream=extract_events,
        ),
    ]
