"""Sola.day tasks: polling sync of popup cities and their event feeds."""
import logging
from typing import List

from processor.sola_processor import SolaEventProcessor
from storage.base import EventStore
from tasks.feeds import stream_feed_events
from tasks.models import StreamingTask, Task, TaskContext

logger = logging.getLogger(__name__)

PROVIDER = 'sola'


def get_tasks(context: TaskContext) -> List[Task]:
    """Task definitions for the Sola.day provider."""
    settings = context.settings

    def extract_events(store: EventStore):
        artifacts = context.artifacts
        processor = SolaEventProcessor(
            context.location_resolver,
            city_titles=artifacts.city_titles(PROVIDER),
        )

        popup_cities = processor.normalize_popup_cities(artifacts.popup_cities(PROVIDER))
        if popup_cities:
            logger.info(f"Syncing {len(popup_cities)} popup cities")
            yield popup_cities

        yield from stream_feed_events(
            context.feed_scraper,
            processor,
            artifacts.ical_urls(PROVIDER),
            store,
            settings.min_success_rate,
            'Sola',
        )

    return [
        StreamingTask(
            id='sola:events',
            schedule='polling',
            description='Sync Sola.day popup cities and their iCal event feeds',
            enabled=lambda: settings.sola_events_enabled,
            extract_stream=extract_events,
        ),
    ]
