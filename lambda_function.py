"""AWS Lambda handler for Community Events Sync."""
import json
import logging
import time
from typing import Dict, Any

from geocoding.location_resolver import LocationResolver
from scraper.artifacts import ArtifactStore
from scraper.ical_feeds import IcalFeedScraper
from scraper.ical_url_discovery import IcalUrlScraper
from settings import Settings
from storage.dynamodb_manager import DynamoDBEventStore
from tasks.models import TaskContext
from tasks.runner import TaskRunner, discover_tasks

# Attributes every LogRecord carries; anything else came in through `extra`
RESERVED_ATTRS = frozenset(vars(logging.LogRecord('', 0, '', 0, '', None, None))) | {
    'message', 'asctime', 'taskName'
}


# Configure JSON logging
class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON, including fields passed via extra."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        for key, value in record.__dict__.items():
            if key not in RESERVED_ATTRS and key not in log_data:
                log_data[key] = value

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


def build_runner(settings: Settings) -> TaskRunner:
    """Wire the store, scrapers and resolver into a task runner."""
    location_resolver = LocationResolver(
        user_agent=settings.geocoder_user_agent,
        min_interval=settings.geocoder_min_interval,
        max_consecutive_failures=settings.geocoder_max_failures,
    )
    task_context = TaskContext(
        settings=settings,
        location_resolver=location_resolver,
        artifacts=ArtifactStore(settings.data_dir),
        feed_scraper=IcalFeedScraper(
            timeout=settings.timeout_seconds,
            concurrency=settings.fetch_concurrency,
        ),
        url_scraper=IcalUrlScraper(timeout=settings.timeout_seconds),
    )
    store = DynamoDBEventStore(table_name=settings.table_name)
    return TaskRunner(store, lambda: discover_tasks(task_context))


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler function for Community Events Sync.

    The payload selects the work: {"task_id": "luma:events"} runs one task,
    otherwise {"schedule": "polling"} (the default) runs every task of
    that schedule.

    Args:
        event: EventBridge event payload
        context: Lambda context object

    Returns:
        Response dict with statusCode and per-task outcomes
    """
    event = event or {}
    settings = Settings.from_env()

    setup_logging(settings.log_level)
    logger = logging.getLogger(__name__)

    start_time = time.time()
    task_id = event.get('task_id')
    schedule = event.get('schedule', 'polling')
    logger.info(
        "Lambda execution started",
        extra={
            'table_name': settings.table_name,
            'task_id': task_id,
            'schedule': None if task_id else schedule,
        }
    )

    try:
        runner = build_runner(settings)

        if task_id:
            try:
                task_result = runner.run_task(task_id)
            except KeyError:
                logger.error(f"Unknown task: {task_id}")
                return {
                    'statusCode': 404,
                    'body': json.dumps({
                        'message': f"Task not found: {task_id}",
                        'available_tasks': [t.id for t in runner.list_tasks()],
                    })
                }

            duration = time.time() - start_time
            return {
                'statusCode': 200,
                'body': json.dumps({
                    'message': 'Task completed' if task_result.success else 'Task failed',
                    'task': task_result.to_dict(),
                    'duration_seconds': round(duration, 2)
                }, default=str)
            }

        schedule_result = runner.run_schedule(schedule)
        duration = time.time() - start_time

        logger.info(
            "Lambda execution completed",
            extra={
                'duration_seconds': round(duration, 2),
                'tasks_run': schedule_result.tasks_run,
                'tasks_failed': schedule_result.tasks_failed,
                'events_processed': schedule_result.events_processed
            }
        )

        # Task failures are reported in the body, not as a failed invocation
        return {
            'statusCode': 200,
            'body': json.dumps({
                'message': 'Schedule completed',
                'statistics': schedule_result.to_dict()
            }, default=str)
        }

    except Exception as e:
        duration = time.time() - start_time

        logger.error(
            f"Lambda execution failed: {str(e)}",
            extra={
                'duration_seconds': round(duration, 2),
                'error_type': type(e).__name__
            },
            exc_info=True
        )

        return {
            'statusCode': 500,
            'body': json.dumps({
                'message': 'Sync failed',
                'error': str(e),
                'error_type': type(e).__name__,
                'duration_seconds': round(duration, 2)
            })
        }
