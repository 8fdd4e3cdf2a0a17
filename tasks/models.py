"""Task definitions and results for the sync orchestrator."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterator, List, Optional, Union

from geocoding.location_resolver import LocationResolver
from processor.models import Event
from scraper.artifacts import ArtifactStore
from scraper.ical_feeds import IcalFeedScraper
from scraper.ical_url_discovery import IcalUrlScraper
from settings import Settings
from storage.base import EventStore

Enabled = Union[bool, Callable[[], bool]]


class TaskConfigurationError(Exception):
    """A task exposes neither a run nor a streaming contract."""


class SuccessRateGateError(Exception):
    """Too few sub-sources succeeded; the upstream shape probably changed."""


def enforce_success_rate(
    successes: int,
    total: int,
    threshold: float,
    label: str
) -> None:
    """
    Fail a task whose sub-source success ratio is zero or below threshold.

    Args:
        successes: Sub-sources that yielded data
        total: Sub-sources attempted
        threshold: Minimum acceptable ratio (0-1)
        label: What was counted, for the error message

    Raises:
        SuccessRateGateError: If the gate trips
    """
    if total == 0:
        return

    if successes == 0:
        raise SuccessRateGateError(
            f"Zero {label} succeeded! All {total} failed."
        )

    rate = successes / total
    if rate < threshold:
        raise SuccessRateGateError(
            f"Only {successes}/{total} {label} succeeded ({round(rate * 100)}%). "
            f"This is below the {round(threshold * 100)}% threshold - "
            f"the upstream source may have changed."
        )


@dataclass
class TaskContext:
    """Shared collaborators handed to task factories."""
    settings: Settings
    location_resolver: LocationResolver
    artifacts: ArtifactStore
    feed_scraper: IcalFeedScraper
    url_scraper: IcalUrlScraper


@dataclass
class Task:
    """A named, schedulable unit of ingestion work."""
    id: str
    schedule: str
    description: str = ''
    enabled: Enabled = True

    def is_enabled(self) -> bool:
        if callable(self.enabled):
            return bool(self.enabled())
        return bool(self.enabled)


@dataclass
class SideEffectTask(Task):
    """Task performing one-shot side effects (discovery, artifact refresh)."""
    run: Callable[[], Any] = None


@dataclass
class StreamingTask(Task):
    """Task lazily producing batches of normalized events.

    Each call to extract_stream starts over from discovery; the stream is
    finite and not restartable.
    """
    extract_stream: Callable[[EventStore], Iterator[List[Event]]] = None


class TaskStatus(str, Enum):
    SUCCEEDED = 'succeeded'
    SUCCEEDED_EMPTY = 'succeeded_empty'
    SKIPPED_DISABLED = 'skipped_disabled'
    FAILED = 'failed'


@dataclass
class TaskResult:
    """Outcome of one task in a run."""
    task_id: str
    status: TaskStatus
    events_processed: int = 0
    duration_seconds: float = 0.0
    result: Any = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status in (TaskStatus.SUCCEEDED, TaskStatus.SUCCEEDED_EMPTY)

    def to_dict(self) -> dict:
        data = {
            'task_id': self.task_id,
            'status': self.status.value,
            'events_processed': self.events_processed,
            'duration_seconds': round(self.duration_seconds, 2),
        }
        if self.result is not None:
            data['result'] = self.result
        if self.error:
            data['error'] = self.error
        return data


@dataclass
class ScheduleResult:
    """Aggregate outcome of running every task of a schedule."""
    schedule: str
    tasks: List[TaskResult] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def tasks_run(self) -> int:
        return sum(1 for t in self.tasks if t.status != TaskStatus.SKIPPED_DISABLED)

    @property
    def tasks_failed(self) -> int:
        return sum(1 for t in self.tasks if t.status == TaskStatus.FAILED)

    @property
    def tasks_skipped(self) -> int:
        return sum(1 for t in self.tasks if t.status == TaskStatus.SKIPPED_DISABLED)

    @property
    def events_processed(self) -> int:
        return sum(t.events_processed for t in self.tasks)

    def to_dict(self) -> dict:
        return {
            'schedule': self.schedule,
            'tasks_run': self.tasks_run,
            'tasks_failed': self.tasks_failed,
            'tasks_skipped': self.tasks_skipped,
            'events_processed': self.events_processed,
            'duration_seconds': round(self.duration_seconds, 2),
            'tasks': [t.to_dict() for t in self.tasks],
        }


@dataclass
class TaskMetadata:
    id: str
    schedule: str
    description: str
    kind: str
