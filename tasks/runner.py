"""Task orchestrator: discovers tasks and runs them by schedule."""
import importlib
import logging
import time
from typing import Callable, List

from storage.base import EventStore
from tasks.models import (
    ScheduleResult,
    SideEffectTask,
    StreamingTask,
    Task,
    TaskConfigurationError,
    TaskContext,
    TaskMetadata,
    TaskResult,
    TaskStatus,
)

logger = logging.getLogger(__name__)

# Modules exposing get_tasks(context) -> List[Task]
TASK_MODULES = ('tasks.luma', 'tasks.sola')


def discover_tasks(context: TaskContext, modules=TASK_MODULES) -> List[Task]:
    """
    Collect task definitions from every provider module.

    A module that fails to import is logged and skipped; errors raised
    while building the task list propagate.

    Args:
        context: Shared collaborators passed to each module
        modules: Dotted module names to load

    Returns:
        Tasks in module order
    """
    tasks = []
    for module_name in modules:
        try:
            module = importlib.import_module(module_name)
        except ImportError as e:
            logger.error(f"Failed to load tasks from {module_name}: {e}")
            continue
        tasks.extend(module.get_tasks(context))
    return tasks


class TaskRunner:
    """Runs discovered tasks sequentially and aggregates their results."""

    def __init__(self, store: EventStore, task_loader: Callable[[], List[Task]]):
        """
        Args:
            store: Event store that streamed batches are persisted to
            task_loader: Zero-argument callable returning all tasks
        """
        self.store = store
        self.task_loader = task_loader

    def run_schedule(self, schedule: str) -> ScheduleResult:
        """
        Run every enabled task registered for a schedule.

        Task failures are recorded in the result; only discovery errors
        propagate.

        Args:
            schedule: Schedule name ('polling', 'daily', 'weekly')

        Returns:
            ScheduleResult with one TaskResult per matching task
        """
        logger.info(f"Running schedule: {schedule}")
        start_time = time.time()

        all_tasks = self.task_loader()
        result = ScheduleResult(schedule=schedule)

        matching = [task for task in all_tasks if task.schedule == schedule]
        runnable = []
        for task in matching:
            try:
                enabled = task.is_enabled()
            except Exception as e:
                result.tasks.append(self._enablement_failed(task, e))
                continue

            if enabled:
                runnable.append(task)
            else:
                logger.info(f"Skipping disabled task: {task.id}")
                result.tasks.append(
                    TaskResult(task_id=task.id, status=TaskStatus.SKIPPED_DISABLED)
                )

        if not runnable:
            logger.warning(f"No tasks to run for schedule: {schedule}")
        else:
            logger.info(
                f"Found {len(runnable)} task(s) to run: "
                f"{', '.join(task.id for task in runnable)}"
            )

        for task in runnable:
            result.tasks.append(self.execute_task(task))

        result.duration_seconds = time.time() - start_time
        logger.info(
            f"Schedule {schedule} complete",
            extra={
                'schedule': schedule,
                'tasks_run': result.tasks_run,
                'tasks_failed': result.tasks_failed,
                'events_processed': result.events_processed,
                'duration_seconds': round(result.duration_seconds, 2),
            }
        )
        return result

    def run_task(self, task_id: str) -> TaskResult:
        """
        Run a single task by id, honoring its enablement.

        Raises:
            KeyError: If no task has this id
        """
        task = next((t for t in self.task_loader() if t.id == task_id), None)
        if task is None:
            raise KeyError(f"Task not found: {task_id}")

        try:
            enabled = task.is_enabled()
        except Exception as e:
            return self._enablement_failed(task, e)

        if not enabled:
            logger.info(f"Task is disabled: {task_id}")
            return TaskResult(task_id=task_id, status=TaskStatus.SKIPPED_DISABLED)

        return self.execute_task(task)

    def list_tasks(self) -> List[TaskMetadata]:
        """Metadata of every discovered task."""
        return [
            TaskMetadata(
                id=task.id,
                schedule=task.schedule,
                description=task.description or 'No description',
                kind=self._kind(task),
            )
            for task in self.task_loader()
        ]

    def execute_task(self, task: Task) -> TaskResult:
        """
        Execute one task, never raising.

        Streaming batches are persisted as they arrive; when the stream
        fails, everything already persisted stays and the count is frozen.
        """
        start_time = time.time()
        events_processed = 0
        logger.info(f"Starting task {task.id}", extra={'task_id': task.id})

        try:
            if isinstance(task, StreamingTask) and task.extract_stream is not None:
                for batch in task.extract_stream(self.store):
                    if batch:
                        self.store.upsert_events(batch)
                        events_processed += len(batch)
                status = (
                    TaskStatus.SUCCEEDED if events_processed
                    else TaskStatus.SUCCEEDED_EMPTY
                )
                outcome = None
            elif isinstance(task, SideEffectTask) and task.run is not None:
                outcome = task.run()
                status = TaskStatus.SUCCEEDED
            else:
                raise TaskConfigurationError(
                    f"Task {task.id} has no extract_stream or run method"
                )
        except Exception as e:
            duration = time.time() - start_time
            logger.error(
                f"Task {task.id} failed: {e}",
                extra={
                    'task_id': task.id,
                    'events_processed': events_processed,
                    'error_type': type(e).__name__,
                },
                exc_info=True
            )
            return TaskResult(
                task_id=task.id,
                status=TaskStatus.FAILED,
                events_processed=events_processed,
                duration_seconds=duration,
                error=str(e),
            )

        duration = time.time() - start_time
        logger.info(
            f"Task {task.id} {status.value}",
            extra={
                'task_id': task.id,
                'events_processed': events_processed,
                'duration_seconds': round(duration, 2),
            }
        )
        return TaskResult(
            task_id=task.id,
            status=status,
            events_processed=events_processed,
            duration_seconds=duration,
            result=outcome,
        )

    @staticmethod
    def _enablement_failed(task: Task, error: Exception) -> TaskResult:
        logger.error(
            f"Task {task.id} failed: could not evaluate enabled: {error}",
            extra={'task_id': task.id, 'error_type': type(error).__name__},
            exc_info=True
        )
        return TaskResult(
            task_id=task.id,
            status=TaskStatus.FAILED,
            error=f"Enablement check failed: {error}",
        )

    @staticmethod
    def _kind(task: Task) -> str:
        if isinstance(task, StreamingTask):
            return 'streaming'
        if isinstance(task, SideEffectTask):
            return 'side_effect'
        return 'invalid'
