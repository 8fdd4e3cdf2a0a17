"""Unit tests for the task runner."""
from unittest.mock import Mock, patch

import pytest

from tasks.models import (
    SideEffectTask,
    StreamingTask,
    SuccessRateGateError,
    Task,
    TaskStatus,
    enforce_success_rate,
)
from tasks.runner import TaskRunner, discover_tasks


def stream_of(*batches, error=None):
    def extract_stream(store):
        for batch in batches:
            yield batch
        if error:
            raise error
    return extract_stream


@pytest.fixture
def store():
    mock_store = Mock()
    mock_store.upsert_events.side_effect = lambda events: len(events)
    return mock_store


def make_runner(store, tasks):
    return TaskRunner(store, lambda: tasks)


class TestEnforceSuccessRate:
    """Test cases for the success rate gate."""

    def test_passes_at_threshold(self):
        enforce_success_rate(5, 10, 0.5, 'feeds')

    def test_no_sources_passes(self):
        enforce_success_rate(0, 0, 0.5, 'feeds')

    def test_zero_successes_fail(self):
        with pytest.raises(SuccessRateGateError, match='Zero feeds succeeded'):
            enforce_success_rate(0, 3, 0.0, 'feeds')

    def test_below_threshold_fails(self):
        with pytest.raises(SuccessRateGateError, match='4/10'):
            enforce_success_rate(4, 10, 0.5, 'feeds')


class TestRunSchedule:
    """Test cases for TaskRunner.run_schedule."""

    def test_runs_only_matching_schedule(self, store):
        weekly_run = Mock(return_value={'discovered': 3})
        tasks = [
            StreamingTask(id='a:events', schedule='polling',
                          extract_stream=stream_of(['e1', 'e2'])),
            SideEffectTask(id='a:urls', schedule='weekly', run=weekly_run),
        ]

        result = make_runner(store, tasks).run_schedule('polling')

        assert [t.task_id for t in result.tasks] == ['a:events']
        assert result.events_processed == 2
        assert result.tasks_run == 1
        weekly_run.assert_not_called()

    def test_batches_persisted_as_they_arrive(self, store):
        tasks = [StreamingTask(id='a:events', schedule='polling',
                               extract_stream=stream_of(['e1'], [], ['e2', 'e3']))]

        result = make_runner(store, tasks).run_schedule('polling')

        assert store.upsert_events.call_count == 2
        assert result.tasks[0].status == TaskStatus.SUCCEEDED
        assert result.tasks[0].events_processed == 3

    def test_empty_stream_succeeds_empty(self, store):
        tasks = [StreamingTask(id='a:events', schedule='polling', extract_stream=stream_of())]

        result = make_runner(store, tasks).run_schedule('polling')

        assert result.tasks[0].status == TaskStatus.SUCCEEDED_EMPTY
        assert result.tasks[0].success

    def test_partial_failure_keeps_persisted_batches(self, store):
        """Test a stream failing after two of five batches."""
        batches = [['e1', 'e2'], ['e3']]
        tasks = [
            StreamingTask(id='a:events', schedule='polling',
                          extract_stream=stream_of(*batches, error=RuntimeError('feed 3 exploded'))),
            StreamingTask(id='b:events', schedule='polling',
                          extract_stream=stream_of(['e4'])),
        ]

        result = make_runner(store, tasks).run_schedule('polling')

        failed, succeeded = result.tasks
        assert failed.status == TaskStatus.FAILED
        assert failed.events_processed == 3
        assert 'feed 3 exploded' in failed.error
        assert succeeded.status == TaskStatus.SUCCEEDED
        assert store.upsert_events.call_count == 3
        assert result.tasks_failed == 1
        assert result.events_processed == 4

    def test_disabled_task_skipped(self, store):
        extract = Mock()
        tasks = [
            StreamingTask(id='a:events', schedule='polling', enabled=False, extract_stream=extract),
            StreamingTask(id='b:events', schedule='polling', enabled=lambda: False,
                          extract_stream=extract),
        ]

        result = make_runner(store, tasks).run_schedule('polling')

        assert [t.status for t in result.tasks] == [TaskStatus.SKIPPED_DISABLED] * 2
        assert result.tasks_run == 0
        assert result.tasks_skipped == 2
        extract.assert_not_called()

    def test_raising_enablement_fails_only_that_task(self, store):
        """Test that a broken enabled predicate does not stop sibling tasks."""
        def flag_service():
            raise RuntimeError('flag service down')

        tasks = [
            StreamingTask(id='a:events', schedule='polling', enabled=flag_service,
                          extract_stream=stream_of(['e1'])),
            StreamingTask(id='b:events', schedule='polling',
                          extract_stream=stream_of(['e2', 'e3'])),
        ]

        result = make_runner(store, tasks).run_schedule('polling')

        statuses = {t.task_id: t.status for t in result.tasks}
        assert statuses == {'a:events': TaskStatus.FAILED, 'b:events': TaskStatus.SUCCEEDED}
        assert 'flag service down' in result.tasks[0].error
        assert result.tasks_failed == 1
        assert result.events_processed == 2
        store.upsert_events.assert_called_once_with(['e2', 'e3'])

    def test_task_without_contract_fails(self, store):
        tasks = [Task(id='broken', schedule='polling')]

        result = make_runner(store, tasks).run_schedule('polling')

        assert result.tasks[0].status == TaskStatus.FAILED
        assert 'no extract_stream or run' in result.tasks[0].error

    def test_gate_failure_marks_task_failed(self, store):
        def run():
            enforce_success_rate(1, 10, 0.5, 'handles')

        tasks = [SideEffectTask(id='a:urls', schedule='weekly', run=run)]

        result = make_runner(store, tasks).run_schedule('weekly')

        assert result.tasks[0].status == TaskStatus.FAILED
        assert 'threshold' in result.tasks[0].error

    def test_store_failure_marks_task_failed(self, store):
        store.upsert_events.side_effect = RuntimeError('throttled')
        tasks = [StreamingTask(id='a:events', schedule='polling',
                               extract_stream=stream_of(['e1']))]

        result = make_runner(store, tasks).run_schedule('polling')

        assert result.tasks[0].status == TaskStatus.FAILED
        assert result.tasks[0].events_processed == 0

    def test_discovery_failure_propagates(self, store):
        runner = TaskRunner(store, Mock(side_effect=RuntimeError('bad module')))

        with pytest.raises(RuntimeError):
            runner.run_schedule('polling')

    def test_to_dict(self, store):
        tasks = [SideEffectTask(id='a:urls', schedule='weekly', run=lambda: {'discovered': 2})]

        data = make_runner(store, tasks).run_schedule('weekly').to_dict()

        assert data['tasks_run'] == 1
        assert data['tasks'][0]['status'] == 'succeeded'
        assert data['tasks'][0]['result'] == {'discovered': 2}


class TestRunTask:
    """Test cases for TaskRunner.run_task and list_tasks."""

    def test_run_task_by_id(self, store):
        run = Mock(return_value=None)
        tasks = [SideEffectTask(id='a:urls', schedule='weekly', run=run)]

        result = make_runner(store, tasks).run_task('a:urls')

        assert result.status == TaskStatus.SUCCEEDED
        run.assert_called_once()

    def test_unknown_task(self, store):
        with pytest.raises(KeyError):
            make_runner(store, []).run_task('nope')

    def test_disabled_task(self, store):
        run = Mock()
        tasks = [SideEffectTask(id='a:urls', schedule='weekly', enabled=False, run=run)]

        assert make_runner(store, tasks).run_task('a:urls').status == TaskStatus.SKIPPED_DISABLED
        run.assert_not_called()

    def test_raising_enablement(self, store):
        run = Mock()
        tasks = [SideEffectTask(id='a:urls', schedule='weekly',
                                enabled=Mock(side_effect=RuntimeError('flag service down')), run=run)]

        result = make_runner(store, tasks).run_task('a:urls')

        assert result.status == TaskStatus.FAILED
        assert 'flag service down' in result.error
        run.assert_not_called()

    def test_list_tasks(self, store):
        tasks = [
            StreamingTask(id='a:events', schedule='polling', extract_stream=stream_of()),
            SideEffectTask(id='a:urls', schedule='weekly', description='Find URLs', run=Mock()),
        ]

        metadata = make_runner(store, tasks).list_tasks()

        assert [(m.id, m.kind) for m in metadata] == [
            ('a:events', 'streaming'), ('a:urls', 'side_effect')
        ]
        assert metadata[0].description == 'No description'
        assert metadata[1].description == 'Find URLs'


class TestDiscoverTasks:
    """Test cases for discover_tasks."""

    def test_import_failure_skipped(self):
        module = Mock()
        module.get_tasks.return_value = [Task(id='x', schedule='polling')]

        def fake_import(name):
            if name == 'tasks.missing':
                raise ImportError('No module named tasks.missing')
            return module

        with patch('tasks.runner.importlib.import_module', side_effect=fake_import):
            tasks = discover_tasks(Mock(), modules=('tasks.missing', 'tasks.present'))

        assert [t.id for t in tasks] == ['x']

    def test_get_tasks_failure_propagates(self):
        module = Mock()
        module.get_tasks.side_effect = ValueError('bad config')

        with patch('tasks.runner.importlib.import_module', return_value=module):
            with pytest.raises(ValueError):
                discover_tasks(Mock(), modules=('tasks.present',))
