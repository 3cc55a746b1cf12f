"""
Tests for SimpleJob, SimpleStepHandler and run_job.

The restart scenarios run against both repository backends and build a
fresh job (fresh readers) for every run, the way a new process would.
"""

import pytest

from stepwise import (
    BatchStatus,
    JobParametersBuilder,
    SimpleJob,
    StepBuilder,
    run_job,
)
from stepwise.core.errors import (
    JobExecutionAlreadyRunningError,
    JobInstanceAlreadyCompleteError,
    JobRestartError,
    StartLimitExceededError,
    StepInterruptedError,
)
from stepwise.job import JobExecutionListener, SimpleStepHandler
from stepwise.step.interruption import CancellationToken
from stepwise.step.item import ItemProcessor, ListItemReader, ListItemWriter
from stepwise.step.listener import ChunkListener, StepExecutionListener


class ShouldFailProcessor(ItemProcessor, StepExecutionListener):
    """Fails on ``bad`` when the job parameter ``shouldfail`` is true."""

    def __init__(self, bad=7):
        self.bad = bad
        self.should_fail = False

    def before_step(self, step_execution):
        params = step_execution.job_execution.job_parameters
        self.should_fail = params.get_bool("shouldfail", False)

    def process(self, item):
        if self.should_fail and item == self.bad:
            raise ValueError(f"refusing item {item}")
        return item


class AlwaysFails(ItemProcessor):
    def process(self, item):
        raise ValueError("broken")


class RecordingJobListener(JobExecutionListener):
    def __init__(self):
        self.events = []

    def before_job(self, job_execution):
        self.events.append(("before", job_execution.status))

    def after_job(self, job_execution):
        self.events.append(("after", job_execution.status))


def params(shouldfail=None):
    builder = JobParametersBuilder().add_string("name", "foo")
    if shouldfail is not None:
        builder.add_bool("shouldfail", shouldfail, identifying=False)
    return builder.to_job_parameters()


def make_step(repository, name="load", items=range(1, 13), writer=None, processor=None, **options):
    builder = (
        StepBuilder(name, repository)
        .reader(ListItemReader(items))
        .writer(writer if writer is not None else ListItemWriter())
        .chunk_size(5)
    )
    if processor is not None:
        builder.processor(processor)
        if isinstance(processor, StepExecutionListener):
            builder.listener(processor)
    if options.get("allow_start_if_complete"):
        builder.allow_start_if_complete()
    if "start_limit" in options:
        builder.start_limit(options["start_limit"])
    if "token" in options:
        builder.cancellation_token(options["token"])
    return builder.build()


# =============================================================================
# Restart scenario
# =============================================================================


class TestRestartScenario:
    def make_job(self, repository, load_writer, restartable=True):
        return SimpleJob(
            "import",
            [
                make_step(repository, name="extract", items=["a", "b"]),
                make_step(repository, name="load", writer=load_writer, processor=ShouldFailProcessor()),
            ],
            repository,
            restartable=restartable,
        )

    def test_fail_fail_succeed_under_one_instance(self, repository):
        load_writer = ListItemWriter()

        first = run_job(repository, self.make_job(repository, load_writer), params(shouldfail=True))
        second = run_job(repository, self.make_job(repository, load_writer), params(shouldfail=True))
        third = run_job(repository, self.make_job(repository, load_writer), params(shouldfail=False))

        assert first.status == BatchStatus.FAILED
        assert first.exit_status.exit_code == "FAILED"
        assert second.status == BatchStatus.FAILED
        assert third.status == BatchStatus.COMPLETED
        assert third.exit_status.exit_code == "COMPLETED"

        # one instance, three executions
        instance = first.job_instance
        assert second.job_instance == instance
        assert third.job_instance == instance
        assert len({first.id, second.id, third.id}) == 3
        executions = repository.find_job_executions(instance)
        assert [e.status for e in executions] == [BatchStatus.COMPLETED, BatchStatus.FAILED, BatchStatus.FAILED]

        # the non-identifying flag does not change the instance key
        assert repository.get_job_instance("import", params(shouldfail=True)) == instance
        assert repository.get_job_instance("import", params(shouldfail=False)) == instance
        assert repository.get_job_instance("import", params()) == instance

        # extract ran once; load resumed at its last committed chunk each time
        assert repository.get_step_execution_count(instance, "extract") == 1
        assert repository.get_step_execution_count(instance, "load") == 3
        assert load_writer.written_items == list(range(1, 13))

        load = third.step_executions[-1]
        assert load.step_name == "load"
        assert load.read_count == 7
        assert load.write_count == 7
        assert [s.step_name for s in third.step_executions] == ["load"]

    def test_run_after_completion_is_noop(self, repository):
        load_writer = ListItemWriter()
        run_job(repository, self.make_job(repository, load_writer), params())
        again = run_job(repository, self.make_job(repository, load_writer), params())

        assert again.status == BatchStatus.COMPLETED
        assert again.exit_status.exit_code == "NOOP"
        assert again.step_executions == []
        assert load_writer.written_items == list(range(1, 13))

    def test_non_restartable_completed_instance(self, repository):
        run_job(repository, self.make_job(repository, ListItemWriter(), restartable=False), params())
        with pytest.raises(JobInstanceAlreadyCompleteError):
            run_job(repository, self.make_job(repository, ListItemWriter(), restartable=False), params())

    def test_job_persisted(self, repository):
        execution = run_job(repository, self.make_job(repository, ListItemWriter()), params(shouldfail=True))
        persisted = repository.get_job_execution(execution.id)
        assert persisted.status == BatchStatus.FAILED
        assert persisted.end_time is not None
        assert [s.status for s in persisted.step_executions] == [BatchStatus.COMPLETED, BatchStatus.FAILED]


# =============================================================================
# Step sequencing
# =============================================================================


class TestSimpleJob:
    def test_steps_run_in_order(self, repository, foo_params):
        order = []

        class Track(StepExecutionListener):
            def before_step(self, step_execution):
                order.append(step_execution.step_name)

        steps = [make_step(repository, name=n) for n in ("a", "b", "c")]
        for step in steps:
            step.register_listener(Track())
        execution = run_job(repository, SimpleJob("job", steps, repository), foo_params)

        assert execution.status == BatchStatus.COMPLETED
        assert order == ["a", "b", "c"]
        assert execution.start_time is not None
        assert execution.end_time is not None

    def test_failure_stops_remaining_steps(self, repository, foo_params):
        steps = [make_step(repository, name="a", processor=AlwaysFails()), make_step(repository, name="b")]
        execution = run_job(repository, SimpleJob("job", steps, repository), foo_params)

        assert execution.status == BatchStatus.FAILED
        assert [s.step_name for s in execution.step_executions] == ["a"]
        assert repository.get_step_execution_count(execution.job_instance, "b") == 0

    def test_no_steps(self, repository, foo_params):
        execution = run_job(repository, SimpleJob("job", [], repository), foo_params)
        assert execution.status == BatchStatus.COMPLETED
        assert execution.exit_status.exit_code == "NOOP"

    def test_listeners(self, repository, foo_params):
        listener = RecordingJobListener()
        job = SimpleJob("job", [make_step(repository)], repository, listeners=[listener])
        run_job(repository, job, foo_params)
        assert listener.events == [("before", BatchStatus.STARTED), ("after", BatchStatus.COMPLETED)]

    def test_stopped_before_start(self, repository, foo_params):
        instance = repository.create_job_instance("job", foo_params)
        execution = repository.create_job_execution(instance, foo_params)
        execution.stop()

        SimpleJob("job", [make_step(repository)], repository).execute(execution)

        assert execution.status == BatchStatus.STOPPED
        assert execution.exit_status.exit_code == "COMPLETED"
        assert "stopped before it started" in execution.exit_status.exit_description
        assert execution.step_executions == []
        assert repository.get_job_execution(execution.id).status == BatchStatus.STOPPED

    def test_stopped_step_stops_job_and_restarts(self, repository, foo_params):
        token = CancellationToken()

        class CancelAfterFirstChunk(ChunkListener):
            def after_chunk(self, step_execution):
                token.cancel()

        writer = ListItemWriter()
        step = make_step(repository, writer=writer, token=token)
        step.chunk_listeners.append(CancelAfterFirstChunk())
        stopped = run_job(repository, SimpleJob("job", [step], repository), foo_params)

        assert stopped.status == BatchStatus.STOPPED
        assert stopped.exit_status.exit_code == "STOPPED"
        assert isinstance(stopped.failure_exceptions[0], StepInterruptedError)
        assert writer.written_items == [1, 2, 3, 4, 5]

        resumed = run_job(repository, SimpleJob("job", [make_step(repository, writer=writer)], repository), foo_params)
        assert resumed.status == BatchStatus.COMPLETED
        assert writer.written_items == list(range(1, 13))

    def test_already_running(self, repository, foo_params):
        instance = repository.create_job_instance("job", foo_params)
        repository.create_job_execution(instance, foo_params)
        with pytest.raises(JobExecutionAlreadyRunningError):
            run_job(repository, SimpleJob("job", [make_step(repository)], repository), foo_params)

    def test_unknown_outcome_blocks_restart(self, repository, foo_params, monkeypatch):
        original = repository.update_execution_context
        calls = []

        def fail_first(execution):
            calls.append(execution)
            if len(calls) == 1:
                raise OSError("disk full")
            original(execution)

        monkeypatch.setattr(repository, "update_execution_context", fail_first)
        execution = run_job(repository, SimpleJob("job", [make_step(repository)], repository), foo_params)
        monkeypatch.undo()

        assert execution.status == BatchStatus.UNKNOWN
        with pytest.raises(JobRestartError):
            run_job(repository, SimpleJob("job", [make_step(repository)], repository), foo_params)

    def test_repr(self, repository):
        job = SimpleJob("job", [make_step(repository, name="a")], repository)
        assert repr(job) == "SimpleJob(name='job', steps=['a'])"


# =============================================================================
# Step handler rules
# =============================================================================


def finish(repository, execution, status):
    execution.status = status
    repository.update(execution)


class TestSimpleStepHandler:
    @pytest.fixture
    def instance(self, repository, foo_params):
        return repository.create_job_instance("job", foo_params)

    def previous_step(self, repository, instance, foo_params, status):
        """A finished job execution whose "load" step ended with ``status``."""
        execution = repository.create_job_execution(instance, foo_params)
        step = repository.create_step_execution("load", execution)
        step.execution_context.put("list_reader.read.count", 5)
        repository.update_execution_context(step)
        finish(repository, step, status)
        finish(repository, execution, BatchStatus.FAILED)
        return step

    def test_first_run_starts(self, repository, instance, foo_params):
        execution = repository.create_job_execution(instance, foo_params)
        step_execution = SimpleStepHandler(repository).handle_step(make_step(repository), execution)
        assert step_execution.status == BatchStatus.COMPLETED
        assert step_execution.job_execution_id == execution.id

    def test_failed_step_resumes_with_context(self, repository, instance, foo_params):
        self.previous_step(repository, instance, foo_params, BatchStatus.FAILED)
        execution = repository.create_job_execution(instance, foo_params)
        writer = ListItemWriter()

        step_execution = SimpleStepHandler(repository).handle_step(make_step(repository, writer=writer), execution)

        assert step_execution.status == BatchStatus.COMPLETED
        assert writer.written_items == list(range(6, 13))

    def test_completed_step_skipped(self, repository, instance, foo_params):
        previous = self.previous_step(repository, instance, foo_params, BatchStatus.COMPLETED)
        execution = repository.create_job_execution(instance, foo_params)

        result = SimpleStepHandler(repository).handle_step(make_step(repository), execution)

        assert result.id == previous.id
        assert execution.step_executions == []

    def test_completed_step_rerun_when_allowed(self, repository, instance, foo_params):
        self.previous_step(repository, instance, foo_params, BatchStatus.COMPLETED)
        execution = repository.create_job_execution(instance, foo_params)
        writer = ListItemWriter()

        step = make_step(repository, writer=writer, allow_start_if_complete=True)
        step_execution = SimpleStepHandler(repository).handle_step(step, execution)

        assert step_execution.job_execution_id == execution.id
        # a completed step starts over instead of resuming
        assert writer.written_items == list(range(1, 13))

    def test_abandoned_step_skipped(self, repository, instance, foo_params):
        previous = self.previous_step(repository, instance, foo_params, BatchStatus.ABANDONED)
        execution = repository.create_job_execution(instance, foo_params)
        result = SimpleStepHandler(repository).handle_step(make_step(repository), execution)
        assert result.id == previous.id

    def test_unknown_step_blocks_restart(self, repository, instance, foo_params):
        self.previous_step(repository, instance, foo_params, BatchStatus.UNKNOWN)
        execution = repository.create_job_execution(instance, foo_params)
        with pytest.raises(JobRestartError):
            SimpleStepHandler(repository).handle_step(make_step(repository), execution)

    def test_start_limit_exceeded(self, repository, instance, foo_params):
        self.previous_step(repository, instance, foo_params, BatchStatus.FAILED)
        execution = repository.create_job_execution(instance, foo_params)
        with pytest.raises(StartLimitExceededError):
            SimpleStepHandler(repository).handle_step(make_step(repository, start_limit=1), execution)

    def test_start_limit_fails_job(self, repository, foo_params):
        def job():
            return SimpleJob("job", [make_step(repository, processor=AlwaysFails(), start_limit=1)], repository)

        assert run_job(repository, job(), foo_params).status == BatchStatus.FAILED
        second = run_job(repository, job(), foo_params)
        assert second.status == BatchStatus.FAILED
        assert isinstance(second.failure_exceptions[0], StartLimitExceededError)
