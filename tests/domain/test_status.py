"""Tests for BatchStatus and ExitStatus."""

import pytest

from stepwise.domain.status import BatchStatus, ExitStatus


class TestBatchStatusOrdering:
    """upgrade_to never lowers a status."""

    def test_order(self):
        ordered = [
            BatchStatus.STARTING,
            BatchStatus.STARTED,
            BatchStatus.STOPPING,
            BatchStatus.STOPPED,
            BatchStatus.COMPLETED,
            BatchStatus.FAILED,
            BatchStatus.ABANDONED,
            BatchStatus.UNKNOWN,
        ]
        assert [s.rank for s in ordered] == sorted(s.rank for s in ordered)

    @pytest.mark.parametrize(
        "current, target, expected",
        [
            (BatchStatus.STARTED, BatchStatus.COMPLETED, BatchStatus.COMPLETED),
            (BatchStatus.FAILED, BatchStatus.COMPLETED, BatchStatus.FAILED),
            (BatchStatus.COMPLETED, BatchStatus.STARTED, BatchStatus.COMPLETED),
            (BatchStatus.STARTED, BatchStatus.STOPPED, BatchStatus.STOPPED),
            (BatchStatus.UNKNOWN, BatchStatus.FAILED, BatchStatus.UNKNOWN),
        ],
    )
    def test_upgrade_to(self, current, target, expected):
        assert current.upgrade_to(target) == expected

    def test_max_is_symmetric(self):
        assert BatchStatus.max(BatchStatus.FAILED, BatchStatus.STARTED) == BatchStatus.FAILED
        assert BatchStatus.max(BatchStatus.STARTED, BatchStatus.FAILED) == BatchStatus.FAILED

    def test_comparisons(self):
        assert BatchStatus.FAILED.is_greater_than(BatchStatus.COMPLETED)
        assert BatchStatus.STARTING.is_less_than(BatchStatus.STARTED)


class TestBatchStatusPredicates:
    @pytest.mark.parametrize("status", [BatchStatus.STARTING, BatchStatus.STARTED, BatchStatus.STOPPING])
    def test_running(self, status):
        assert status.is_running

    @pytest.mark.parametrize("status", [BatchStatus.STOPPED, BatchStatus.COMPLETED, BatchStatus.FAILED])
    def test_not_running(self, status):
        assert not status.is_running

    def test_unsuccessful(self):
        assert BatchStatus.FAILED.is_unsuccessful
        assert BatchStatus.UNKNOWN.is_unsuccessful
        assert not BatchStatus.COMPLETED.is_unsuccessful
        assert not BatchStatus.STOPPED.is_unsuccessful

    def test_string_value(self):
        assert BatchStatus("COMPLETED") is BatchStatus.COMPLETED
        assert BatchStatus.COMPLETED == "COMPLETED"


class TestExitStatusAnd:
    def test_more_severe_code_wins(self):
        assert ExitStatus.COMPLETED.and_(ExitStatus.FAILED).exit_code == "FAILED"
        assert ExitStatus.FAILED.and_(ExitStatus.COMPLETED).exit_code == "FAILED"

    def test_severity_order(self):
        codes = [ExitStatus.EXECUTING, ExitStatus.COMPLETED, ExitStatus.NOOP,
                 ExitStatus.STOPPED, ExitStatus.FAILED, ExitStatus.UNKNOWN]
        severities = [c.severity for c in codes]
        assert severities == sorted(severities)

    def test_custom_code_ranks_highest(self):
        custom = ExitStatus("COMPLETED WITH SKIPS")
        assert ExitStatus.UNKNOWN.and_(custom).exit_code == "COMPLETED WITH SKIPS"

    def test_equal_severity_keeps_self(self):
        result = ExitStatus("CUSTOM_A").and_(ExitStatus("CUSTOM_B"))
        assert result.exit_code == "CUSTOM_A"

    def test_descriptions_concatenated(self):
        left = ExitStatus("COMPLETED", "first")
        right = ExitStatus("FAILED", "second")
        result = left.and_(right)
        assert result == ExitStatus("FAILED", "first; second")

    def test_and_none(self):
        assert ExitStatus.COMPLETED.and_(None) is ExitStatus.COMPLETED


class TestExitStatusDescription:
    def test_immutable(self):
        status = ExitStatus.COMPLETED.add_exit_description("done")
        assert ExitStatus.COMPLETED.exit_description == ""
        assert status.exit_description == "done"

    def test_duplicate_not_repeated(self):
        status = ExitStatus.FAILED.add_exit_description("x").add_exit_description("x")
        assert status.exit_description == "x"

    def test_exception_renders_traceback(self):
        try:
            raise ValueError("disk on fire")
        except ValueError as e:
            status = ExitStatus.FAILED.add_exit_description(e)
        assert "Traceback" in status.exit_description
        assert "ValueError: disk on fire" in status.exit_description

    def test_replace_exit_code(self):
        status = ExitStatus("FAILED", "why").replace_exit_code("CUSTOM")
        assert status == ExitStatus("CUSTOM", "why")

    def test_is_running(self):
        assert ExitStatus.EXECUTING.is_running()
        assert ExitStatus.UNKNOWN.is_running()
        assert not ExitStatus.COMPLETED.is_running()

    def test_str(self):
        assert str(ExitStatus("FAILED", "x")) == "exitCode=FAILED;exitDescription=x"
