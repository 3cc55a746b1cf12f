"""Tests for completion, skip and interruption policies and transaction managers."""

import pytest

from stepwise.core.errors import SkipLimitExceededError, StepError, StepInterruptedError
from stepwise.domain.models import StepExecution
from stepwise.step.completion import (
    CompositeCompletionPolicy,
    SimpleCompletionPolicy,
    TimeoutTerminationPolicy,
)
from stepwise.step.interruption import CancellationToken, StepInterruptionPolicy
from stepwise.step.skip import AlwaysSkipPolicy, LimitCheckingSkipPolicy, NeverSkipPolicy
from stepwise.step.transaction import ConnectionTransactionManager, ResourcelessTransactionManager


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class TestCompletionPolicies:
    def test_simple(self):
        policy = SimpleCompletionPolicy(2)
        state = policy.start()
        assert not policy.is_complete(state)
        policy.update(state)
        assert not policy.is_complete(state)
        policy.update(state)
        assert policy.is_complete(state)

    def test_invalid_chunk_size(self):
        with pytest.raises(ValueError):
            SimpleCompletionPolicy(0)

    def test_timeout(self):
        clock = FakeClock()
        policy = TimeoutTerminationPolicy(timeout=1.0, clock=clock)
        state = policy.start()
        assert not policy.is_complete(state)
        clock.now = 1.0
        assert policy.is_complete(state)

    def test_composite_completes_on_first_child(self):
        clock = FakeClock()
        policy = CompositeCompletionPolicy(
            [SimpleCompletionPolicy(100), TimeoutTerminationPolicy(timeout=5.0, clock=clock)]
        )
        state = policy.start()
        policy.update(state)
        assert not policy.is_complete(state)
        clock.now = 5.0
        assert policy.is_complete(state)
        assert state.count == 1


class TestSkipPolicies:
    def test_never(self):
        assert not NeverSkipPolicy().should_skip(ValueError(), 0)

    def test_always_except_engine_errors(self):
        policy = AlwaysSkipPolicy()
        assert policy.should_skip(ValueError(), 1000)
        assert not policy.should_skip(StepError("engine"), 0)

    def test_limit_checking(self):
        policy = LimitCheckingSkipPolicy(skip_limit=2)
        assert policy.should_skip(ValueError(), 0)
        assert policy.should_skip(ValueError(), 1)

    def test_limit_exceeded(self):
        error = ValueError("bad row")
        with pytest.raises(SkipLimitExceededError) as exc_info:
            LimitCheckingSkipPolicy(skip_limit=2).should_skip(error, 2)
        assert exc_info.value.__cause__ is error
        assert exc_info.value.skip_limit == 2

    def test_non_skippable_is_not_counted(self):
        policy = LimitCheckingSkipPolicy(skip_limit=0, skippable_exceptions=[ValueError])
        assert not policy.should_skip(KeyError(), 0)

    def test_engine_errors_never_skipped(self):
        assert not LimitCheckingSkipPolicy().should_skip(SkipLimitExceededError(1), 0)


class TestInterruption:
    def test_not_interrupted(self):
        StepInterruptionPolicy().check_interrupted(StepExecution("load"))

    def test_terminate_only(self):
        step = StepExecution("load")
        step.set_terminate_only()
        with pytest.raises(StepInterruptedError):
            StepInterruptionPolicy().check_interrupted(step)

    def test_cancellation_token(self):
        token = CancellationToken()
        policy = StepInterruptionPolicy(token)
        assert not policy.is_interrupted(StepExecution("load"))
        token.cancel()
        assert token.is_cancelled
        with pytest.raises(StepInterruptedError):
            policy.check_interrupted(StepExecution("load"))


class TestTransactionManagers:
    def test_resourceless_counts(self):
        manager = ResourcelessTransactionManager()
        manager.commit(manager.begin())
        manager.rollback(manager.begin())
        assert (manager.begun, manager.committed, manager.rolled_back) == (2, 1, 1)

    def test_connection_rollback_discards_writes(self, sqlite_conn):
        sqlite_conn.execute("CREATE TABLE prices (symbol TEXT)")
        sqlite_conn.commit()
        manager = ConnectionTransactionManager(sqlite_conn)

        tx = manager.begin()
        sqlite_conn.execute("INSERT INTO prices VALUES ('AAPL')")
        manager.commit(tx)

        tx = manager.begin()
        sqlite_conn.execute("INSERT INTO prices VALUES ('MSFT')")
        manager.rollback(tx)

        rows = sqlite_conn.execute("SELECT symbol FROM prices").fetchall()
        assert rows == [("AAPL",)]
