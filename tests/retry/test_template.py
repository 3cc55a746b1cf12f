"""Tests for RetryTemplate and back-off policies."""

import pytest

from stepwise.core.errors import TerminatedRetryError
from stepwise.retry.backoff import ExponentialBackOffPolicy, FixedBackOffPolicy, NoBackOffPolicy
from stepwise.retry.policy import NeverRetryPolicy, SimpleRetryPolicy
from stepwise.retry.template import RetryListener, RetryTemplate, current_retry_context


class Flaky:
    """Fails ``failures`` times, then returns ``result``."""

    def __init__(self, failures: int, result="ok", error_type=ValueError):
        self.failures = failures
        self.result = result
        self.error_type = error_type
        self.calls = 0

    def __call__(self, context):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error_type(f"failure {self.calls}")
        return self.result


class RecordingListener(RetryListener):
    def __init__(self, allow=True):
        self.allow = allow
        self.events = []

    def open(self, context, callback):
        self.events.append("open")
        return self.allow

    def on_error(self, context, callback, error):
        self.events.append(f"error:{error}")

    def close(self, context, callback, error):
        self.events.append("close")


class TestStatelessExecute:
    def test_success_after_retries(self):
        callback = Flaky(failures=2)
        template = RetryTemplate(SimpleRetryPolicy(max_attempts=3))
        assert template.execute(callback) == "ok"
        assert callback.calls == 3

    def test_exhausted_reraises_last_failure(self):
        callback = Flaky(failures=5)
        template = RetryTemplate(SimpleRetryPolicy(max_attempts=3))
        with pytest.raises(ValueError, match="failure 3"):
            template.execute(callback)
        assert callback.calls == 3

    def test_recovery_callback(self):
        callback = Flaky(failures=5)
        template = RetryTemplate(SimpleRetryPolicy(max_attempts=2))
        result = template.execute(callback, recovery=lambda ctx: f"recovered after {ctx.retry_count}")
        assert result == "recovered after 2"

    def test_non_retryable_fails_fast(self):
        callback = Flaky(failures=5, error_type=KeyError)
        template = RetryTemplate(SimpleRetryPolicy(max_attempts=5, retryable_exceptions=[ValueError]))
        with pytest.raises(KeyError):
            template.execute(callback)
        assert callback.calls == 1

    def test_policy_override(self):
        callback = Flaky(failures=1)
        template = RetryTemplate(SimpleRetryPolicy(max_attempts=3))
        with pytest.raises(ValueError):
            template.execute(callback, policy=NeverRetryPolicy())

    def test_exhausted_only_short_circuits(self):
        def callback(ctx):
            ctx.set_exhausted_only()
            raise ValueError("stop now")

        template = RetryTemplate(SimpleRetryPolicy(max_attempts=5))
        with pytest.raises(ValueError, match="stop now"):
            template.execute(callback)

    def test_current_context_visible_inside_callback(self):
        seen = []
        template = RetryTemplate()
        template.execute(lambda ctx: seen.append(current_retry_context() is ctx))
        assert seen == [True]
        assert current_retry_context() is None

    def test_nested_context_has_parent(self):
        template = RetryTemplate()
        parents = []

        def outer(ctx):
            return template.execute(lambda inner: parents.append(inner.parent is ctx))

        template.execute(outer)
        assert parents == [True]


class TestListeners:
    def test_listener_sequence(self):
        listener = RecordingListener()
        template = RetryTemplate(SimpleRetryPolicy(3), listeners=[listener])
        template.execute(Flaky(failures=1))
        assert listener.events == ["open", "error:failure 1", "close"]

    def test_listener_veto_terminates(self):
        listener = RecordingListener(allow=False)
        callback = Flaky(failures=0)
        template = RetryTemplate(listeners=[listener])
        with pytest.raises(TerminatedRetryError):
            template.execute(callback)
        assert callback.calls == 0
        assert listener.events[-1] == "close"

    def test_register_listener(self):
        template = RetryTemplate()
        listener = RecordingListener()
        template.register_listener(listener)
        template.execute(lambda ctx: None)
        assert listener.events == ["open", "close"]


class TestBackOff:
    def test_back_off_between_attempts_only(self):
        sleeps = []
        template = RetryTemplate(
            SimpleRetryPolicy(max_attempts=3),
            back_off_policy=FixedBackOffPolicy(interval=0.5, sleeper=sleeps.append),
        )
        with pytest.raises(ValueError):
            template.execute(Flaky(failures=10))
        assert sleeps == [0.5, 0.5]

    def test_exponential_without_jitter(self):
        policy = ExponentialBackOffPolicy(initial_interval=1.0, multiplier=2.0, max_interval=5.0, jitter=False)
        state = policy.start()
        assert [policy.next_delay(state) for _ in range(4)] == [1.0, 2.0, 4.0, 5.0]

    def test_exponential_jitter_bounds(self):
        policy = ExponentialBackOffPolicy(initial_interval=1.0, jitter=True, jitter_range=0.25)
        delay = policy.next_delay(policy.start())
        assert 0.75 <= delay <= 1.25

    def test_exponential_uses_sleeper(self):
        sleeps = []
        policy = ExponentialBackOffPolicy(initial_interval=0.1, jitter=False, sleeper=sleeps.append)
        state = policy.start()
        policy.back_off(state)
        policy.back_off(state)
        assert sleeps == [0.1, 0.2]

    def test_no_back_off(self):
        assert NoBackOffPolicy().back_off(None) is None
