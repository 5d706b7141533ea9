"""Tests for the shared RetryPolicy."""

import threading

import pytest

from giftflow.application.retry import RetryPolicy
from giftflow.domain.exceptions import FatalError, TransientError, ValidationError


class Flaky:
    def __init__(self, failures, error=TransientError):
        self.failures = failures
        self.error = error
        self.calls = 0

    def __call__(self, value):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error(f"failure {self.calls}")
        return value * 2


def _policy(**kwargs):
    sleeps = []
    kwargs.setdefault("sleep", sleeps.append)
    return RetryPolicy(**kwargs), sleeps


class TestRetryPolicy:

    def test_success_first_time(self):
        policy, sleeps = _policy()
        assert policy.call(Flaky(0), 21) == 42
        assert sleeps == []

    def test_transient_errors_are_retried_with_backoff(self):
        policy, sleeps = _policy(max_attempts=4, initial_backoff=0.5, backoff_factor=2.0)
        op = Flaky(2)
        assert policy.call(op, 5) == 10
        assert op.calls == 3
        assert len(sleeps) == 2
        assert sleeps[0] <= sleeps[1]

    def test_backoff_is_capped(self):
        policy, sleeps = _policy(max_attempts=6, initial_backoff=1.0, max_backoff=2.0)
        policy.call(Flaky(5), 1)
        assert max(sleeps) <= 2.0

    def test_exhaustion_raises_fatal(self):
        policy, _ = _policy(max_attempts=3)
        op = Flaky(10)
        with pytest.raises(FatalError, match="after 3 attempts") as exc_info:
            policy.call(op, 1, description="create order")
        assert op.calls == 3
        assert isinstance(exc_info.value.__cause__, TransientError)
        assert "create order" in str(exc_info.value)

    def test_validation_errors_are_not_retried(self):
        policy, sleeps = _policy()
        op = Flaky(1, error=ValidationError)
        with pytest.raises(ValidationError):
            policy.call(op, 1)
        assert op.calls == 1
        assert sleeps == []

    def test_custom_retry_on(self):
        policy, _ = _policy(max_attempts=3, retry_on=(ValidationError,))
        assert policy.call(Flaky(2, error=ValidationError), 2) == 4

    def test_keyword_arguments_are_passed_through(self):
        policy, _ = _policy()
        assert policy.call(lambda a, b=0: a + b, 1, b=2) == 3

    def test_attempt_timeout_becomes_transient(self):
        release = threading.Event()

        def stuck():
            release.wait(timeout=5)

        policy, _ = _policy(max_attempts=2, attempt_timeout=0.05)
        try:
            with pytest.raises(FatalError, match="timed out"):
                policy.call(stuck, description="reverse payment")
        finally:
            release.set()

    def test_timed_out_call_is_not_issued_twice(self):
        release = threading.Event()
        calls = []

        def slow():
            calls.append(1)
            release.wait(timeout=5)
            return "done"

        policy, _ = _policy(max_attempts=3, attempt_timeout=0.2, sleep=lambda s: release.set())
        assert policy.call(slow) == "done"
        assert len(calls) == 1

    def test_at_least_one_attempt(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)
