"""Tests for the retry policy."""

import pytest

from prwarden_core.errors import IntegrationError, TransientIntegrationError
from prwarden_core.retry import RetryPolicy, is_transient


def _policy(**kwargs):
    sleeps: list[float] = []
    return RetryPolicy(sleep=sleeps.append, **kwargs), sleeps


class _Flaky:
    def __init__(self, failures, exc=TransientIntegrationError("503")):
        self.failures = failures
        self.exc = exc
        self.calls = 0

    def __call__(self, value):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.exc
        return value


class TestIsTransient:
    def test_transient_kinds(self):
        assert is_transient(TransientIntegrationError("x"))
        assert is_transient(TimeoutError())
        assert is_transient(ConnectionError())

    def test_non_transient_kinds(self):
        assert not is_transient(IntegrationError("404"))
        assert not is_transient(ValueError("bad"))


class TestDelay:
    def test_exponential_from_base(self):
        policy = RetryPolicy()
        assert [policy.delay_for(a) for a in range(4)] == [2.0, 4.0, 8.0, 16.0]

    def test_capped_at_max_delay(self):
        policy = RetryPolicy()
        assert policy.delay_for(4) == 30.0
        assert policy.delay_for(10) == 30.0

    def test_from_config(self):
        policy = RetryPolicy.from_config({"retry_max_attempts": 2, "retry_base_delay": 0.5, "retry_max_delay": 1.0})
        assert policy.max_attempts == 2
        assert policy.delay_for(0) == 0.5
        assert policy.delay_for(3) == 1.0


class TestCall:
    def test_returns_immediately_on_success(self):
        policy, sleeps = _policy()
        fn = _Flaky(0)
        assert policy.call(fn, "ok") == "ok"
        assert fn.calls == 1
        assert sleeps == []

    def test_retries_transient_failures_then_succeeds(self):
        policy, sleeps = _policy()
        fn = _Flaky(2)
        assert policy.call(fn, "ok") == "ok"
        assert fn.calls == 3
        assert sleeps == [2.0, 4.0]

    def test_reraises_after_max_attempts(self):
        policy, sleeps = _policy(max_attempts=3)
        fn = _Flaky(10)
        with pytest.raises(TransientIntegrationError):
            policy.call(fn, "ok")
        assert fn.calls == 3
        assert len(sleeps) == 2

    def test_non_transient_error_is_not_retried(self):
        policy, sleeps = _policy()
        fn = _Flaky(1, exc=IntegrationError("403 forbidden"))
        with pytest.raises(IntegrationError):
            policy.call(fn, "ok")
        assert fn.calls == 1
        assert sleeps == []

    def test_custom_predicate(self):
        policy, _ = _policy(retry_on=lambda e: isinstance(e, KeyError))
        fn = _Flaky(1, exc=KeyError("k"))
        assert policy.call(fn, 5) == 5

    def test_passes_kwargs_through(self):
        policy, _ = _policy()
        assert policy.call(lambda a, b=0: a + b, 1, b=2, description="add") == 3
