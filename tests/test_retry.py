"""Tests for the retry-with-backoff policy."""

import pytest

from conftest import run

from mdksys.errors import (
    CHECK_VIOLATION,
    FOREIGN_KEY_VIOLATION,
    UNIQUE_VIOLATION,
    BackendError,
    TransactionError,
    ValidationError,
)
from mdksys.persistence import RetryPolicy, is_retryable


class Flaky:
    """Async callable that raises the queued errors, then returns *result*."""

    def __init__(self, *errors, result="ok"):
        self.errors = list(errors)
        self.result = result
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.result


def _policy(max_attempts=3, base_delay=1.0):
    sleeps = []

    async def sleep(delay):
        sleeps.append(delay)

    return RetryPolicy(max_attempts=max_attempts, base_delay=base_delay, sleep=sleep), sleeps


class TestIsRetryable:
    @pytest.mark.parametrize("code", [UNIQUE_VIOLATION, FOREIGN_KEY_VIOLATION, CHECK_VIOLATION])
    def test_constraint_codes(self, code):
        assert not is_retryable(BackendError("constraint", code=code))

    @pytest.mark.parametrize("message", [
        "Invalid owner",
        "Validation failed",
        "Authentication required",
    ])
    def test_terminal_messages(self, message):
        assert not is_retryable(RuntimeError(message))

    def test_validation_error(self):
        assert not is_retryable(ValidationError("bad", "name"))

    def test_network_error(self):
        assert is_retryable(ConnectionError("connection reset"))
        assert is_retryable(BackendError("timeout", code="57014"))

    def test_lowercase_invalid_is_transient(self):
        exc = RuntimeError("Can't reconnect until invalid transaction is rolled back")
        assert is_retryable(exc)


class TestRun:
    def test_first_try(self):
        policy, sleeps = _policy()
        fn = Flaky()
        assert run(policy.run("op", fn)) == "ok"
        assert fn.calls == 1
        assert sleeps == []

    def test_recovers_after_transient_failures(self):
        policy, sleeps = _policy()
        fn = Flaky(ConnectionError("reset"), ConnectionError("reset"))
        assert run(policy.run("op", fn)) == "ok"
        assert fn.calls == 3
        assert sleeps == [1.0, 2.0]

    def test_rolled_back_connection_retried(self):
        policy, sleeps = _policy()
        fn = Flaky(RuntimeError("Can't reconnect until invalid transaction is rolled back"))
        assert run(policy.run("op", fn)) == "ok"
        assert fn.calls == 2
        assert sleeps == [1.0]

    def test_backoff_doubles(self):
        policy, _ = _policy(max_attempts=5, base_delay=0.5)
        assert [policy.delay_for(n) for n in range(1, 5)] == [0.5, 1.0, 2.0, 4.0]

    def test_exhausted(self):
        policy, sleeps = _policy()
        last = ConnectionError("third")
        fn = Flaky(ConnectionError("first"), ConnectionError("second"), last)
        with pytest.raises(TransactionError) as info:
            run(policy.run("save", fn))
        assert fn.calls == 3
        assert sleeps == [1.0, 2.0]
        assert info.value.operation == "save"
        assert info.value.cause is last
        assert "3 attempts" in str(info.value)

    def test_unique_violation_not_retried(self):
        policy, sleeps = _policy()
        cause = BackendError("duplicate key", code=UNIQUE_VIOLATION)
        fn = Flaky(cause)
        with pytest.raises(TransactionError) as info:
            run(policy.run("save", fn))
        assert fn.calls == 1
        assert sleeps == []
        assert info.value.cause is cause

    def test_validation_error_passes_through(self):
        policy, sleeps = _policy()
        fn = Flaky(ValidationError("Name is required", "name"))
        with pytest.raises(ValidationError):
            run(policy.run("save", fn))
        assert fn.calls == 1
        assert sleeps == []

    def test_transaction_error_not_rewrapped(self):
        policy, _ = _policy()
        original = TransactionError("gone", "save")
        with pytest.raises(TransactionError) as info:
            run(policy.run("save", Flaky(original)))
        assert info.value is original

    def test_single_attempt(self):
        policy, sleeps = _policy(max_attempts=1)
        with pytest.raises(TransactionError):
            run(policy.run("op", Flaky(ConnectionError("down"))))
        assert sleeps == []


class TestPolicyArguments:
    def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)

    def test_rejects_negative_delay(self):
        with pytest.raises(ValueError):
            RetryPolicy(base_delay=-1)
