"""Tests for the fixed-delay retry policy."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from vaultsecure_operator.utils.retry import RetryExhausted, RetryPolicy


class TestRetryPolicy:
    """Test cases for RetryPolicy."""

    def test_first_attempt_succeeds(self):
        """Test that a successful call is not retried."""
        sleeps: list[float] = []
        policy = RetryPolicy(attempts=5, delay=3.0, sleep=sleeps.append)

        result = policy.call(lambda: "ok")

        assert result.value == "ok"
        assert result.attempts == 1
        assert sleeps == []

    def test_retries_until_success(self):
        """Test that failures are retried with a fixed delay."""
        sleeps: list[float] = []
        policy = RetryPolicy(attempts=5, delay=3.0, sleep=sleeps.append)
        fn = MagicMock(side_effect=[TimeoutError("t1"), TimeoutError("t2"), "done"])

        result = policy.call(fn)

        assert result.value == "done"
        assert result.attempts == 3
        assert fn.call_count == 3
        assert sleeps == [3.0, 3.0]

    def test_exhausted(self):
        """Test that the last error is reported once the budget is spent."""
        sleeps: list[float] = []
        policy = RetryPolicy(attempts=5, delay=3.0, sleep=sleeps.append)
        fn = MagicMock(side_effect=ConnectionError("vault unreachable"))

        with pytest.raises(RetryExhausted) as exc_info:
            policy.call(fn)

        error = exc_info.value
        assert fn.call_count == 5
        assert error.attempts == 5
        assert error.delay == 3.0
        assert isinstance(error.last_error, ConnectionError)
        assert sleeps == [3.0] * 4
        assert sum(sleeps) == policy.worst_case_wait == 12.0
        assert "vault unreachable" in str(error)

    def test_exhausted_message_is_sanitized(self):
        """Test that the summary never echoes a secret."""
        policy = RetryPolicy(attempts=1, delay=0, sleep=lambda _: None)

        with pytest.raises(RetryExhausted) as exc_info:
            policy.call(MagicMock(side_effect=ValueError("password: hunter2")))

        assert "hunter2" not in str(exc_info.value)

    def test_single_attempt_never_sleeps(self):
        """Test that a policy with one attempt fails without waiting."""
        sleeps: list[float] = []
        policy = RetryPolicy(attempts=1, delay=3.0, sleep=sleeps.append)

        with pytest.raises(RetryExhausted):
            policy.call(MagicMock(side_effect=RuntimeError("boom")))

        assert sleeps == []

    def test_none_result_is_success(self):
        """Test that a call returning None counts as success."""
        policy = RetryPolicy(attempts=3, delay=1.0, sleep=lambda _: None)

        result = policy.call(lambda: None)

        assert result.value is None
        assert result.attempts == 1

    @pytest.mark.parametrize("attempts,delay", [(0, 1.0), (3, -1.0)])
    def test_invalid_configuration(self, attempts, delay):
        """Test that nonsensical policies are rejected."""
        with pytest.raises(ValueError):
            RetryPolicy(attempts=attempts, delay=delay)

    def test_defaults(self):
        """Test the default rotation budget."""
        policy = RetryPolicy()

        assert policy.attempts == 5
        assert policy.delay == 3.0
        assert policy.worst_case_wait == 12.0
