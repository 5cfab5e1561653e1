"""Tests for the retrying invoker."""

import random
from unittest.mock import Mock

import pytest

from src.entraops.engine.exceptions import ThrottledError, ThrottleExhaustedError
from src.entraops.engine.retry import RetryingInvoker, classify_throttle
from tests.fixtures.engine import SleepRecorder


class _HttpError(Exception):
    """Exception shaped like requests.HTTPError."""

    def __init__(self, status_code, headers=None):
        super().__init__(f"HTTP {status_code}")
        self.response = Mock(status_code=status_code, headers=headers or {})


def _flaky(throttles: int, result="ok", retry_after=None):
    calls = {"count": 0}

    def operation():
        calls["count"] += 1
        if calls["count"] <= throttles:
            raise ThrottledError("Too many requests", retry_after=retry_after)
        return result

    return operation, calls


class TestClassifyThrottle:
    """Test throttle classification."""

    def test_throttled_error(self):
        assert classify_throttle(ThrottledError(retry_after=7)) == (True, 7.0)

    def test_status_code_attribute(self):
        error = Exception("throttled")
        error.status_code = 429
        assert classify_throttle(error) == (True, None)

    def test_response_with_retry_after_header(self):
        assert classify_throttle(_HttpError(429, {"Retry-After": "12"})) == (True, 12.0)

    def test_invalid_retry_after_is_ignored(self):
        assert classify_throttle(_HttpError(429, {"Retry-After": "soon"})) == (True, None)

    def test_other_errors_are_not_throttles(self):
        assert classify_throttle(_HttpError(500)) == (False, None)
        assert classify_throttle(ValueError("bad")) == (False, None)


class TestRetryingInvoker:
    """Test RetryingInvoker backoff behaviour."""

    def test_success_first_attempt_does_not_sleep(self):
        sleep = SleepRecorder()
        invoker = RetryingInvoker(sleep=sleep)

        assert invoker.invoke(lambda: 42) == 42
        assert sleep.calls == []

    @pytest.mark.parametrize("throttles", [1, 3, 5])
    def test_retries_until_success(self, throttles):
        sleep = SleepRecorder()
        invoker = RetryingInvoker(max_retries=5, jitter_range=(0.2, 1.0), sleep=sleep)
        operation, calls = _flaky(throttles)

        assert invoker.invoke(operation) == "ok"
        assert calls["count"] == throttles + 1
        assert len(sleep.calls) == throttles
        for k, delay in enumerate(sleep.calls, start=1):
            assert 2**k + 0.2 <= delay <= 2**k + 1.0

    def test_retry_after_wins_when_larger(self):
        sleep = SleepRecorder()
        invoker = RetryingInvoker(max_retries=3, sleep=sleep)
        operation, _ = _flaky(1, retry_after=30)

        invoker.invoke(operation)

        assert sleep.calls == [30.0]

    def test_backoff_wins_when_retry_after_smaller(self):
        sleep = SleepRecorder()
        invoker = RetryingInvoker(max_retries=3, jitter_range=(0.5, 0.5), sleep=sleep)
        operation, _ = _flaky(1, retry_after=1)

        invoker.invoke(operation)

        assert sleep.calls == [2.5]

    def test_exhaustion_raises_after_max_retries_plus_one_attempts(self):
        sleep = SleepRecorder()
        invoker = RetryingInvoker(max_retries=2, sleep=sleep)
        operation, calls = _flaky(10)

        with pytest.raises(ThrottleExhaustedError) as exc_info:
            invoker.invoke(operation, target="alice@contoso.com")

        assert calls["count"] == 3
        assert len(sleep.calls) == 2
        assert exc_info.value.attempts == 3
        assert exc_info.value.target == "alice@contoso.com"
        assert isinstance(exc_info.value.last_error, ThrottledError)
        assert "alice@contoso.com" in str(exc_info.value)

    def test_zero_retries_fails_on_first_throttle(self):
        sleep = SleepRecorder()
        invoker = RetryingInvoker(max_retries=0, sleep=sleep)
        operation, calls = _flaky(1)

        with pytest.raises(ThrottleExhaustedError):
            invoker.invoke(operation)
        assert calls["count"] == 1
        assert sleep.calls == []

    def test_max_retries_override(self):
        invoker = RetryingInvoker(max_retries=5, sleep=SleepRecorder())
        operation, calls = _flaky(10)

        with pytest.raises(ThrottleExhaustedError):
            invoker.invoke(operation, max_retries=1)
        assert calls["count"] == 2

    def test_non_throttle_error_propagates_immediately(self):
        sleep = SleepRecorder()
        invoker = RetryingInvoker(sleep=sleep)
        operation = Mock(side_effect=PermissionError("Authorization_RequestDenied"))

        with pytest.raises(PermissionError):
            invoker.invoke(operation)
        assert operation.call_count == 1
        assert sleep.calls == []

    def test_logs_each_retry(self):
        log = Mock()
        invoker = RetryingInvoker(max_retries=3, sleep=SleepRecorder(), log=log)
        operation, _ = _flaky(2)

        invoker.invoke(operation, target="bob@contoso.com")

        assert log.warning.call_count == 2
        assert "bob@contoso.com" in log.warning.call_args_list[0].args

    def test_calculate_delay_is_deterministic_with_seeded_rng(self):
        first = RetryingInvoker(rng=random.Random(7)).calculate_delay(3)
        second = RetryingInvoker(rng=random.Random(7)).calculate_delay(3)
        assert first == second
        assert 8.2 <= first <= 9.0

    def test_negative_max_retries_rejected(self):
        with pytest.raises(ValueError):
            RetryingInvoker(max_retries=-1)
