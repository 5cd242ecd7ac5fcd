"""
Unit tests for the retry controller.

WHAT: Attempt bound, fixed delay, error propagation
WHY: Every mutating call goes through with_retry
HOW: Scripted async operations and a recording sleep
"""

import asyncio

import pytest

from marketchat.services.retry import with_retry
from marketchat.utils.exceptions import TransientNetworkError, IdempotentConflictError


class Flaky:
    """Fails a fixed number of times, then returns a value."""

    def __init__(self, failures: int, value="ok"):
        self.failures = failures
        self.value = value
        self.attempts = 0

    async def __call__(self):
        self.attempts += 1
        if self.attempts <= self.failures:
            raise TransientNetworkError(f"attempt {self.attempts} failed")
        return self.value


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


@pytest.mark.unit
class TestWithRetry:

    @pytest.mark.asyncio
    async def test_first_success_is_returned_without_retry(self):
        operation = Flaky(failures=0, value=42)
        sleep = RecordingSleep()

        result = await with_retry(operation, max_retries=2, delay=1.0, sleep=sleep)

        assert result == 42
        assert operation.attempts == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_recovers_after_transient_failures(self):
        operation = Flaky(failures=2)
        sleep = RecordingSleep()

        result = await with_retry(operation, max_retries=2, delay=1.0, sleep=sleep)

        assert result == "ok"
        assert operation.attempts == 3
        assert sleep.delays == [1.0, 1.0]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("max_retries", [0, 1, 2, 4])
    async def test_always_failing_operation_is_attempted_max_retries_plus_one(self, max_retries):
        operation = Flaky(failures=100)

        with pytest.raises(TransientNetworkError) as exc_info:
            await with_retry(operation, max_retries=max_retries, delay=0, sleep=RecordingSleep())

        assert operation.attempts == max_retries + 1
        # The final attempt's error is the one surfaced
        assert exc_info.value.message == f"attempt {max_retries + 1} failed"

    @pytest.mark.asyncio
    async def test_delay_is_fixed_not_exponential(self):
        sleep = RecordingSleep()

        with pytest.raises(TransientNetworkError):
            await with_retry(Flaky(failures=10), max_retries=3, delay=0.5, sleep=sleep)

        assert sleep.delays == [0.5, 0.5, 0.5]

    @pytest.mark.asyncio
    async def test_error_semantics_are_not_interpreted(self):
        """An idempotent conflict is retried and propagated like any other error."""
        attempts = 0

        async def unlike():
            nonlocal attempts
            attempts += 1
            raise IdempotentConflictError("You have not liked this listing", conflict="not_liked")

        with pytest.raises(IdempotentConflictError):
            await with_retry(unlike, max_retries=2, delay=0, sleep=RecordingSleep())

        assert attempts == 3

    @pytest.mark.asyncio
    async def test_defaults_come_from_settings(self, monkeypatch):
        from marketchat.core.config import settings
        monkeypatch.setattr(settings, "RETRY_MAX_RETRIES", 1)
        monkeypatch.setattr(settings, "RETRY_DELAY", 0.25)
        operation = Flaky(failures=5)
        sleep = RecordingSleep()

        with pytest.raises(TransientNetworkError):
            await with_retry(operation, sleep=sleep)

        assert operation.attempts == 2
        assert sleep.delays == [0.25]

    @pytest.mark.asyncio
    async def test_negative_max_retries_rejected(self):
        with pytest.raises(ValueError):
            await with_retry(Flaky(failures=0), max_retries=-1, delay=0)

    @pytest.mark.asyncio
    async def test_cancellation_is_not_retried(self):
        attempts = 0

        async def cancelled():
            nonlocal attempts
            attempts += 1
            raise asyncio.CancelledError()

        with pytest.raises(asyncio.CancelledError):
            await with_retry(cancelled, max_retries=2, delay=0, sleep=RecordingSleep())

        assert attempts == 1
