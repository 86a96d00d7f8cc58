"""
Tests for the bounded retry policy.
Verifies the backoff schedule and which errors are retried.
"""
import pytest

from src.utils.retry import RetryExhaustedError, RetryPolicy, is_rate_limit_error
from tests.fakes import RateLimitError


class Flaky:
    """Callable failing with `error` for the first `failures` calls."""

    def __init__(self, failures, error=None, result="ok"):
        self.failures = failures
        self.error = error or RateLimitError("429 Too Many Requests")
        self.result = result
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return self.result


class TestSchedule:
    """Tests for delay computation."""

    def test_default_schedule(self):
        """3 attempts wait 1s then 2s."""
        assert RetryPolicy().schedule() == [1.0, 2.0]

    def test_delay_is_capped(self):
        policy = RetryPolicy(max_attempts=6, base_delay=1.0, max_delay=10.0)
        assert policy.schedule() == [1.0, 2.0, 4.0, 8.0, 10.0]

    def test_invalid_attempts(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)


class TestRun:
    """Tests for RetryPolicy.run."""

    @pytest.mark.asyncio
    async def test_success_first_try(self, fast_retry, recording_sleep):
        func = Flaky(failures=0)

        assert await fast_retry.run(func) == "ok"
        assert func.calls == 1
        assert recording_sleep.delays == []

    @pytest.mark.asyncio
    async def test_recovers_after_two_rate_limits(self, fast_retry, recording_sleep):
        """429 twice then success: three calls, sleeping 1s and 2s."""
        func = Flaky(failures=2)

        assert await fast_retry.run(func) == "ok"
        assert func.calls == 3
        assert recording_sleep.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_exhausted_after_max_attempts(self, fast_retry, recording_sleep):
        func = Flaky(failures=10)

        with pytest.raises(RetryExhaustedError) as exc_info:
            await fast_retry.run(func)

        assert func.calls == 3
        assert exc_info.value.attempts == 3
        assert isinstance(exc_info.value.last_error, RateLimitError)
        assert recording_sleep.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_non_retryable_error_propagates(self, fast_retry, recording_sleep):
        """Errors that are not rate limits are raised on the first attempt."""
        func = Flaky(failures=1, error=ValueError("bad request"))

        with pytest.raises(ValueError):
            await fast_retry.run(func)

        assert func.calls == 1
        assert recording_sleep.delays == []

    @pytest.mark.asyncio
    async def test_context_length_error_not_retried(self, fast_retry, recording_sleep):
        func = Flaky(failures=1, error=Exception("Could not generate a reply: maximum context length limit exceeded"))

        with pytest.raises(Exception, match="context length"):
            await fast_retry.run(func)

        assert func.calls == 1
        assert recording_sleep.delays == []

    @pytest.mark.asyncio
    async def test_custom_classifier(self, fast_retry):
        func = Flaky(failures=1, error=TimeoutError("timed out"))

        result = await fast_retry.run(func, should_retry=lambda e: isinstance(e, TimeoutError))

        assert result == "ok"
        assert func.calls == 2


class TestIsRateLimitError:
    """Tests for rate-limit classification."""

    def test_status_code_429(self):
        assert is_rate_limit_error(RateLimitError("slow down")) is True

    def test_message_mentions_rate_limit(self):
        assert is_rate_limit_error(Exception("Rate limit exceeded")) is True
        assert is_rate_limit_error(Exception("Error code: 429 - rate_limit_exceeded")) is True
        assert is_rate_limit_error(Exception("Too Many Requests")) is True

    def test_other_errors(self):
        assert is_rate_limit_error(Exception("500 Internal Server Error")) is False
        assert is_rate_limit_error(ValueError("invalid")) is False

    def test_unrelated_words_containing_rate_and_limit(self):
        error = Exception("Could not generate a reply: maximum context length limit exceeded")
        assert is_rate_limit_error(error) is False
        assert is_rate_limit_error(Exception("moderate usage, no limit applied")) is False
