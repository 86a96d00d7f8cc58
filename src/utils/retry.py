"""
Retry Policy with Exponential Backoff

Reusable bounded-retry component for calls to rate-limited backends.
Only errors the caller classifies as retryable are retried; anything else
propagates immediately.
"""
import asyncio
import re
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, TypeVar
from loguru import logger

T = TypeVar("T")

_RATE_LIMIT_PHRASES = re.compile(r"\brate[ _-]?limit|\btoo many requests\b", re.IGNORECASE)


class RetryExhaustedError(Exception):
    """Raised when every attempt failed with a retryable error."""

    def __init__(self, attempts: int, last_error: BaseException):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Failed after {attempts} attempts: {last_error}")


def is_rate_limit_error(error: BaseException) -> bool:
    """
    True when an error means "slow down": HTTP 429 or a rate-limit message.

    Works with pydantic-ai's ModelHTTPError and the OpenAI SDK's
    RateLimitError, both of which expose a status_code attribute.
    """
    if getattr(error, "status_code", None) == 429:
        return True
    return _RATE_LIMIT_PHRASES.search(str(error)) is not None


@dataclass
class RetryPolicy:
    """
    Bounded retry with exponential backoff.

    The delay before retry n (1-based) is min(base_delay * 2**(n-1), max_delay),
    so the defaults wait 1s, then 2s, and never more than 10s.

    Usage:
        policy = RetryPolicy(max_attempts=3, base_delay=1.0, max_delay=10.0)
        result = await policy.run(call_backend, should_retry=is_rate_limit_error)
    """
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep, repr=False)

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must be non-negative")

    def delay_for(self, retry_number: int) -> float:
        """Seconds to wait before the given retry (1 = first retry)."""
        return min(self.base_delay * (2 ** (retry_number - 1)), self.max_delay)

    def schedule(self) -> List[float]:
        """Every delay the policy would apply if all attempts failed."""
        return [self.delay_for(n) for n in range(1, self.max_attempts)]

    async def run(
        self,
        func: Callable[[], Awaitable[T]],
        should_retry: Callable[[BaseException], bool] = is_rate_limit_error,
        label: str = "call",
    ) -> T:
        """
        Execute func under the policy.

        Raises:
            RetryExhaustedError: All attempts failed with retryable errors
            Exception: The first non-retryable error, unchanged
        """
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await func()
            except Exception as e:
                if not should_retry(e):
                    raise

                if attempt == self.max_attempts:
                    logger.error(f"❌ {label}: max attempts ({self.max_attempts}) exhausted: {e}")
                    raise RetryExhaustedError(attempt, e) from e

                wait_time = self.delay_for(attempt)
                logger.warning(
                    f"⏱️ {label}: rate limited (attempt {attempt}/{self.max_attempts}), "
                    f"retrying in {wait_time:.1f}s"
                )
                await self.sleep(wait_time)

        # Unreachable: the loop either returns or raises
        raise RuntimeError(f"{label}: retry loop exited unexpectedly")
