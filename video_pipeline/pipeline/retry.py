"""
Retry policy for external provider calls.

The policy only knows about attempts and delays. Job rows are written by the
caller once the policy has returned or given up.
"""
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar
import asyncio
import logging

from video_pipeline.config import settings
from video_pipeline.pipeline.errors import ProviderError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryOutcome:
    value: object
    attempts: int


class RetryExhausted(ProviderError):
    """Raised when every attempt failed; ``attempts`` counts provider calls made."""

    def __init__(self, message: str, attempts: int, provider: Optional[str] = None):
        super().__init__(message, provider=provider, attempts=attempts)
        self.attempts = attempts


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    initial_delay: float = 2.0
    multiplier: float = 2.0
    max_delay: float = 30.0
    timeout: Optional[float] = None

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        return cls(
            max_attempts=settings.provider_max_attempts,
            initial_delay=settings.provider_retry_initial_delay,
            multiplier=settings.provider_retry_multiplier,
            max_delay=settings.provider_retry_max_delay,
            timeout=settings.provider_timeout_seconds,
        )

    def delay_for(self, attempt: int) -> float:
        """Backoff before attempt ``attempt + 1`` (1-based ``attempt``)."""
        return min(self.initial_delay * (self.multiplier ** (attempt - 1)), self.max_delay)

    async def run(
        self,
        call: Callable[[], Awaitable[T]],
        label: str = "provider call",
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> RetryOutcome:
        """
        Invoke ``call`` until it succeeds or attempts run out.

        A timeout counts as a failed attempt. Only ``ProviderError`` and
        ``asyncio.TimeoutError`` are retried; anything else propagates at once.
        """
        last_error = ""
        provider = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                if self.timeout:
                    value = await asyncio.wait_for(call(), timeout=self.timeout)
                else:
                    value = await call()
                return RetryOutcome(value=value, attempts=attempt)
            except asyncio.TimeoutError:
                last_error = f"{label} timed out after {self.timeout}s"
            except ProviderError as e:
                last_error = e.message
                provider = e.provider

            if attempt < self.max_attempts:
                delay = self.delay_for(attempt)
                logger.warning(
                    f"{label} failed (attempt {attempt}/{self.max_attempts}): {last_error}. "
                    f"Retrying in {delay:.1f}s"
                )
                await sleep(delay)

        logger.error(f"{label} failed after {self.max_attempts} attempts: {last_error}")
        raise RetryExhausted(last_error, attempts=self.max_attempts, provider=provider)
