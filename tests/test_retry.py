import asyncio

import pytest

from video_pipeline.pipeline.errors import ProviderError
from video_pipeline.pipeline.retry import RetryExhausted, RetryPolicy


class Flaky:
    def __init__(self, failures: int):
        self.failures = failures
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise ProviderError(f"failure {self.calls}", provider="flaky")
        return "ok"


class SleepRecorder:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


def test_backoff_is_exponential_and_capped():
    policy = RetryPolicy(max_attempts=5, initial_delay=1.0, multiplier=2.0, max_delay=3.0)
    assert [policy.delay_for(n) for n in (1, 2, 3, 4)] == [1.0, 2.0, 3.0, 3.0]


async def test_succeeds_after_transient_failures():
    policy = RetryPolicy(max_attempts=3, initial_delay=1.0, multiplier=2.0, max_delay=30.0)
    call, sleep = Flaky(failures=2), SleepRecorder()

    outcome = await policy.run(call, sleep=sleep)

    assert outcome.value == "ok"
    assert outcome.attempts == 3
    assert sleep.delays == [1.0, 2.0]


async def test_gives_up_with_last_provider_message():
    policy = RetryPolicy(max_attempts=3, initial_delay=0)
    call = Flaky(failures=10)

    with pytest.raises(RetryExhausted) as exc_info:
        await policy.run(call, sleep=SleepRecorder())

    assert call.calls == 3
    assert exc_info.value.attempts == 3
    assert exc_info.value.message == "failure 3"
    assert exc_info.value.provider == "flaky"


async def test_unexpected_errors_are_not_retried():
    calls = []

    async def broken():
        calls.append(1)
        raise ValueError("bug")

    with pytest.raises(ValueError):
        await RetryPolicy(max_attempts=3, initial_delay=0).run(broken, sleep=SleepRecorder())
    assert len(calls) == 1


async def test_timeout_counts_as_failed_attempt():
    async def slow():
        await asyncio.sleep(1)

    policy = RetryPolicy(max_attempts=2, initial_delay=0, timeout=0.01)
    with pytest.raises(RetryExhausted) as exc_info:
        await policy.run(slow, label="slow call", sleep=SleepRecorder())

    assert exc_info.value.attempts == 2
    assert "timed out" in exc_info.value.message
