"""
Test the shared retry policy.
"""

import pytest

from buyback.core.exceptions import RateLimitError, VenueRejectedError
from buyback.services.retry import RetryPolicy

from .fakes import RecordingSleep


class Flaky:
    def __init__(self, failures):
        self.failures = list(failures)
        self.calls = 0

    async def __call__(self, value):
        self.calls += 1
        if self.failures:
            raise self.failures.pop(0)
        return value


@pytest.mark.asyncio
async def test_backoff_doubles():
    sleep = RecordingSleep()
    policy = RetryPolicy(max_attempts=4, base_delay=1.0, retry_on=(RateLimitError,), sleep=sleep)
    fn = Flaky([RateLimitError("429")] * 3)

    assert await policy.call("lookup", fn, "ok") == "ok"
    assert fn.calls == 4
    assert sleep.delays == [1.0, 2.0, 4.0]


@pytest.mark.asyncio
async def test_last_error_propagates():
    sleep = RecordingSleep()
    policy = RetryPolicy(max_attempts=2, base_delay=0.5, retry_on=(RateLimitError,), sleep=sleep)
    fn = Flaky([RateLimitError("first"), RateLimitError("second")])

    with pytest.raises(RateLimitError, match="second"):
        await policy.call("lookup", fn, None)
    assert sleep.delays == [0.5]


@pytest.mark.asyncio
async def test_other_errors_are_not_retried():
    sleep = RecordingSleep()
    policy = RetryPolicy(max_attempts=5, base_delay=1.0, retry_on=(RateLimitError,), sleep=sleep)
    fn = Flaky([VenueRejectedError("no")])

    with pytest.raises(VenueRejectedError):
        await policy.call("lookup", fn, None)
    assert fn.calls == 1
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_delay_is_capped():
    sleep = RecordingSleep()
    policy = RetryPolicy(max_attempts=4, base_delay=10.0, retry_on=(RateLimitError,), max_delay=15.0, sleep=sleep)

    await policy.call("lookup", Flaky([RateLimitError("429")] * 3), None)

    assert sleep.delays == [10.0, 15.0, 15.0]
