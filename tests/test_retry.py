import pytest

from chronicle.domain.errors import RetryExhausted, TransientNetworkError
from chronicle.infrastructure.resilience.retry import RetryExecutor

pytestmark = pytest.mark.anyio


class Recorder:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


async def test_retry_succeeds_after_transient_failures():
    sleeper = Recorder()
    retry = RetryExecutor(max_attempts=4, initial_delay=1.0, sleep=sleeper)
    calls = {"n": 0}

    async def flaky():
        calls["n"] += 1
        if calls["n"] < 3:
            raise TransientNetworkError("boom")
        return "ok"

    assert await retry.run(flaky, operation_name="flaky") == "ok"
    assert calls["n"] == 3
    assert sleeper.delays == [1.0, 2.0]


async def test_retry_exhaustion_is_typed():
    retry = RetryExecutor(max_attempts=3, initial_delay=0.5, sleep=Recorder())

    async def always_down():
        raise ConnectionError("refused")

    with pytest.raises(RetryExhausted) as info:
        await retry.run(always_down, operation_name="upload")

    assert info.value.attempts == 3
    assert info.value.operation_name == "upload"
    assert isinstance(info.value.last_error, ConnectionError)


async def test_non_retryable_errors_propagate_immediately():
    sleeper = Recorder()
    retry = RetryExecutor(max_attempts=5, sleep=sleeper)
    calls = {"n": 0}

    async def broken():
        calls["n"] += 1
        raise ValueError("bad input")

    with pytest.raises(ValueError):
        await retry.run(broken)

    assert calls["n"] == 1
    assert sleeper.delays == []


def test_backoff_schedule():
    exponential = RetryExecutor(initial_delay=1.0, max_delay=5.0)
    assert [exponential.delay_for(a) for a in range(1, 6)] == [1.0, 2.0, 4.0, 5.0, 5.0]

    fixed = RetryExecutor(initial_delay=2.0, strategy="fixed")
    assert [fixed.delay_for(a) for a in range(1, 4)] == [2.0, 2.0, 2.0]


def test_invalid_configuration():
    with pytest.raises(ValueError):
        RetryExecutor(max_attempts=0)
    with pytest.raises(ValueError):
        RetryExecutor(strategy="jittery")
