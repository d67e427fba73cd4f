"""
Unit tests for the single-lane FIFO RateLimiter.

Tests verify that queued calls:
1. Start no faster than the configured rate
2. Run strictly in submission order
3. Fail independently of each other
"""

import asyncio
import gc

import pytest

from app.services.mfl.client import RateLimiter


def recording_work(label, log, delay=0.0, error=None):
    """Build a queued call that records when it starts."""
    async def work():
        log.append((label, asyncio.get_running_loop().time()))
        if delay:
            await asyncio.sleep(delay)
        if error is not None:
            raise error
        return label
    return work


@pytest.mark.asyncio
async def test_rate_bound_between_first_and_last_start():
    """N simultaneous calls at R/s span at least (N-1)/R seconds."""
    limiter = RateLimiter(max_requests_per_second=20)
    log = []

    results = await asyncio.gather(
        *(limiter.enqueue(recording_work(i, log)) for i in range(5))
    )

    assert results == [0, 1, 2, 3, 4]
    span = log[-1][1] - log[0][1]
    assert span >= 4 * limiter.interval - 0.005


@pytest.mark.asyncio
async def test_fifo_order_regardless_of_latency():
    """A slow first call still runs before quicker calls queued after it."""
    limiter = RateLimiter(max_requests_per_second=100)
    log = []

    await asyncio.gather(
        limiter.enqueue(recording_work("A", log, delay=0.05)),
        limiter.enqueue(recording_work("B", log)),
        limiter.enqueue(recording_work("C", log, delay=0.01)),
    )

    assert [label for label, _ in log] == ["A", "B", "C"]


@pytest.mark.asyncio
async def test_failure_is_isolated():
    """A failing call reaches only its own caller; later calls still run."""
    limiter = RateLimiter(max_requests_per_second=100)
    log = []

    results = await asyncio.gather(
        limiter.enqueue(recording_work("A", log)),
        limiter.enqueue(recording_work("B", log, error=ValueError("boom"))),
        limiter.enqueue(recording_work("C", log)),
        return_exceptions=True,
    )

    assert results[0] == "A"
    assert isinstance(results[1], ValueError)
    assert results[2] == "C"
    assert [label for label, _ in log] == ["A", "B", "C"]


@pytest.mark.asyncio
async def test_drain_restarts_after_idle():
    """Once the queue empties the drain stops and the next enqueue re-arms it."""
    limiter = RateLimiter(max_requests_per_second=100)
    log = []

    assert await limiter.enqueue(recording_work("A", log)) == "A"
    await asyncio.sleep(limiter.interval * 3)
    assert not limiter.is_draining

    assert await limiter.enqueue(recording_work("B", log)) == "B"
    assert limiter.pending == 0


@pytest.mark.asyncio
async def test_pending_counts_waiting_calls():
    limiter = RateLimiter(max_requests_per_second=100)
    release = asyncio.Event()

    async def blocked():
        await release.wait()
        return "done"

    first = asyncio.ensure_future(limiter.enqueue(blocked))
    second = asyncio.ensure_future(limiter.enqueue(blocked))
    await asyncio.sleep(0)
    await asyncio.sleep(0)

    assert limiter.pending == 1

    release.set()
    assert await asyncio.gather(first, second) == ["done", "done"]


@pytest.mark.asyncio
async def test_cancelled_caller_does_not_cancel_queued_work():
    limiter = RateLimiter(max_requests_per_second=100)
    log = []

    caller = asyncio.ensure_future(limiter.enqueue(recording_work("A", log, delay=0.02)))
    await asyncio.sleep(0.005)
    caller.cancel()

    await asyncio.sleep(0.05)
    assert [label for label, _ in log] == ["A"]


@pytest.mark.asyncio
async def test_failure_after_caller_cancelled_is_not_reported_as_unretrieved():
    loop = asyncio.get_running_loop()
    reported = []
    previous_handler = loop.get_exception_handler()
    loop.set_exception_handler(lambda _loop, context: reported.append(context))
    try:
        limiter = RateLimiter(max_requests_per_second=100)
        log = []

        caller = asyncio.ensure_future(
            limiter.enqueue(recording_work("A", log, delay=0.02, error=RuntimeError("upstream down")))
        )
        await asyncio.sleep(0.005)
        caller.cancel()
        with pytest.raises(asyncio.CancelledError):
            await caller

        while limiter.is_draining:
            await asyncio.sleep(0.01)
        del caller
        gc.collect()
        await asyncio.sleep(0)
    finally:
        loop.set_exception_handler(previous_handler)

    assert [label for label, _ in log] == ["A"]
    assert not any("never retrieved" in context.get("message", "") for context in reported)


@pytest.mark.asyncio
async def test_close_fails_waiting_calls():
    limiter = RateLimiter(max_requests_per_second=1)
    log = []

    first = asyncio.ensure_future(limiter.enqueue(recording_work("A", log)))
    second = asyncio.ensure_future(limiter.enqueue(recording_work("B", log)))
    assert await first == "A"

    await limiter.close()

    with pytest.raises(RuntimeError):
        await second
    with pytest.raises(RuntimeError):
        await limiter.enqueue(recording_work("C", log))
    assert [label for label, _ in log] == ["A"]


def test_rejects_non_positive_rate():
    with pytest.raises(ValueError):
        RateLimiter(max_requests_per_second=0)
