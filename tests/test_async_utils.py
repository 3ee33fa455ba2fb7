"""
Tests for async_utils module.

Covers run_sync, BoundedRunner (limit and cancellation) and gather_limited.
"""

import asyncio
import threading
import time

import pytest

from mdbook_confluence.core.async_utils import (
    BoundedRunner,
    RunCancelled,
    gather_limited,
    run_sync,
)


def _sync_add(a: int, b: int) -> int:
    """Simple sync function for testing."""
    return a + b


async def test_run_sync_calls_function():
    """run_sync delegates to asyncio.to_thread with correct args."""
    assert await run_sync(_sync_add, 3, 4) == 7


async def test_run_sync_passes_kwargs():
    def _kw_func(*, name: str) -> str:
        return f"hello {name}"

    assert await run_sync(_kw_func, name="world") == "hello world"


def test_runner_rejects_zero():
    with pytest.raises(ValueError):
        BoundedRunner(0)


async def test_runner_limits_concurrency():
    runner = BoundedRunner(2)
    lock = threading.Lock()
    active = 0
    peak = 0

    def _work(i):
        nonlocal active, peak
        with lock:
            active += 1
            peak = max(peak, active)
        time.sleep(0.02)
        with lock:
            active -= 1
        return i

    results = await gather_limited([runner.run(_work, i) for i in range(6)])

    assert results == list(range(6))
    assert peak <= 2


async def test_run_unless_runs_when_not_cancelled():
    runner = BoundedRunner(1)
    assert await runner.run_unless(lambda: False, _sync_add, 1, 2) == 3


async def test_run_unless_skips_when_cancelled():
    runner = BoundedRunner(1)
    called = []

    with pytest.raises(RunCancelled):
        await runner.run_unless(lambda: True, called.append, 1)
    assert called == []


async def test_queued_call_cancelled_while_waiting():
    runner = BoundedRunner(1)
    cancelled = False
    started = []

    def _first():
        time.sleep(0.02)
        return "first"

    async def _cancel_soon():
        nonlocal cancelled
        await asyncio.sleep(0)
        cancelled = True

    first = asyncio.create_task(runner.run_unless(lambda: cancelled, _first))
    second = asyncio.create_task(
        runner.run_unless(lambda: cancelled, started.append, "second")
    )
    await _cancel_soon()

    assert await first == "first"
    with pytest.raises(RunCancelled):
        await second
    assert started == []


async def test_gather_limited_propagates_errors():
    runner = BoundedRunner(2)

    def _boom():
        raise KeyError("x")

    with pytest.raises(KeyError):
        await gather_limited([runner.run(_boom), runner.run(_sync_add, 1, 1)])
