"""Async utilities for running blocking REST calls from the sync engine."""

import asyncio
import logging
from typing import Any, Callable, Coroutine, Sequence, TypeVar

T = TypeVar("T")
logger = logging.getLogger(__name__)


class RunCancelled(Exception):
    """Raised by ``BoundedRunner.run_unless`` when the call was not started."""


async def run_sync(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Run a synchronous function in a thread pool without blocking the event loop.

    Does NOT acquire any semaphore.

    Args:
        func: Synchronous function to call
        *args: Positional arguments for func
        **kwargs: Keyword arguments for func

    Returns:
        Result of func(*args, **kwargs)
    """
    return await asyncio.to_thread(func, *args, **kwargs)


class BoundedRunner:
    """Run blocking calls in threads, at most ``max_parallel`` at a time.

    One runner is created per sync pass and handed to the reader and the
    executor, so the limit covers every request of the pass.

    Args:
        max_parallel: Maximum number of concurrent calls.
    """

    def __init__(self, max_parallel: int = 4) -> None:
        if max_parallel < 1:
            raise ValueError("max_parallel must be at least 1")
        self.max_parallel = max_parallel
        self._semaphore: asyncio.Semaphore | None = None
        logger.debug(
            "Request limiter initialized: max_parallel=%d", max_parallel
        )

    @property
    def semaphore(self) -> asyncio.Semaphore:
        # Created lazily so the semaphore binds to the running loop
        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self.max_parallel)
        return self._semaphore

    async def run(
        self, func: Callable[..., T], *args: Any, **kwargs: Any
    ) -> T:
        """Run *func* in a thread once a slot is free.

        Args:
            func: Synchronous function to call
            *args: Positional arguments for func
            **kwargs: Keyword arguments for func

        Returns:
            Result of func(*args, **kwargs)
        """
        async with self.semaphore:
            return await asyncio.to_thread(func, *args, **kwargs)

    async def run_unless(
        self,
        cancelled: Callable[[], bool],
        func: Callable[..., T],
        *args: Any,
    ) -> T:
        """Like ``run``, but re-check *cancelled* once a slot is free.

        Calls still queued when the run is aborted never start.

        Raises:
            RunCancelled: If *cancelled* returns True before the call.
        """
        async with self.semaphore:
            if cancelled():
                raise RunCancelled(getattr(func, "__name__", repr(func)))
            return await asyncio.to_thread(func, *args)


async def gather_limited(
    coros: Sequence[Coroutine[Any, Any, T]],
) -> list[T]:
    """Run coroutines concurrently and return results in input order.

    Each coroutine should use ``BoundedRunner.run`` internally.
    Exceptions propagate from the first failure.
    """
    return list(await asyncio.gather(*coros))
