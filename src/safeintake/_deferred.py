"""Deferred execution: run blocking work off the event loop.

``defer`` is the single suspension point of the intake pipeline.  The
calling coroutine is suspended while *work* runs on a bounded,
process-wide thread pool, and is resumed exactly once with the result or
with the exception *work* raised (unchanged, not wrapped).

Cancelling the awaiting task only stops the wait; work already handed to
a worker thread, including any subprocess it started, runs to completion.
"""

from __future__ import annotations

__author__ = "Artur Barseghyan <artur.barseghyan@gmail.com>"
__copyright__ = "2026 Artur Barseghyan"
__license__ = "MIT"
__all__ = (
    "WorkerPool",
    "configure_default_pool",
    "defer",
    "get_default_pool",
    "shutdown_default_pool",
)

import asyncio
import concurrent.futures
import functools
import logging
import threading
from collections.abc import Callable
from typing import Any, TypeVar

from safeintake._config import IntakeConfig

log = logging.getLogger("safeintake")

T = TypeVar("T")


class WorkerPool:
    """A bounded thread pool that hands results back to awaiting tasks.

    :param max_workers: Maximum number of concurrently running jobs.
    """

    def __init__(self, max_workers: int) -> None:
        if max_workers < 1:
            raise ValueError(f"max_workers must be positive, got {max_workers}")
        self._max_workers = max_workers
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="safeintake-worker",
        )

    @property
    def max_workers(self) -> int:
        return self._max_workers

    async def defer(self, work: Callable[..., T], /, *args: Any, **kwargs: Any) -> T:
        """Run ``work(*args, **kwargs)`` on the pool and await its outcome.

        Must be awaited from a coroutine running on an event loop.
        """
        loop = asyncio.get_running_loop()
        call = functools.partial(work, *args, **kwargs)
        log.debug("Deferring %s to worker pool", getattr(work, "__qualname__", work))
        return await loop.run_in_executor(self._executor, call)

    def submit(
        self, work: Callable[..., T], /, *args: Any, **kwargs: Any
    ) -> concurrent.futures.Future[T]:
        """Queue *work* without waiting for it."""
        return self._executor.submit(work, *args, **kwargs)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)


_default_pool: WorkerPool | None = None
_default_pool_lock = threading.Lock()


def get_default_pool() -> WorkerPool:
    """Return the process-wide pool, creating it on first use.

    The pool size comes from ``SAFEINTAKE_MAX_WORKERS``.
    """
    global _default_pool
    with _default_pool_lock:
        if _default_pool is None:
            _default_pool = WorkerPool(IntakeConfig.from_env().max_workers)
        return _default_pool


def configure_default_pool(max_workers: int) -> WorkerPool:
    """Replace the process-wide pool with one of *max_workers* threads.

    Jobs already queued on the previous pool still complete.
    """
    global _default_pool
    pool = WorkerPool(max_workers)
    with _default_pool_lock:
        previous, _default_pool = _default_pool, pool
    if previous is not None:
        previous.shutdown(wait=False)
    return pool


def shutdown_default_pool(wait: bool = True) -> None:
    global _default_pool
    with _default_pool_lock:
        previous, _default_pool = _default_pool, None
    if previous is not None:
        previous.shutdown(wait=wait)


async def defer(work: Callable[..., T], /, *args: Any, **kwargs: Any) -> T:
    """Run blocking *work* on the process-wide pool and await its outcome."""
    return await get_default_pool().defer(work, *args, **kwargs)
