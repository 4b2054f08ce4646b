"""Bounded worker pool for per-package tasks."""

from __future__ import annotations

import concurrent.futures
import logging
import threading
from collections.abc import Callable
from concurrent.futures import Future
from typing import Any, TypeVar

from depcache.utils.platform import cpu_count

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PoolStoppedError(RuntimeError):
    """Error when work is submitted to a pool that has been shut down."""

    def __init__(self) -> None:
        super().__init__("Worker pool has been stopped")


class WorkerPool:
    """Runs independent tasks on a fixed number of threads.

    Each task's return value or exception is delivered through the
    :class:`~concurrent.futures.Future` returned by :meth:`enqueue`; an
    exception inside a task never stops a worker thread. Shutting the
    pool down runs every task already queued and joins all workers.

    Usage:
        with WorkerPool(4) as pool:
            futures = [pool.enqueue(work, item) for item in items]
        results = [f.result() for f in futures]
    """

    def __init__(self, max_workers: int | None = None):
        """Initialize the pool.

        Args:
            max_workers: Maximum number of worker threads (default: CPU count)
        """
        if max_workers is None or max_workers <= 0:
            max_workers = cpu_count()
        self._max_workers = max_workers
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="depcache-worker",
        )
        self._lock = threading.Lock()
        self._stopped = False
        logger.debug("Started worker pool with %d workers", max_workers)

    @property
    def max_workers(self) -> int:
        """Get the maximum number of worker threads."""
        return self._max_workers

    @property
    def stopped(self) -> bool:
        """Whether the pool has been shut down."""
        return self._stopped

    def enqueue(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> Future[T]:
        """Queue a task for execution.

        Args:
            fn: Callable to run on a worker thread
            *args: Positional arguments for ``fn``
            **kwargs: Keyword arguments for ``fn``

        Returns:
            Future yielding the task's result or exception

        Raises:
            PoolStoppedError: If the pool has been shut down
        """
        with self._lock:
            if self._stopped:
                raise PoolStoppedError()
            return self._executor.submit(fn, *args, **kwargs)

    def shutdown(self) -> None:
        """Stop accepting tasks, finish all queued ones and join the workers."""
        with self._lock:
            if self._stopped:
                return
            self._stopped = True
        self._executor.shutdown(wait=True)
        logger.debug("Worker pool shut down")

    def __enter__(self) -> WorkerPool:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.shutdown()

