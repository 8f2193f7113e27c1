# jsonstore/queue.py
"""
Serialized execution of store operations.

Every JSONStore instance owns one OperationQueue. Tasks are started in
submission order and at most one runs at a time, so multi-statement
sequences (BEGIN ... COMMIT) submitted as a single task are never
interleaved with statements from another caller on the same connection.

Usage:
    queue = OperationQueue(name="people")
    future = queue.enqueue(lambda: driver.get("people", None))
    result = future.result()
    queue.close()
"""

from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, TypeVar

from jsonstore.exceptions import StoreClosedError
from jsonstore.logging.logger import get_logger
from jsonstore.logging.tags import QUEUE

logger = get_logger(__name__)

T = TypeVar("T")


class OperationQueue:
    """
    Strict FIFO of deferred tasks with a single task in flight.

    Backed by a one-worker thread pool: the next task is dequeued only after
    the previous one has settled, whether it returned or raised. Queues are
    independent of each other.
    """

    def __init__(self, name: str = "jsonstore", warn_size: int = 100):
        self.name = name
        self.warn_size = warn_size
        self._executor = ThreadPoolExecutor(
            max_workers=1,
            thread_name_prefix=f"jsonstore_{name}",
        )
        self._lock = threading.Lock()
        self._pending = 0
        self._closed = False

    def enqueue(self, task: Callable[[], T]) -> Future[T]:
        """
        Submit a zero-argument task.

        Returns:
            Future settled with the task's return value or exception.

        Raises:
            StoreClosedError: If the queue has been closed.
        """
        with self._lock:
            if self._closed:
                raise StoreClosedError(f"Operation queue '{self.name}' is closed")

            self._pending += 1
            pending = self._pending
            future = self._executor.submit(task)

        if pending >= self.warn_size:
            logger.warning(f"{QUEUE} '{self.name}' backlog: {pending} pending operations")

        future.add_done_callback(self._settled)
        return future

    def _settled(self, future: Future) -> None:
        with self._lock:
            self._pending -= 1

    @property
    def pending(self) -> int:
        """Number of submitted tasks that have not settled yet."""
        return self._pending

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self, wait: bool = True) -> None:
        """Stop accepting tasks; optionally wait for queued ones to finish."""
        with self._lock:
            if self._closed:
                return
            self._closed = True

        self._executor.shutdown(wait=wait)
        logger.debug(f"{QUEUE} '{self.name}' closed")
