"""
Mutation queue for the file-backed store.

All writes to a single-document store go through one worker thread that
consumes a FIFO of mutator callables. This gives every write a total order:
each mutator runs after every earlier one has finished and sees its result,
so two concurrent inserts of the same id cannot both succeed.

This module exposes:
- MutationQueue.submit(fn) -> Future   # enqueue, return immediately
- MutationQueue.run(fn) -> result      # enqueue and block for the result
- MutationQueue.close()                # drain and stop the worker
"""

from __future__ import annotations

import logging
import queue
import threading
from concurrent.futures import Future
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

_STOP = object()


class QueueClosedError(RuntimeError):
    """Raised when submitting to a queue that has been closed."""


class MutationQueue:
    """Single-consumer FIFO of mutators."""

    def __init__(self, name: str = "relmap-mutations"):
        self._queue: queue.Queue = queue.Queue()
        self._closed = False
        self._lock = threading.Lock()
        self._worker = threading.Thread(target=self._drain, name=name, daemon=True)
        self._worker.start()

    @property
    def is_closed(self) -> bool:
        return self._closed

    def submit(self, fn: Callable[[], Any]) -> Future:
        """
        Enqueue a mutator.

        A mutator that raises only fails its own Future; the queue keeps
        going with the next one.
        """
        future: Future = Future()
        with self._lock:
            if self._closed:
                raise QueueClosedError("Mutation queue is closed")
            self._queue.put((fn, future))
        return future

    def run(self, fn: Callable[[], Any], timeout: Optional[float] = None) -> Any:
        """Enqueue and wait. Re-raises whatever the mutator raised."""
        return self.submit(fn).result(timeout=timeout)

    def close(self, timeout: Optional[float] = None) -> None:
        """Stop accepting work, finish what is queued, stop the worker."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._queue.put(_STOP)
        if threading.current_thread() is not self._worker:
            self._worker.join(timeout)

    def _drain(self) -> None:
        while True:
            item = self._queue.get()
            if item is _STOP:
                break
            fn, future = item
            if not future.set_running_or_notify_cancel():
                continue
            try:
                result = fn()
            except BaseException as e:
                logger.debug(f"Mutation failed: {e}")
                future.set_exception(e)
            else:
                future.set_result(result)
