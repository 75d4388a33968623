"""Single-flight execution queues, one per trigger kind.

Each queue owns exactly one worker thread, so polls of the same kind run
strictly one at a time in submission order while different kinds make
progress independently.  Queues do not deduplicate: callers decide whether
a fire is worth submitting before calling ``submit()``.

A task that raises does not take the worker thread down; the exception is
kept on the returned future.
"""

from __future__ import annotations

import re
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable

from polltrigger.logging import get_logger

log = get_logger(__name__)

Task = Callable[[], Any]


class SingleFlightQueue:
    """FIFO task runner with concurrency 1.

    Usage::

        queue = SingleFlightQueue("FileDigestStrategy")
        future = queue.submit(runner.run)
        outcome = future.result()
    """

    def __init__(self, kind: str, thread_prefix: str = "poll") -> None:
        self.kind = kind
        safe_kind = re.sub(r"[^A-Za-z0-9_.-]", "_", kind) or "trigger"
        self._executor = ThreadPoolExecutor(
            max_workers=1,
            thread_name_prefix=f"{thread_prefix}-{safe_kind}",
        )
        self._pending = 0
        self._pending_lock = threading.Lock()
        self._closed = False

    def submit(self, task: Task) -> Future[Any]:
        """Enqueue *task*.  Raises RuntimeError once the queue is shut down."""
        if self._closed:
            raise RuntimeError(f"Queue for {self.kind!r} is shut down")
        with self._pending_lock:
            self._pending += 1
        try:
            future = self._executor.submit(self._run, task)
        except RuntimeError:
            with self._pending_lock:
                self._pending -= 1
            raise
        log.debug("poll_task_queued", kind=self.kind, pending=self.pending)
        return future

    def _run(self, task: Task) -> Any:
        try:
            return task()
        except Exception as exc:
            log.error("poll_task_failed", kind=self.kind, error=str(exc))
            raise
        finally:
            with self._pending_lock:
                self._pending -= 1

    @property
    def pending(self) -> int:
        """Tasks queued or running."""
        with self._pending_lock:
            return self._pending

    @property
    def is_shutdown(self) -> bool:
        return self._closed

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting tasks.  With *wait*, let queued tasks finish first."""
        self._closed = True
        self._executor.shutdown(wait=wait)
        log.debug("poll_queue_shutdown", kind=self.kind)


class QueueRegistry:
    """Lazily creates one SingleFlightQueue per trigger kind."""

    def __init__(self, thread_prefix: str = "poll") -> None:
        self._thread_prefix = thread_prefix
        self._queues: dict[str, SingleFlightQueue] = {}
        self._lock = threading.Lock()

    def for_kind(self, kind: str) -> SingleFlightQueue:
        with self._lock:
            queue = self._queues.get(kind)
            if queue is None or queue.is_shutdown:
                queue = SingleFlightQueue(kind, self._thread_prefix)
                self._queues[kind] = queue
            return queue

    def kinds(self) -> list[str]:
        with self._lock:
            return list(self._queues)

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            queues = list(self._queues.values())
            self._queues.clear()
        for queue in queues:
            queue.shutdown(wait=wait)


_default_registry: QueueRegistry | None = None
_default_lock = threading.Lock()


def default_registry() -> QueueRegistry:
    """The process-wide registry shared by triggers that don't inject one."""
    global _default_registry
    with _default_lock:
        if _default_registry is None:
            from polltrigger.config import get_settings

            _default_registry = QueueRegistry(get_settings().engine.queue_thread_prefix)
        return _default_registry
