"""StaticWorkerPool — in-memory worker registry.

Hosts that already track their workers implement ``WorkerRegistry``
directly; this class covers embedded use and tests.  Workers are kept in
insertion order, which is also the order label resolution returns them in.
"""

from __future__ import annotations

import threading
from typing import Iterable

from polltrigger.logging import get_logger
from polltrigger.triggers.models import Label, Worker

log = get_logger(__name__)


class StaticWorkerPool:
    """Thread-safe, ordered worker registry.

    Usage::

        pool = StaticWorkerPool([
            Worker("", root_path=Path("/var/ci"), is_primary=True),
            Worker("agent-1", root_path=Path("/srv/ci"), labels=frozenset({"linux"})),
        ])
        pool.resolve_label("linux")   # Label("linux", (agent-1,))
    """

    def __init__(self, workers: Iterable[Worker] = ()) -> None:
        self._lock = threading.Lock()
        self._workers: dict[str, Worker] = {}
        for worker in workers:
            self._put(worker)

    # ---------------------------------------------------------------------------
    # Mutation
    # ---------------------------------------------------------------------------

    def add(self, worker: Worker) -> None:
        """Add a worker, or replace the one with the same name in place."""
        with self._lock:
            self._put(worker)
        log.debug("worker_registered", worker=worker.display_name)

    def remove(self, name: str) -> Worker | None:
        with self._lock:
            return self._workers.pop(name, None)

    def _put(self, worker: Worker) -> None:
        if worker.is_primary:
            for other in list(self._workers.values()):
                if other.is_primary and other.name != worker.name:
                    raise ValueError(
                        f"Pool already has a primary worker: {other.display_name!r}"
                    )
        self._workers[worker.name] = worker

    # ---------------------------------------------------------------------------
    # WorkerRegistry
    # ---------------------------------------------------------------------------

    def list_workers(self) -> list[Worker]:
        with self._lock:
            return list(self._workers.values())

    def primary_worker(self) -> Worker | None:
        with self._lock:
            for worker in self._workers.values():
                if worker.is_primary:
                    return worker
        return None

    def resolve_label(self, name: str) -> Label | None:
        """Return the label and its members, or None when nothing carries it."""
        name = name.strip()
        if not name:
            return None
        members = tuple(w for w in self.list_workers() if w.has_label(name))
        if not members:
            return None
        return Label(name, members)

    def get(self, name: str) -> Worker | None:
        with self._lock:
            return self._workers.get(name)

    def __len__(self) -> int:
        with self._lock:
            return len(self._workers)
