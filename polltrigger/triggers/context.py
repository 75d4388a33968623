"""Context capture, storage and diffing.

ContextStrategy    — the pluggable capability a trigger kind supplies
                     (capture a context, compare two contexts)
CallableStrategy   — ContextStrategy built from plain functions
ContextStore       — last observed context + offline-at-startup flag,
                     guarded by a lazily created per-instance lock
ContextDiffEngine  — fetch → compare → decide → advance the baseline

A ``None`` context always means "no baseline yet".  The first observation
after that becomes the baseline and never counts as a change.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Callable, Iterator

from polltrigger.exceptions import CaptureError, ComparisonError
from polltrigger.logging import get_logger
from polltrigger.triggers.models import Comparison, PollOutcome, Worker
from polltrigger.triggers.poll_log import TriggerLog

log = get_logger(__name__)


# ---------------------------------------------------------------------------
# Strategy
# ---------------------------------------------------------------------------


class ContextStrategy(ABC):
    """What a concrete trigger kind plugs into the engine.

    Class attributes
    ----------------
    requires_worker     — capture needs a worker; False polls without one
    requires_workspace  — prefer the worker of the job's last build, and
                          skip polls while the job is building
    fetch_on_startup    — capture a baseline when the trigger starts
    """

    requires_worker: bool = True
    requires_workspace: bool = False
    fetch_on_startup: bool = False

    @abstractmethod
    def capture(self, worker: Worker | None, log: TriggerLog) -> Any:
        """Return a fresh context.  *worker* is None for worker-less kinds."""

    @abstractmethod
    def compare(self, old: Any, new: Any, log: TriggerLog) -> Comparison | bool:
        """Report whether *new* differs from *old*."""

    def scheduled_actions(self, worker: Worker | None, log: TriggerLog) -> list[Any]:
        """Extra actions attached to scheduled work.  None by default."""
        return []

    @property
    def kind(self) -> str:
        return type(self).__name__


class CallableStrategy(ContextStrategy):
    """Strategy assembled from a capture function and an optional comparator.

    Usage::

        strategy = CallableStrategy(
            lambda worker, log: read_version(worker.root_path),
            requires_worker=True,
        )

    Without a comparator, contexts are compared with ``!=``.
    """

    def __init__(
        self,
        capture: Callable[[Worker | None, TriggerLog], Any],
        compare: Callable[[Any, Any, TriggerLog], Comparison | bool] | None = None,
        *,
        requires_worker: bool = True,
        requires_workspace: bool = False,
        fetch_on_startup: bool = False,
        kind: str | None = None,
    ) -> None:
        self._capture = capture
        self._compare = compare
        self.requires_worker = requires_worker
        self.requires_workspace = requires_workspace
        self.fetch_on_startup = fetch_on_startup
        self._kind = kind

    def capture(self, worker: Worker | None, log: TriggerLog) -> Any:
        return self._capture(worker, log)

    def compare(self, old: Any, new: Any, log: TriggerLog) -> Comparison | bool:
        if self._compare is not None:
            return self._compare(old, new, log)
        if old != new:
            return Comparison(True, f"context changed from {old!r} to {new!r}")
        return Comparison(False)

    @property
    def kind(self) -> str:
        return self._kind or super().kind


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class ContextStore:
    """Last observed context of one trigger instance.

    Neither the context, the offline flag nor the lock survive pickling: a
    reconstituted store starts with no baseline and builds its lock on first
    use.
    """

    _meta_lock = threading.Lock()

    def __init__(self) -> None:
        self._context: Any = None
        self._lock: threading.RLock | None = None
        self.offline_at_startup = False

    def _get_lock(self) -> threading.RLock:
        """Return the instance lock, creating it if it is absent."""
        lock = self._lock
        if lock is None:
            with self._meta_lock:
                if self._lock is None:
                    self._lock = threading.RLock()
                lock = self._lock
        return lock

    @contextmanager
    def locked(self) -> Iterator["ContextStore"]:
        with self._get_lock():
            yield self

    def get(self) -> Any:
        with self._get_lock():
            return self._context

    def set(self, context: Any) -> None:
        with self._get_lock():
            self._context = context

    def reset(self, old_context: Any) -> None:
        """Put back a previous context, e.g. after a downstream failure."""
        with self._get_lock():
            self._context = old_context

    def clear(self) -> None:
        with self._get_lock():
            self._context = None

    @property
    def has_baseline(self) -> bool:
        return self.get() is not None

    def __reduce__(self) -> tuple[type["ContextStore"], tuple[()]]:
        return (type(self), ())


# ---------------------------------------------------------------------------
# Diff engine
# ---------------------------------------------------------------------------


class ContextDiffEngine:
    """Runs one fetch/compare/advance cycle against a ContextStore."""

    def __init__(self, strategy: ContextStrategy, trigger_name: str = "") -> None:
        self._strategy = strategy
        self._trigger_name = trigger_name

    def poll(self, store: ContextStore, worker: Worker | None, plog: TriggerLog) -> PollOutcome:
        """Evaluate change.  Raises CaptureError or ComparisonError."""
        with store.locked():
            fresh = self._capture(worker, plog)

            if store.offline_at_startup:
                plog.info("No workers were available at startup or at the previous poll.")
                plog.info(
                    "Recording context and waiting for the next schedule to check for changes."
                )
                store.offline_at_startup = False
                store.set(fresh)
                return PollOutcome.unchanged()

            old = store.get()
            if old is None:
                plog.info("Recording context. Checking for changes at the next poll.")
                store.set(fresh)
                return PollOutcome.unchanged()

            comparison = self._compare(old, fresh, plog)
            store.set(fresh)
            return PollOutcome(comparison.changed, comparison.explanation)

    def snapshot(self, store: ContextStore, worker: Worker | None, plog: TriggerLog) -> None:
        """Record a baseline without comparing.  Raises CaptureError."""
        with store.locked():
            store.set(self._capture(worker, plog))

    def _capture(self, worker: Worker | None, plog: TriggerLog) -> Any:
        try:
            return self._strategy.capture(worker, plog)
        except CaptureError:
            raise
        except Exception as exc:
            raise CaptureError(
                f"Context capture failed: {exc}",
                trigger_name=self._trigger_name,
                context={"worker": worker.display_name if worker else None},
            ) from exc

    def _compare(self, old: Any, new: Any, plog: TriggerLog) -> Comparison:
        try:
            result = self._strategy.compare(old, new, plog)
        except ComparisonError:
            raise
        except Exception as exc:
            raise ComparisonError(
                f"Context comparison failed: {exc}",
                trigger_name=self._trigger_name,
            ) from exc
        if isinstance(result, Comparison):
            return result
        return Comparison(bool(result))
