"""Trigger runtime data models.

Plain dataclasses so that trigger settings can be serialised by the host
without an ORM.  Contexts, locks and poll logs are deliberately absent from
these models: they are transient and live on the trigger instance.

Key classes
-----------
Worker           — identity, executor capacity, reachability, labels
Label            — a resolved label and its member workers
TriggerSettings  — persisted configuration of one trigger instance
PollState        — poll runner state machine
PollOutcome      — result of one diff evaluation
Comparison       — what a comparator returns
ScheduleRequest  — handed to the host job queue on a detected change
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable

from polltrigger.logging import get_logger

if TYPE_CHECKING:
    from polltrigger.triggers.cause import TriggerCause

log = get_logger(__name__)


# ---------------------------------------------------------------------------
# Workers
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Worker:
    """A worker as seen by the engine at lookup time.

    ``root_path`` is the reachability probe: ``None`` means the worker is
    offline.  ``num_executors == 0`` means the worker cannot run anything.
    """

    name: str
    num_executors: int = 1
    root_path: Path | None = None
    labels: frozenset[str] = frozenset()
    is_primary: bool = False

    @property
    def is_reachable(self) -> bool:
        return self.root_path is not None

    @property
    def is_eligible(self) -> bool:
        return self.is_reachable and self.num_executors != 0

    @property
    def display_name(self) -> str:
        return "master" if self.is_primary and not self.name.strip() else self.name

    def has_label(self, label: str) -> bool:
        """Every worker carries its own name as an implicit label."""
        return label == self.name or label in self.labels


@dataclass(frozen=True)
class Label:
    """A label name resolved against the pool, with its members in pool order."""

    name: str
    workers: tuple[Worker, ...] = ()


# ---------------------------------------------------------------------------
# Trigger configuration
# ---------------------------------------------------------------------------


@dataclass
class TriggerSettings:
    """Configuration of one trigger instance — the only persisted part."""

    name: str
    schedule: str = "* * * * *"
    """Opaque schedule descriptor.  The engine never parses it."""

    label: str | None = None
    """Explicit worker label restriction.  Blank strings mean no restriction."""

    allow_overlap: bool = False
    """Poll even while the owning job is building."""

    cause: str = ""
    """Short human-readable reason attached to scheduled work."""

    log_enabled: bool = True
    """Attach the captured poll log to scheduled work."""

    log_file: Path | None = None
    """Where the poll log is written.  None keeps it in memory only."""

    def __post_init__(self) -> None:
        if self.label is not None and not self.label.strip():
            self.label = None
        elif self.label is not None:
            self.label = self.label.strip()


# ---------------------------------------------------------------------------
# Polling
# ---------------------------------------------------------------------------


class PollState(str, Enum):
    """Poll runner state machine.

    State machine::

        IDLE → NODE_SELECTION_PENDING → NO_WORKER_AVAILABLE → IDLE
                                      → POLLING → UNCHANGED → IDLE
                                                → CHANGED   → IDLE

    Worker-independent strategies go from IDLE straight to POLLING.
    """

    IDLE = "idle"
    NODE_SELECTION_PENDING = "node_selection_pending"
    NO_WORKER_AVAILABLE = "no_worker_available"
    POLLING = "polling"
    UNCHANGED = "unchanged"
    CHANGED = "changed"


@dataclass(frozen=True)
class PollOutcome:
    """Result of one diff evaluation."""

    changed: bool
    explanation: str | None = None

    @classmethod
    def unchanged(cls, explanation: str | None = None) -> "PollOutcome":
        return cls(False, explanation)


@dataclass(frozen=True)
class Comparison:
    """What a comparator reports for (old, new)."""

    changed: bool
    explanation: str | None = None


# ---------------------------------------------------------------------------
# Schedule request
# ---------------------------------------------------------------------------


LogPersister = Callable[[bytes], None]
"""Consumer-side callback that stores the poll log next to the created work."""


@dataclass
class ScheduleRequest:
    """One unit of work requested from the host job queue.

    The engine produces at most one request per detected change.  Once the
    host has actually created the unit of work it calls ``attach_log()``
    with a persister that knows where the log belongs.
    """

    trigger_name: str
    cause_text: str
    log_snapshot: bytes | None = None
    extra_actions: list[Any] = field(default_factory=list)
    cause: "TriggerCause | None" = None
    request_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def attach_log(self, persist: LogPersister) -> bool:
        """Hand the captured poll log to *persist*.

        Returns True when the log was persisted.  Failures are logged and
        swallowed: the unit of work already exists and must not be undone
        because its provenance could not be stored.
        """
        if self.log_snapshot is None:
            return False
        try:
            persist(self.log_snapshot)
        except Exception as exc:
            log.error(
                "trigger_log_attach_failed",
                trigger=self.trigger_name,
                request_id=self.request_id,
                error=str(exc),
            )
            return False
        return True
