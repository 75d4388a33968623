"""Host collaborator interfaces.

The engine depends only on these minimal capabilities, injected once when a
trigger is created or started.  The host build system implements them.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from polltrigger.triggers.models import Label, ScheduleRequest, Worker


@runtime_checkable
class JobView(Protocol):
    """The job a trigger is attached to."""

    @property
    def name(self) -> str: ...

    def is_buildable(self) -> bool: ...

    def is_building(self) -> bool: ...

    def is_quiescing(self) -> bool: ...

    def assigned_label(self) -> str | None: ...

    def last_worker_used(self) -> Worker | None: ...


@runtime_checkable
class WorkerRegistry(Protocol):
    """Read-only view over the worker pool."""

    def list_workers(self) -> list[Worker]: ...

    def primary_worker(self) -> Worker | None: ...

    def resolve_label(self, name: str) -> Label | None: ...


@runtime_checkable
class JobQueue(Protocol):
    """Accepts schedule requests.  Returns a handle, or None when rejected."""

    def submit(self, request: ScheduleRequest) -> Any: ...


@runtime_checkable
class LogSink(Protocol):
    """Receives every line written to a poll log."""

    def append(self, line: str) -> None: ...
