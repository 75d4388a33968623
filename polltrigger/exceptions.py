"""polltrigger — Exception hierarchy.

All exceptions raised by the engine inherit from PollTriggerError so that
callers can catch the full family with a single except clause when needed.

Hierarchy:
    PollTriggerError
    ├── TriggerError
    │   ├── WorkerUnavailableError
    │   ├── CaptureError
    │   ├── ComparisonError
    │   └── SchedulingError
    └── ConfigurationError
        └── ScheduleError

Polling errors (the ``TriggerError`` branch) never escape a poll: the poll
runner catches them, writes them to the poll log and treats the cycle as
unchanged.  Configuration errors are raised to the caller.
"""

from __future__ import annotations

from typing import Any


class PollTriggerError(Exception):
    """Base exception for all polltrigger errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context: dict[str, Any] = context or {}

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, context={self.context})"


# ---------------------------------------------------------------------------
# Polling
# ---------------------------------------------------------------------------


class TriggerError(PollTriggerError):
    """Base for errors raised while polling a trigger."""

    def __init__(
        self,
        message: str,
        trigger_name: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        ctx = dict(context or {})
        if trigger_name is not None:
            ctx["trigger_name"] = trigger_name
        super().__init__(message, context=ctx)
        self.trigger_name = trigger_name


class WorkerUnavailableError(TriggerError):
    """No eligible worker could run the poll.  Retried on the next fire."""


class CaptureError(TriggerError):
    """The context capture strategy failed."""


class ComparisonError(TriggerError):
    """The context comparator failed."""


class SchedulingError(TriggerError):
    """The job queue rejected a schedule request.  The change is not retried."""


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class ConfigurationError(PollTriggerError):
    """Invalid engine or trigger configuration."""


class ScheduleError(ConfigurationError):
    """A schedule expression could not be parsed."""

    def __init__(self, message: str, expression: str | None = None) -> None:
        super().__init__(message, context={"expression": expression})
        self.expression = expression
