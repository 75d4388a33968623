"""Provenance attached to scheduled work.

TriggerCause    — which trigger fired and why
build_request() — turns a detected change into a ScheduleRequest carrying
                  the cause and, when enabled, the captured poll log

The log itself is persisted by the consumer once the unit of work exists,
through ``ScheduleRequest.attach_log()``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from polltrigger.triggers.models import ScheduleRequest, TriggerSettings

LOG_ARTIFACT_NAME = "triggerlog.txt"
"""File name consumers should use when storing the attached poll log."""


@dataclass(frozen=True)
class TriggerCause:
    trigger_name: str
    cause_text: str = ""
    log_enabled: bool = False

    def short_description(self) -> str:
        if not self.cause_text:
            return f"[{self.trigger_name}]"
        if not self.log_enabled:
            return f"[{self.trigger_name}] {self.cause_text}"
        return f"[{self.trigger_name}] {self.cause_text} (log)"

    def __str__(self) -> str:
        return self.short_description()


def build_request(
    settings: TriggerSettings,
    explanation: str | None,
    captured_log: bytes | None,
    extra_actions: list[Any] | None = None,
) -> ScheduleRequest:
    """Build the single request emitted for one detected change."""
    cause_text = settings.cause
    if explanation:
        cause_text = f"{cause_text}: {explanation}" if cause_text else explanation

    log_snapshot = captured_log if settings.log_enabled else None
    cause = TriggerCause(
        trigger_name=settings.name,
        cause_text=cause_text,
        log_enabled=log_snapshot is not None,
    )
    return ScheduleRequest(
        trigger_name=settings.name,
        cause_text=cause.short_description(),
        log_snapshot=log_snapshot,
        extra_actions=list(extra_actions or []),
        cause=cause,
    )
