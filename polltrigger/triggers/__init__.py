"""polltrigger — trigger runtime.

Package structure
-----------------
triggers/
  models.py    — Worker, Label, TriggerSettings, PollState, PollOutcome,
                 ScheduleRequest
  host.py      — Protocols the host implements (JobView, JobQueue, ...)
  pool.py      — StaticWorkerPool, an in-memory WorkerRegistry
  selector.py  — WorkerSelector: which worker runs a poll
  context.py   — ContextStrategy, ContextStore, ContextDiffEngine
  queue.py     — SingleFlightQueue, one worker thread per trigger kind
  poll_log.py  — TriggerLog, the per-poll human-readable log
  cause.py     — TriggerCause and ScheduleRequest construction
  runner.py    — PollRunner state machine
  trigger.py   — PollingTrigger: start / run / poll_now / stop
  schedule.py  — CronSchedule and TriggerScheduler for hosts
"""

from polltrigger.triggers.cause import LOG_ARTIFACT_NAME, TriggerCause, build_request
from polltrigger.triggers.context import (
    CallableStrategy,
    ContextDiffEngine,
    ContextStore,
    ContextStrategy,
)
from polltrigger.triggers.models import (
    Comparison,
    Label,
    PollOutcome,
    PollState,
    ScheduleRequest,
    TriggerSettings,
    Worker,
)
from polltrigger.triggers.poll_log import TriggerLog
from polltrigger.triggers.pool import StaticWorkerPool
from polltrigger.triggers.queue import QueueRegistry, SingleFlightQueue
from polltrigger.triggers.runner import PollRunner
from polltrigger.triggers.schedule import CronSchedule, TriggerScheduler
from polltrigger.triggers.selector import WorkerSelector
from polltrigger.triggers.trigger import PollingTrigger

__all__ = [
    "LOG_ARTIFACT_NAME",
    "CallableStrategy",
    "Comparison",
    "ContextDiffEngine",
    "ContextStore",
    "ContextStrategy",
    "CronSchedule",
    "Label",
    "PollOutcome",
    "PollRunner",
    "PollState",
    "PollingTrigger",
    "QueueRegistry",
    "ScheduleRequest",
    "SingleFlightQueue",
    "StaticWorkerPool",
    "TriggerCause",
    "TriggerLog",
    "TriggerScheduler",
    "TriggerSettings",
    "Worker",
    "WorkerSelector",
    "build_request",
]
