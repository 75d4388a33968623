"""polltrigger — recurring poll-and-trigger engine.

Samples an external condition ("context") on a chosen worker, detects
whether it changed since the last sample and, when it did, hands exactly one
unit of work to the host's job queue together with its provenance.

Layers (bottom to top):
    1. Workers   — pool view and worker selection with workspace affinity
    2. Context   — per-trigger store, pluggable capture/compare, diff engine
    3. Execution — single-flight queue per trigger kind, poll runner
    4. Trigger   — lifecycle, gating, cause and log attachment
"""

__version__ = "0.1.0"

from polltrigger.triggers.context import CallableStrategy, ContextStrategy
from polltrigger.triggers.models import PollOutcome, ScheduleRequest, TriggerSettings, Worker
from polltrigger.triggers.trigger import PollingTrigger

__all__ = [
    "__version__",
    "CallableStrategy",
    "ContextStrategy",
    "PollOutcome",
    "PollingTrigger",
    "ScheduleRequest",
    "TriggerSettings",
    "Worker",
]
