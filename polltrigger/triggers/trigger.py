"""PollingTrigger — one configured trigger instance.

Lifecycle
---------
1. Created from ``TriggerSettings`` plus a ``ContextStrategy``.
2. ``start(job)`` once, when attached to its job.  Records a baseline when
   the strategy asks for it and a worker is available; otherwise flags the
   trigger as offline-at-startup so the next successful poll only records.
3. ``run()`` on every schedule fire: cheap gating checks on the calling
   thread, then a PollRunner is queued on the kind's single-flight queue.
4. ``stop()`` when removed: later fires are ignored, queued polls finish.

``poll_now()`` is the manual path: it polls in the calling thread and
relies on the context store lock to stay consistent with scheduled polls.
"""

from __future__ import annotations

import re
from concurrent.futures import Future
from pathlib import Path
from typing import Any

from polltrigger.config import EngineConfig, get_settings
from polltrigger.exceptions import CaptureError
from polltrigger.logging import get_logger
from polltrigger.triggers.context import ContextDiffEngine, ContextStore, ContextStrategy
from polltrigger.triggers.host import JobQueue, JobView, LogSink, WorkerRegistry
from polltrigger.triggers.models import PollOutcome, ScheduleRequest, TriggerSettings
from polltrigger.triggers.poll_log import TriggerLog
from polltrigger.triggers.queue import QueueRegistry, default_registry
from polltrigger.triggers.runner import PollRunner
from polltrigger.triggers.selector import WorkerSelector

log = get_logger(__name__)


class PollingTrigger:
    """A scheduled poll bound to one job.

    Usage::

        trigger = PollingTrigger(
            TriggerSettings(name="config-watch", schedule="*/5 * * * *", label="linux"),
            strategy=ConfigDigestStrategy(),
            registry=pool,
            job_queue=build_queue,
        )
        trigger.start(job)
        scheduler.add(trigger)
    """

    def __init__(
        self,
        settings: TriggerSettings,
        strategy: ContextStrategy,
        registry: WorkerRegistry,
        job_queue: JobQueue,
        *,
        queues: QueueRegistry | None = None,
        log_sink: LogSink | None = None,
        engine: EngineConfig | None = None,
        kind: str | None = None,
    ) -> None:
        self.settings = settings
        self.strategy = strategy
        self.registry = registry
        self.job_queue = job_queue
        self.log_sink = log_sink
        self.engine = engine or get_settings().engine
        self.kind = kind or strategy.kind
        self._queues = queues
        # Transient state: a trigger rebuilt from persisted settings starts
        # without a baseline.
        self.store = ContextStore()
        self.job: JobView | None = None
        self.selector = WorkerSelector(self.registry, self.engine)
        self.diff_engine = ContextDiffEngine(self.strategy, self.settings.name)
        self.last_request: ScheduleRequest | None = None
        self._stopped = False

    # ---------------------------------------------------------------------------
    # Properties
    # ---------------------------------------------------------------------------

    @property
    def name(self) -> str:
        return self.settings.name

    @property
    def queues(self) -> QueueRegistry:
        if self._queues is None:
            self._queues = default_registry()
        return self._queues

    @property
    def log_path(self) -> Path | None:
        if self.settings.log_file is not None:
            return self.settings.log_file
        if self.engine.log_dir is not None:
            safe_name = re.sub(r"[^A-Za-z0-9_.-]", "_", self.name) or "trigger"
            return self.engine.log_dir.expanduser() / f"{safe_name}.log"
        return None

    @property
    def context(self) -> Any:
        return self.store.get()

    @property
    def is_stopped(self) -> bool:
        return self._stopped

    # ---------------------------------------------------------------------------
    # Lifecycle
    # ---------------------------------------------------------------------------

    def start(self, job: JobView, new_instance: bool = True) -> None:
        """Attach to *job* and try to record an initial baseline."""
        self.job = job
        self._stopped = False
        plog = TriggerLog(sink=self.log_sink)
        try:
            worker = None
            if self.strategy.requires_worker:
                worker = self.selector.first_worker(
                    self.settings, job, self.strategy.requires_workspace, plog
                )
                if worker is None or not worker.is_reachable:
                    plog.info("Can't find any active worker.")
                    plog.info("Checking again at the next polling schedule.")
                    with self.store.locked():
                        self.store.offline_at_startup = True
                    log.info("trigger_started_offline", trigger=self.name, job=job.name)
                    return

            if self.strategy.fetch_on_startup:
                try:
                    self.diff_engine.snapshot(self.store, worker, plog)
                except CaptureError as exc:
                    log.error("trigger_initial_capture_failed", trigger=self.name, error=exc.message)
            log.info(
                "trigger_started",
                trigger=self.name,
                job=job.name,
                new_instance=new_instance,
                baseline=self.store.has_baseline,
            )
        finally:
            plog.close()

    def stop(self) -> None:
        """No further fires are accepted; polls already queued complete."""
        self._stopped = True
        log.info("trigger_stopped", trigger=self.name)

    # ---------------------------------------------------------------------------
    # Firing
    # ---------------------------------------------------------------------------

    def run(self) -> Future[PollOutcome] | None:
        """Schedule fire entry point.  Returns None when the cycle is skipped."""
        reason = self.skip_reason()
        if reason is not None:
            log.info("poll_skipped", trigger=self.name, reason=reason)
            if self.log_sink is not None:
                self.log_sink.append(reason)
            return None
        return self.queues.for_kind(self.kind).submit(PollRunner(self))

    def skip_reason(self) -> str | None:
        """Why the next fire should not poll, or None."""
        job = self.job
        if self._stopped:
            return "The trigger has been removed."
        if job is None:
            return "The trigger is not attached to a job."
        if job.is_quiescing():
            return "The build system is quieting down."
        if not job.is_buildable():
            return "The job is not buildable. Activate it to poll again."
        if (
            self.strategy.requires_workspace
            and not self.settings.allow_overlap
            and job.is_building()
        ):
            return "The job is building. Waiting for the next poll."
        return None

    def poll_now(self) -> PollOutcome:
        """Poll in the calling thread, after any poll of this trigger in progress."""
        return PollRunner(self).run()

    def record_request(self, request: ScheduleRequest) -> None:
        self.last_request = request

    # ---------------------------------------------------------------------------
    # Context access
    # ---------------------------------------------------------------------------

    def set_context(self, context: Any) -> None:
        self.store.set(context)

    def reset_context(self, old_context: Any) -> None:
        self.store.reset(old_context)

    def __repr__(self) -> str:
        return f"PollingTrigger(name={self.name!r}, kind={self.kind!r})"
