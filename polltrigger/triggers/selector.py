"""WorkerSelector — picks the workers a poll may run on.

Selection order
---------------
1. Explicit label on the trigger.  A primary-label alias ("master",
   "built-in") selects the primary worker only; a resolved label selects its
   members ranked by affinity; an unresolved label falls through.
2. Workspace-bound polls prefer the worker that ran the job's last build,
   provided it is still reachable.
3. The job's assigned label, ranked by affinity, or else the whole pool.

Affinity ranking moves workers with the same name as the job's last-used
worker to the front and otherwise keeps pool order.

The result is then filtered down to eligible workers (executors > 0, root
path present).  When nothing survives, the primary worker is the last
resort; when even that is ineligible the result is empty and the caller
waits for the next fire.
"""

from __future__ import annotations

from polltrigger.config import EngineConfig
from polltrigger.logging import get_logger
from polltrigger.triggers.host import JobView, WorkerRegistry
from polltrigger.triggers.models import Label, TriggerSettings, Worker
from polltrigger.triggers.poll_log import TriggerLog

log = get_logger(__name__)


class WorkerSelector:
    """Ranks eligible workers for a trigger's poll."""

    def __init__(self, registry: WorkerRegistry, engine: EngineConfig | None = None) -> None:
        self._registry = registry
        self._engine = engine or EngineConfig()

    # ---------------------------------------------------------------------------
    # Public API
    # ---------------------------------------------------------------------------

    def select_workers(
        self,
        settings: TriggerSettings,
        job: JobView | None,
        needs_workspace: bool,
        plog: TriggerLog,
    ) -> list[Worker]:
        """Return eligible workers, best first.  May be empty."""
        plog.info("Looking for workers where the poll can be run.")
        candidates = self._candidates(settings, job, needs_workspace, plog)

        eligible: list[Worker] = []
        for worker in candidates:
            if worker.is_eligible:
                eligible.append(worker)
            else:
                plog.info(f"Found {worker.display_name} but it is not eligible.")

        if eligible:
            return eligible

        plog.info("Can't find any eligible worker.")
        primary = self._registry.primary_worker()
        if primary is not None and primary.is_eligible:
            plog.info("Trying to poll on the primary worker.")
            return [primary]
        log.debug("no_eligible_worker", trigger=settings.name)
        return []

    def first_worker(
        self,
        settings: TriggerSettings,
        job: JobView | None,
        needs_workspace: bool,
        plog: TriggerLog,
    ) -> Worker | None:
        workers = self.select_workers(settings, job, needs_workspace, plog)
        return workers[0] if workers else None

    # ---------------------------------------------------------------------------
    # Candidate search
    # ---------------------------------------------------------------------------

    def _candidates(
        self,
        settings: TriggerSettings,
        job: JobView | None,
        needs_workspace: bool,
        plog: TriggerLog,
    ) -> list[Worker]:
        last_worker = job.last_worker_used() if job is not None else None

        if settings.label is not None:
            plog.info(f"Looking for a worker with the restricted label {settings.label}.")
            if self._engine.is_primary_label(settings.label):
                plog.info("Restricted to the primary label. Polling on the primary worker.")
                primary = self._registry.primary_worker()
                return [primary] if primary is not None else []
            label = self._registry.resolve_label(settings.label)
            if label is not None:
                return rank_by_affinity(label, last_worker)
            plog.info(f"Label {settings.label} does not match any worker.")

        if needs_workspace:
            plog.info("Looking for the worker of the last build.")
            if last_worker is not None and last_worker.is_reachable:
                return [last_worker]

        plog.info("Looking for a candidate worker to run the poll.")
        assigned = job.assigned_label() if job is not None else None
        if assigned:
            label = self._registry.resolve_label(assigned)
            if label is not None:
                plog.info(f"Trying to find an eligible worker with the assigned job label {assigned}.")
                return rank_by_affinity(label, last_worker)
        return self._registry.list_workers()


def rank_by_affinity(label: Label, last_worker: Worker | None) -> list[Worker]:
    """Workers of *label*, the one matching *last_worker* first."""
    workers = list(label.workers)
    if last_worker is None:
        return workers
    preferred = [w for w in workers if w.name == last_worker.name]
    rest = [w for w in workers if w.name != last_worker.name]
    return preferred + rest
