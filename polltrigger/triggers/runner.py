"""PollRunner — the unit of work executed by a single-flight queue.

One runner performs one poll of one trigger::

    IDLE
      ↓
    NODE_SELECTION_PENDING ──(no worker)──→ NO_WORKER_AVAILABLE → IDLE
      ↓
    POLLING ──(error)──→ UNCHANGED → IDLE
      ↓
    CHANGED → ScheduleRequest → JobQueue → IDLE

``run()`` never raises.  Capture and comparison errors are written to the
poll log and count as "unchanged"; a schedule request that cannot be built
or is rejected is logged as an error, keeps the outcome "changed" and is
not retried.
"""

from __future__ import annotations

import time
import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from polltrigger.exceptions import SchedulingError, WorkerUnavailableError
from polltrigger.logging import bind_poll_context, clear_poll_context, get_logger
from polltrigger.triggers.cause import build_request
from polltrigger.triggers.models import PollOutcome, PollState, ScheduleRequest, Worker
from polltrigger.triggers.poll_log import TriggerLog

if TYPE_CHECKING:
    from polltrigger.triggers.trigger import PollingTrigger

log = get_logger(__name__)


class PollRunner:
    """Polls a trigger once and schedules work on a detected change."""

    def __init__(self, trigger: "PollingTrigger") -> None:
        self._trigger = trigger
        self.poll_id = uuid.uuid4().hex[:12]
        self.state = PollState.IDLE
        self.history: list[PollState] = [PollState.IDLE]
        self.outcome: PollOutcome | None = None
        self.worker: Worker | None = None

    @property
    def trigger_name(self) -> str:
        return self._trigger.name

    def __call__(self) -> PollOutcome:
        return self.run()

    def __repr__(self) -> str:
        return f"PollRunner(trigger={self.trigger_name!r}, state={self.state.value})"

    # ---------------------------------------------------------------------------
    # Execution
    # ---------------------------------------------------------------------------

    def run(self) -> PollOutcome:
        trigger = self._trigger
        # Each poll truncates the per-trigger log file, so polls of one
        # trigger never overlap, whichever path started them.
        with trigger.store.locked():
            bind_poll_context(trigger_name=trigger.name, poll_id=self.poll_id)
            plog = TriggerLog(path=trigger.log_path, sink=trigger.log_sink)
            started = time.monotonic()
            try:
                plog.info(f"Polling started on {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
                if trigger.job is not None:
                    plog.info(f"Polling for the job {trigger.job.name}")
                outcome = self._poll(plog, started)
            except WorkerUnavailableError as exc:
                outcome = self._no_worker(exc)
            except Exception as exc:
                self._report_error(plog, exc)
                self._enter(PollState.UNCHANGED)
                outcome = PollOutcome.unchanged()
            finally:
                plog.close()
                clear_poll_context()
        self.outcome = outcome
        self._enter(PollState.IDLE)
        return outcome

    def _poll(self, plog: TriggerLog, started: float) -> PollOutcome:
        trigger = self._trigger
        strategy = trigger.strategy

        worker: Worker | None = None
        if strategy.requires_worker:
            self._enter(PollState.NODE_SELECTION_PENDING)
            worker = trigger.selector.first_worker(
                trigger.settings, trigger.job, strategy.requires_workspace, plog
            )
            if worker is None:
                plog.info("Can't find any eligible worker for the polling action.")
                plog.info("Workers may not be active yet, or the primary worker has no executors.")
                plog.info("Checking again at the next polling schedule.")
                raise WorkerUnavailableError(
                    "No eligible worker for the polling action", trigger_name=trigger.name
                )
            if not worker.is_reachable:
                plog.info("The selected worker might be offline at the moment.")
                plog.info("Waiting for the next schedule.")
                raise WorkerUnavailableError(
                    "Selected worker is offline",
                    trigger_name=trigger.name,
                    context={"worker": worker.display_name},
                )
            self.worker = worker
            if worker.is_primary:
                plog.info("\nPolling on master.")
            else:
                plog.info(f"\nPolling remotely on {worker.display_name}")

        self._enter(PollState.POLLING)
        log.debug("poll_started", worker=worker.display_name if worker else None)
        outcome = trigger.diff_engine.poll(trigger.store, worker, plog)

        plog.info(f"\nPolling complete. Took {format_duration(time.monotonic() - started)}.")

        if not outcome.changed:
            self._enter(PollState.UNCHANGED)
            plog.info("No changes.")
            log.info("poll_no_changes")
            return outcome

        self._enter(PollState.CHANGED)
        if outcome.explanation:
            plog.info(outcome.explanation)
        plog.info("Changes found. Scheduling a build.")
        log.info("poll_changes_found", explanation=outcome.explanation)
        self._schedule(worker, outcome, plog)
        return outcome

    def _schedule(self, worker: Worker | None, outcome: PollOutcome, plog: TriggerLog) -> None:
        """Hand the change to the job queue.  A failure leaves the outcome changed."""
        trigger = self._trigger
        try:
            request = self._submit(worker, outcome, plog)
        except SchedulingError as exc:
            plog.error(exc.message)
            cause = exc.__cause__
            log.error(
                "poll_scheduling_failed",
                error=exc.message,
                cause=str(cause) if cause is not None else None,
            )
            return
        trigger.record_request(request)
        log.info("poll_work_scheduled", request_id=request.request_id)

    def _submit(
        self, worker: Worker | None, outcome: PollOutcome, plog: TriggerLog
    ) -> ScheduleRequest:
        trigger = self._trigger
        try:
            actions = trigger.strategy.scheduled_actions(worker, plog)
            request = build_request(
                trigger.settings, outcome.explanation, plog.snapshot(), actions
            )
        except Exception as exc:
            raise SchedulingError(
                f"Could not build the schedule request: {exc}", trigger_name=trigger.name
            ) from exc
        try:
            handle = trigger.job_queue.submit(request)
        except Exception as exc:
            raise SchedulingError(
                f"Job queue rejected the request: {exc}", trigger_name=trigger.name
            ) from exc
        if handle is None:
            raise SchedulingError("Job queue rejected the request", trigger_name=trigger.name)
        return request

    def _no_worker(self, exc: WorkerUnavailableError) -> PollOutcome:
        self._enter(PollState.NO_WORKER_AVAILABLE)
        log.info("poll_no_worker_available", reason=exc.message, worker=exc.context.get("worker"))
        return PollOutcome.unchanged()

    # ---------------------------------------------------------------------------
    # Helpers
    # ---------------------------------------------------------------------------

    def _enter(self, state: PollState) -> None:
        self.state = state
        self.history.append(state)

    def _report_error(self, plog: TriggerLog, exc: BaseException) -> None:
        plog.error("Polling error...")
        message = getattr(exc, "message", None) or str(exc)
        if message:
            plog.error(f"Error message: {message}")
        cause = exc.__cause__
        if cause is not None:
            plog.error(f"Error cause: {cause}")
        log.warning(
            "poll_failed",
            error_type=type(exc).__name__,
            error=message,
            cause=str(cause) if cause is not None else None,
        )


def format_duration(seconds: float) -> str:
    """Human-readable span: "350 ms", "4.2 sec", "3 min 5 sec"."""
    if seconds < 1:
        return f"{int(seconds * 1000)} ms"
    if seconds < 60:
        return f"{seconds:.1f} sec"
    minutes, secs = divmod(int(seconds), 60)
    if minutes < 60:
        return f"{minutes} min {secs} sec"
    hours, minutes = divmod(minutes, 60)
    return f"{hours} hr {minutes} min"
