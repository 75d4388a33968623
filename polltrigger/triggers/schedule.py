"""Host-side scheduling helpers.

The engine only needs "something calls ``trigger.run()`` when the schedule
says so".  Hosts without their own scheduler can use these:

CronSchedule      — cron expression → next fire time (via ``croniter``)
TriggerScheduler  — background thread firing registered triggers when due

Firing is cheap: ``run()`` only checks the job state and enqueues a poll on
the kind's queue, so a slow capture never holds up the scheduler thread.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass

from croniter import croniter

from polltrigger.config import get_settings
from polltrigger.exceptions import ScheduleError
from polltrigger.logging import get_logger
from polltrigger.triggers.trigger import PollingTrigger

log = get_logger(__name__)


class CronSchedule:
    """A validated cron expression.

    Usage::

        schedule = CronSchedule("*/5 * * * *")
        schedule.next_after(time.time())
    """

    def __init__(self, expression: str) -> None:
        expression = expression.strip()
        if not expression or not croniter.is_valid(expression):
            raise ScheduleError(f"Invalid cron expression: {expression!r}", expression=expression)
        self.expression = expression

    def next_after(self, timestamp: float) -> float:
        """First fire time strictly after *timestamp* (Unix seconds)."""
        return croniter(self.expression, timestamp).get_next(float)

    def __repr__(self) -> str:
        return f"CronSchedule({self.expression!r})"


@dataclass
class _Entry:
    trigger: PollingTrigger
    schedule: CronSchedule
    next_fire: float


class TriggerScheduler:
    """Fires triggers on their cron schedules from one daemon thread.

    Usage::

        scheduler = TriggerScheduler()  # tick from engine.scheduler_tick_seconds
        scheduler.add(trigger)
        scheduler.start()
        ...
        scheduler.stop()

    ``tick(now)`` does the actual work and can be driven directly in tests.
    """

    def __init__(self, tick_seconds: float | None = None) -> None:
        if tick_seconds is None:
            tick_seconds = get_settings().engine.scheduler_tick_seconds
        if tick_seconds <= 0:
            raise ValueError(f"tick_seconds must be positive, got {tick_seconds}")
        self._tick_seconds = tick_seconds
        self._entries: dict[str, _Entry] = {}
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    # ---------------------------------------------------------------------------
    # Registration
    # ---------------------------------------------------------------------------

    def add(self, trigger: PollingTrigger, now: float | None = None) -> float:
        """Register *trigger* and return its first fire time."""
        schedule = CronSchedule(trigger.settings.schedule)
        next_fire = schedule.next_after(time.time() if now is None else now)
        with self._lock:
            if trigger.name in self._entries:
                raise ValueError(f"Trigger already scheduled: {trigger.name!r}")
            self._entries[trigger.name] = _Entry(trigger, schedule, next_fire)
        log.debug("trigger_scheduled", trigger=trigger.name, next_fire=next_fire)
        return next_fire

    def remove(self, name: str) -> PollingTrigger | None:
        """Unregister and stop the trigger; queued polls still complete."""
        with self._lock:
            entry = self._entries.pop(name, None)
        if entry is None:
            return None
        entry.trigger.stop()
        return entry.trigger

    def next_fire(self, name: str) -> float | None:
        with self._lock:
            entry = self._entries.get(name)
            return entry.next_fire if entry else None

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    @property
    def tick_seconds(self) -> float:
        return self._tick_seconds

    # ---------------------------------------------------------------------------
    # Firing
    # ---------------------------------------------------------------------------

    def tick(self, now: float | None = None) -> list[str]:
        """Fire every due trigger once.  Returns the names fired."""
        now = time.time() if now is None else now
        with self._lock:
            due = [e for e in self._entries.values() if e.next_fire <= now]
            for entry in due:
                entry.next_fire = entry.schedule.next_after(now)

        fired: list[str] = []
        for entry in due:
            try:
                entry.trigger.run()
            except Exception as exc:
                log.error("trigger_fire_failed", trigger=entry.trigger.name, error=str(exc))
                continue
            fired.append(entry.trigger.name)
        return fired

    # ---------------------------------------------------------------------------
    # Background thread
    # ---------------------------------------------------------------------------

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return  # already running
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name="trigger-scheduler", daemon=True)
        self._thread.start()
        log.info("trigger_scheduler_started", triggers=len(self))

    def stop(self, timeout: float | None = None) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
        self._thread = None
        log.info("trigger_scheduler_stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _loop(self) -> None:
        while not self._stop_event.wait(self._tick_seconds):
            self.tick()
