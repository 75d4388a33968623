"""Unit tests — triggers/trigger.py (PollingTrigger) and end-to-end polling."""

from __future__ import annotations

import threading
import time
from pathlib import Path
from typing import Any, Callable

import pytest
from conftest import (
    FailingStrategy,
    FakeJob,
    RecordingJobQueue,
    RecordingSink,
    SequenceStrategy,
    make_worker,
)

from polltrigger.config import EngineConfig
from polltrigger.triggers.context import ContextStrategy
from polltrigger.triggers.models import Comparison, TriggerSettings, Worker
from polltrigger.triggers.poll_log import TriggerLog
from polltrigger.triggers.pool import StaticWorkerPool
from polltrigger.triggers.queue import QueueRegistry
from polltrigger.triggers.trigger import PollingTrigger

MakeTrigger = Callable[..., PollingTrigger]


class OverlapRecordingStrategy(ContextStrategy):
    """Records entry/exit times of every capture."""

    requires_worker = False

    def __init__(self, delay: float = 0.03) -> None:
        self.delay = delay
        self.spans: list[tuple[float, float]] = []
        self._active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def capture(self, worker: Worker | None, log: TriggerLog) -> Any:
        with self._lock:
            self._active += 1
            self.max_active = max(self.max_active, self._active)
        start = time.monotonic()
        time.sleep(self.delay)
        end = time.monotonic()
        with self._lock:
            self._active -= 1
            self.spans.append((start, end))
        return len(self.spans)

    def compare(self, old: Any, new: Any, log: TriggerLog) -> Comparison:
        return Comparison(False)


@pytest.mark.unit
class TestStart:
    def test_start_without_worker_sets_offline_flag(
        self, job_queue: RecordingJobQueue, queues: QueueRegistry
    ) -> None:
        pool = StaticWorkerPool([make_worker("", primary=True, executors=0)])
        trigger = PollingTrigger(
            TriggerSettings("watch"), SequenceStrategy([1]), pool, job_queue,
            queues=queues, engine=EngineConfig(),
        )
        trigger.start(FakeJob())
        assert trigger.store.offline_at_startup is True
        assert trigger.job is not None

    def test_offline_flag_set_under_store_lock(
        self, job_queue: RecordingJobQueue, queues: QueueRegistry
    ) -> None:
        pool = StaticWorkerPool([make_worker("", primary=True, executors=0)])
        trigger = PollingTrigger(
            TriggerSettings("watch"), SequenceStrategy([1]), pool, job_queue,
            queues=queues, engine=EngineConfig(),
        )
        starter = threading.Thread(target=trigger.start, args=(FakeJob(),))
        with trigger.store.locked():
            starter.start()
            time.sleep(0.05)
            assert trigger.store.offline_at_startup is False
        starter.join(timeout=5)
        assert trigger.store.offline_at_startup is True

    def test_start_fetches_baseline_when_requested(self, make_trigger: MakeTrigger) -> None:
        strategy = SequenceStrategy(["initial"], fetch_on_startup=True)
        trigger = make_trigger(strategy)
        trigger.start(FakeJob())
        assert trigger.context == "initial"
        assert trigger.store.offline_at_startup is False

    def test_start_without_fetch_leaves_no_baseline(self, make_trigger: MakeTrigger) -> None:
        trigger = make_trigger(SequenceStrategy(["initial"]))
        trigger.start(FakeJob())
        assert trigger.context is None

    def test_start_capture_failure_is_contained(self, make_trigger: MakeTrigger) -> None:
        strategy = FailingStrategy()
        strategy.fetch_on_startup = True
        trigger = make_trigger(strategy)
        trigger.start(FakeJob())
        assert trigger.context is None
        assert strategy.calls == 1

    def test_worker_independent_start_never_offline(
        self, job_queue: RecordingJobQueue, queues: QueueRegistry
    ) -> None:
        strategy = SequenceStrategy(["env"], requires_worker=False, fetch_on_startup=True)
        trigger = PollingTrigger(
            TriggerSettings("watch"), strategy, StaticWorkerPool(), job_queue,
            queues=queues, engine=EngineConfig(),
        )
        trigger.start(FakeJob())
        assert trigger.store.offline_at_startup is False
        assert trigger.context == "env"

    def test_first_poll_after_offline_start_only_records(
        self, job_queue: RecordingJobQueue, queues: QueueRegistry
    ) -> None:
        pool = StaticWorkerPool([make_worker("", primary=True, online=False)])
        trigger = PollingTrigger(
            TriggerSettings("watch"), SequenceStrategy([1, 2]), pool, job_queue,
            queues=queues, engine=EngineConfig(),
        )
        trigger.start(FakeJob())
        trigger.set_context(0)
        pool.add(make_worker("", primary=True))

        assert trigger.poll_now().changed is False
        assert trigger.store.offline_at_startup is False
        assert trigger.context == 1
        assert trigger.poll_now().changed is True


@pytest.mark.unit
class TestRunGating:
    def test_not_started_is_skipped(self, make_trigger: MakeTrigger) -> None:
        assert make_trigger(SequenceStrategy([1])).run() is None

    def test_quiescing_is_skipped(self, make_trigger: MakeTrigger, queues: QueueRegistry) -> None:
        trigger = make_trigger(SequenceStrategy([1]))
        trigger.start(FakeJob(quiescing=True))
        assert trigger.run() is None
        assert queues.kinds() == []

    def test_not_buildable_is_skipped(self, make_trigger: MakeTrigger) -> None:
        trigger = make_trigger(SequenceStrategy([1]))
        trigger.start(FakeJob(buildable=False))
        assert trigger.run() is None
        assert "not buildable" in (trigger.skip_reason() or "")

    def test_building_workspace_trigger_is_skipped(self, make_trigger: MakeTrigger) -> None:
        trigger = make_trigger(SequenceStrategy([1], requires_workspace=True))
        trigger.start(FakeJob(building=True))
        assert trigger.run() is None

    def test_building_with_overlap_allowed_polls(self, make_trigger: MakeTrigger) -> None:
        trigger = make_trigger(SequenceStrategy([1], requires_workspace=True), allow_overlap=True)
        trigger.start(FakeJob(building=True))
        future = trigger.run()
        assert future is not None
        assert future.result(timeout=5).changed is False

    def test_building_without_workspace_polls(self, make_trigger: MakeTrigger) -> None:
        trigger = make_trigger(SequenceStrategy([1]))
        trigger.start(FakeJob(building=True))
        assert trigger.run() is not None

    def test_stopped_trigger_is_skipped(self, make_trigger: MakeTrigger, sink: RecordingSink) -> None:
        trigger = make_trigger(SequenceStrategy([1]))
        trigger.start(FakeJob())
        trigger.stop()
        assert trigger.is_stopped
        assert trigger.run() is None
        assert "The trigger has been removed." in sink.lines

    def test_stop_lets_queued_poll_finish(self, make_trigger: MakeTrigger) -> None:
        strategy = OverlapRecordingStrategy(delay=0.05)
        trigger = make_trigger(strategy)
        trigger.start(FakeJob())
        future = trigger.run()
        trigger.stop()
        assert future is not None
        future.result(timeout=5)
        assert len(strategy.spans) == 1


@pytest.mark.unit
class TestSingleFlight:
    def test_same_kind_fires_never_overlap(self, make_trigger: MakeTrigger) -> None:
        strategy = OverlapRecordingStrategy()
        first = make_trigger(strategy, name="first")
        second = make_trigger(strategy, name="second")
        first.start(FakeJob())
        second.start(FakeJob())

        futures = [first.run(), second.run(), first.run(), second.run()]
        for f in futures:
            assert f is not None
            f.result(timeout=5)

        assert strategy.max_active == 1
        spans = sorted(strategy.spans)
        for (_, prev_end), (next_start, _) in zip(spans, spans[1:]):
            assert next_start >= prev_end

    def test_kind_shared_across_instances(self, make_trigger: MakeTrigger, queues: QueueRegistry) -> None:
        a = make_trigger(SequenceStrategy([1]), name="a")
        b = make_trigger(SequenceStrategy([1]), name="b")
        assert a.kind == b.kind == "SequenceStrategy"
        assert queues.for_kind(a.kind) is queues.for_kind(b.kind)


@pytest.mark.unit
class TestManualPoll:
    def test_manual_and_scheduled_paths_share_lock(self, make_trigger: MakeTrigger) -> None:
        strategy = OverlapRecordingStrategy(delay=0.05)
        trigger = make_trigger(strategy)
        trigger.start(FakeJob())

        future = trigger.run()
        manual = threading.Thread(target=trigger.poll_now)
        manual.start()
        manual.join(timeout=5)
        assert future is not None
        future.result(timeout=5)

        assert strategy.max_active == 1
        assert len(strategy.spans) == 2

    def test_reset_context(self, make_trigger: MakeTrigger) -> None:
        trigger = make_trigger(SequenceStrategy([1]))
        trigger.set_context("new")
        trigger.reset_context("old")
        assert trigger.context == "old"


@pytest.mark.unit
class TestLogFile:
    def test_log_written_under_engine_log_dir(
        self, pool: StaticWorkerPool, job_queue: RecordingJobQueue, queues: QueueRegistry, tmp_path: Path
    ) -> None:
        trigger = PollingTrigger(
            TriggerSettings("fs watch"), SequenceStrategy([1]), pool, job_queue,
            queues=queues, engine=EngineConfig(log_dir=tmp_path),
        )
        assert trigger.log_path == tmp_path / "fs_watch.log"
        trigger.poll_now()
        assert "No changes." in (tmp_path / "fs_watch.log").read_text()

    def test_explicit_log_file_wins(self, make_trigger: MakeTrigger, tmp_path: Path) -> None:
        trigger = make_trigger(SequenceStrategy([1]), log_file=tmp_path / "custom.log")
        assert trigger.log_path == tmp_path / "custom.log"

    def test_concurrent_polls_leave_one_complete_log(
        self, make_trigger: MakeTrigger, tmp_path: Path
    ) -> None:
        log_file = tmp_path / "watch.log"
        trigger = make_trigger(OverlapRecordingStrategy(delay=0.05), log_file=log_file)
        trigger.start(FakeJob())

        future = trigger.run()
        manual = threading.Thread(target=trigger.poll_now)
        manual.start()
        manual.join(timeout=5)
        assert future is not None
        future.result(timeout=5)

        content = log_file.read_text()
        assert content.startswith("Polling started on")
        assert content.count("Polling started on") == 1
        assert content.count("Polling complete. Took") == 1
        assert content.endswith("No changes.\n")


@pytest.mark.unit
class TestEndToEnd:
    def test_value_sequence_schedules_once(
        self, pool: StaticWorkerPool, job_queue: RecordingJobQueue, queues: QueueRegistry
    ) -> None:
        trigger = PollingTrigger(
            TriggerSettings("counter", schedule="*/5 * * * *", label="workers", cause="Counter moved"),
            SequenceStrategy([1, 1, 2, 2]),
            pool,
            job_queue,
            queues=queues,
            engine=EngineConfig(),
        )
        trigger.start(FakeJob())

        outcomes = []
        requests_after_fire = []
        for _ in range(4):
            future = trigger.run()
            assert future is not None
            outcomes.append(future.result(timeout=5).changed)
            requests_after_fire.append(len(job_queue.requests))

        assert outcomes == [False, False, True, False]
        assert requests_after_fire == [0, 0, 1, 1]
        assert trigger.context == 2
        request = job_queue.requests[0]
        assert request.trigger_name == "counter"
        assert request.cause_text == "[counter] Counter moved: value moved from 1 to 2 (log)"

    def test_failing_capture_never_schedules(
        self, make_trigger: MakeTrigger, job_queue: RecordingJobQueue
    ) -> None:
        trigger = make_trigger(FailingStrategy())
        trigger.start(FakeJob())
        for _ in range(3):
            future = trigger.run()
            assert future is not None
            assert future.result(timeout=5).changed is False
        assert job_queue.requests == []
