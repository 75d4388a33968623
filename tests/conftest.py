"""Shared pytest fixtures for the polltrigger test suite."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Generator, Iterable

import pytest

from polltrigger.config import EngineConfig, Settings, override_settings
from polltrigger.triggers.context import ContextStrategy
from polltrigger.triggers.models import Comparison, ScheduleRequest, TriggerSettings, Worker
from polltrigger.triggers.poll_log import TriggerLog
from polltrigger.triggers.pool import StaticWorkerPool
from polltrigger.triggers.queue import QueueRegistry
from polltrigger.triggers.trigger import PollingTrigger


# ---------------------------------------------------------------------------
# Host fakes
# ---------------------------------------------------------------------------


@dataclass
class FakeJob:
    name: str = "demo-job"
    buildable: bool = True
    building: bool = False
    quiescing: bool = False
    label: str | None = None
    last_worker: Worker | None = None

    def is_buildable(self) -> bool:
        return self.buildable

    def is_building(self) -> bool:
        return self.building

    def is_quiescing(self) -> bool:
        return self.quiescing

    def assigned_label(self) -> str | None:
        return self.label

    def last_worker_used(self) -> Worker | None:
        return self.last_worker


@dataclass
class RecordingJobQueue:
    """Accepts every request unless ``reject`` is set."""

    reject: bool = False
    raise_on_submit: bool = False
    requests: list[ScheduleRequest] = field(default_factory=list)

    def submit(self, request: ScheduleRequest) -> Any:
        if self.raise_on_submit:
            raise RuntimeError("queue is full")
        if self.reject:
            return None
        self.requests.append(request)
        return len(self.requests)


@dataclass
class RecordingSink:
    lines: list[str] = field(default_factory=list)

    def append(self, line: str) -> None:
        self.lines.append(line)


class SequenceStrategy(ContextStrategy):
    """Captures successive values from a list; the last one repeats."""

    def __init__(
        self,
        values: Iterable[Any],
        *,
        requires_worker: bool = True,
        requires_workspace: bool = False,
        fetch_on_startup: bool = False,
    ) -> None:
        self.values = list(values)
        self.requires_worker = requires_worker
        self.requires_workspace = requires_workspace
        self.fetch_on_startup = fetch_on_startup
        self.captured_on: list[Worker | None] = []
        self._index = 0
        self._lock = threading.Lock()

    def capture(self, worker: Worker | None, log: TriggerLog) -> Any:
        with self._lock:
            self.captured_on.append(worker)
            value = self.values[min(self._index, len(self.values) - 1)]
            self._index += 1
        log.info(f"Captured {value!r}")
        return value

    def compare(self, old: Any, new: Any, log: TriggerLog) -> Comparison:
        if old != new:
            return Comparison(True, f"value moved from {old} to {new}")
        return Comparison(False)


class FailingStrategy(ContextStrategy):
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error or OSError("disk unreadable")
        self.calls = 0

    def capture(self, worker: Worker | None, log: TriggerLog) -> Any:
        self.calls += 1
        raise RuntimeError("capture blew up") from self.error

    def compare(self, old: Any, new: Any, log: TriggerLog) -> bool:
        return True


# ---------------------------------------------------------------------------
# Workers
# ---------------------------------------------------------------------------


def make_worker(
    name: str,
    *labels: str,
    executors: int = 1,
    online: bool = True,
    primary: bool = False,
) -> Worker:
    return Worker(
        name=name,
        num_executors=executors,
        root_path=Path(f"/srv/{name or 'primary'}") if online else None,
        labels=frozenset(labels),
        is_primary=primary,
    )


@pytest.fixture
def primary() -> Worker:
    return make_worker("", primary=True)


@pytest.fixture
def pool(primary: Worker) -> StaticWorkerPool:
    return StaticWorkerPool(
        [
            primary,
            make_worker("agent-a", "workers", "linux"),
            make_worker("agent-b", "workers", "linux"),
            make_worker("agent-c", "workers"),
        ]
    )


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


@pytest.fixture
def engine() -> EngineConfig:
    return EngineConfig()


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    settings = Settings(
        engine={"log_dir": str(tmp_path / "logs")},
        logging={"level": "debug", "format": "console"},
    )
    override_settings(settings)
    return settings


@pytest.fixture
def queues() -> Generator[QueueRegistry, None, None]:
    registry = QueueRegistry(thread_prefix="test-poll")
    yield registry
    registry.shutdown(wait=True)


@pytest.fixture
def job() -> FakeJob:
    return FakeJob()


@pytest.fixture
def job_queue() -> RecordingJobQueue:
    return RecordingJobQueue()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def make_trigger(
    pool: StaticWorkerPool,
    job_queue: RecordingJobQueue,
    queues: QueueRegistry,
    engine: EngineConfig,
    sink: RecordingSink,
) -> Callable[..., PollingTrigger]:
    def _make(
        strategy: ContextStrategy,
        name: str = "watch",
        **settings_kwargs: Any,
    ) -> PollingTrigger:
        return PollingTrigger(
            TriggerSettings(name=name, **settings_kwargs),
            strategy=strategy,
            registry=pool,
            job_queue=job_queue,
            queues=queues,
            log_sink=sink,
            engine=engine,
        )

    return _make
