"""TriggerLog — the human-readable log of one poll.

Every poll writes its own log.  The text is kept in memory so it can be
attached to scheduled work, optionally mirrored to a per-trigger file
(truncated at the start of each poll) and forwarded line by line to a host
``LogSink``.
"""

from __future__ import annotations

import io
from pathlib import Path
from typing import IO

from polltrigger.logging import get_logger
from polltrigger.triggers.host import LogSink

log = get_logger(__name__)

ERROR_PREFIX = "[ERROR] - "


class TriggerLog:
    """Line-oriented poll log.

    Usage::

        with TriggerLog(path=settings.log_file, sink=host_sink) as plog:
            plog.info("Polling started.")
            plog.error("Capture failed.")
        attachment = plog.snapshot()
    """

    def __init__(self, path: Path | None = None, sink: LogSink | None = None) -> None:
        self._buffer = io.StringIO()
        self._sink = sink
        self._path = path
        self._file: IO[str] | None = None
        self._closed = False
        if path is not None:
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                self._file = path.open("w", encoding="utf-8")
            except OSError as exc:
                log.warning("poll_log_file_unavailable", path=str(path), error=str(exc))

    def __enter__(self) -> "TriggerLog":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ---------------------------------------------------------------------------
    # Writing
    # ---------------------------------------------------------------------------

    def info(self, message: str) -> None:
        self._write(message)

    def error(self, message: str) -> None:
        self._write(ERROR_PREFIX + message)

    def _write(self, message: str) -> None:
        if self._closed:
            return
        # Multi-line messages are split so the sink always sees single lines.
        for line in message.split("\n"):
            self._buffer.write(line + "\n")
            if self._file is not None:
                self._file.write(line + "\n")
            if self._sink is not None:
                try:
                    self._sink.append(line)
                except Exception as exc:
                    log.warning("poll_log_sink_failed", error=str(exc))
                    self._sink = None

    # ---------------------------------------------------------------------------
    # Reading
    # ---------------------------------------------------------------------------

    def text(self) -> str:
        return self._buffer.getvalue()

    def snapshot(self) -> bytes:
        """The whole log so far, UTF-8 encoded."""
        return self.text().encode("utf-8")

    @property
    def path(self) -> Path | None:
        return self._path

    def close(self) -> None:
        """Close the backing file.  Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        if self._file is not None:
            try:
                self._file.close()
            except OSError as exc:
                log.warning("poll_log_close_failed", path=str(self._path), error=str(exc))
            self._file = None
