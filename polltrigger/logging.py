"""polltrigger — Structured logging configuration.

Operator-facing log, rendered by structlog.  While a poll runs, every record
carries ``trigger_name`` and ``poll_id``.  The human-readable log captured for
each poll and attached to scheduled work lives in ``triggers/poll_log.py``.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

from polltrigger.config import LoggingConfig, get_settings

_POLL_KEYS = ("trigger_name", "poll_id")


def bind_poll_context(trigger_name: str | None = None, poll_id: str | None = None) -> None:
    """Bind polling context to the current thread."""
    values = {"trigger_name": trigger_name, "poll_id": poll_id}
    structlog.contextvars.bind_contextvars(**{k: v for k, v in values.items() if v is not None})


def clear_poll_context() -> None:
    structlog.contextvars.unbind_contextvars(*_POLL_KEYS)


def configure_logging(
    level: str = "info",
    format: str = "console",
    log_file: str | None = None,
) -> None:
    """Configure structlog and stdlib logging.

    Args:
        level:    One of debug, info, warning, error, critical.
        format:   ``"console"`` or ``"json"``.
        log_file: Optional path to write logs to in addition to stdout.
    """
    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if format == "json":
        renderer: Any = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=[*shared_processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
    )

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    for handler in handlers:
        handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers = handlers
    root_logger.setLevel(level.upper())


def configure_from_settings(config: LoggingConfig | None = None) -> None:
    """Host entry point: apply ``Settings.logging`` (or *config*).

    Call once at startup, before any trigger is started.
    """
    config = config or get_settings().logging
    configure_logging(
        level=config.level,
        format=config.format,
        log_file=str(config.file) if config.file is not None else None,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a bound structlog logger for *name*.

    Usage::

        log = get_logger(__name__)
        log.info("poll_started", trigger="nightly-fs", worker="agent-1")
    """
    return structlog.get_logger(name)
