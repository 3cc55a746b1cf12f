"""
Structured logging for stepwise.

structlog configured once at process start; every module gets its logger
through :func:`get_logger` and logs dotted event names with keyword fields::

    logger = get_logger(__name__)
    logger.info("chunk.committed", step_name="load", commit_count=3)

Execution identity (job name, execution ids, step name) is bound through
contextvars with :class:`LogContext` so that it is attached to every event
emitted while a job or step is running.

Architecture:
    ::

        configure_logging(level=None, json_format=None)   (defaults: BatchSettings)
          │
          ▼
        processor chain
          1. merge_contextvars      (job / step identity)
          2. add_log_level
          3. add_logger_name
          4. TimeStamper(iso, utc)
          5. StackInfoRenderer / format_exc_info
          6. JSONRenderer  or  ConsoleRenderer

Tags:
    logging, structlog, observability, contextvars
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog
from structlog.types import Processor

from stepwise.core.settings import BatchSettings, get_settings

_configured = False


def configure_logging(
    level: str | None = None,
    json_format: bool | None = None,
    force: bool = False,
) -> None:
    """Configure structlog and stdlib logging.

    Subsequent calls are no-ops unless ``force=True``.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR); overrides
            ``STEPWISE_LOG_LEVEL``
        json_format: True for JSON, False for console; overrides
            ``STEPWISE_LOG_FORMAT``
        force: Reconfigure even if already configured
    """
    global _configured

    if _configured and not force:
        return

    if level is None or json_format is None:
        settings = get_settings()
        level = level or settings.log_level
        if json_format is None:
            json_format = settings.json_logs

    log_level = getattr(logging, level.upper())

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json_format:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
        force=True,
    )

    _configured = True


def configure_from_settings(settings: BatchSettings | None = None) -> None:
    """Apply ``log_level`` and ``log_format`` from settings.

    Leaves logging alone when it is already configured, here or by the
    application through ``structlog.configure``.
    """
    if _configured or structlog.is_configured():
        return
    settings = settings or get_settings()
    configure_logging(settings.log_level, settings.json_logs)


def is_configured() -> bool:
    """Check if logging has been configured."""
    return _configured


def get_logger(name: str | None = None) -> Any:
    """Get a structured logger (usually ``get_logger(__name__)``)."""
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Bind context to include in all subsequent logs."""
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    """Remove specific keys from logging context."""
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    """Clear all bound context."""
    structlog.contextvars.clear_contextvars()


class LogContext:
    """Context manager for scoped logging context.

    Example:
        with LogContext(job_name="import", step_name="load"):
            logger.info("step.started")
        # context unbound here

    Nested contexts restore the outer values on exit, so a step's
    context does not strip ``job_execution_id`` from later job events.
    """

    def __init__(self, **kwargs: Any):
        self._context = {k: v for k, v in kwargs.items() if v is not None}
        self._previous: dict[str, Any] = {}

    def __enter__(self) -> LogContext:
        bound = structlog.contextvars.get_contextvars()
        self._previous = {k: bound[k] for k in self._context if k in bound}
        bind_context(**self._context)
        return self

    def __exit__(self, *args: Any) -> None:
        unbind_context(*self._context.keys())
        if self._previous:
            bind_context(**self._previous)


__all__ = [
    "configure_logging",
    "configure_from_settings",
    "is_configured",
    "get_logger",
    "bind_context",
    "unbind_context",
    "clear_context",
    "LogContext",
]
