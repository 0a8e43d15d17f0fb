"""
Structured logging for rulecell.

A single ``configure_logging()`` call sets up structlog for the process;
modules obtain loggers with ``get_logger(__name__)`` and log snake_case
events with key/value fields::

    logger.info("unit_compiled", unit="RuleExpRates_12", duration_ms=3.1)

Table identity is usually bound once per evaluation with ``LogContext`` so
that every event emitted underneath carries it.

Architecture:
    ::

        configure_logging(level, json_format, service)
            │
            ▼
        structlog processor chain (rendered through stdlib logging):
          1. filter_by_level
          2. merge_contextvars       (LogContext / bind_context)
          3. add_log_level
          4. add_logger_name
          5. TimeStamper(iso, utc)
          6. add_service_metadata
          7. StackInfoRenderer / format_exc_info
          8. JSONRenderer | ConsoleRenderer

Examples:
    >>> from rulecell.logging import configure_logging, get_logger, LogContext
    >>> configure_logging(level="DEBUG", json_format=False)
    >>> logger = get_logger(__name__)
    >>> with LogContext(table="rates", version="1.0.0"):
    ...     logger.debug("cell_evaluated")

Tags:
    logging, structlog, observability, rulecell

Doc-Types:
    - API Reference
    - Observability Guide
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

_SERVICE_NAME = "rulecell"
_configured = False


def _add_service_metadata(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Add service-level metadata to all logs."""
    event_dict.setdefault("service", _SERVICE_NAME)
    return event_dict


def configure_logging(
    level: str | None = None,
    json_format: bool | None = None,
    service: str = "rulecell",
    force: bool = False,
) -> None:
    """Configure structured logging for the application.

    Subsequent calls are no-ops unless ``force=True``.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR); defaults to settings
        json_format: True for JSON, False for console, None reads settings
        service: Service name to include in logs
        force: Reconfigure even if already configured
    """
    global _SERVICE_NAME, _configured

    if _configured and not force:
        return

    from rulecell.settings import get_settings

    settings = get_settings()
    log_level = (level or settings.log_level).upper()
    if json_format is None:
        json_format = settings.log_format == "json"

    _SERVICE_NAME = service

    processors: list[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _add_service_metadata,
        structlog.processors.StackInfoRenderer(),
    ]

    if json_format:
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, log_level),
    )
    logging.getLogger("rulecell").setLevel(getattr(logging, log_level))

    _configured = True


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


def is_configured() -> bool:
    """Check if logging has been configured."""
    return _configured


class LogContext:
    """Context manager for scoped logging context.

    Example:
        with LogContext(table="rates", version="1.0.0"):
            logger.info("cell_evaluated")
        # Context cleared here
    """

    def __init__(self, **kwargs: Any):
        self._context = kwargs
        self._tokens: Any = None

    def __enter__(self) -> LogContext:
        self._tokens = structlog.contextvars.bind_contextvars(**self._context)
        return self

    def __exit__(self, *args: Any) -> None:
        structlog.contextvars.reset_contextvars(**self._tokens)


__all__ = [
    "configure_logging",
    "get_logger",
    "bind_context",
    "unbind_context",
    "clear_context",
    "is_configured",
    "LogContext",
]
