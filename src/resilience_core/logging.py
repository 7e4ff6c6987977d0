"""Structured logging for circuit breakers.

Breakers log exactly one event, ``circuit_breaker_state_changed``, through any
logger offering ``info``: a structlog logger receives keyword fields and a
stdlib logger receives them as ``extra``.
"""

from __future__ import annotations

import logging
import sys
from typing import Protocol

import structlog

STATE_CHANGED_EVENT = "circuit_breaker_state_changed"

_LOG_LEVELS: dict[str, int] = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

StdlibLogger = logging.Logger | logging.LoggerAdapter[logging.Logger]


class StructuredLogger(Protocol):
    """Logger accepting an event name plus keyword fields."""

    def info(self, event: str, **kwargs: object) -> None:
        """Log an informational event."""


LoggerLike = StructuredLogger | StdlibLogger


def get_log_level_value(level: str) -> int:
    """Return stdlib log level constant for a normalized level string."""
    normalized = level.strip().upper()
    try:
        return _LOG_LEVELS[normalized]
    except KeyError as error:
        choices = ", ".join(sorted(_LOG_LEVELS))
        raise ValueError(f"log_level must be one of: {choices}") from error


def log_state_change(
    logger: LoggerLike,
    *,
    breaker: str,
    old_state: str,
    new_state: str,
    reason: str,
) -> None:
    """Log one breaker transition."""
    fields: dict[str, object] = {
        "breaker": breaker,
        "old_state": old_state,
        "new_state": new_state,
        "reason": reason,
    }
    if isinstance(logger, (logging.Logger, logging.LoggerAdapter)):
        logger.info(STATE_CHANGED_EVENT, extra=fields)
        return
    logger.info(STATE_CHANGED_EVENT, **fields)


def configure_structlog(
    *,
    log_level: str,
    json_output: bool | None = None,
) -> structlog.stdlib.BoundLogger:
    """Route structlog and stdlib logging through one stderr handler.

    Args:
        log_level: Level name, e.g. ``"INFO"``.
        json_output: Force JSON (``True``) or console (``False``) rendering.
            ``None`` picks console output when stderr is a TTY.

    Safe to call more than once; the root handler is replaced each time.
    """
    level_value = get_log_level_value(log_level)
    if json_output is None:
        json_output = not sys.stderr.isatty()
    renderer: structlog.types.Processor = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer()
    )
    timestamper = structlog.processors.TimeStamper(fmt="iso", utc=True)

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            timestamper,
        ],
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    logging.basicConfig(handlers=[handler], level=level_value, force=True)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            timestamper,
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    return structlog.stdlib.get_logger("resilience_core")
