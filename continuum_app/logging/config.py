"""
Centralized logging configuration for the Continuum tracking engine.

This module provides standardized logging configuration using structlog
for all components. All logging throughout the system should use this
configuration to ensure consistent formatting and structured logging.
"""
import logging
import sys
from typing import Any, Optional

import structlog
from structlog.types import FilteringBoundLogger


def configure_logging(
    level: str = "INFO",
    format_json: bool = False,
    include_timestamp: bool = True,
    include_caller: bool = False,
    extra_processors: Optional[list] = None
) -> None:
    """
    Configure structlog for the entire application.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_json: If True, output JSON format; otherwise human-readable
        include_timestamp: Include timestamp in log output
        include_caller: Include caller information (filename, line number)
        extra_processors: Additional structlog processors to include
    """
    log_level = getattr(logging, level.upper())

    logging.basicConfig(
        level=log_level,
        stream=sys.stdout,
        format="%(message)s"  # structlog will handle formatting
    )

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if include_timestamp:
        processors.append(structlog.processors.TimeStamper(fmt="iso"))

    if include_caller:
        processors.append(structlog.processors.CallsiteParameterAdder(
            parameters=[structlog.processors.CallsiteParameter.FILENAME,
                       structlog.processors.CallsiteParameter.LINENO]
        ))

    if extra_processors:
        processors.extend(extra_processors)

    if format_json:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> FilteringBoundLogger:
    """
    Get a configured structlog logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured structlog logger instance
    """
    return structlog.get_logger(name)


def get_lifecycle_logger(name: str) -> FilteringBoundLogger:
    """
    Get a logger bound for period lifecycle events.

    Every committed transition is written through this logger so the
    audit trail of opened and closed periods can be filtered on
    ``subsystem="lifecycle"``.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured structlog logger for lifecycle transitions
    """
    logger = get_logger(name)

    return logger.bind(
        subsystem="lifecycle",
        audit_trail=True
    )


def get_storage_logger(name: str) -> FilteringBoundLogger:
    """Get a logger bound for the persistence layer."""
    return get_logger(name).bind(subsystem="storage")


def log_period_transition(
    logger: FilteringBoundLogger,
    kind: str,
    closed_id: Optional[str],
    opened_id: str,
    timestamp: int,
    context: Optional[dict[str, Any]] = None
) -> None:
    """
    Log a committed period transition with standardized format.

    Args:
        logger: Structlog logger instance
        kind: Transition kind (bootstrap, end_and_start, pause, resume, recovery)
        closed_id: Id of the period that was closed, if any
        opened_id: Id of the newly opened period
        timestamp: Boundary timestamp shared by both periods (ms)
        context: Additional context data
    """
    bound_logger = logger.bind(
        transition_kind=kind,
        closed_period_id=closed_id,
        opened_period_id=opened_id,
        boundary_ms=timestamp,
    )

    if context:
        bound_logger = bound_logger.bind(context=context)

    bound_logger.info("Period transition")
