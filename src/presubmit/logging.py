"""Structured logging for presubmit.

This module provides structured logging using structlog:
- Pretty console logs for developers running the gate locally
- JSON-formatted logs for CI log collectors
- Automatic context binding (entrypoint, stage)

Usage:
    from presubmit.logging import configure_logging, get_logger

    # Configure once at startup
    configure_logging(json_format=True)

    logger = get_logger(__name__)
    logger.info("stage.started", stage="build")
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog
from structlog.types import Processor

_configured = False


def configure_logging(
    json_format: bool = False,
    level: int = logging.INFO,
    logger_factory: Any = None,
) -> None:
    """Configure structured logging for presubmit.

    Call this once at startup before any logging occurs.

    Args:
        json_format: If True, output JSON logs (for CI).
                    If False, output pretty console logs.
        level: Minimum log level (default: INFO)
        logger_factory: Custom logger factory (for testing)
    """
    global _configured

    # Configure stdlib logging (structlog wraps it)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        stream=sys.stderr,
    )

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if json_format:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(
            structlog.dev.ConsoleRenderer(
                colors=sys.stderr.isatty(),
                exception_formatter=structlog.dev.plain_traceback,
            )
        )

    # Log lines go to stderr so they interleave with child process output
    # without polluting anything a caller captures from stdout.
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=logger_factory or structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )

    _configured = True


def is_configured() -> bool:
    return _configured


def get_logger(name: str) -> Any:
    """Get a structured logger for the given name.

    Args:
        name: Logger name (typically __name__)

    Returns:
        A bound logger that supports structured logging.
    """
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Bind context variables that will be included in all subsequent logs.

    Example:
        bind_context(entrypoint="local")
        logger.info("stage.started")  # Includes entrypoint
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    """Remove specific context variables."""
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    """Clear all bound context variables.

    Call this at the end of a run to prevent context leakage.
    """
    structlog.contextvars.clear_contextvars()
