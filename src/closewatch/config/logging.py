"""Structured logging configuration for closewatch."""

import logging
import sys
from typing import Literal

import structlog

from closewatch.config.settings import get_settings

# Client libraries that log every HTTP round trip at INFO.
NOISY_LIBRARIES = ("openai", "httpx", "httpcore")


def configure_logging(
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] | None = None,
    format: Literal["json", "console"] | None = None,
) -> None:
    """Configure structured logging for engine runs and reports.

    Log lines go to stderr so report output on stdout stays parseable
    (``close_report.py --json``).

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR). Defaults to settings.
        format: Output format (json or console). Defaults to settings.
    """
    settings = get_settings()
    log_level = getattr(logging, level or settings.log_level)
    log_format = format or settings.log_format

    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=log_level)
    for name in NOISY_LIBRARIES:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    if log_format == "json":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(
            colors=sys.stderr.isatty(),
            exception_formatter=structlog.dev.plain_traceback,
        )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def bind_close_context(period: str, **extra: str) -> None:
    """Attach the close period (and any extra keys) to every later event."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(period=period, **extra)
