"""
Log setup for the directory API, the bulk-upload worker and the import script.

Every module logs through structlog with an event name plus key/value fields.
Events carry the backend operation, the circuit breaker transition or the
upload job they belong to; code running inside a background upload binds
job_id once and it is attached to every line that job emits.

Usage:
    from app.core.logging_config import bind_log_context, get_logger

    logger = get_logger(__name__)
    bind_log_context(job_id=job.job_id)
    logger.info("bulk_upload_completed", success=42, failed=1)

ENVIRONMENT=production renders one JSON object per line:
    {"job_id": "upload_3f2a9c...", "success": 42, "failed": 1,
     "event": "bulk_upload_completed", "level": "info", "timestamp": "2025-01-01T12:00:00Z"}

Anything else renders key=value console lines:
    2025-01-01T12:00:00Z [info     ] bulk_upload_completed  failed=1 job_id=upload_3f2a9c... success=42
"""

import logging
import sys
from typing import Any

import structlog

from app.core.config import settings

# Rendering and level, fixed at import
IS_PRODUCTION = settings.ENVIRONMENT == "production"
IS_TEST = "pytest" in sys.modules
LOG_LEVEL = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)


def configure_logging() -> None:
    """Install the structlog pipeline used by the API, upload jobs and scripts."""

    # job_id and other bound context first, then level and timestamp
    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if IS_PRODUCTION:
        # One JSON object per line; tracebacks flattened into the "exception" field
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        # key=value lines; no ANSI colours under pytest
        processors = shared_processors + [
            structlog.dev.ConsoleRenderer(colors=not IS_TEST),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(LOG_LEVEL),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # uvicorn and SQLAlchemy log through the stdlib root logger
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=LOG_LEVEL,
    )

    # Per-request transport and SQL echo lines stay at WARNING
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        A structlog logger; output format follows ENVIRONMENT
    """
    return structlog.get_logger(name)


def bind_log_context(**values: Any) -> None:
    """Attach values (e.g. job_id) to every log line emitted by the current task."""
    structlog.contextvars.bind_contextvars(**values)


def clear_log_context() -> None:
    structlog.contextvars.clear_contextvars()


# Configure on import
configure_logging()
