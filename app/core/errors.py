"""
Error taxonomy and unified exception capture.

Provides:
- BackendError: an error reported by the data backend, carrying a
  machine-readable code (PostgREST/Postgres codes like "23505", or "429")
- ServiceUnavailableError: raised while the circuit breaker is open
- CsvValidationError: a bulk-upload file failed parsing/validation
- capture_exception: structured logging of an exception with context

Usage:
    try:
        await backend.insert("agencies", payload)
    except BackendError as exc:
        capture_exception(exc, context={"row": 12})
"""

from typing import Optional, Any, Dict
from datetime import datetime, timezone

from app.core.logging_config import get_logger

logger = get_logger(__name__)

__all__ = [
    "BackendError",
    "ServiceUnavailableError",
    "CsvValidationError",
    "capture_exception",
    "NOT_FOUND",
    "DUPLICATE",
    "FOREIGN_KEY_VIOLATION",
    "PERMISSION_DENIED",
    "UNDEFINED_COLUMN",
    "RATE_LIMITED",
]

# Error codes as reported by the hosted backend (PostgREST + Postgres SQLSTATE)
NOT_FOUND = "PGRST116"
DUPLICATE = "23505"
FOREIGN_KEY_VIOLATION = "23503"
PERMISSION_DENIED = "42501"
UNDEFINED_COLUMN = "42703"
RATE_LIMITED = "429"

SERVICE_UNAVAILABLE_MESSAGE = "Service temporarily unavailable. Please try again later."


class BackendError(Exception):
    """Error returned by a backend operation."""

    def __init__(self, message: str, code: Optional[str] = None, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details

    def __repr__(self) -> str:
        return f"BackendError(code={self.code!r}, message={self.message!r})"


class ServiceUnavailableError(Exception):
    """The circuit breaker is open; calls fail fast until the cool-down ends."""

    def __init__(self, message: str = SERVICE_UNAVAILABLE_MESSAGE):
        super().__init__(message)
        self.message = message


class CsvValidationError(ValueError):
    """A bulk-upload CSV document is malformed or has invalid values."""

    def __init__(self, message: str, row: Optional[int] = None, column: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.row = row
        self.column = column


def capture_exception(
    exc: BaseException,
    context: Optional[Dict[str, Any]] = None,
    level: str = "error",
) -> None:
    """
    Log an exception with structured context.

    Args:
        exc: Exception to capture
        context: Additional context dict (e.g., {"row": 12, "job_id": "..."})
        level: Log level to emit at ("warning" or "error")
    """
    enriched_context = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "error_type": type(exc).__name__,
        "error": str(exc),
        **(context or {}),
    }
    code = getattr(exc, "code", None)
    if code:
        enriched_context["error_code"] = code

    if level == "warning":
        logger.warning("exception_captured", **enriched_context)
    else:
        logger.error("exception_captured", exc_info=exc, **enriched_context)
