"""
Type helpers for SQLAlchemy/SQLModel compatibility with type checkers.

SQLModel fields are declared with Python types (e.g., `name: str`) but at the
class level they're actually InstrumentedAttribute descriptors with SQLAlchemy
column methods like .desc(), .in_(), .ilike(), etc.

Type checkers (mypy, ty) see them as plain Python types and report errors when
column methods are called. This module provides helpers to bridge that gap.
"""

from typing import TYPE_CHECKING, Any, TypeVar
from datetime import datetime, timezone

if TYPE_CHECKING:
    from sqlalchemy.orm.attributes import InstrumentedAttribute

T = TypeVar("T")


def col(attr: T) -> "InstrumentedAttribute[T]":
    """
    Type helper for SQLAlchemy column operations in queries.

    At runtime this is a no-op - it just returns the input unchanged.

    Usage:
        from app.core.typing import col

        select(Agency).order_by(col(Agency.trust_score).desc())
    """
    return attr  # type: ignore[return-value]


def utc_now() -> datetime:
    """
    Get current UTC time (timezone-aware).

    Use as default_factory in SQLModel fields.

    Usage:
        created_at: datetime = Field(default_factory=utc_now)
    """
    return datetime.now(timezone.utc)


def to_jsonable(value: Any) -> Any:
    """Convert datetimes to ISO strings so rows match the REST backend's JSON shape."""
    if isinstance(value, datetime):
        return value.isoformat()
    return value
