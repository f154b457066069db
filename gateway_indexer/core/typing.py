"""
Type and time helpers shared by the models and services.

SQLModel fields are declared with Python types (e.g., `status: str`) but at the
class level they're actually InstrumentedAttribute descriptors with SQLAlchemy
column methods like .desc(), .in_(), .is_(), etc. `col()` bridges that gap for
type checkers.
"""

import time
from datetime import datetime, timezone
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from sqlalchemy.orm.attributes import InstrumentedAttribute

T = TypeVar("T")


def col(attr: T) -> "InstrumentedAttribute[T]":
    """
    Type helper for SQLAlchemy column operations in queries.

    At runtime this is a no-op - it just returns the input unchanged.

    Usage:
        select(WebhookDelivery).where(col(WebhookDelivery.next_retry_at).is_(None))
    """
    return attr  # type: ignore[return-value]


def utc_now() -> datetime:
    """
    Current UTC time (timezone-aware), for bookkeeping columns.

    Usage:
        created_at: datetime = Field(default_factory=utc_now)
    """
    return datetime.now(timezone.utc)


def unix_now() -> int:
    """Current time in whole unix seconds, the unit used for chain and retry timestamps."""
    return int(time.time())
