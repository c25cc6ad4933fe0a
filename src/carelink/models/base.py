"""Base model classes for database models."""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import Column, DateTime, event
from sqlalchemy.orm import Mapper, declarative_base

from carelink.core.exceptions import IntegrityViolationError

from .db_types import UUID

Base: Any = declarative_base()


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Return ``value`` as an aware UTC datetime.

    SQLite hands back naive values; PostgreSQL hands back values in the
    session time zone. Both are normalised so rendered timestamps are stable.
    """
    if value is None:
        return value
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class BaseModel(Base):
    """Base model class with common fields."""

    __abstract__ = True

    id = Column(UUID(), primary_key=True, default=uuid.uuid4, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        """Convert model to dictionary."""
        result = {}
        for column in self.__table__.columns:
            value = getattr(self, column.name)
            if isinstance(value, datetime):
                value = ensure_utc(value).isoformat()
            elif isinstance(value, uuid.UUID):
                value = str(value)
            elif hasattr(value, "value"):
                value = value.value
            result[column.name] = value
        return result

    def __repr__(self) -> str:
        """Return string representation."""
        return f"<{self.__class__.__name__}(id={self.id})>"


class AppendOnlyMixin:
    """Rows of this model may be inserted but never updated or deleted."""


def _reject_mutation(mapper: Mapper, connection: Any, target: Any) -> None:
    """Refuse UPDATE/DELETE on append-only rows."""
    _ = connection  # Required by SQLAlchemy but not used
    raise IntegrityViolationError(
        f"{mapper.class_.__name__} rows are append-only (id={target.id})"
    )


event.listen(AppendOnlyMixin, "before_update", _reject_mutation, propagate=True)
event.listen(AppendOnlyMixin, "before_delete", _reject_mutation, propagate=True)
