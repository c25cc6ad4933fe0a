"""Base service class for common functionality."""

from typing import Any, Optional, Type, TypeVar
from uuid import UUID

from sqlalchemy.orm import Session

from carelink.config import Settings, get_settings
from carelink.core.exceptions import NotFoundError, ValidationError
from carelink.models.base import BaseModel

T = TypeVar("T", bound=BaseModel)


def parse_id(value: Any, field: str) -> UUID:
    """Coerce a caller-supplied identifier to a UUID.

    Raises:
        ValidationError: when the value is empty or not a UUID
    """
    if isinstance(value, UUID):
        return value
    if value is None or not str(value).strip():
        raise ValidationError(f"{field} is required", field=field)
    try:
        return UUID(str(value).strip())
    except ValueError as e:
        raise ValidationError(f"{field} is not a valid identifier", field=field) from e


class BaseService:
    """Holds the session and settings every protocol service works with."""

    def __init__(self, session: Session, settings: Optional[Settings] = None):
        """Initialize service with database session."""
        self.session = session
        self.settings = settings or get_settings()

    def _get_or_404(self, model_class: Type[T], entity_id: UUID) -> T:
        """Load a row by primary key or raise NotFoundError."""
        instance = self.session.get(model_class, entity_id)
        if instance is None:
            raise NotFoundError(f"{model_class.__name__} {entity_id} not found")
        return instance
