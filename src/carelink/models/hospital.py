"""Hospital database model."""

from sqlalchemy import Column, String

from .base import BaseModel


class Hospital(BaseModel):
    """A care institution whose staff request access to patient records."""

    __tablename__ = "hospitals"

    name = Column(String(200), nullable=False)
