"""FastAPI dependencies: database session, gateway and caller identity."""

from typing import Generator, Optional

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from carelink.api.exceptions import MissingSubjectError
from carelink.config import get_settings
from carelink.core.database import get_session_factory
from carelink.gateway import AccessGateway


def get_session() -> Generator[Session, None, None]:
    """One session per request, closed afterwards."""
    session = get_session_factory()()
    try:
        yield session
    finally:
        session.close()


def get_gateway(session: Session = Depends(get_session)) -> AccessGateway:
    """Gateway bound to the request's session."""
    return AccessGateway(session, get_settings())


def get_subject_id(x_subject_id: Optional[str] = Header(None)) -> str:
    """Subject id the identity provider attached to the request."""
    if x_subject_id is None or not x_subject_id.strip():
        raise MissingSubjectError()
    return x_subject_id.strip()


gateway_dependency = Depends(get_gateway)
subject_dependency = Depends(get_subject_id)
