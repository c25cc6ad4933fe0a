"""Database connection and session management."""

from contextlib import contextmanager
from typing import Any, Dict, Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, OperationalError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session, sessionmaker

from carelink.config import Settings, get_settings
from carelink.core.exceptions import (
    CareLinkError,
    IntegrityViolationError,
    StorageError,
)
from carelink.models.base import Base
from carelink.utils.logging import get_logger

logger = get_logger(__name__)

_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None


def build_engine(settings: Settings, **overrides: Any) -> Engine:
    """Create an engine with per-call timeouts taken from settings."""
    if settings.is_sqlite:
        connect_args: Dict[str, Any] = {
            "check_same_thread": False,
            "timeout": settings.database_statement_timeout_ms / 1000,
        }
        kwargs: Dict[str, Any] = {"connect_args": connect_args}
    else:
        connect_args = {
            "connect_timeout": settings.database_pool_timeout,
            "options": f"-c statement_timeout={settings.database_statement_timeout_ms}",
        }
        kwargs = {
            "connect_args": connect_args,
            "pool_size": settings.database_pool_size,
            "max_overflow": settings.database_max_overflow,
            "pool_timeout": settings.database_pool_timeout,
            "pool_pre_ping": True,
            "pool_recycle": 3600,
        }
    kwargs.update(overrides)
    return create_engine(settings.database_url, echo=settings.debug, **kwargs)


def make_session_factory(engine: Engine) -> sessionmaker:
    """Session factory bound to ``engine``."""
    return sessionmaker(
        bind=engine,
        class_=Session,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )


def get_engine() -> Engine:
    """Get or create the application engine."""
    global _engine
    if _engine is None:
        _engine = build_engine(get_settings())
    return _engine


def get_session_factory() -> sessionmaker:
    """Get or create the application session factory."""
    global _session_factory
    if _session_factory is None:
        _session_factory = make_session_factory(get_engine())
    return _session_factory


@contextmanager
def get_db() -> Generator[Session, None, None]:
    """Get a database session, closed on exit."""
    db = get_session_factory()()
    try:
        yield db
    finally:
        db.close()


def translate_db_error(exc: SQLAlchemyError) -> CareLinkError:
    """Map a SQLAlchemy failure onto the protocol's error taxonomy.

    Lost connections, lock timeouts and pool exhaustion are transient and
    become StorageError. Everything else means the store refused a write the
    protocol expected to succeed.
    """
    if isinstance(exc, (OperationalError, PoolTimeoutError)):
        return StorageError(f"Record store unavailable: {exc}")
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return StorageError(f"Record store connection lost: {exc}")
    return IntegrityViolationError(f"Record store rejected the operation: {exc}")


@contextmanager
def unit_of_work(session: Session) -> Generator[Session, None, None]:
    """Run the enclosed block as one transaction.

    Commits on success. On any failure the session is rolled back so that no
    partial state is observable, and SQLAlchemy errors are translated.
    """
    try:
        yield session
        session.commit()
    except CareLinkError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        session.rollback()
        error = translate_db_error(e)
        logger.warning(
            "transaction_rolled_back", error_kind=error.kind.value, error=str(e)
        )
        raise error from e
    except Exception:
        session.rollback()
        raise


def init_db(engine: Optional[Engine] = None) -> None:
    """Initialize database with tables."""
    # Import models so they register with Base.metadata
    from carelink import models  # noqa: F401  # pylint: disable=import-outside-toplevel

    Base.metadata.create_all(bind=engine or get_engine())


def drop_db(engine: Optional[Engine] = None) -> None:
    """Drop all database tables (use with caution)."""
    Base.metadata.drop_all(bind=engine or get_engine())
