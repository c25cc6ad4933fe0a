"""Health check and metrics endpoints."""

from typing import Any, Dict

from fastapi import APIRouter, Response, status
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from carelink.config import get_settings
from carelink.core.database import get_db
from carelink.utils.logging import get_logger

router = APIRouter(tags=["health"])
logger = get_logger(__name__)


def check_database() -> bool:
    """Check database connectivity."""
    try:
        with get_db() as db:
            return db.execute(text("SELECT 1")).scalar() == 1
    except SQLAlchemyError as e:
        logger.error("database_check_failed", error=str(e))
        return False


@router.get("/health")
def health(response: Response) -> Dict[str, Any]:
    """Liveness plus database reachability."""
    settings = get_settings()
    database_ok = check_database()
    if not database_ok:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return {
        "status": "healthy" if database_ok else "unhealthy",
        "version": settings.app_version,
        "environment": settings.environment,
        "checks": {"database": database_ok},
    }


@router.get("/metrics")
def metrics() -> Response:
    """Prometheus exposition."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
