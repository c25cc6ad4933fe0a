"""FastAPI application factory for CareLink Consent."""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from carelink.api import (
    access_endpoints,
    dashboard_endpoints,
    health,
    record_endpoints,
    review_endpoints,
)
from carelink.api.exceptions import BaseAPIException
from carelink.config import Settings, get_settings
from carelink.utils.logging import get_logger, setup_logging

logger = get_logger(__name__)


def create_app(settings: Optional[Settings] = None, create_tables: bool = False) -> FastAPI:
    """Build the application.

    Args:
        settings: Settings to use; defaults to the cached environment settings
        create_tables: Create missing tables on startup (local runs; production
            uses Alembic)
    """
    settings = settings or get_settings()
    setup_logging(settings.log_level, settings.log_format)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Application lifespan handler."""
        logger.info(
            "application_starting",
            app_name=settings.app_name,
            version=settings.app_version,
            environment=settings.environment,
        )
        if create_tables:
            from carelink.core.database import init_db  # pylint: disable=import-outside-toplevel

            init_db()
            logger.info("database_initialized")
        yield
        logger.info("application_stopping")

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Patient-consented, audited access to medical records across hospitals",
        docs_url="/api/docs" if settings.debug else None,
        redoc_url="/api/redoc" if settings.debug else None,
        openapi_url="/api/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )

    # Health check endpoints
    app.include_router(health.router, prefix="")

    # Consent protocol endpoints
    app.include_router(access_endpoints.router, prefix=settings.api_prefix)

    # Medical record endpoints
    app.include_router(record_endpoints.router, prefix=settings.api_prefix)

    # Dashboard endpoints
    app.include_router(dashboard_endpoints.router, prefix=settings.api_prefix)

    # Emergency review endpoints
    app.include_router(review_endpoints.router, prefix=settings.api_prefix)

    @app.get("/")
    async def root() -> Dict[str, Any]:
        """Root endpoint."""
        return {
            "name": settings.app_name,
            "version": settings.app_version,
            "status": "running",
            "docs": "/api/docs" if settings.debug else None,
        }

    @app.exception_handler(BaseAPIException)
    async def api_exception_handler(request: Request, exc: BaseAPIException) -> JSONResponse:
        """Render protocol errors with their kind and code."""
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": {
                    "kind": exc.error_kind.value if exc.error_kind else None,
                    "code": exc.error_code,
                    "message": exc.detail,
                    "path": request.url.path,
                }
            },
            headers=exc.headers,
        )

    return app
