"""Main FastAPI application for CareLink Consent.

Run with ``uvicorn app:app`` or ``python app.py``.
"""

import uvicorn

from carelink.api.app import create_app
from carelink.config import get_settings

settings = get_settings()
app = create_app(settings, create_tables=settings.environment == "development")


if __name__ == "__main__":
    uvicorn.run(
        "app:app",
        host="0.0.0.0",  # nosec B104
        port=8000,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
