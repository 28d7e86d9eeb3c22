"""inscert HTTP API.

FastAPI application exposing:
- /api/certificates/... certificate reads and lifecycle changes
- /api/admin/... manual expiration trigger
- /health liveness probe
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI

from inscert.api.middleware import ErrorHandlerMiddleware, RequestIDMiddleware
from inscert.api.routers import admin_router, certificates_router

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from inscert.core.config import Settings
    from inscert.services.expiration import ExpirationService

logger = logging.getLogger(__name__)

API_TITLE = "inscert API"
API_DESCRIPTION = """
Insurance certificate lifecycle service.

- **/api/certificates/** - certificate reads, status changes, endorsements
- **/api/admin/** - manual expiration runs

Caller privilege is taken from the `X-Actor-Privilege` header
(`owner`, `admin` or `main`).
"""


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    if app.state.owns_engine:
        from inscert.db import close_engine

        await close_engine()


def create_app(
    settings: Settings | None = None,
    *,
    expiration_service: ExpirationService | None = None,
) -> FastAPI:
    """Create a configured FastAPI application.

    Args:
        settings: Settings for the app. Defaults to get_settings() on first use.
        expiration_service: Service for manual expiration runs. Built from
            settings on first request when omitted.

    Example:
        app = create_app(get_settings())
    """
    version = settings.app_version if settings else "0.1.0"

    app = FastAPI(
        title=API_TITLE,
        description=API_DESCRIPTION,
        version=version,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
        lifespan=_lifespan,
    )

    app.state.settings = settings
    app.state.expiration_service = expiration_service
    app.state.owns_engine = expiration_service is None

    # First added is innermost
    app.add_middleware(ErrorHandlerMiddleware)
    app.add_middleware(RequestIDMiddleware)

    app.include_router(certificates_router, prefix="/api")
    app.include_router(admin_router, prefix="/api")

    @app.get("/health", tags=["health"])
    async def health_check() -> dict[str, str]:
        return {"status": "healthy"}

    logger.info("inscert API application created (version=%s)", version)
    return app


__all__ = ["create_app"]
