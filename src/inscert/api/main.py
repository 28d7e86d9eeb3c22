"""inscert API service entry point.

Provides the ASGI application for uvicorn (inscert.api.main:app) and a
run() function for the inscert-api console script.
"""

import logging

from inscert.api import create_app

logger = logging.getLogger(__name__)

# Settings are resolved on first request, so importing this module needs no environment
app = create_app()


def run() -> None:
    """Run the API server using uvicorn."""
    import uvicorn

    from inscert.core.settings import configure_logging, get_settings

    settings = get_settings()
    configure_logging(settings)
    app.state.settings = settings

    logger.info("Starting inscert API on %s:%d", settings.api_host, settings.api_port)

    uvicorn.run(
        app,
        host=settings.api_host,
        port=settings.api_port,
        reload=False,
    )


if __name__ == "__main__":
    run()
