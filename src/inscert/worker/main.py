"""inscert worker entry point.

Runs the expiration scheduler until SIGTERM/SIGINT:
- Loads settings (INSCERT_* environment variables)
- Builds one ExpirationService, so scheduled runs share a run guard
- Disposes of the database engine on shutdown
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from datetime import UTC, datetime
from typing import TYPE_CHECKING, NoReturn

from inscert.db import close_engine, get_session_factory
from inscert.services.expiration import ExpirationConfig, ExpirationService
from inscert.worker.scheduler import Scheduler, default_schedules, run_scheduler_loop

if TYPE_CHECKING:
    from inscert.core.config import Settings

logger = logging.getLogger(__name__)


class Worker:
    """Background process driving scheduled expiration sweeps.

    Example:
        worker = Worker(get_settings())
        await worker.start()
    """

    def __init__(self, settings: Settings, service: ExpirationService | None = None) -> None:
        self.settings = settings
        self._shutdown_event = asyncio.Event()
        self._service = service
        self._started_at: datetime | None = None

    def build_service(self) -> ExpirationService:
        return ExpirationService(
            get_session_factory(self.settings),
            ExpirationConfig.from_settings(self.settings),
        )

    async def start(self) -> None:
        """Run the scheduler until stop() is called."""
        self._started_at = datetime.now(UTC)
        expiration = self.settings.expiration

        if not expiration.enabled:
            logger.warning("Expiration disabled by configuration, worker idle")
            await self._shutdown_event.wait()
            return

        service = self._service or self.build_service()
        scheduler = Scheduler(
            service,
            default_schedules(expiration),
            expiration.tzinfo,
            started_at=self._started_at,
        )
        logger.info(
            "Worker starting: timezone=%s, daily_run_at=%s, annual_run_at=%s",
            expiration.timezone,
            expiration.daily_run_at.isoformat(),
            expiration.annual_run_at.isoformat(),
        )

        try:
            await run_scheduler_loop(
                scheduler,
                check_interval=expiration.scheduler_check_interval_seconds,
                shutdown_event=self._shutdown_event,
            )
        finally:
            await close_engine()
            logger.info("Worker stopped: uptime=%s", datetime.now(UTC) - self._started_at)

    async def stop(self) -> None:
        logger.info("Worker shutdown requested")
        self._shutdown_event.set()


async def _async_main(settings: Settings) -> None:
    worker = Worker(settings)
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, lambda: asyncio.ensure_future(worker.stop()))
    await worker.start()


def run() -> NoReturn:
    """Run the worker process.

    Sets up logging from settings, then runs the scheduler loop until a
    shutdown signal arrives.
    """
    from inscert.core.settings import configure_logging, get_settings

    settings = get_settings()
    configure_logging(settings)
    logger.info("inscert worker starting (environment=%s)", settings.environment.value)

    try:
        asyncio.run(_async_main(settings))
    except KeyboardInterrupt:
        logger.info("Worker interrupted")
    except Exception as e:
        logger.exception("Worker failed: %s", e)
        sys.exit(1)

    logger.info("inscert worker shutdown complete")
    sys.exit(0)


if __name__ == "__main__":
    run()
