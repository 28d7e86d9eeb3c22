"""Wall-clock scheduler for expiration sweeps.

Default schedules, in the configured local time zone (America/Toronto):
- Daily sweep at 01:00
- Annual sweep on 1 January at 03:00

A schedule fires when its next occurrence falls between the previous tick
and the current one, so a worker started after 01:00 waits for the next day
instead of firing immediately.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta
from typing import TYPE_CHECKING

from inscert.services.expiration import RunReason
from inscert.worker.handlers.expiry import expire_certificates_handler

if TYPE_CHECKING:
    from zoneinfo import ZoneInfo

    from inscert.core.config import ExpirationSettings
    from inscert.services.expiration import ExpirationService

logger = logging.getLogger(__name__)


@dataclass
class ScheduledJob:
    """A recurring expiration sweep.

    Attributes:
        name: Identifier used in logs.
        reason: Run reason passed to the expiration service.
        run_at: Local wall-clock time of day.
        month: Month the job runs in, or None for every month.
        day: Day of month the job runs on, or None for every day.
        enabled: Whether the job fires at all.
        last_fired: Local datetime of the last firing.
    """

    name: str
    reason: str
    run_at: time
    month: int | None = None
    day: int | None = None
    enabled: bool = True
    last_fired: datetime | None = None

    def runs_on(self, day: date) -> bool:
        if self.month is not None and day.month != self.month:
            return False
        return not (self.day is not None and day.day != self.day)

    def occurrence(self, day: date, tz: ZoneInfo) -> datetime:
        return datetime.combine(day, self.run_at, tzinfo=tz)


def default_schedules(settings: ExpirationSettings) -> list[ScheduledJob]:
    return [
        ScheduledJob(
            name="daily-expiration",
            reason=RunReason.DAILY.value,
            run_at=settings.daily_run_at,
        ),
        ScheduledJob(
            name="annual-expiration",
            reason=RunReason.ANNUAL.value,
            run_at=settings.annual_run_at,
            month=1,
            day=1,
        ),
    ]


class Scheduler:
    """Fires expiration sweeps at their local wall-clock times.

    Example:
        scheduler = Scheduler(service, default_schedules(settings.expiration), tz)
        await scheduler.tick()
    """

    def __init__(
        self,
        service: ExpirationService,
        schedules: list[ScheduledJob],
        tz: ZoneInfo,
        *,
        started_at: datetime | None = None,
    ) -> None:
        self._service = service
        self._schedules = schedules
        self._tz = tz
        self._last_tick = (started_at or datetime.now(UTC)).astimezone(tz)

    @property
    def schedules(self) -> list[ScheduledJob]:
        return list(self._schedules)

    def _is_due(self, schedule: ScheduledJob, since: datetime, now: datetime) -> bool:
        """True if an occurrence lies in (since, now]."""
        day = since.date()
        while day <= now.date():
            if schedule.runs_on(day):
                at = schedule.occurrence(day, self._tz)
                if since < at <= now:
                    return True
            day += timedelta(days=1)
        return False

    async def tick(self, now: datetime | None = None) -> list[str]:
        """Run every schedule that came due since the previous tick.

        Returns:
            Names of the schedules that fired.
        """
        now = (now or datetime.now(UTC)).astimezone(self._tz)
        since, self._last_tick = self._last_tick, now
        fired: list[str] = []

        for schedule in self._schedules:
            if not schedule.enabled or not self._is_due(schedule, since, now):
                continue

            logger.info(
                "Running scheduled expiration: job=%s, reason=%s, local_time=%s",
                schedule.name,
                schedule.reason,
                now.isoformat(),
            )
            try:
                summary = await expire_certificates_handler(self._service, schedule.reason)
            except Exception as e:
                logger.exception("Scheduled job failed: job=%s, error=%s", schedule.name, e)
                continue

            schedule.last_fired = now
            fired.append(schedule.name)
            logger.info(
                "Scheduled expiration finished: job=%s, organizations=%s, expired=%s",
                schedule.name,
                summary.get("organizations", 0),
                summary.get("total_expired", 0),
            )

        return fired


async def run_scheduler_loop(
    scheduler: Scheduler,
    check_interval: float = 60.0,
    shutdown_event: asyncio.Event | None = None,
) -> None:
    """Tick the scheduler until shutdown_event is set.

    Args:
        scheduler: Scheduler to drive.
        check_interval: Seconds between ticks.
        shutdown_event: Event to signal shutdown.
    """
    if shutdown_event is None:
        shutdown_event = asyncio.Event()

    logger.info(
        "Scheduler starting: check_interval=%ss, schedules=%s",
        check_interval,
        [s.name for s in scheduler.schedules if s.enabled],
    )

    while not shutdown_event.is_set():
        try:
            await scheduler.tick()
        except Exception as e:
            logger.exception("Error in scheduler loop: %s", e)

        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(shutdown_event.wait(), timeout=check_interval)

    logger.info("Scheduler stopped")
