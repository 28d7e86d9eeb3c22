"""Tests for the worker process wrapper."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from inscert.core.config import ExpirationSettings
from inscert.worker.main import Worker
from inscert.worker.scheduler import default_schedules


def make_settings(**expiration):
    settings = MagicMock()
    settings.expiration = ExpirationSettings(**expiration)
    return settings


class TestDefaultSchedules:
    def test_daily_and_annual(self):
        jobs = default_schedules(ExpirationSettings())

        assert [j.reason for j in jobs] == ["daily-automatic", "annual-automatic"]
        assert jobs[0].run_at.hour == 1
        assert (jobs[1].month, jobs[1].day, jobs[1].run_at.hour) == (1, 1, 3)


class TestWorker:
    @pytest.mark.asyncio
    async def test_start_and_stop(self):
        service = MagicMock()
        service.run_all_organizations = AsyncMock(return_value=[])
        worker = Worker(make_settings(), service=service)

        task = asyncio.create_task(worker.start())
        await asyncio.sleep(0.05)
        await worker.stop()
        await asyncio.wait_for(task, timeout=1.0)

        assert task.done()
        assert task.exception() is None

    @pytest.mark.asyncio
    async def test_disabled_worker_idles_until_stopped(self, caplog):
        worker = Worker(make_settings(enabled=False), service=MagicMock())

        task = asyncio.create_task(worker.start())
        await asyncio.sleep(0.01)
        await worker.stop()
        await asyncio.wait_for(task, timeout=1.0)

        assert "Expiration disabled" in caplog.text
