"""Pytest configuration and shared fixtures.

Service tests run against the in-memory collaborators in tests/factories.py;
no database is required.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from unittest.mock import AsyncMock
from uuid import UUID, uuid4

import pytest
from httpx import ASGITransport, AsyncClient

from inscert.api import create_app
from inscert.api.dependencies import get_certificate_store, get_db_session
from inscert.services.expiration import ExpirationConfig, ExpirationProcessor
from inscert.services.lifecycle import CertificateLifecycleService
from tests.factories import (
    FIXED_NOW,
    FIXED_TODAY,
    InMemoryAccountResolver,
    InMemoryCategoryResolver,
    InMemoryCertificateStore,
    InMemoryYearResolver,
)


@pytest.fixture
def organization_id() -> UUID:
    return uuid4()


@pytest.fixture
def store() -> InMemoryCertificateStore:
    return InMemoryCertificateStore()


@pytest.fixture
def accounts() -> InMemoryAccountResolver:
    return InMemoryAccountResolver()


@pytest.fixture
def categories() -> InMemoryCategoryResolver:
    return InMemoryCategoryResolver()


@pytest.fixture
def years() -> InMemoryYearResolver:
    return InMemoryYearResolver()


@pytest.fixture
def lifecycle(store: InMemoryCertificateStore) -> CertificateLifecycleService:
    return CertificateLifecycleService(store, today=lambda: FIXED_TODAY)


@pytest.fixture
def sleep() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def processor(
    store: InMemoryCertificateStore,
    lifecycle: CertificateLifecycleService,
    accounts: InMemoryAccountResolver,
    categories: InMemoryCategoryResolver,
    years: InMemoryYearResolver,
    sleep: AsyncMock,
) -> ExpirationProcessor:
    return ExpirationProcessor(
        store,
        lifecycle,
        accounts,
        categories,
        years,
        ExpirationConfig(),
        sleep=sleep,
        clock=lambda: FIXED_NOW,
    )


@pytest.fixture
def db_session() -> AsyncMock:
    """Stand-in AsyncSession; only commit/rollback are called by routers."""
    return AsyncMock()


@pytest.fixture
def expiration_service() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def app(store: InMemoryCertificateStore, db_session: AsyncMock, expiration_service: AsyncMock):
    """App wired to the in-memory store and a mocked expiration service."""
    application = create_app(expiration_service=expiration_service)

    async def _session() -> AsyncGenerator[AsyncMock, None]:
        yield db_session

    application.dependency_overrides[get_db_session] = _session
    application.dependency_overrides[get_certificate_store] = lambda: store
    return application


@pytest.fixture
async def api_client(app) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
