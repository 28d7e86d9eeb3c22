"""FastAPI dependencies shared by the routers."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from inscert.api.middleware.errors import ValidationAPIError
from inscert.db.models.base import Privilege
from inscert.services.certificates import CertificateStore, SqlCertificateStore
from inscert.services.expiration import ExpirationConfig, ExpirationService
from inscert.services.lifecycle import CertificateLifecycleService

ACTOR_PRIVILEGE_HEADER = "X-Actor-Privilege"


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    from inscert.db import get_async_session

    async with get_async_session() as session:
        yield session


DbSession = Annotated[AsyncSession, Depends(get_db_session)]


def get_certificate_store(db: DbSession) -> CertificateStore:
    return SqlCertificateStore(db)


def get_lifecycle_service(
    store: Annotated[CertificateStore, Depends(get_certificate_store)],
) -> CertificateLifecycleService:
    return CertificateLifecycleService(store)


LifecycleService = Annotated[CertificateLifecycleService, Depends(get_lifecycle_service)]


def get_actor_privilege(
    x_actor_privilege: Annotated[str | None, Header(alias=ACTOR_PRIVILEGE_HEADER)] = None,
) -> Privilege | None:
    """Privilege of the caller, as asserted by the upstream gateway.

    A missing header yields None, which the lifecycle service rejects for
    any write.
    """
    if x_actor_privilege is None:
        return None
    try:
        return Privilege(x_actor_privilege.strip().lower())
    except ValueError:
        raise ValidationAPIError(
            f"Invalid {ACTOR_PRIVILEGE_HEADER} header",
            detail={"allowed": [p.value for p in Privilege]},
        ) from None


ActorPrivilege = Annotated[Privilege | None, Depends(get_actor_privilege)]


def get_expiration_service(request: Request) -> ExpirationService:
    """Application-wide expiration service, created on first use.

    One instance per app keeps the per-organization run guard shared
    across requests.
    """
    service = getattr(request.app.state, "expiration_service", None)
    if service is None:
        from inscert.core.settings import get_settings
        from inscert.db import get_session_factory

        settings = request.app.state.settings or get_settings()
        service = ExpirationService(
            get_session_factory(settings),
            ExpirationConfig.from_settings(settings),
        )
        request.app.state.expiration_service = service
    return service


ExpirationServiceDep = Annotated[ExpirationService, Depends(get_expiration_service)]
