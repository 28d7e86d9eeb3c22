"""Certificate API router.

Reads certificates and applies lifecycle changes. The caller's privilege
comes from the X-Actor-Privilege header; every write goes through
CertificateLifecycleService, and domain errors are turned into HTTP
responses by ErrorHandlerMiddleware.
"""

from __future__ import annotations

import logging
from uuid import UUID

from fastapi import APIRouter

from inscert.api.dependencies import ActorPrivilege, DbSession, LifecycleService
from inscert.api.middleware.errors import ValidationAPIError
from inscert.api.schemas.certificates import (
    CertificateResponse,
    CertificateUpdateRequest,
    StatusChangeRequest,
    StatusChangeResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/certificates",
    tags=["certificates"],
    responses={
        403: {"description": "Privilege does not allow the change"},
        404: {"description": "Certificate not found"},
    },
)


@router.get("/{certificate_id}", response_model=CertificateResponse)
async def get_certificate(
    certificate_id: UUID,
    lifecycle: LifecycleService,
) -> CertificateResponse:
    certificate = await lifecycle.get_certificate(certificate_id)
    return CertificateResponse.model_validate(certificate)


@router.post(
    "/{certificate_id}/status",
    response_model=StatusChangeResponse,
    responses={409: {"description": "Transition not allowed from the current status"}},
)
async def change_status(
    certificate_id: UUID,
    body: StatusChangeRequest,
    privilege: ActorPrivilege,
    lifecycle: LifecycleService,
    db: DbSession,
) -> StatusChangeResponse:
    """Move a certificate to a new status.

    Requesting the current status succeeds with changed=false.
    """
    result = await lifecycle.apply_transition(certificate_id, body.status, privilege)
    if result.changed:
        await db.commit()

    return StatusChangeResponse(
        certificate=CertificateResponse.model_validate(result.certificate),
        previous_status=result.previous_status,
        new_status=result.new_status,
        changed=result.changed,
    )


@router.patch(
    "/{certificate_id}",
    response_model=CertificateResponse,
    responses={
        409: {"description": "Status transition not allowed"},
        422: {"description": "Field cannot be changed"},
    },
)
async def update_certificate(
    certificate_id: UUID,
    body: CertificateUpdateRequest,
    privilege: ActorPrivilege,
    lifecycle: LifecycleService,
    db: DbSession,
) -> CertificateResponse:
    try:
        certificate = await lifecycle.update_mutable_fields(
            certificate_id, body.to_updates(), privilege
        )
    except ValueError as e:
        # Wrong-typed value, e.g. an explicit null status
        raise ValidationAPIError(str(e)) from e
    await db.commit()
    return CertificateResponse.model_validate(certificate)
