"""Admin API router.

Manual expiration trigger for one organization. Requires ADMIN or MAIN
privilege; runs synchronously and returns the run statistics.
"""

from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from fastapi import APIRouter

from inscert.api.dependencies import ActorPrivilege, ExpirationServiceDep
from inscert.api.middleware.errors import AuthorizationError
from inscert.api.schemas.admin import ExpirationTriggerRequest
from inscert.services.lifecycle import LIFECYCLE_WRITE_PRIVILEGES

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/admin",
    tags=["admin"],
    responses={
        403: {"description": "Admin privilege required"},
        409: {"description": "Expiration already running for the organization"},
    },
)


@router.post("/organizations/{organization_id}/insurance-expiration")
async def trigger_insurance_expiration(
    organization_id: UUID,
    privilege: ActorPrivilege,
    service: ExpirationServiceDep,
    body: ExpirationTriggerRequest | None = None,
) -> dict[str, Any]:
    """Run certificate expiration for one organization now.

    Returns:
        The run statistics (operationId, totals, perOrganization, items).
    """
    if privilege not in LIFECYCLE_WRITE_PRIVILEGES:
        raise AuthorizationError(
            "Expiration can only be triggered by admin or main privilege",
            detail={"privilege": privilege.value if privilege else None},
        )

    reason = body.reason if body else None
    logger.info(
        "Manual expiration requested: organization_id=%s, privilege=%s, reason=%s",
        organization_id,
        privilege.value,
        reason,
    )
    result = await service.trigger_expiration(organization_id, reason)
    return result.to_dict()
