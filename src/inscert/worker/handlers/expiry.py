"""Scheduled expiration handler.

Sweeps every organization that has an active membership group setting and
expires certificates whose membership year has fallen behind their group's
active year. Failures are logged per organization; the sweep never raises.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from inscert.services.expiration import ExpirationService

logger = logging.getLogger(__name__)


async def expire_certificates_handler(
    service: ExpirationService,
    reason: str,
) -> dict[str, Any]:
    """Run expiration across all organizations.

    Args:
        service: Expiration service owning the run guard.
        reason: Run reason recorded in each operation id.

    Returns:
        Summary dict with per-organization operation ids and totals.
    """
    try:
        results = await service.run_all_organizations(reason)
    except Exception as e:
        logger.exception("Expiration sweep failed: reason=%s, error=%s", reason, e)
        return {"reason": reason, "failed": True, "error": str(e), "runs": []}

    return {
        "reason": reason,
        "failed": False,
        "organizations": len(results),
        "total_expired": sum(r.total_expired for r in results),
        "total_errors": sum(r.errors for r in results),
        "runs": [
            {
                "operation_id": r.operation_id,
                "organization_id": str(r.organization_id),
                "expired": r.total_expired,
                "skipped": r.total_skipped,
                "errors": r.errors,
            }
            for r in results
        ],
    }
