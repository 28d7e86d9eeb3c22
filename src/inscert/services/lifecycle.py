"""Certificate lifecycle state machine service.

This module is the single authority for:
- Which status transitions are legal (no cycles, terminal states are final)
- Who may change lifecycle fields (ADMIN or MAIN privilege)
- Which fields may change after issuance (status, endorsement, access markers)

Every status change, including the one made by the expiration processor,
goes through CertificateLifecycleService.transition_certificate().
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import UTC, date, datetime
from typing import TYPE_CHECKING, Any, ClassVar

from inscert.db.models.base import AccessModifier, CertificateStatus, Privilege
from inscert.services.certificates import (
    ENDORSEMENT_FIELDS,
    IDENTITY_FIELDS,
    MUTABLE_FIELDS,
    SNAPSHOT_FIELDS,
    CertificateError,
    CertificateNotFoundError,
)

if TYPE_CHECKING:
    from collections.abc import Callable
    from uuid import UUID

    from inscert.db.models.certificates import Certificate
    from inscert.services.certificates import CertificateStore

logger = logging.getLogger(__name__)

# Privilege used by scheduled and other system-initiated transitions
SYSTEM_PRIVILEGE = Privilege.MAIN

LIFECYCLE_WRITE_PRIVILEGES: frozenset[Privilege] = frozenset({Privilege.ADMIN, Privilege.MAIN})

# Endorsements are recorded only on certificates that are or will be in force
ENDORSABLE_STATUSES: frozenset[CertificateStatus] = frozenset(
    {CertificateStatus.ACTIVE, CertificateStatus.PENDING}
)


class TransitionOutcome(enum.Enum):
    """What apply_transition did.

    Values:
        APPLIED: Status was written
        NO_OP: Proposed status equals current status; nothing written
    """

    APPLIED = "applied"
    NO_OP = "no_op"


@dataclass(frozen=True, slots=True)
class TransitionResult:
    """Result of a status transition.

    Attributes:
        certificate: The certificate after the call (unchanged for NO_OP).
        previous_status: Status before the call.
        new_status: Status after the call.
        outcome: APPLIED, or NO_OP when nothing needed to change.
    """

    certificate: Certificate
    previous_status: CertificateStatus
    new_status: CertificateStatus
    outcome: TransitionOutcome

    @property
    def changed(self) -> bool:
        return self.outcome is TransitionOutcome.APPLIED


class InvalidTransitionError(CertificateError):
    """Raised when a status change is not an edge of the lifecycle graph."""

    def __init__(
        self,
        from_status: CertificateStatus,
        to_status: CertificateStatus,
        reason: str | None = None,
    ) -> None:
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason or (
            f"Cannot transition from {from_status.value} to {to_status.value}"
        )
        super().__init__(self.reason)


class PermissionDeniedError(CertificateError):
    """Raised when the caller's privilege does not allow the operation."""

    def __init__(self, privilege: Privilege | None, operation: str) -> None:
        self.privilege = privilege
        self.operation = operation
        held = privilege.value if privilege else "none"
        super().__init__(f"Privilege {held} is not allowed to {operation}")


class ImmutableFieldViolationError(CertificateError):
    """Raised on any attempt to write a frozen certificate field."""

    def __init__(self, field_name: str, reason: str | None = None) -> None:
        self.field_name = field_name
        self.reason = reason or f"Field {field_name} is part of the issued snapshot"
        super().__init__(self.reason)


class UnknownFieldError(CertificateError):
    """Raised when an update names a field certificates do not have."""

    def __init__(self, field_name: str) -> None:
        self.field_name = field_name
        super().__init__(f"Unknown certificate field: {field_name}")


class EndorsementNotAllowedError(CertificateError):
    """Raised when an endorsement is recorded outside ACTIVE or PENDING."""

    def __init__(self, status: CertificateStatus) -> None:
        self.status = status
        super().__init__(
            f"Endorsements can only be added to active or pending certificates "
            f"(status is {status.value})"
        )


class EmptyUpdateError(CertificateError):
    """Raised when an update carries no fields."""

    def __init__(self) -> None:
        super().__init__("No updatable fields provided")


class CertificateLifecycleService:
    """Service for certificate status transitions and lifecycle-field updates.

    The state machine follows this flow:
        draft -> pending -> active -> expired
          |         |         |
          +---------+---------+--> cancelled

    Example:
        service = CertificateLifecycleService(SqlCertificateStore(session))
        result = await service.apply_transition(
            certificate_id,
            CertificateStatus.ACTIVE,
            Privilege.MAIN,
        )
        if result.changed:
            await session.commit()
    """

    VALID_TRANSITIONS: ClassVar[dict[CertificateStatus, frozenset[CertificateStatus]]] = {
        CertificateStatus.DRAFT: frozenset(
            {CertificateStatus.PENDING, CertificateStatus.CANCELLED}
        ),
        CertificateStatus.PENDING: frozenset(
            {CertificateStatus.ACTIVE, CertificateStatus.CANCELLED}
        ),
        CertificateStatus.ACTIVE: frozenset(
            {CertificateStatus.EXPIRED, CertificateStatus.CANCELLED}
        ),
        # Terminal states - a new certificate must be issued instead
        CertificateStatus.EXPIRED: frozenset(),
        CertificateStatus.CANCELLED: frozenset(),
    }

    def __init__(
        self,
        store: CertificateStore,
        *,
        today: Callable[[], date] | None = None,
    ) -> None:
        """Initialize the lifecycle service.

        Args:
            store: Certificate store used for reads and status writes.
            today: Clock for the endorsement freeze rule. Defaults to UTC today.
        """
        self._store = store
        self._today = today or (lambda: datetime.now(UTC).date())

    def is_valid_transition(
        self,
        from_status: CertificateStatus,
        to_status: CertificateStatus,
    ) -> bool:
        return to_status in self.VALID_TRANSITIONS.get(from_status, frozenset())

    def is_terminal_status(self, status: CertificateStatus) -> bool:
        return not self.VALID_TRANSITIONS.get(status)

    def can_write_lifecycle(self, privilege: Privilege | None) -> bool:
        return privilege in LIFECYCLE_WRITE_PRIVILEGES

    async def get_certificate(self, certificate_id: UUID) -> Certificate:
        """Load a certificate or raise CertificateNotFoundError."""
        certificate = await self._store.get(certificate_id)
        if certificate is None:
            raise CertificateNotFoundError(certificate_id)
        return certificate

    async def apply_transition(
        self,
        certificate_id: UUID,
        proposed_status: CertificateStatus,
        actor_privilege: Privilege | None,
    ) -> TransitionResult:
        """Load a certificate and move it to proposed_status.

        Raises:
            CertificateNotFoundError: If the certificate does not exist.
            PermissionDeniedError: If the privilege cannot change lifecycle state.
            InvalidTransitionError: If the edge is not in VALID_TRANSITIONS.
        """
        certificate = await self.get_certificate(certificate_id)
        return await self.transition_certificate(certificate, proposed_status, actor_privilege)

    async def transition_certificate(
        self,
        certificate: Certificate,
        proposed_status: CertificateStatus,
        actor_privilege: Privilege | None,
    ) -> TransitionResult:
        """Move an already-loaded certificate to proposed_status.

        The write is conditional on the certificate still having the status
        it was loaded with; if another writer got there first the call fails
        with InvalidTransitionError instead of overwriting.
        """
        current_status = certificate.status

        if not self.can_write_lifecycle(actor_privilege):
            logger.warning(
                "Lifecycle change denied",
                extra={
                    "certificate_id": str(certificate.certificate_id),
                    "privilege": actor_privilege.value if actor_privilege else None,
                    "to_status": proposed_status.value,
                },
            )
            raise PermissionDeniedError(actor_privilege, "change certificate status")

        # Same status is a no-op even on terminal certificates
        if proposed_status == current_status:
            logger.debug(
                "Status unchanged, skipping write: certificate_id=%s, status=%s",
                certificate.certificate_id,
                current_status.value,
            )
            return TransitionResult(
                certificate=certificate,
                previous_status=current_status,
                new_status=current_status,
                outcome=TransitionOutcome.NO_OP,
            )

        if not self.is_valid_transition(current_status, proposed_status):
            logger.warning(
                "Invalid transition attempted",
                extra={
                    "certificate_id": str(certificate.certificate_id),
                    "from_status": current_status.value,
                    "to_status": proposed_status.value,
                },
            )
            raise InvalidTransitionError(current_status, proposed_status)

        updated = await self._store.update_status(
            certificate.certificate_id,
            proposed_status,
            expected_status=current_status,
        )
        if updated is None:
            raise InvalidTransitionError(
                current_status,
                proposed_status,
                reason=(
                    f"Certificate {certificate.certificate_id} is no longer "
                    f"{current_status.value}; status changed concurrently"
                ),
            )

        logger.info(
            "Status transition completed",
            extra={
                "certificate_id": str(certificate.certificate_id),
                "from_status": current_status.value,
                "to_status": proposed_status.value,
                "privilege": actor_privilege.value,
            },
        )

        return TransitionResult(
            certificate=updated,
            previous_status=current_status,
            new_status=proposed_status,
            outcome=TransitionOutcome.APPLIED,
        )

    def validate_field_mutation(
        self,
        field_name: str,
        certificate: Certificate,
        proposed: Any,
        *,
        today: date | None = None,
    ) -> None:
        """Check that field_name may be set to proposed on this certificate.

        Snapshot and identity fields are never writable. Endorsement fields
        freeze once the recorded endorsement has taken effect, and can only
        be written while the certificate is ACTIVE or PENDING.

        Raises:
            ImmutableFieldViolationError: Snapshot field, or frozen endorsement.
            EndorsementNotAllowedError: Endorsement on a non-endorsable status.
            UnknownFieldError: Field does not exist on certificates.
            ValueError: Proposed value has the wrong type for an access marker.
        """
        if field_name in SNAPSHOT_FIELDS or field_name in IDENTITY_FIELDS:
            raise ImmutableFieldViolationError(field_name)
        if field_name not in MUTABLE_FIELDS:
            raise UnknownFieldError(field_name)

        if field_name in ENDORSEMENT_FIELDS:
            effective = certificate.endorsement_effective_date
            if effective is not None and effective <= (today or self._today()):
                raise ImmutableFieldViolationError(
                    field_name,
                    reason=(
                        f"Endorsement took effect on {effective.isoformat()}; "
                        f"{field_name} can no longer change"
                    ),
                )
            if certificate.status not in ENDORSABLE_STATUSES:
                raise EndorsementNotAllowedError(certificate.status)
            if field_name == "endorsement_effective_date" and not (
                proposed is None or isinstance(proposed, date)
            ):
                msg = f"endorsement_effective_date must be a date, got {type(proposed).__name__}"
                raise ValueError(msg)

        if field_name == "status" and not isinstance(proposed, CertificateStatus):
            msg = f"status must be a CertificateStatus, got {type(proposed).__name__}"
            raise ValueError(msg)
        if field_name == "privilege" and not (proposed is None or isinstance(proposed, Privilege)):
            msg = f"privilege must be a Privilege, got {type(proposed).__name__}"
            raise ValueError(msg)
        if field_name == "access_modifier" and not (
            proposed is None or isinstance(proposed, AccessModifier)
        ):
            msg = f"access_modifier must be an AccessModifier, got {type(proposed).__name__}"
            raise ValueError(msg)

    async def update_mutable_fields(
        self,
        certificate_id: UUID,
        updates: dict[str, Any],
        actor_privilege: Privilege | None,
    ) -> Certificate:
        """Apply a partial update of lifecycle fields.

        All fields are validated before anything is written. A status change
        is applied through transition_certificate() first; the remaining
        fields are written afterwards in one store call.

        Raises:
            EmptyUpdateError: updates is empty.
            PermissionDeniedError: Privilege cannot update certificates.
            ImmutableFieldViolationError, UnknownFieldError,
            EndorsementNotAllowedError: From validate_field_mutation().
            InvalidTransitionError: Status change not allowed.
        """
        if not updates:
            raise EmptyUpdateError()
        if not self.can_write_lifecycle(actor_privilege):
            raise PermissionDeniedError(actor_privilege, "update certificates")

        certificate = await self.get_certificate(certificate_id)
        for field_name, proposed in updates.items():
            self.validate_field_mutation(field_name, certificate, proposed)

        field_updates = {k: v for k, v in updates.items() if k != "status"}
        # An endorsement must also hold for the status being moved to
        if (
            "status" in updates
            and field_updates.keys() & ENDORSEMENT_FIELDS
            and updates["status"] not in ENDORSABLE_STATUSES
        ):
            raise EndorsementNotAllowedError(updates["status"])

        if "status" in updates:
            result = await self.transition_certificate(
                certificate, updates["status"], actor_privilege
            )
            certificate = result.certificate

        if field_updates:
            certificate = await self._store.update_fields(certificate_id, field_updates)
            logger.info(
                "Certificate fields updated",
                extra={
                    "certificate_id": str(certificate_id),
                    "fields": sorted(field_updates),
                    "privilege": actor_privilege.value,
                },
            )

        return certificate


__all__ = [
    "ENDORSABLE_STATUSES",
    "LIFECYCLE_WRITE_PRIVILEGES",
    "SYSTEM_PRIVILEGE",
    "CertificateLifecycleService",
    "EmptyUpdateError",
    "EndorsementNotAllowedError",
    "ImmutableFieldViolationError",
    "InvalidTransitionError",
    "PermissionDeniedError",
    "TransitionOutcome",
    "TransitionResult",
    "UnknownFieldError",
]
