"""Certificate store: issuance, lookup and lifecycle-column writes.

The store is the only component that talks to the certificates table. It
knows which columns form the frozen snapshot and which are lifecycle columns,
and it refuses to write anything but lifecycle columns after creation.
Status writes are conditional on the status the caller last observed, so a
transition decided on stale data never lands.

CertificateStore is the contract the lifecycle service and the expiration
processor depend on; SqlCertificateStore implements it on SQLAlchemy.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Protocol

from sqlalchemy import select, update

from inscert.db.models.base import CertificateStatus
from inscert.db.models.certificates import Certificate

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence
    from uuid import UUID

    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


# Columns copied from the account, address, membership, product and order at
# issuance. Frozen for the life of the certificate.
SNAPSHOT_FIELDS: frozenset[str] = frozenset(
    {
        "account_group",
        "membership_category",
        "membership_label",
        "membership_year",
        "first_name",
        "last_name",
        "personal_corporation",
        "address_1",
        "address_2",
        "city",
        "province",
        "postal_code",
        "phone_number",
        "email",
        "insurance_type",
        "insurance_limit",
        "insurance_price",
        "total",
        "declaration",
        "question_1",
        "question_1_explain",
        "question_2",
        "question_2_explain",
        "question_3",
        "question_3_explain",
        "effective_date",
        "expiry_date",
    }
)

# Identity and tenancy columns; never writable after creation either.
IDENTITY_FIELDS: frozenset[str] = frozenset(
    {
        "certificate_id",
        "certificate_sequence",
        "organization_id",
        "account_id",
        "order_id",
        "created_at",
    }
)

ENDORSEMENT_FIELDS: frozenset[str] = frozenset(
    {"endorsement_description", "endorsement_effective_date"}
)

ACCESS_FIELDS: frozenset[str] = frozenset({"privilege", "access_modifier"})

MUTABLE_FIELDS: frozenset[str] = frozenset({"status"}) | ENDORSEMENT_FIELDS | ACCESS_FIELDS

# Statuses a certificate may be issued in
INITIAL_STATUSES: frozenset[CertificateStatus] = frozenset(
    {CertificateStatus.DRAFT, CertificateStatus.PENDING}
)


class CertificateError(Exception):
    """Base class for certificate domain errors."""


class CertificateNotFoundError(CertificateError):
    """Raised when a certificate does not exist."""

    def __init__(self, certificate_id: UUID) -> None:
        self.certificate_id = certificate_id
        super().__init__(f"Certificate {certificate_id} not found")


class InvalidCertificateDatesError(CertificateError):
    """Raised when the coverage window is empty or inverted."""

    def __init__(self, effective_date: date, expiry_date: date) -> None:
        self.effective_date = effective_date
        self.expiry_date = expiry_date
        super().__init__(
            f"Effective date {effective_date.isoformat()} must be before "
            f"expiry date {expiry_date.isoformat()}"
        )


class InvalidInitialStatusError(CertificateError):
    """Raised when a certificate is issued in a status other than DRAFT or PENDING."""

    def __init__(self, status: CertificateStatus) -> None:
        self.status = status
        super().__init__(f"Certificates cannot be issued in status {status.value}")


class NonLifecycleWriteError(CertificateError):
    """Raised when a store write targets a column outside the lifecycle set."""

    def __init__(self, fields: Iterable[str]) -> None:
        self.fields = sorted(fields)
        super().__init__(f"Only lifecycle fields can be written: {', '.join(self.fields)}")


@dataclass(frozen=True, slots=True)
class CertificateDraft:
    """Everything needed to issue a certificate.

    Construction fails for an empty or inverted coverage window and for an
    initial status other than DRAFT or PENDING, so an invalid certificate
    never reaches the store or the state machine.
    """

    organization_id: UUID
    account_id: UUID | None
    first_name: str
    last_name: str
    address_1: str
    city: str
    province: str
    postal_code: str
    email: str
    insurance_type: str
    insurance_limit: Decimal
    insurance_price: Decimal
    total: Decimal
    effective_date: date
    expiry_date: date
    membership_year: str | None
    declaration: bool = True
    status: CertificateStatus = CertificateStatus.PENDING
    order_id: UUID | None = None
    account_group: str | None = None
    membership_category: str | None = None
    membership_label: str | None = None
    personal_corporation: str | None = None
    address_2: str | None = None
    phone_number: str | None = None
    question_1: bool | None = None
    question_1_explain: str | None = None
    question_2: bool | None = None
    question_2_explain: str | None = None
    question_3: bool | None = None
    question_3_explain: str | None = None

    def __post_init__(self) -> None:
        if not self.effective_date < self.expiry_date:
            raise InvalidCertificateDatesError(self.effective_date, self.expiry_date)
        if self.status not in INITIAL_STATUSES:
            raise InvalidInitialStatusError(self.status)

    def to_columns(self) -> dict[str, Any]:
        """Column values for a new certificate row."""
        return asdict(self)


class CertificateStore(Protocol):
    """Persistence contract for certificates."""

    async def get(self, certificate_id: UUID) -> Certificate | None: ...

    async def create(self, draft: CertificateDraft) -> Certificate: ...

    async def find_by_year_window(
        self, organization_id: UUID, years: Sequence[str]
    ) -> list[Certificate]: ...

    async def update_status(
        self,
        certificate_id: UUID,
        status: CertificateStatus,
        *,
        expected_status: CertificateStatus | None = None,
    ) -> Certificate | None: ...

    async def update_fields(self, certificate_id: UUID, fields: dict[str, Any]) -> Certificate: ...


def check_lifecycle_fields(fields: Iterable[str]) -> None:
    """Raise NonLifecycleWriteError unless every field is a non-status lifecycle column."""
    disallowed = set(fields) - (ENDORSEMENT_FIELDS | ACCESS_FIELDS)
    if disallowed:
        raise NonLifecycleWriteError(disallowed)


class SqlCertificateStore:
    """CertificateStore backed by the certificates table.

    Writes are flushed but not committed; the caller owns the transaction.

    Example:
        async with get_async_session() as session:
            store = SqlCertificateStore(session)
            certificate = await store.create(draft)
            await session.commit()
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, certificate_id: UUID) -> Certificate | None:
        stmt = select(Certificate).where(Certificate.certificate_id == certificate_id)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def create(self, draft: CertificateDraft) -> Certificate:
        certificate = Certificate(**draft.to_columns())
        self._session.add(certificate)
        await self._session.flush()
        await self._session.refresh(certificate)

        logger.info(
            "Certificate issued",
            extra={
                "certificate_id": str(certificate.certificate_id),
                "certificate_number": certificate.certificate_number,
                "organization_id": str(certificate.organization_id),
                "status": certificate.status.value,
                "membership_year": certificate.membership_year,
            },
        )
        return certificate

    async def find_by_year_window(
        self, organization_id: UUID, years: Sequence[str]
    ) -> list[Certificate]:
        if not years:
            return []
        stmt = (
            select(Certificate)
            .where(
                Certificate.organization_id == organization_id,
                Certificate.membership_year.in_(list(years)),
            )
            .order_by(Certificate.certificate_sequence)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def update_status(
        self,
        certificate_id: UUID,
        status: CertificateStatus,
        *,
        expected_status: CertificateStatus | None = None,
    ) -> Certificate | None:
        """Set the status in a single UPDATE statement.

        Returns:
            The updated certificate, or None when no row matched (missing
            certificate, or its status is no longer expected_status).
        """
        conditions = [Certificate.certificate_id == certificate_id]
        if expected_status is not None:
            conditions.append(Certificate.status == expected_status)

        stmt = (
            update(Certificate)
            .where(*conditions)
            .values(status=status, updated_at=datetime.now(UTC))
            .returning(Certificate)
            .execution_options(synchronize_session="fetch")
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def update_fields(self, certificate_id: UUID, fields: dict[str, Any]) -> Certificate:
        check_lifecycle_fields(fields)

        stmt = (
            update(Certificate)
            .where(Certificate.certificate_id == certificate_id)
            .values(**fields, updated_at=datetime.now(UTC))
            .returning(Certificate)
            .execution_options(synchronize_session="fetch")
        )
        result = await self._session.execute(stmt)
        certificate = result.scalar_one_or_none()
        if certificate is None:
            raise CertificateNotFoundError(certificate_id)
        return certificate
