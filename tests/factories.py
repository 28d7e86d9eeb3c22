"""Test data factories and in-memory collaborators.

The fakes implement the same contracts as the SQL-backed store and
resolvers, so services can be exercised without a database.
"""

from __future__ import annotations

import itertools
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from inscert.db.models import Certificate, CertificateStatus
from inscert.services.certificates import (
    CertificateDraft,
    CertificateNotFoundError,
    check_lifecycle_fields,
)
from inscert.services.membership import MembershipCategoryRef

_sequence = itertools.count(1)

# January 2026 in Toronto: calendar estimate is "2025-2026"
FIXED_NOW = datetime(2026, 1, 15, 12, 0, tzinfo=UTC)
FIXED_TODAY = date(2026, 1, 15)


def create_draft(organization_id: UUID | None = None, **overrides: Any) -> CertificateDraft:
    """Build a valid CertificateDraft.

    Args:
        organization_id: Owning organization. Auto-generated if None.
        **overrides: Field values replacing the defaults.
    """
    values: dict[str, Any] = {
        "organization_id": organization_id or uuid4(),
        "account_id": uuid4(),
        "first_name": "Jane",
        "last_name": "Doe",
        "address_1": "123 Main St",
        "city": "Toronto",
        "province": "ON",
        "postal_code": "M5V 2T6",
        "email": "jane.doe@example.com",
        "insurance_type": "Professional Liability",
        "insurance_limit": Decimal("5000000.00"),
        "insurance_price": Decimal("95.00"),
        "total": Decimal("107.35"),
        "effective_date": date(2025, 9, 1),
        "expiry_date": date(2026, 8, 31),
        "membership_year": "2025-2026",
        "account_group": "OT",
        "membership_category": "Practising",
    }
    values.update(overrides)
    return CertificateDraft(**values)


def create_certificate(
    organization_id: UUID | None = None,
    status: CertificateStatus = CertificateStatus.ACTIVE,
    **overrides: Any,
) -> Certificate:
    """Build a transient Certificate as if loaded from the database.

    Args:
        organization_id: Owning organization. Auto-generated if None.
        status: Lifecycle status. ACTIVE by default.
        **overrides: Column values replacing the defaults.
    """
    draft_fields = {k: v for k, v in overrides.items() if k in CertificateDraft.__dataclass_fields__}
    extra = {k: v for k, v in overrides.items() if k not in draft_fields}
    columns = create_draft(organization_id, **draft_fields).to_columns()
    columns["status"] = status

    now = datetime.now(UTC)
    columns.update(
        {
            "certificate_id": uuid4(),
            "certificate_sequence": next(_sequence),
            "created_at": now,
            "updated_at": now,
            "endorsement_description": None,
            "endorsement_effective_date": None,
            "privilege": None,
            "access_modifier": None,
        }
    )
    columns.update(extra)
    return Certificate(**columns)


class InMemoryCertificateStore:
    """CertificateStore over a dict, with the same conditional status write."""

    def __init__(self, certificates: list[Certificate] | None = None) -> None:
        self.certificates: dict[UUID, Certificate] = {}
        self.status_writes: list[tuple[UUID, CertificateStatus]] = []
        self.window_queries: list[list[str]] = []
        for certificate in certificates or []:
            self.add(certificate)

    def add(self, certificate: Certificate) -> Certificate:
        self.certificates[certificate.certificate_id] = certificate
        return certificate

    async def get(self, certificate_id: UUID) -> Certificate | None:
        return self.certificates.get(certificate_id)

    async def create(self, draft: CertificateDraft) -> Certificate:
        columns = draft.to_columns()
        organization_id = columns.pop("organization_id")
        status = columns.pop("status")
        return self.add(create_certificate(organization_id, status, **columns))

    async def find_by_year_window(self, organization_id: UUID, years: list[str]) -> list[Certificate]:
        self.window_queries.append(list(years))
        return [
            c
            for c in self.certificates.values()
            if c.organization_id == organization_id and c.membership_year in years
        ]

    async def update_status(
        self,
        certificate_id: UUID,
        status: CertificateStatus,
        *,
        expected_status: CertificateStatus | None = None,
    ) -> Certificate | None:
        certificate = self.certificates.get(certificate_id)
        if certificate is None:
            return None
        if expected_status is not None and certificate.status != expected_status:
            return None
        certificate.status = status
        self.status_writes.append((certificate_id, status))
        return certificate

    async def update_fields(self, certificate_id: UUID, fields: dict[str, Any]) -> Certificate:
        check_lifecycle_fields(fields)
        certificate = self.certificates.get(certificate_id)
        if certificate is None:
            raise CertificateNotFoundError(certificate_id)
        for name, value in fields.items():
            setattr(certificate, name, value)
        return certificate


class InMemoryAccountResolver:
    def __init__(self, business_ids: dict[UUID, str] | None = None) -> None:
        self.business_ids = business_ids or {}

    async def resolve_account_business_id(self, account_id: UUID) -> str | None:
        return self.business_ids.get(account_id)


class InMemoryCategoryResolver:
    def __init__(self) -> None:
        self.categories: dict[tuple[str, str], MembershipCategoryRef] = {}

    def add(
        self,
        account_business_id: str,
        membership_year: str,
        group_label: str | None,
        category: str | None = "Practising",
    ) -> None:
        self.categories[(account_business_id, membership_year)] = MembershipCategoryRef(
            account_business_id=account_business_id,
            membership_year=membership_year,
            group_label=group_label,
            category=category,
        )

    async def find_active_category(
        self, account_business_id: str, membership_year: str
    ) -> MembershipCategoryRef | None:
        return self.categories.get((account_business_id, membership_year))


class InMemoryYearResolver:
    def __init__(self) -> None:
        self.active_years: dict[tuple[UUID, str], str] = {}

    def set_active(self, organization_id: UUID, group_label: str, membership_year: str) -> None:
        self.active_years[(organization_id, group_label)] = membership_year

    async def get_active_year(self, organization_id: UUID, group_label: str) -> str | None:
        return self.active_years.get((organization_id, group_label))

    async def list_active_organizations(self) -> list[UUID]:
        return sorted({org for org, _ in self.active_years}, key=str)
