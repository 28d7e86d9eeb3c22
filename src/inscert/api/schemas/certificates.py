"""Pydantic schemas for certificate endpoints."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from inscert.db.models.base import AccessModifier, CertificateStatus, Privilege


class CertificateResponse(BaseModel):
    """A certificate as returned by the API."""

    model_config = ConfigDict(from_attributes=True)

    certificate_id: UUID
    certificate_number: str
    organization_id: UUID
    account_id: UUID | None
    order_id: UUID | None
    status: CertificateStatus
    membership_year: str | None
    account_group: str | None
    membership_category: str | None
    membership_label: str | None
    first_name: str
    last_name: str
    personal_corporation: str | None
    address_1: str
    address_2: str | None
    city: str
    province: str
    postal_code: str
    phone_number: str | None
    email: str
    insurance_type: str
    insurance_limit: Decimal
    insurance_price: Decimal
    total: Decimal
    declaration: bool
    effective_date: date
    expiry_date: date
    endorsement_description: str | None
    endorsement_effective_date: date | None
    privilege: Privilege | None
    access_modifier: AccessModifier | None
    created_at: datetime
    updated_at: datetime


class StatusChangeRequest(BaseModel):
    status: CertificateStatus = Field(..., description="Target status")

    model_config = ConfigDict(extra="forbid")


class StatusChangeResponse(BaseModel):
    """Outcome of a status change. changed is False when the status already matched."""

    certificate: CertificateResponse
    previous_status: CertificateStatus
    new_status: CertificateStatus
    changed: bool


class CertificateUpdateRequest(BaseModel):
    """Partial update of lifecycle fields.

    Other field names are accepted by the schema and rejected by the
    lifecycle service, so clients get a field-specific error.
    """

    model_config = ConfigDict(extra="allow")

    status: CertificateStatus | None = None
    endorsement_description: str | None = Field(None, max_length=4000)
    endorsement_effective_date: date | None = None
    privilege: Privilege | None = None
    access_modifier: AccessModifier | None = None

    def to_updates(self) -> dict[str, object]:
        return self.model_dump(exclude_unset=True)
