"""Insurance certificate model.

A certificate is a snapshot of coverage, pricing and insured-person details
taken at issuance. Only the lifecycle columns (status, endorsement, access
markers) change after creation; see inscert.services.lifecycle for the rules.
"""

from __future__ import annotations

import uuid  # noqa: TC003 - required at runtime for SQLAlchemy type resolution
from datetime import date  # noqa: TC003 - required at runtime for SQLAlchemy type resolution
from decimal import Decimal  # noqa: TC003 - required at runtime for SQLAlchemy type resolution

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    Enum,
    Identity,
    Index,
    Numeric,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from inscert.db.models.base import (
    AccessModifier,
    Base,
    CertificateStatus,
    Privilege,
    TimestampTZ,
    UUIDPrimaryKey,
    enum_values,
)

CERTIFICATE_NUMBER_PREFIX = "INS-"


def format_certificate_number(sequence: int) -> str:
    """Render the human-readable certificate number for a sequence value."""
    return f"{CERTIFICATE_NUMBER_PREFIX}{sequence:07d}"


class Certificate(Base):
    """Issued insurance certificate for one insured account."""

    __tablename__ = "certificates"

    certificate_id: Mapped[UUIDPrimaryKey]
    certificate_sequence: Mapped[int] = mapped_column(
        BigInteger, Identity(always=True), nullable=False, unique=True
    )
    created_at: Mapped[TimestampTZ]
    updated_at: Mapped[TimestampTZ]

    # Tenancy
    organization_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    # Nullable: legacy records exist without an account link
    account_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    order_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)

    # Snapshot: membership
    account_group: Mapped[str | None] = mapped_column(String(100), nullable=True)
    membership_category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    membership_label: Mapped[str | None] = mapped_column(String(100), nullable=True)
    membership_year: Mapped[str | None] = mapped_column(String(9), nullable=True)

    # Snapshot: insured person
    first_name: Mapped[str] = mapped_column(String(255), nullable=False)
    last_name: Mapped[str] = mapped_column(String(255), nullable=False)
    personal_corporation: Mapped[str | None] = mapped_column(String(255), nullable=True)
    address_1: Mapped[str] = mapped_column(String(255), nullable=False)
    address_2: Mapped[str | None] = mapped_column(String(255), nullable=True)
    city: Mapped[str] = mapped_column(String(100), nullable=False)
    province: Mapped[str] = mapped_column(String(10), nullable=False)
    postal_code: Mapped[str] = mapped_column(String(7), nullable=False)
    phone_number: Mapped[str | None] = mapped_column(String(14), nullable=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False)

    # Snapshot: coverage and pricing
    insurance_type: Mapped[str] = mapped_column(String(100), nullable=False)
    insurance_limit: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    insurance_price: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    total: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    declaration: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Snapshot: risk questions
    question_1: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    question_1_explain: Mapped[str | None] = mapped_column(Text, nullable=True)
    question_2: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    question_2_explain: Mapped[str | None] = mapped_column(Text, nullable=True)
    question_3: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    question_3_explain: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Snapshot: coverage window
    effective_date: Mapped[date] = mapped_column(Date, nullable=False)
    expiry_date: Mapped[date] = mapped_column(Date, nullable=False)

    # Lifecycle (mutable)
    status: Mapped[CertificateStatus] = mapped_column(
        Enum(CertificateStatus, name="certificate_status", values_callable=enum_values),
        nullable=False,
        default=CertificateStatus.DRAFT,
    )
    endorsement_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    endorsement_effective_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    privilege: Mapped[Privilege | None] = mapped_column(
        Enum(Privilege, name="privilege", values_callable=enum_values),
        nullable=True,
    )
    access_modifier: Mapped[AccessModifier | None] = mapped_column(
        Enum(AccessModifier, name="access_modifier", values_callable=enum_values),
        nullable=True,
    )

    __table_args__ = (
        CheckConstraint("effective_date < expiry_date", name="coverage_window"),
        Index("ix_certificates_org_year", "organization_id", "membership_year"),
        Index("ix_certificates_account_id", "account_id"),
        Index("ix_certificates_status", "status"),
    )

    @property
    def certificate_number(self) -> str:
        """Human-readable sequential certificate number."""
        return format_certificate_number(self.certificate_sequence)
