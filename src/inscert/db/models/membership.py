"""Membership records the expiration processor resolves against.

These tables are owned by the membership side of the association system;
the certificate service only reads them.
"""

from __future__ import annotations

import uuid  # noqa: TC003 - required at runtime for SQLAlchemy type resolution
from datetime import date  # noqa: TC003 - required at runtime for SQLAlchemy type resolution

from sqlalchemy import Boolean, Date, Index, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from inscert.db.models.base import Base, TimestampTZ, UUIDPrimaryKey


class Account(Base):
    """Individual member account.

    account_id is the internal GUID certificates link to; business_id is the
    human-readable identifier membership categories are keyed by.
    """

    __tablename__ = "accounts"

    account_id: Mapped[UUIDPrimaryKey]
    created_at: Mapped[TimestampTZ]

    organization_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    business_id: Mapped[str | None] = mapped_column(String(50), nullable=True, unique=True)
    display_name: Mapped[str | None] = mapped_column(String(255), nullable=True)


class MembershipCategory(Base):
    """A member's category for one membership year."""

    __tablename__ = "membership_categories"

    category_id: Mapped[UUIDPrimaryKey]
    created_at: Mapped[TimestampTZ]

    account_business_id: Mapped[str] = mapped_column(String(50), nullable=False)
    membership_year: Mapped[str] = mapped_column(String(9), nullable=False)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    # Membership group label (e.g., OT, OTA, Student)
    group_label: Mapped[str | None] = mapped_column(String(100), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        Index(
            "ix_membership_categories_account_year",
            "account_business_id",
            "membership_year",
        ),
    )


class MembershipGroupSetting(Base):
    """Membership-year configuration for one group in one organization.

    At most one row per (organization_id, group_label) is expected to be
    active at a time.
    """

    __tablename__ = "membership_group_settings"

    setting_id: Mapped[UUIDPrimaryKey]
    created_at: Mapped[TimestampTZ]
    updated_at: Mapped[TimestampTZ]

    organization_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    group_label: Mapped[str] = mapped_column(String(100), nullable=False)
    membership_year: Mapped[str] = mapped_column(String(9), nullable=False)
    year_starts: Mapped[date | None] = mapped_column(Date, nullable=True)
    year_ends: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        Index(
            "ix_membership_group_settings_org_group",
            "organization_id",
            "group_label",
            "is_active",
        ),
    )
