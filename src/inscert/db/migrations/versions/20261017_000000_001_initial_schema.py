"""Initial schema: certificates and membership reference tables.

Revision ID: 001
Revises:
Create Date: 2026-10-17 00:00:00.000000+00:00

Creates:
- certificates (snapshot columns, lifecycle columns, coverage window check)
- accounts
- membership_categories
- membership_group_settings
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

certificate_status = postgresql.ENUM(
    "draft",
    "pending",
    "active",
    "expired",
    "cancelled",
    name="certificate_status",
    create_type=False,
)
privilege = postgresql.ENUM("owner", "admin", "main", name="privilege", create_type=False)
access_modifier = postgresql.ENUM(
    "public", "protected", "private", name="access_modifier", create_type=False
)


def _uuid_pk(name: str) -> sa.Column:
    return sa.Column(
        name,
        postgresql.UUID(as_uuid=True),
        server_default=sa.text("gen_random_uuid()"),
        nullable=False,
    )


def _timestamp(name: str) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        server_default=sa.text("now()"),
        nullable=False,
    )


def upgrade() -> None:
    """Apply migration: create the initial tables."""
    bind = op.get_bind()
    certificate_status.create(bind, checkfirst=True)
    privilege.create(bind, checkfirst=True)
    access_modifier.create(bind, checkfirst=True)

    op.create_table(
        "certificates",
        _uuid_pk("certificate_id"),
        sa.Column(
            "certificate_sequence",
            sa.BigInteger(),
            sa.Identity(always=True),
            nullable=False,
        ),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.Column("organization_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("account_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("order_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("account_group", sa.String(100), nullable=True),
        sa.Column("membership_category", sa.String(100), nullable=True),
        sa.Column("membership_label", sa.String(100), nullable=True),
        sa.Column("membership_year", sa.String(9), nullable=True),
        sa.Column("first_name", sa.String(255), nullable=False),
        sa.Column("last_name", sa.String(255), nullable=False),
        sa.Column("personal_corporation", sa.String(255), nullable=True),
        sa.Column("address_1", sa.String(255), nullable=False),
        sa.Column("address_2", sa.String(255), nullable=True),
        sa.Column("city", sa.String(100), nullable=False),
        sa.Column("province", sa.String(10), nullable=False),
        sa.Column("postal_code", sa.String(7), nullable=False),
        sa.Column("phone_number", sa.String(14), nullable=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("insurance_type", sa.String(100), nullable=False),
        sa.Column("insurance_limit", sa.Numeric(18, 2), nullable=False),
        sa.Column("insurance_price", sa.Numeric(18, 2), nullable=False),
        sa.Column("total", sa.Numeric(18, 2), nullable=False),
        sa.Column("declaration", sa.Boolean(), nullable=False),
        sa.Column("question_1", sa.Boolean(), nullable=True),
        sa.Column("question_1_explain", sa.Text(), nullable=True),
        sa.Column("question_2", sa.Boolean(), nullable=True),
        sa.Column("question_2_explain", sa.Text(), nullable=True),
        sa.Column("question_3", sa.Boolean(), nullable=True),
        sa.Column("question_3_explain", sa.Text(), nullable=True),
        sa.Column("effective_date", sa.Date(), nullable=False),
        sa.Column("expiry_date", sa.Date(), nullable=False),
        sa.Column("status", certificate_status, nullable=False),
        sa.Column("endorsement_description", sa.Text(), nullable=True),
        sa.Column("endorsement_effective_date", sa.Date(), nullable=True),
        sa.Column("privilege", privilege, nullable=True),
        sa.Column("access_modifier", access_modifier, nullable=True),
        sa.PrimaryKeyConstraint("certificate_id", name=op.f("pk_certificates")),
        sa.UniqueConstraint(
            "certificate_sequence", name=op.f("uq_certificates_certificate_sequence")
        ),
        sa.CheckConstraint(
            "effective_date < expiry_date", name=op.f("ck_certificates_coverage_window")
        ),
    )
    op.create_index(
        "ix_certificates_org_year", "certificates", ["organization_id", "membership_year"]
    )
    op.create_index("ix_certificates_account_id", "certificates", ["account_id"])
    op.create_index("ix_certificates_status", "certificates", ["status"])

    op.create_table(
        "accounts",
        _uuid_pk("account_id"),
        _timestamp("created_at"),
        sa.Column("organization_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("business_id", sa.String(50), nullable=True),
        sa.Column("display_name", sa.String(255), nullable=True),
        sa.PrimaryKeyConstraint("account_id", name=op.f("pk_accounts")),
        sa.UniqueConstraint("business_id", name=op.f("uq_accounts_business_id")),
    )

    op.create_table(
        "membership_categories",
        _uuid_pk("category_id"),
        _timestamp("created_at"),
        sa.Column("account_business_id", sa.String(50), nullable=False),
        sa.Column("membership_year", sa.String(9), nullable=False),
        sa.Column("category", sa.String(100), nullable=True),
        sa.Column("group_label", sa.String(100), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.PrimaryKeyConstraint("category_id", name=op.f("pk_membership_categories")),
    )
    op.create_index(
        "ix_membership_categories_account_year",
        "membership_categories",
        ["account_business_id", "membership_year"],
    )

    op.create_table(
        "membership_group_settings",
        _uuid_pk("setting_id"),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.Column("organization_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("group_label", sa.String(100), nullable=False),
        sa.Column("membership_year", sa.String(9), nullable=False),
        sa.Column("year_starts", sa.Date(), nullable=True),
        sa.Column("year_ends", sa.Date(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.PrimaryKeyConstraint("setting_id", name=op.f("pk_membership_group_settings")),
    )
    op.create_index(
        "ix_membership_group_settings_org_group",
        "membership_group_settings",
        ["organization_id", "group_label", "is_active"],
    )


def downgrade() -> None:
    """Revert migration: drop the initial tables and enum types."""
    op.drop_index(
        "ix_membership_group_settings_org_group", table_name="membership_group_settings"
    )
    op.drop_table("membership_group_settings")
    op.drop_index(
        "ix_membership_categories_account_year", table_name="membership_categories"
    )
    op.drop_table("membership_categories")
    op.drop_table("accounts")
    op.drop_index("ix_certificates_status", table_name="certificates")
    op.drop_index("ix_certificates_account_id", table_name="certificates")
    op.drop_index("ix_certificates_org_year", table_name="certificates")
    op.drop_table("certificates")

    bind = op.get_bind()
    access_modifier.drop(bind, checkfirst=True)
    privilege.drop(bind, checkfirst=True)
    certificate_status.drop(bind, checkfirst=True)
