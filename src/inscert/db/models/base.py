"""Base model definitions, mixins, and common types.

This module provides:
- SQLAlchemy declarative base with naming conventions
- Common type annotations for timestamps and UUIDs
- Enum types used across multiple models
"""

import enum
import uuid
from datetime import datetime
from typing import Annotated

from sqlalchemy import DateTime, MetaData, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import DeclarativeBase, mapped_column, registry

# Naming convention for constraints ensures consistent migration generation.
# See: https://alembic.sqlalchemy.org/en/latest/naming.html
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

metadata = MetaData(naming_convention=NAMING_CONVENTION)

type_registry = registry()

# UUID primary key with server-side default generation
UUIDPrimaryKey = Annotated[
    uuid.UUID,
    mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    ),
]

TimestampTZ = Annotated[
    datetime,
    mapped_column(DateTime(timezone=True), server_default=text("now()")),
]


class Base(DeclarativeBase):
    """Declarative base for all inscert models."""

    metadata = metadata
    registry = type_registry


def enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    """Persist enum values ('active'), not member names ('ACTIVE')."""
    return [member.value for member in enum_cls]


# =============================================================================
# Common Enums
# =============================================================================


class CertificateStatus(enum.Enum):
    """Insurance certificate lifecycle states.

    States:
        DRAFT: Created by an administrator, not yet submitted
        PENDING: Submitted, awaiting activation (e.g., payment confirmation)
        ACTIVE: Certificate currently provides coverage
        EXPIRED: Membership year rolled over; final
        CANCELLED: Explicitly cancelled; final
    """

    DRAFT = "draft"
    PENDING = "pending"
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class Privilege(enum.Enum):
    """Caller privilege level for certificate operations.

    Values:
        OWNER: The insured member acting on their own record
        ADMIN: Association staff
        MAIN: Main application / system actor
    """

    OWNER = "owner"
    ADMIN = "admin"
    MAIN = "main"


class AccessModifier(enum.Enum):
    """Visibility of a certificate to other users.

    Values:
        PUBLIC: Visible to all users
        PROTECTED: Visible to account members and above
        PRIVATE: Visible to the owner and administrators only
    """

    PUBLIC = "public"
    PROTECTED = "protected"
    PRIVATE = "private"
