"""SQLAlchemy ORM models for inscert.

This package contains all database models organized by domain:
- base: Common metadata, type annotations and enums
- certificates: Insurance certificates (snapshot + lifecycle columns)
- membership: Accounts, membership categories and group year settings
"""

from inscert.db.models.base import (
    AccessModifier,
    Base,
    CertificateStatus,
    Privilege,
    metadata,
)
from inscert.db.models.certificates import Certificate, format_certificate_number
from inscert.db.models.membership import Account, MembershipCategory, MembershipGroupSetting

__all__ = [
    "AccessModifier",
    "Account",
    "Base",
    "Certificate",
    "CertificateStatus",
    "MembershipCategory",
    "MembershipGroupSetting",
    "Privilege",
    "format_certificate_number",
    "metadata",
]
