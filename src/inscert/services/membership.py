"""Membership lookups used by the expiration processor.

Three read-only collaborators:
- AccountResolver: account GUID -> business id
- MembershipCategoryResolver: (business id, year) -> active category and group
- MembershipYearResolver: (organization, group) -> active membership year

plus helpers for membership-year labels ("2025-2026"). Membership years start
in September by default, so the calendar estimate for January 2026 is
"2025-2026" and for September 2026 is "2026-2027".
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from sqlalchemy import select

from inscert.db.models.membership import Account, MembershipCategory, MembershipGroupSetting

if TYPE_CHECKING:
    from datetime import date
    from uuid import UUID

    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

DEFAULT_YEAR_START_MONTH = 9

_YEAR_LABEL = re.compile(r"^(\d{4})-(\d{4})$")


# =============================================================================
# Membership-year labels
# =============================================================================


def parse_membership_year(label: str) -> tuple[int, int]:
    """Split a membership-year label into its start and end years.

    Raises:
        ValueError: If the label is not "YYYY-YYYY" with consecutive years.
    """
    match = _YEAR_LABEL.match(label)
    if match is None:
        msg = f"Invalid membership year label: {label!r}"
        raise ValueError(msg)
    start, end = int(match.group(1)), int(match.group(2))
    if end != start + 1:
        msg = f"Membership year must span consecutive years: {label!r}"
        raise ValueError(msg)
    return start, end


def format_membership_year(start_year: int) -> str:
    return f"{start_year}-{start_year + 1}"


def estimate_membership_year(
    today: date, start_month: int = DEFAULT_YEAR_START_MONTH
) -> str:
    """Best-effort calendar estimate of the current membership year.

    This only seeds the candidate query window; the authoritative year for a
    group comes from MembershipYearResolver.
    """
    start_year = today.year if today.month >= start_month else today.year - 1
    return format_membership_year(start_year)


def previous_membership_year(label: str) -> str:
    start, _ = parse_membership_year(label)
    return format_membership_year(start - 1)


def membership_year_window(current: str, depth: int) -> list[str]:
    """Return `depth` labels ending at `current`, newest first.

    Example:
        membership_year_window("2025-2026", 3)
        -> ["2025-2026", "2024-2025", "2023-2024"]
    """
    if depth < 1:
        msg = f"Window depth must be at least 1, got {depth}"
        raise ValueError(msg)
    start, _ = parse_membership_year(current)
    return [format_membership_year(start - offset) for offset in range(depth)]


# =============================================================================
# Resolver contracts
# =============================================================================


@dataclass(frozen=True, slots=True)
class MembershipCategoryRef:
    """The slice of a membership category the processor needs."""

    account_business_id: str
    membership_year: str
    group_label: str | None
    category: str | None = None


@dataclass(frozen=True, slots=True)
class ActiveMembershipYear:
    """Active membership year of one group in one organization."""

    organization_id: UUID
    group_label: str
    membership_year: str
    year_starts: date | None = None
    year_ends: date | None = None


class AccountResolver(Protocol):
    async def resolve_account_business_id(self, account_id: UUID) -> str | None: ...


class MembershipCategoryResolver(Protocol):
    async def find_active_category(
        self, account_business_id: str, membership_year: str
    ) -> MembershipCategoryRef | None: ...


class MembershipYearResolver(Protocol):
    async def get_active_year(self, organization_id: UUID, group_label: str) -> str | None: ...

    async def list_active_organizations(self) -> list[UUID]: ...


# =============================================================================
# SQLAlchemy implementations
# =============================================================================


class SqlAccountResolver:
    """Resolves account business ids from the accounts table."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def resolve_account_business_id(self, account_id: UUID) -> str | None:
        stmt = select(Account.business_id).where(Account.account_id == account_id)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()


class SqlMembershipCategoryResolver:
    """Finds a member's active category for a membership year."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def find_active_category(
        self, account_business_id: str, membership_year: str
    ) -> MembershipCategoryRef | None:
        stmt = (
            select(MembershipCategory)
            .where(
                MembershipCategory.account_business_id == account_business_id,
                MembershipCategory.membership_year == membership_year,
                MembershipCategory.is_active.is_(True),
            )
            .order_by(MembershipCategory.created_at.desc())
            .limit(1)
        )
        result = await self._session.execute(stmt)
        row = result.scalar_one_or_none()
        if row is None:
            return None
        return MembershipCategoryRef(
            account_business_id=row.account_business_id,
            membership_year=row.membership_year,
            group_label=row.group_label,
            category=row.category,
        )


class SqlMembershipYearResolver:
    """Reads active membership years from membership_group_settings."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_active_setting(
        self, organization_id: UUID, group_label: str
    ) -> ActiveMembershipYear | None:
        stmt = (
            select(MembershipGroupSetting)
            .where(
                MembershipGroupSetting.organization_id == organization_id,
                MembershipGroupSetting.group_label == group_label,
                MembershipGroupSetting.is_active.is_(True),
            )
            .order_by(MembershipGroupSetting.updated_at.desc())
        )
        result = await self._session.execute(stmt)
        settings = list(result.scalars().all())
        if not settings:
            return None
        if len(settings) > 1:
            logger.warning(
                "Multiple active membership settings: organization_id=%s, group=%s, "
                "using most recently updated year=%s",
                organization_id,
                group_label,
                settings[0].membership_year,
            )
        setting = settings[0]
        return ActiveMembershipYear(
            organization_id=setting.organization_id,
            group_label=setting.group_label,
            membership_year=setting.membership_year,
            year_starts=setting.year_starts,
            year_ends=setting.year_ends,
        )

    async def get_active_year(self, organization_id: UUID, group_label: str) -> str | None:
        setting = await self.get_active_setting(organization_id, group_label)
        return setting.membership_year if setting else None

    async def list_active_organizations(self) -> list[UUID]:
        stmt = (
            select(MembershipGroupSetting.organization_id)
            .where(MembershipGroupSetting.is_active.is_(True))
            .distinct()
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())
