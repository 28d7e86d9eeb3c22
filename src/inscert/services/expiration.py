"""Membership-group-scoped certificate expiration.

An ACTIVE certificate expires when its membership year no longer matches the
active year of its membership group. Groups roll over independently, so the
comparison is always against the group's own setting, never a global year.

Components:
- ExpirationProcessor: one run for one organization, batched, per-item
  skips and errors recorded instead of raised
- OrganizationRunGuard: at most one run per organization at a time
- ExpirationService: opens a session, wires the SQL collaborators, runs the
  processor under the guard and commits
"""

from __future__ import annotations

import asyncio
import enum
import logging
import re
from contextlib import AbstractAsyncContextManager, asynccontextmanager, nullcontext
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any
from zoneinfo import ZoneInfo

from inscert.db.models.base import CertificateStatus
from inscert.services.certificates import SqlCertificateStore
from inscert.services.lifecycle import SYSTEM_PRIVILEGE, CertificateLifecycleService
from inscert.services.membership import (
    DEFAULT_YEAR_START_MONTH,
    SqlAccountResolver,
    SqlMembershipCategoryResolver,
    SqlMembershipYearResolver,
    estimate_membership_year,
    membership_year_window,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
    from uuid import UUID

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from inscert.core.config import Settings
    from inscert.db.models.certificates import Certificate
    from inscert.services.certificates import CertificateStore
    from inscert.services.membership import (
        AccountResolver,
        MembershipCategoryResolver,
        MembershipYearResolver,
    )

logger = logging.getLogger(__name__)

_SLUG_SEPARATORS = re.compile(r"[^a-z0-9]+")


class RunReason(str, enum.Enum):
    """Why an expiration run was started."""

    DAILY = "daily-automatic"
    ANNUAL = "annual-automatic"
    MANUAL = "manual-admin-trigger"


class SkipReason(str, enum.Enum):
    """Why a candidate certificate was left untouched.

    Checked in declaration order; the first that applies wins.
    """

    NO_ACCOUNT_LINK = "NO_ACCOUNT_LINK"
    NO_MEMBERSHIP_YEAR = "NO_MEMBERSHIP_YEAR"
    ACCOUNT_NOT_FOUND = "ACCOUNT_NOT_FOUND"
    NO_ACTIVE_CATEGORY = "NO_ACTIVE_CATEGORY"
    NO_GROUP_LABEL = "NO_GROUP_LABEL"
    NO_ACTIVE_SETTINGS = "NO_ACTIVE_SETTINGS"
    YEAR_CURRENT = "YEAR_CURRENT"


# Skip reasons rolled up into the two summary counters
NO_ACCOUNT_REASONS = frozenset({SkipReason.NO_ACCOUNT_LINK, SkipReason.ACCOUNT_NOT_FOUND})
NO_CATEGORY_REASONS = frozenset({SkipReason.NO_ACTIVE_CATEGORY, SkipReason.NO_GROUP_LABEL})


class ItemOutcome(str, enum.Enum):
    EXPIRED = "expired"
    SKIPPED = "skipped"
    ERROR = "error"


class ExpirationRunInProgressError(Exception):
    """Raised when a run is requested for an organization that is already running."""

    def __init__(self, organization_id: UUID) -> None:
        self.organization_id = organization_id
        super().__init__(f"Expiration run already in progress for organization {organization_id}")


@dataclass
class GroupStats:
    checked: int = 0
    expired: int = 0

    def to_dict(self) -> dict[str, int]:
        return {"checked": self.checked, "expired": self.expired}


@dataclass
class OrganizationStats:
    """Counters for one organization within a run."""

    insurances_checked: int = 0
    insurances_expired: int = 0
    insurances_skipped: int = 0
    errors: int = 0
    group_stats: dict[str, GroupStats] = field(default_factory=dict)

    def group(self, label: str) -> GroupStats:
        return self.group_stats.setdefault(label, GroupStats())

    def to_dict(self) -> dict[str, Any]:
        return {
            "insurancesChecked": self.insurances_checked,
            "insurancesExpired": self.insurances_expired,
            "insurancesSkipped": self.insurances_skipped,
            "errors": self.errors,
            "groupStats": {label: g.to_dict() for label, g in self.group_stats.items()},
        }


@dataclass(frozen=True, slots=True)
class ExpirationItemResult:
    """Audit record for one candidate certificate."""

    certificate_id: UUID
    certificate_number: str
    outcome: ItemOutcome
    skip_reason: SkipReason | None = None
    membership_year: str | None = None
    active_year: str | None = None
    group_label: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "certificateId": str(self.certificate_id),
            "certificateNumber": self.certificate_number,
            "outcome": self.outcome.value,
            "skipReason": self.skip_reason.value if self.skip_reason else None,
            "membershipYear": self.membership_year,
            "activeYear": self.active_year,
            "groupLabel": self.group_label,
            "error": self.error,
        }


@dataclass
class ExpirationRunResult:
    """Statistics and item records of one expiration run."""

    operation_id: str
    organization_id: UUID | None
    reason: str
    started_at: datetime
    completed_at: datetime | None = None
    total_processed: int = 0
    total_expired: int = 0
    total_skipped: int = 0
    total_skipped_no_account: int = 0
    total_skipped_no_category: int = 0
    skipped_by_reason: dict[SkipReason, int] = field(default_factory=dict)
    errors: int = 0
    per_organization: dict[UUID, OrganizationStats] = field(default_factory=dict)
    items: list[ExpirationItemResult] = field(default_factory=list)

    def record(self, organization_id: UUID, item: ExpirationItemResult) -> None:
        """Fold one item result into the run and organization counters."""
        org = self.per_organization.setdefault(organization_id, OrganizationStats())
        self.items.append(item)
        self.total_processed += 1
        org.insurances_checked += 1

        if item.outcome is ItemOutcome.EXPIRED:
            self.total_expired += 1
            org.insurances_expired += 1
            if item.group_label is not None:
                org.group(item.group_label).expired += 1
        elif item.outcome is ItemOutcome.SKIPPED:
            reason = item.skip_reason
            self.total_skipped += 1
            org.insurances_skipped += 1
            self.skipped_by_reason[reason] = self.skipped_by_reason.get(reason, 0) + 1
            if reason in NO_ACCOUNT_REASONS:
                self.total_skipped_no_account += 1
            elif reason in NO_CATEGORY_REASONS:
                self.total_skipped_no_category += 1
        else:
            self.errors += 1
            org.errors += 1

        if item.group_label is not None:
            org.group(item.group_label).checked += 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "operationId": self.operation_id,
            "organizationId": str(self.organization_id) if self.organization_id else None,
            "reason": self.reason,
            "startedAt": self.started_at.isoformat(),
            "completedAt": self.completed_at.isoformat() if self.completed_at else None,
            "totalProcessed": self.total_processed,
            "totalExpired": self.total_expired,
            "totalSkipped": self.total_skipped,
            "totalSkippedNoAccount": self.total_skipped_no_account,
            "totalSkippedNoCategory": self.total_skipped_no_category,
            "skippedByReason": {r.value: n for r, n in self.skipped_by_reason.items()},
            "errors": self.errors,
            "perOrganization": {
                str(org_id): stats.to_dict() for org_id, stats in self.per_organization.items()
            },
            "items": [item.to_dict() for item in self.items],
        }


@dataclass(frozen=True, slots=True)
class ExpirationConfig:
    """Tuning knobs for the processor."""

    batch_size: int = 50
    batch_delay_seconds: float = 1.0
    lookback_years: int = 3
    year_start_month: int = DEFAULT_YEAR_START_MONTH
    timezone: str = "America/Toronto"

    @classmethod
    def from_settings(cls, settings: Settings) -> ExpirationConfig:
        exp = settings.expiration
        return cls(
            batch_size=exp.batch_size,
            batch_delay_seconds=exp.batch_delay_seconds,
            lookback_years=exp.lookback_years,
            year_start_month=exp.year_start_month,
            timezone=exp.timezone,
        )


def make_operation_id(reason: str, at: datetime) -> str:
    """Operation id for a run: the reason as a lowercase slug plus epoch millis."""
    slug = _SLUG_SEPARATORS.sub("-", reason.lower()).strip("-") or RunReason.MANUAL.value
    return f"{slug}-{int(at.timestamp() * 1000)}"


class OrganizationRunGuard:
    """Per-organization mutual exclusion for expiration runs.

    A second run for a busy organization fails immediately instead of
    queueing behind the first.
    """

    def __init__(self) -> None:
        self._locks: dict[UUID, asyncio.Lock] = {}

    def is_running(self, organization_id: UUID) -> bool:
        lock = self._locks.get(organization_id)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, organization_id: UUID) -> AsyncIterator[None]:
        lock = self._locks.setdefault(organization_id, asyncio.Lock())
        if lock.locked():
            raise ExpirationRunInProgressError(organization_id)
        try:
            async with lock:
                yield
        finally:
            # Idle organizations keep no entry
            if self._locks.get(organization_id) is lock and not lock.locked():
                del self._locks[organization_id]


class ExpirationProcessor:
    """Expires certificates whose membership year is behind their group's.

    Example:
        processor = ExpirationProcessor(
            store, lifecycle, accounts, categories, years, ExpirationConfig()
        )
        result = await processor.run(organization_id, reason="manual-admin-trigger")
        print(result.to_dict()["totalExpired"])
    """

    def __init__(
        self,
        store: CertificateStore,
        lifecycle: CertificateLifecycleService,
        accounts: AccountResolver,
        categories: MembershipCategoryResolver,
        years: MembershipYearResolver,
        config: ExpirationConfig,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], datetime] | None = None,
        item_scope: Callable[[], AbstractAsyncContextManager[Any]] = nullcontext,
    ) -> None:
        """Initialize the processor.

        Args:
            item_scope: Context entered around each certificate's database work.
                build_processor() passes the session's begin_nested, so a failed
                statement is undone for that certificate only.
        """
        self._store = store
        self._lifecycle = lifecycle
        self._accounts = accounts
        self._categories = categories
        self._years = years
        self._config = config
        self._sleep = sleep
        self._clock = clock or (lambda: datetime.now(UTC))
        self._item_scope = item_scope

    def candidate_years(self, now: datetime) -> list[str]:
        local_today = now.astimezone(ZoneInfo(self._config.timezone)).date()
        current = estimate_membership_year(local_today, self._config.year_start_month)
        return membership_year_window(current, self._config.lookback_years)

    async def find_candidates(self, organization_id: UUID, now: datetime) -> list[Certificate]:
        """ACTIVE certificates of the organization in the lookback window, de-duplicated."""
        years = self.candidate_years(now)
        rows = await self._store.find_by_year_window(organization_id, years)

        seen: set[UUID] = set()
        candidates: list[Certificate] = []
        for certificate in rows:
            if certificate.certificate_id in seen:
                continue
            seen.add(certificate.certificate_id)
            if certificate.status == CertificateStatus.ACTIVE:
                candidates.append(certificate)

        logger.debug(
            "Expiration candidates: organization_id=%s, years=%s, fetched=%d, active=%d",
            organization_id,
            years,
            len(rows),
            len(candidates),
        )
        return candidates

    async def run(
        self,
        organization_id: UUID | None,
        reason: str | None = None,
    ) -> ExpirationRunResult:
        """Run expiration for one organization.

        A missing organization id is a no-op with empty statistics.
        """
        reason = reason or RunReason.MANUAL.value
        started_at = self._clock()
        result = ExpirationRunResult(
            operation_id=make_operation_id(reason, started_at),
            organization_id=organization_id,
            reason=reason,
            started_at=started_at,
        )

        if organization_id is None:
            logger.warning(
                "Expiration run without organization scope, nothing to do: operation_id=%s",
                result.operation_id,
            )
            result.completed_at = self._clock()
            return result

        logger.info(
            "Expiration run started: operation_id=%s, organization_id=%s, reason=%s",
            result.operation_id,
            organization_id,
            reason,
        )
        result.per_organization[organization_id] = OrganizationStats()

        candidates = await self.find_candidates(organization_id, started_at)
        batch_size = self._config.batch_size
        batches = [candidates[i : i + batch_size] for i in range(0, len(candidates), batch_size)]

        for index, batch in enumerate(batches):
            for certificate in batch:
                item = await self._process_certificate(organization_id, certificate)
                result.record(organization_id, item)

            if index < len(batches) - 1 and self._config.batch_delay_seconds > 0:
                await self._sleep(self._config.batch_delay_seconds)

        result.completed_at = self._clock()
        logger.info(
            "Expiration run completed: operation_id=%s, organization_id=%s, processed=%d, "
            "expired=%d, skipped=%d, errors=%d",
            result.operation_id,
            organization_id,
            result.total_processed,
            result.total_expired,
            result.total_skipped,
            result.errors,
            extra={"expiration_run": result.to_dict() | {"items": len(result.items)}},
        )
        return result

    async def _process_certificate(
        self, organization_id: UUID, certificate: Certificate
    ) -> ExpirationItemResult:
        certificate_id = certificate.certificate_id
        membership_year = certificate.membership_year
        group_label: str | None = None
        active_year: str | None = None

        def skip(reason: SkipReason) -> ExpirationItemResult:
            logger.debug(
                "Certificate skipped: certificate_id=%s, reason=%s",
                certificate_id,
                reason.value,
            )
            return ExpirationItemResult(
                certificate_id=certificate_id,
                certificate_number=certificate.certificate_number,
                outcome=ItemOutcome.SKIPPED,
                skip_reason=reason,
                membership_year=membership_year,
                active_year=active_year,
                group_label=group_label,
            )

        if certificate.account_id is None:
            return skip(SkipReason.NO_ACCOUNT_LINK)
        if not membership_year:
            return skip(SkipReason.NO_MEMBERSHIP_YEAR)

        try:
            # A failed statement rolls back only this item's savepoint
            async with self._item_scope():
                business_id = await self._accounts.resolve_account_business_id(
                    certificate.account_id
                )
                if business_id is None:
                    return skip(SkipReason.ACCOUNT_NOT_FOUND)

                category = await self._categories.find_active_category(
                    business_id, membership_year
                )
                if category is None:
                    return skip(SkipReason.NO_ACTIVE_CATEGORY)
                if not category.group_label:
                    return skip(SkipReason.NO_GROUP_LABEL)
                group_label = category.group_label

                active_year = await self._years.get_active_year(organization_id, group_label)
                if active_year is None:
                    logger.warning(
                        "No active membership setting: organization_id=%s, group=%s",
                        organization_id,
                        group_label,
                    )
                    return skip(SkipReason.NO_ACTIVE_SETTINGS)
                if active_year == membership_year:
                    return skip(SkipReason.YEAR_CURRENT)

                await self._lifecycle.transition_certificate(
                    certificate, CertificateStatus.EXPIRED, SYSTEM_PRIVILEGE
                )
        except Exception as e:
            logger.exception(
                "Failed to process certificate: certificate_id=%s, error=%s",
                certificate_id,
                e,
            )
            return ExpirationItemResult(
                certificate_id=certificate_id,
                certificate_number=certificate.certificate_number,
                outcome=ItemOutcome.ERROR,
                membership_year=membership_year,
                active_year=active_year,
                group_label=group_label,
                error=str(e),
            )

        logger.info(
            "Certificate expired",
            extra={
                "certificate_id": str(certificate_id),
                "organization_id": str(organization_id),
                "group_label": group_label,
                "membership_year": membership_year,
                "active_year": active_year,
            },
        )
        return ExpirationItemResult(
            certificate_id=certificate_id,
            certificate_number=certificate.certificate_number,
            outcome=ItemOutcome.EXPIRED,
            membership_year=membership_year,
            active_year=active_year,
            group_label=group_label,
        )


def build_processor(
    session: AsyncSession,
    config: ExpirationConfig,
    **kwargs: Any,
) -> ExpirationProcessor:
    """Wire an ExpirationProcessor onto the SQL-backed collaborators.

    Each certificate runs in its own SAVEPOINT, so one failed statement does
    not abort the transaction the rest of the run commits in.
    """
    kwargs.setdefault("item_scope", session.begin_nested)
    store = SqlCertificateStore(session)
    return ExpirationProcessor(
        store,
        CertificateLifecycleService(store),
        SqlAccountResolver(session),
        SqlMembershipCategoryResolver(session),
        SqlMembershipYearResolver(session),
        config,
        **kwargs,
    )


class ExpirationService:
    """Entry point for manual and scheduled expiration runs.

    Owns the run guard, so every caller sharing one service instance shares
    the per-organization exclusion.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        config: ExpirationConfig,
        *,
        guard: OrganizationRunGuard | None = None,
        processor_factory: Callable[[AsyncSession, ExpirationConfig], ExpirationProcessor]
        | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._config = config
        self.guard = guard or OrganizationRunGuard()
        self._processor_factory = processor_factory or build_processor

    async def trigger_expiration(
        self,
        organization_id: UUID | None,
        reason: str | None = None,
    ) -> ExpirationRunResult:
        """Run expiration for one organization and commit the result.

        Raises:
            ExpirationRunInProgressError: A run for this organization is active.
        """
        reason = reason or RunReason.MANUAL.value

        if organization_id is None:
            async with self._session_factory() as session:
                return await self._processor_factory(session, self._config).run(None, reason)

        async with self.guard.hold(organization_id), self._session_factory() as session:
            try:
                result = await self._processor_factory(session, self._config).run(
                    organization_id, reason
                )
                await session.commit()
            except Exception:
                await session.rollback()
                raise
        return result

    async def list_organizations(self) -> list[UUID]:
        async with self._session_factory() as session:
            return await SqlMembershipYearResolver(session).list_active_organizations()

    async def run_all_organizations(self, reason: str) -> list[ExpirationRunResult]:
        """Run expiration for every organization with an active group setting.

        Organizations are processed one after another. A failing organization
        is logged and the remaining ones still run.
        """
        organizations: Sequence[UUID] = await self.list_organizations()
        results: list[ExpirationRunResult] = []

        for organization_id in organizations:
            try:
                results.append(await self.trigger_expiration(organization_id, reason))
            except ExpirationRunInProgressError:
                logger.warning(
                    "Skipping organization, run already in progress: organization_id=%s",
                    organization_id,
                )
            except Exception as e:
                logger.exception(
                    "Expiration run failed: organization_id=%s, reason=%s, error=%s",
                    organization_id,
                    reason,
                    e,
                )

        logger.info(
            "Expiration sweep finished: reason=%s, organizations=%d, expired=%d",
            reason,
            len(organizations),
            sum(r.total_expired for r in results),
        )
        return results
