"""Tests for membership-year labels and the SQL-backed resolvers."""

from datetime import date
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from inscert.services.membership import (
    SqlAccountResolver,
    SqlMembershipCategoryResolver,
    SqlMembershipYearResolver,
    estimate_membership_year,
    format_membership_year,
    membership_year_window,
    parse_membership_year,
    previous_membership_year,
)


def mock_session(*, scalar=None, scalars=None):
    result = MagicMock()
    result.scalar_one_or_none.return_value = scalar
    result.scalars.return_value.all.return_value = scalars or []
    session = MagicMock()
    session.execute = AsyncMock(return_value=result)
    return session


class TestYearLabels:
    """Membership-year label helpers."""

    def test_parse(self):
        assert parse_membership_year("2025-2026") == (2025, 2026)

    @pytest.mark.parametrize("label", ["2025", "2025-2027", "2026-2025", "25-26", "2025/2026", ""])
    def test_parse_rejects_malformed(self, label):
        with pytest.raises(ValueError):
            parse_membership_year(label)

    def test_format(self):
        assert format_membership_year(2024) == "2024-2025"

    def test_previous(self):
        assert previous_membership_year("2025-2026") == "2024-2025"

    @pytest.mark.parametrize(
        ("today", "expected"),
        [
            (date(2026, 1, 15), "2025-2026"),
            (date(2026, 8, 31), "2025-2026"),
            (date(2026, 9, 1), "2026-2027"),
            (date(2025, 12, 31), "2025-2026"),
        ],
    )
    def test_estimate_starts_in_september(self, today, expected):
        assert estimate_membership_year(today) == expected

    def test_estimate_custom_start_month(self):
        assert estimate_membership_year(date(2026, 1, 15), start_month=1) == "2026-2027"

    def test_window(self):
        assert membership_year_window("2025-2026", 3) == [
            "2025-2026",
            "2024-2025",
            "2023-2024",
        ]

    def test_window_depth_must_be_positive(self):
        with pytest.raises(ValueError):
            membership_year_window("2025-2026", 0)


class TestSqlResolvers:
    """SQL-backed resolvers against a mocked session."""

    @pytest.mark.asyncio
    async def test_account_business_id(self):
        resolver = SqlAccountResolver(mock_session(scalar="M-42"))
        assert await resolver.resolve_account_business_id(uuid4()) == "M-42"

    @pytest.mark.asyncio
    async def test_account_missing(self):
        resolver = SqlAccountResolver(mock_session(scalar=None))
        assert await resolver.resolve_account_business_id(uuid4()) is None

    @pytest.mark.asyncio
    async def test_category_mapped_to_ref(self):
        row = MagicMock(
            account_business_id="M-1",
            membership_year="2024-2025",
            group_label="OT",
            category="Practising",
        )
        resolver = SqlMembershipCategoryResolver(mock_session(scalar=row))

        ref = await resolver.find_active_category("M-1", "2024-2025")

        assert ref.group_label == "OT"
        assert ref.category == "Practising"

    @pytest.mark.asyncio
    async def test_category_missing(self):
        resolver = SqlMembershipCategoryResolver(mock_session(scalar=None))
        assert await resolver.find_active_category("M-1", "2024-2025") is None

    @pytest.mark.asyncio
    async def test_active_year_uses_most_recent_setting(self, caplog):
        org = uuid4()
        newest = MagicMock(organization_id=org, group_label="OT", membership_year="2025-2026")
        older = MagicMock(organization_id=org, group_label="OT", membership_year="2024-2025")
        resolver = SqlMembershipYearResolver(mock_session(scalars=[newest, older]))

        assert await resolver.get_active_year(org, "OT") == "2025-2026"
        assert "Multiple active membership settings" in caplog.text

    @pytest.mark.asyncio
    async def test_no_active_year(self):
        resolver = SqlMembershipYearResolver(mock_session(scalars=[]))
        assert await resolver.get_active_year(uuid4(), "OT") is None

    @pytest.mark.asyncio
    async def test_list_active_organizations(self):
        orgs = [uuid4(), uuid4()]
        resolver = SqlMembershipYearResolver(mock_session(scalars=orgs))
        assert await resolver.list_active_organizations() == orgs
