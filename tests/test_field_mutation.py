"""Tests for post-issuance field rules.

Tests cover:
- Snapshot and identity fields rejected regardless of privilege
- Endorsement freeze once the endorsement has taken effect
- Endorsements limited to ACTIVE and PENDING certificates
- update_mutable_fields() validation and status routing
"""

from datetime import date, timedelta
from decimal import Decimal

import pytest

from inscert.db.models.base import AccessModifier, CertificateStatus, Privilege
from inscert.services.certificates import SNAPSHOT_FIELDS
from inscert.services.lifecycle import (
    EmptyUpdateError,
    EndorsementNotAllowedError,
    ImmutableFieldViolationError,
    InvalidTransitionError,
    PermissionDeniedError,
    UnknownFieldError,
)
from tests.factories import FIXED_TODAY, create_certificate


class TestValidateFieldMutation:
    """Tests for validate_field_mutation()."""

    @pytest.mark.parametrize("field_name", sorted(SNAPSHOT_FIELDS))
    def test_snapshot_fields_are_immutable(self, lifecycle, field_name):
        certificate = create_certificate()
        with pytest.raises(ImmutableFieldViolationError) as exc_info:
            lifecycle.validate_field_mutation(field_name, certificate, "anything")
        assert exc_info.value.field_name == field_name

    def test_unchanged_snapshot_value_still_rejected(self, lifecycle):
        """Writing the same value to a snapshot field is still a violation."""
        certificate = create_certificate()
        with pytest.raises(ImmutableFieldViolationError):
            lifecycle.validate_field_mutation("total", certificate, certificate.total)

    @pytest.mark.parametrize("field_name", ["certificate_id", "organization_id", "account_id"])
    def test_identity_fields_are_immutable(self, lifecycle, field_name):
        with pytest.raises(ImmutableFieldViolationError):
            lifecycle.validate_field_mutation(field_name, create_certificate(), None)

    def test_unknown_field(self, lifecycle):
        with pytest.raises(UnknownFieldError):
            lifecycle.validate_field_mutation("favourite_colour", create_certificate(), "blue")

    def test_mutable_fields_accepted(self, lifecycle):
        certificate = create_certificate()
        lifecycle.validate_field_mutation("status", certificate, CertificateStatus.CANCELLED)
        lifecycle.validate_field_mutation("endorsement_description", certificate, "Added location")
        lifecycle.validate_field_mutation(
            "endorsement_effective_date", certificate, FIXED_TODAY + timedelta(days=10)
        )
        lifecycle.validate_field_mutation("privilege", certificate, Privilege.ADMIN)
        lifecycle.validate_field_mutation("access_modifier", certificate, AccessModifier.PRIVATE)

    def test_endorsement_frozen_once_effective(self, lifecycle):
        certificate = create_certificate(
            endorsement_description="Second location",
            endorsement_effective_date=FIXED_TODAY,
        )
        with pytest.raises(ImmutableFieldViolationError):
            lifecycle.validate_field_mutation("endorsement_description", certificate, "Changed")

    def test_future_endorsement_still_editable(self, lifecycle):
        certificate = create_certificate(
            endorsement_description="Second location",
            endorsement_effective_date=FIXED_TODAY + timedelta(days=1),
        )
        lifecycle.validate_field_mutation("endorsement_description", certificate, "Changed")

    def test_explicit_today_overrides_clock(self, lifecycle):
        certificate = create_certificate(endorsement_effective_date=date(2026, 3, 1))
        lifecycle.validate_field_mutation(
            "endorsement_description", certificate, "x", today=date(2026, 2, 28)
        )
        with pytest.raises(ImmutableFieldViolationError):
            lifecycle.validate_field_mutation(
                "endorsement_description", certificate, "x", today=date(2026, 3, 1)
            )

    @pytest.mark.parametrize(
        "status",
        [CertificateStatus.DRAFT, CertificateStatus.EXPIRED, CertificateStatus.CANCELLED],
    )
    def test_endorsement_requires_active_or_pending(self, lifecycle, status):
        certificate = create_certificate(status=status)
        with pytest.raises(EndorsementNotAllowedError):
            lifecycle.validate_field_mutation("endorsement_description", certificate, "Note")

    def test_access_marker_type_checked(self, lifecycle):
        with pytest.raises(ValueError, match="privilege"):
            lifecycle.validate_field_mutation("privilege", create_certificate(), "superuser")


class TestUpdateMutableFields:
    """Tests for update_mutable_fields()."""

    @pytest.mark.asyncio
    async def test_empty_update_rejected(self, store, lifecycle):
        certificate = store.add(create_certificate())
        with pytest.raises(EmptyUpdateError):
            await lifecycle.update_mutable_fields(certificate.certificate_id, {}, Privilege.MAIN)

    @pytest.mark.asyncio
    async def test_owner_cannot_update(self, store, lifecycle):
        certificate = store.add(create_certificate())
        with pytest.raises(PermissionDeniedError):
            await lifecycle.update_mutable_fields(
                certificate.certificate_id,
                {"endorsement_description": "Note"},
                Privilege.OWNER,
            )

    @pytest.mark.asyncio
    async def test_records_endorsement(self, store, lifecycle):
        certificate = store.add(create_certificate())
        effective = FIXED_TODAY + timedelta(days=30)

        updated = await lifecycle.update_mutable_fields(
            certificate.certificate_id,
            {"endorsement_description": "Additional insured", "endorsement_effective_date": effective},
            Privilege.ADMIN,
        )

        assert updated.endorsement_description == "Additional insured"
        assert updated.endorsement_effective_date == effective
        assert store.status_writes == []

    @pytest.mark.asyncio
    async def test_snapshot_field_aborts_whole_update(self, store, lifecycle):
        """Nothing is written when any field in the update is immutable."""
        certificate = store.add(create_certificate())

        with pytest.raises(ImmutableFieldViolationError):
            await lifecycle.update_mutable_fields(
                certificate.certificate_id,
                {"endorsement_description": "Note", "insurance_limit": Decimal("1.00")},
                Privilege.MAIN,
            )

        assert certificate.endorsement_description is None
        assert certificate.insurance_limit == Decimal("5000000.00")

    @pytest.mark.asyncio
    async def test_status_routed_through_state_machine(self, store, lifecycle):
        certificate = store.add(create_certificate())

        updated = await lifecycle.update_mutable_fields(
            certificate.certificate_id,
            {"status": CertificateStatus.CANCELLED, "access_modifier": AccessModifier.PRIVATE},
            Privilege.MAIN,
        )

        assert updated.status == CertificateStatus.CANCELLED
        assert updated.access_modifier is AccessModifier.PRIVATE
        assert store.status_writes == [(certificate.certificate_id, CertificateStatus.CANCELLED)]

    @pytest.mark.asyncio
    async def test_invalid_status_in_update(self, store, lifecycle):
        certificate = store.add(create_certificate(status=CertificateStatus.EXPIRED))

        with pytest.raises(InvalidTransitionError):
            await lifecycle.update_mutable_fields(
                certificate.certificate_id,
                {"status": CertificateStatus.ACTIVE},
                Privilege.MAIN,
            )

    @pytest.mark.asyncio
    async def test_endorsement_with_cancellation_rejected(self, store, lifecycle):
        """An endorsement cannot ride along with a move to a non-endorsable status."""
        certificate = store.add(create_certificate())

        with pytest.raises(EndorsementNotAllowedError):
            await lifecycle.update_mutable_fields(
                certificate.certificate_id,
                {"status": CertificateStatus.CANCELLED, "endorsement_description": "Note"},
                Privilege.MAIN,
            )

        assert certificate.status == CertificateStatus.ACTIVE
