"""
InventoryService: donation intake and atomic issue-by-id.
"""

from datetime import date, datetime, timezone
from uuid import uuid4

import pytest
from sqlalchemy import select

from blood_kernel.domain.dtos import IssueType, UnitStatus
from blood_kernel.exceptions import (
    InvalidBloodTypeError,
    InvalidDonationError,
    InvalidIssueTypeError,
)
from blood_kernel.models.blood_unit import BloodUnit
from blood_kernel.models.issuance import Issuance
from blood_kernel.selectors.inventory_selector import InventorySelector


class TestAddUnit:

    def test_unit_starts_available(self, session, inventory_service):
        unit_id = inventory_service.add_unit("A+", date(2024, 1, 1), "123456789", "Dana")

        unit = InventorySelector(session).get_unit(unit_id)
        assert unit.status is UnitStatus.AVAILABLE
        assert unit.blood_type.compact == "A+"
        assert unit.donation_source == "Soroka"

    def test_ids_are_unique(self, add_unit):
        ids = {add_unit("O-") for _ in range(20)}
        assert len(ids) == 20

    def test_explicit_donation_source(self, session, inventory_service):
        unit_id = inventory_service.add_unit(
            "B-", date(2024, 1, 1), "123456789", "Dana", donation_source="Hadassah"
        )
        assert InventorySelector(session).get_unit(unit_id).donation_source == "Hadassah"

    def test_datetime_donation_date_is_truncated(self, session, inventory_service):
        when = datetime(2024, 3, 5, 10, 30, tzinfo=timezone.utc)
        unit_id = inventory_service.add_unit("O+", when, "123456789", "Dana")
        assert InventorySelector(session).get_unit(unit_id).donation_date == date(2024, 3, 5)

    def test_invalid_blood_type(self, inventory_service):
        with pytest.raises(InvalidBloodTypeError):
            inventory_service.add_unit("C+", date(2024, 1, 1), "123456789", "Dana")

    @pytest.mark.parametrize(
        "donor_id,donor_name,field",
        [
            ("", "Dana", "donor_id"),
            ("1234", "Dana", "donor_id"),
            ("1234567890123", "Dana", "donor_id"),
            ("123456789", "", "donor_name"),
            ("123456789", "   ", "donor_name"),
            ("123456789", "x" * 81, "donor_name"),
        ],
    )
    def test_invalid_donor(self, inventory_service, donor_id, donor_name, field):
        with pytest.raises(InvalidDonationError) as exc_info:
            inventory_service.add_unit("A+", date(2024, 1, 1), donor_id, donor_name)
        assert exc_info.value.field == field

    def test_missing_donation_date(self, inventory_service):
        with pytest.raises(InvalidDonationError):
            inventory_service.add_unit("A+", None, "123456789", "Dana")

    def test_logs_unit_added(self, inventory_service, captured_logs):
        unit_id = inventory_service.add_unit("AB-", date(2024, 1, 1), "123456789", "Dana")
        records = [r for r in captured_logs() if r["message"] == "unit_added"]
        assert records[-1]["unit_id"] == str(unit_id)
        assert records[-1]["blood_type"] == "AB-"


class TestIssueByIds:

    def test_issues_and_records_issuance(self, session, inventory_service, add_unit):
        unit_id = add_unit("A+")

        issued = inventory_service.issue_by_ids([unit_id], IssueType.ROUTINE)

        assert [u.id for u in issued] == [unit_id]
        assert issued[0].status is UnitStatus.ISSUED
        issuance = session.execute(
            select(Issuance).where(Issuance.unit_id == unit_id)
        ).scalar_one()
        assert issuance.issue_type == "routine"
        assert issuance.abo == "A" and issuance.rh == "+"

    def test_double_issue_returns_id_once(self, inventory_service, add_unit):
        unit_id = add_unit("O-")

        first = inventory_service.issue_by_ids([unit_id], "routine")
        second = inventory_service.issue_by_ids([unit_id], "routine")

        assert [u.id for u in first] == [unit_id]
        assert second == []

    def test_duplicate_ids_in_one_call(self, session, inventory_service, add_unit):
        unit_id = add_unit("O-")

        issued = inventory_service.issue_by_ids([unit_id, str(unit_id), unit_id], "emergency")

        assert len(issued) == 1
        count = session.execute(select(Issuance)).scalars().all()
        assert len(count) == 1

    def test_unknown_and_malformed_ids_dropped(self, inventory_service, add_unit):
        unit_id = add_unit("B+")

        issued = inventory_service.issue_by_ids(
            [uuid4(), "not-a-uuid", unit_id], IssueType.ROUTINE
        )

        assert [u.id for u in issued] == [unit_id]

    def test_preserves_request_order(self, inventory_service, add_unit):
        ids = [add_unit("A+", days_old=d) for d in (1, 2, 3)]
        requested = [ids[2], ids[0], ids[1]]

        issued = inventory_service.issue_by_ids(requested, IssueType.ROUTINE)

        assert [u.id for u in issued] == requested

    def test_empty_request(self, inventory_service):
        assert inventory_service.issue_by_ids([], IssueType.ROUTINE) == []

    def test_invalid_issue_type(self, inventory_service, add_unit):
        unit_id = add_unit("A+")
        with pytest.raises(InvalidIssueTypeError):
            inventory_service.issue_by_ids([unit_id], "MCI")

    def test_issued_unit_is_retained(self, session, inventory_service, add_unit):
        unit_id = add_unit("AB+")
        inventory_service.issue_by_ids([unit_id], IssueType.ROUTINE)

        row = session.get(BloodUnit, unit_id)
        assert row is not None
        assert row.status == UnitStatus.ISSUED.value
