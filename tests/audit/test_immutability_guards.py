"""
Immutability enforcement, both layers.

Layer 1: ORM listeners reject changes made through a Session.
Layer 2: database triggers reject raw SQL that bypasses the ORM.
"""

from datetime import date

import pytest
from sqlalchemy import select, text
from sqlalchemy.exc import DatabaseError

from blood_kernel.db.triggers import get_installed_triggers, triggers_installed
from blood_kernel.domain.dtos import AuditEntryData, UnitStatus
from blood_kernel.exceptions import (
    ImmutabilityViolationError,
    UnitStatusTransitionError,
)
from blood_kernel.models.audit_entry import AuditEntry
from blood_kernel.models.blood_unit import BloodUnit
from blood_kernel.models.issuance import Issuance


class TestOrmGuards:

    def test_audit_entry_update_rejected(self, session, auditor_service):
        auditor_service.append(AuditEntryData(action="Donation.Create"))
        entry = session.execute(select(AuditEntry)).scalar_one()

        entry.actor_name = "Mallory"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_audit_entry_delete_rejected(self, session, auditor_service):
        auditor_service.append(AuditEntryData(action="Donation.Create"))
        entry = session.execute(select(AuditEntry)).scalar_one()

        session.delete(entry)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_unit_identity_frozen(self, session, add_unit):
        unit = session.get(BloodUnit, add_unit("A+"))

        unit.donor_name = "Someone Else"
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert "donor_name" in str(exc_info.value)

    def test_unit_cannot_be_deleted(self, session, add_unit):
        unit = session.get(BloodUnit, add_unit("B+"))

        session.delete(unit)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_issued_unit_cannot_return_to_available(
        self, session, add_unit, inventory_service
    ):
        unit_id = add_unit("O+")
        inventory_service.issue_by_ids([unit_id], "routine")
        unit = session.get(BloodUnit, unit_id)

        unit.status = UnitStatus.AVAILABLE.value
        with pytest.raises(UnitStatusTransitionError):
            session.flush()

    def test_issuance_update_rejected(self, session, add_unit, inventory_service):
        unit_id = add_unit("O+")
        inventory_service.issue_by_ids([unit_id], "routine")
        issuance = session.execute(select(Issuance)).scalar_one()

        issuance.issue_type = "emergency"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_blocked_change_is_logged(self, session, add_unit, captured_logs):
        unit = session.get(BloodUnit, add_unit("AB+"))
        unit.donation_source = "Elsewhere"

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

        blocked = [
            r for r in captured_logs() if r["message"] == "immutability_violation_blocked"
        ]
        assert blocked[-1]["entity_type"] == "BloodUnit"
        assert blocked[-1]["field"] == "donation_source"


class TestDatabaseTriggers:

    @pytest.fixture
    def stored(self, bank):
        unit = bank.add_donation("O-", date(2024, 1, 1), "123456789", "Dana")
        issued = bank.add_donation("A+", date(2024, 1, 2), "123456789", "Dana")
        bank.confirm_issue([issued.id])
        return unit, issued

    def _execute(self, engine, sql: str, **params):
        with engine.begin() as conn:
            conn.execute(text(sql), params)

    def test_all_triggers_installed(self, db_engine):
        assert triggers_installed(db_engine)
        assert "trg_audit_entries_no_update" in get_installed_triggers(db_engine)

    def test_raw_audit_update_rejected(self, db_engine, stored):
        with pytest.raises(DatabaseError):
            self._execute(db_engine, "UPDATE audit_entries SET actor_id = 'x' WHERE seq = 1")

    def test_raw_audit_delete_rejected(self, db_engine, stored):
        with pytest.raises(DatabaseError):
            self._execute(db_engine, "DELETE FROM audit_entries")

    def test_raw_issuance_changes_rejected(self, db_engine, stored):
        with pytest.raises(DatabaseError):
            self._execute(db_engine, "UPDATE issuances SET issue_type = 'emergency'")
        with pytest.raises(DatabaseError):
            self._execute(db_engine, "DELETE FROM issuances")

    def test_raw_unit_delete_rejected(self, db_engine, stored):
        with pytest.raises(DatabaseError):
            self._execute(db_engine, "DELETE FROM blood_units")

    def test_raw_unit_identity_change_rejected(self, db_engine, stored):
        with pytest.raises(DatabaseError):
            self._execute(db_engine, "UPDATE blood_units SET donor_id = '000000000'")

    def test_raw_status_reversal_rejected(self, db_engine, stored):
        _, issued = stored
        with pytest.raises(DatabaseError):
            self._execute(
                db_engine,
                "UPDATE blood_units SET status = 'available' WHERE id = :id",
                id=str(issued.id),
            )

    def test_raw_available_to_issued_allowed(self, db_engine, stored, bank):
        unit, _ = stored
        self._execute(
            db_engine,
            "UPDATE blood_units SET status = 'issued' WHERE id = :id",
            id=str(unit.id),
        )
        assert bank.get_unit(unit.id).status is UnitStatus.ISSUED

    def test_rejected_write_leaves_chain_valid(self, db_engine, stored, bank):
        with pytest.raises(DatabaseError):
            self._execute(db_engine, "UPDATE audit_entries SET details = '{}'")
        assert bank.verify_audit_chain().valid
