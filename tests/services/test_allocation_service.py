"""
AllocationService: routine selection over stored stock, confirmation and
the emergency O- protocol.
"""

import pytest

from blood_kernel.domain.dtos import IssueType, UnitStatus
from blood_kernel.exceptions import InvalidBloodTypeError, InvalidQuantityError
from blood_kernel.selectors.inventory_selector import InventorySelector
from blood_kernel.services.allocation_service import AllocationService


@pytest.fixture
def allocation(session, deterministic_clock):
    return AllocationService(session, clock=deterministic_clock)


class TestRoutine:

    def test_two_exact_plus_one_o_negative(self, allocation, add_unit):
        a_pos = [add_unit("A+", days_old=d) for d in (3, 2)]
        o_neg = [add_unit("O-", days_old=d) for d in (9, 8, 7, 6, 5)]

        selection = allocation.select_for_routine("A+", 3)

        assert len(selection.chosen) == 3
        assert selection.chosen_ids[:2] == a_pos
        assert selection.chosen_ids[2] == o_neg[0]
        assert selection.suggestions == ()

    def test_selection_does_not_issue(self, session, allocation, add_unit):
        unit_id = add_unit("B+")

        allocation.select_for_routine("B+", 1)

        assert InventorySelector(session).get_unit(unit_id).status is UnitStatus.AVAILABLE

    def test_issued_units_not_selected(self, allocation, add_unit):
        unit_id = add_unit("A-")
        allocation.confirm_issue([unit_id])

        selection = allocation.select_for_routine("A-", 1)

        assert selection.chosen == ()

    def test_no_compatible_stock(self, allocation, add_unit):
        add_unit("A+")
        add_unit("AB-")

        selection = allocation.select_for_routine("O-", 2)

        assert selection.chosen == ()
        assert selection.suggestions == ()

    def test_shortage_logged(self, allocation, add_unit, captured_logs):
        add_unit("O+")

        selection = allocation.select_for_routine("A+", 4)

        assert selection.shortfall == 3
        messages = [r["message"] for r in captured_logs()]
        assert "routine_selection" in messages
        assert "routine_shortage" in messages

    def test_validation(self, allocation):
        with pytest.raises(InvalidQuantityError):
            allocation.select_for_routine("A+", 0)
        with pytest.raises(InvalidBloodTypeError):
            allocation.select_for_routine("Q+", 1)


class TestConfirm:

    def test_confirm_issues_selection(self, session, allocation, add_unit):
        add_unit("O+")
        add_unit("O+")
        selection = allocation.select_for_routine("O+", 2)

        issued = allocation.confirm_issue(selection.chosen_ids)

        assert {u.id for u in issued} == set(selection.chosen_ids)
        records = InventorySelector(session).issuances_for(selection.chosen_ids)
        assert {r.issue_type for r in records} == {IssueType.ROUTINE}


class TestEmergency:

    def test_issues_every_o_negative(self, session, allocation, add_unit):
        o_neg = {add_unit("O-", days_old=d) for d in (1, 2, 3)}
        other = add_unit("O+")

        issued = allocation.issue_emergency_o_neg()

        assert {u.id for u in issued} == o_neg
        assert allocation.count_available("O-") == 0
        selector = InventorySelector(session)
        assert selector.get_unit(other).status is UnitStatus.AVAILABLE
        assert {r.issue_type for r in selector.issuances_for(o_neg)} == {IssueType.EMERGENCY}

    def test_empty_when_no_o_negative(self, allocation, add_unit, captured_logs):
        add_unit("A+")

        assert allocation.issue_emergency_o_neg() == []
        assert any(
            r["message"] == "emergency_o_neg_unavailable" for r in captured_logs()
        )

    def test_second_call_finds_nothing(self, allocation, add_unit):
        add_unit("O-")
        assert len(allocation.issue_emergency_o_neg()) == 1
        assert allocation.issue_emergency_o_neg() == []

    def test_count_available_defaults_to_o_negative(self, allocation, add_unit):
        add_unit("O-")
        add_unit("O-")
        add_unit("A+")
        assert allocation.count_available() == 2
        assert allocation.count_available("A+") == 1
