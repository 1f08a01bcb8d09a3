"""
Routine allocation -- pure selection over a stock snapshot.

Verifies:
- Exact type is exhausted before any substitute
- Substitutes ordered by rarity weight, then donation date
- Never over-allocates, never returns an incompatible or issued unit
- Suggestions only on shortage, never for the exact type
"""

from datetime import date, timedelta
from uuid import uuid4

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from blood_kernel.domain.allocation import select_for_routine, validate_quantity
from blood_kernel.domain.blood_type import ALL_BLOOD_TYPES, BloodType
from blood_kernel.domain.compatibility import is_compatible
from blood_kernel.domain.dtos import BloodUnitView, UnitStatus
from blood_kernel.domain.rarity import RarityTable
from blood_kernel.exceptions import InvalidQuantityError

BASE = date(2024, 1, 1)
RARITY = RarityTable.default()


def unit(blood_type: str, days_old: int = 0, status: UnitStatus = UnitStatus.AVAILABLE):
    return BloodUnitView(
        id=uuid4(),
        blood_type=BloodType.parse(blood_type),
        donation_date=BASE - timedelta(days=days_old),
        donor_id="123456789",
        donor_name="Test Donor",
        donation_source="Soroka",
        status=status,
    )


def select(requested: str, quantity: int, stock, limit: int = 6):
    return select_for_routine(
        BloodType.parse(requested), quantity, stock, RARITY, suggestion_limit=limit
    )


class TestValidateQuantity:

    @pytest.mark.parametrize("value", [0, -1, 1.5, "3", True, None])
    def test_rejects_non_positive_integers(self, value):
        with pytest.raises(InvalidQuantityError):
            validate_quantity(value)

    def test_accepts_positive_integer(self):
        assert validate_quantity(3) == 3


class TestRoutineSelection:

    def test_exact_units_first_oldest_first(self):
        newer = unit("A+", days_old=1)
        older = unit("A+", days_old=5)
        substitute = unit("O-", days_old=30)

        result = select("A+", 2, [newer, substitute, older])

        assert result.chosen == (older, newer)
        assert result.suggestions == ()
        assert result.shortfall == 0

    def test_two_exact_then_one_substitute(self):
        exact = [unit("A+", days_old=d) for d in (2, 1)]
        o_neg = [unit("O-", days_old=d) for d in (5, 4, 3, 2, 1)]

        result = select("A+", 3, exact + o_neg)

        assert [u.blood_type.compact for u in result.chosen] == ["A+", "A+", "O-"]
        # oldest O- is taken
        assert result.chosen[2] == o_neg[0]
        assert result.suggestions == ()

    def test_common_substitute_before_rare_on_equal_dates(self):
        b_pos = unit("B+", days_old=3)
        b_neg = unit("B-", days_old=3)

        result = select("AB+", 1, [b_neg, b_pos])

        assert result.chosen == (b_pos,)

    def test_weight_beats_donation_date(self):
        old_rare = unit("O-", days_old=20)
        new_common = unit("O+", days_old=1)

        result = select("A+", 1, [old_rare, new_common])

        assert result.chosen == (new_common,)

    def test_no_compatible_units_returns_empty(self):
        result = select("O-", 2, [unit("A+"), unit("O+"), unit("AB-")])

        assert result.chosen == ()
        assert result.suggestions == ()
        assert result.shortfall == 2

    def test_empty_stock(self):
        result = select("B+", 1, [])
        assert result.chosen == ()
        assert result.suggestions == ()

    def test_issued_units_are_ignored(self):
        issued = unit("A+", status=UnitStatus.ISSUED)
        available = unit("A+")

        result = select("A+", 2, [issued, available])

        assert result.chosen == (available,)

    def test_incompatible_units_are_ignored(self):
        result = select("A-", 5, [unit("A+"), unit("B-"), unit("A-")])
        assert [u.blood_type.compact for u in result.chosen] == ["A-"]

    def test_invalid_quantity(self):
        with pytest.raises(InvalidQuantityError):
            select("A+", 0, [unit("A+")])


class TestSuggestions:
    """Suggestions describe compatible substitute stock on a shortfall."""

    def test_shortfall_suggests_substitute_stock_by_type(self):
        stock = [unit("A+"), unit("O-"), unit("O+"), unit("O+")]

        result = select("A+", 6, stock)

        assert len(result.chosen) == 4
        assert result.shortfall == 2
        assert [(s.blood_type.compact, s.count) for s in result.suggestions] == [
            ("O+", 2),
            ("O-", 1),
        ]

    def test_suggestions_never_include_exact_type(self):
        stock = [unit("AB+"), unit("A+"), unit("B-")]

        result = select("AB+", 5, stock)

        assert "AB+" not in {s.blood_type.compact for s in result.suggestions}
        assert {s.blood_type.compact for s in result.suggestions} == {"A+", "B-"}

    def test_only_exact_stock_gives_no_suggestions(self):
        result = select("B-", 3, [unit("B-")])

        assert len(result.chosen) == 1
        assert result.suggestions == ()

    def test_higher_count_breaks_weight_tie(self):
        rarity = RarityTable({"A-": 0.06, "O-": 0.06, "A+": 0.3})
        stock = [unit("A-"), unit("O-"), unit("O-")]

        result = select_for_routine(BloodType.parse("A+"), 10, stock, rarity)

        assert [s.blood_type.compact for s in result.suggestions] == ["O-", "A-"]

    def test_suggestion_limit_caps_groups(self):
        stock = [unit(bt) for bt in ("A+", "A-", "B+", "B-", "O+", "O-", "AB-")]

        result = select("AB+", 20, stock, limit=3)

        assert [s.blood_type.compact for s in result.suggestions] == ["O+", "A+", "B+"]

    def test_quantity_met_gives_no_suggestions(self):
        result = select("AB+", 1, [unit("AB+"), unit("A+"), unit("O+")])
        assert result.suggestions == ()


# ---------------------------------------------------------------------------
# Properties
# ---------------------------------------------------------------------------

_type_codes = st.sampled_from([bt.compact for bt in ALL_BLOOD_TYPES])
_stock = st.lists(
    st.tuples(
        _type_codes,
        st.integers(min_value=0, max_value=60),
        st.sampled_from([UnitStatus.AVAILABLE, UnitStatus.ISSUED]),
    ),
    max_size=40,
)


@settings(max_examples=200, deadline=None)
@given(requested=_type_codes, quantity=st.integers(min_value=1, max_value=20), stock=_stock)
def test_selection_properties(requested, quantity, stock):
    units = [unit(bt, days, status) for bt, days, status in stock]
    recipient = BloodType.parse(requested)

    result = select_for_routine(recipient, quantity, units, RARITY)

    # never over-allocates, never repeats
    assert len(result.chosen) <= quantity
    assert len({u.id for u in result.chosen}) == len(result.chosen)

    # every chosen unit is available and compatible
    for u in result.chosen:
        assert u.status is UnitStatus.AVAILABLE
        assert is_compatible(u.blood_type, recipient)

    eligible = [
        u for u in units
        if u.status is UnitStatus.AVAILABLE and is_compatible(u.blood_type, recipient)
    ]
    # takes as much as it can
    assert len(result.chosen) == min(quantity, len(eligible))

    # exact stock exhausted before any substitute
    exact_available = sum(1 for u in eligible if u.blood_type == recipient)
    chosen_exact = sum(1 for u in result.chosen if u.blood_type == recipient)
    assert chosen_exact == min(quantity, exact_available)

    if len(result.chosen) == quantity:
        assert result.suggestions == ()
    assert len(result.suggestions) <= 6
    for s in result.suggestions:
        assert s.blood_type != recipient
        in_stock = [u for u in eligible if u.blood_type == s.blood_type]
        assert s.count == len(in_stock) > 0
