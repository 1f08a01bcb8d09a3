"""Tests for the BloodType value object."""

import pytest

from blood_kernel.domain.blood_type import (
    ALL_BLOOD_TYPES,
    O_NEGATIVE,
    AboGroup,
    BloodType,
    RhFactor,
)
from blood_kernel.exceptions import InvalidBloodTypeError


class TestParse:

    @pytest.mark.parametrize(
        "text,abo,rh",
        [
            ("A+", AboGroup.A, RhFactor.POSITIVE),
            ("AB-", AboGroup.AB, RhFactor.NEGATIVE),
            (" o+ ", AboGroup.O, RhFactor.POSITIVE),
            ("b-", AboGroup.B, RhFactor.NEGATIVE),
        ],
    )
    def test_compact_forms(self, text, abo, rh):
        bt = BloodType.parse(text)
        assert bt.abo is abo
        assert bt.rh is rh

    @pytest.mark.parametrize("text", ["", "A", "C+", "AB", "ABO+", "+", "A*", "O+-"])
    def test_rejects_malformed(self, text):
        with pytest.raises(InvalidBloodTypeError):
            BloodType.parse(text)

    def test_rejects_non_string(self):
        with pytest.raises(InvalidBloodTypeError):
            BloodType.parse(42)

    def test_parse_passes_blood_type_through(self):
        assert BloodType.parse(O_NEGATIVE) is O_NEGATIVE

    def test_of_accepts_rh_words(self):
        assert BloodType.of("a", "neg") == BloodType.parse("A-")
        assert BloodType.of("AB", "Positive") == BloodType.parse("AB+")

    def test_of_rejects_unknown_rh(self):
        with pytest.raises(InvalidBloodTypeError):
            BloodType.of("A", "x")

    def test_constructor_rejects_raw_strings(self):
        with pytest.raises(InvalidBloodTypeError):
            BloodType("A", "+")


class TestRendering:

    def test_compact_round_trips(self):
        for bt in ALL_BLOOD_TYPES:
            assert BloodType.parse(bt.compact) == bt
            assert str(bt) == bt.compact

    def test_all_blood_types_is_closed_set_of_eight(self):
        assert len(ALL_BLOOD_TYPES) == 8
        assert len(set(ALL_BLOOD_TYPES)) == 8

    def test_only_o_negative_is_universal_donor(self):
        universal = [bt for bt in ALL_BLOOD_TYPES if bt.is_universal_donor]
        assert universal == [O_NEGATIVE]

    def test_hashable_and_equal_by_value(self):
        assert {BloodType.parse("A+"), BloodType.parse("a+")} == {BloodType.parse("A+")}
