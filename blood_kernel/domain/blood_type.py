"""
BloodType -- immutable ABO/Rh value object.

Responsibility:
    The single representation of a red-cell blood type used by every other
    module.  Parses and renders the compact ``"{ABO}{+|-}"`` form
    (``"AB-"``) and rejects anything outside the closed set.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - ABO is one of O, A, B, AB; Rh is one of +, -.
    - Two blood types are equal iff both fields match.

Failure modes:
    - InvalidBloodTypeError on any malformed input; values are never
      silently coerced into a different type.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from blood_kernel.exceptions import InvalidBloodTypeError


class AboGroup(str, Enum):
    """ABO group."""

    O = "O"
    A = "A"
    B = "B"
    AB = "AB"


class RhFactor(str, Enum):
    """Rh factor, stored as its sign."""

    POSITIVE = "+"
    NEGATIVE = "-"

    @property
    def sign(self) -> str:
        return self.value


_RH_ALIASES = {
    "+": RhFactor.POSITIVE,
    "POS": RhFactor.POSITIVE,
    "POSITIVE": RhFactor.POSITIVE,
    "-": RhFactor.NEGATIVE,
    "NEG": RhFactor.NEGATIVE,
    "NEGATIVE": RhFactor.NEGATIVE,
}


@dataclass(frozen=True, slots=True)
class BloodType:
    """
    Blood type value object.

    Contract:
        Constructed from enum members (``BloodType(AboGroup.A,
        RhFactor.POSITIVE)``), from raw parts (``BloodType.of("a", "+")``)
        or from the compact form (``BloodType.parse("A+")``).

    Guarantees:
        - Immutable and hashable (frozen dataclass with slots).
        - ``str(bt)`` is the compact form and round-trips through ``parse``.
    """

    abo: AboGroup
    rh: RhFactor

    def __post_init__(self) -> None:
        if not isinstance(self.abo, AboGroup) or not isinstance(self.rh, RhFactor):
            raise InvalidBloodTypeError(f"{self.abo!r}{self.rh!r}")

    @classmethod
    def of(cls, abo: str | AboGroup, rh: str | RhFactor) -> BloodType:
        """Build from raw ABO and Rh strings (case-insensitive)."""
        try:
            group = abo if isinstance(abo, AboGroup) else AboGroup(str(abo).strip().upper())
        except ValueError:
            raise InvalidBloodTypeError(f"{abo}{rh}") from None

        if isinstance(rh, RhFactor):
            factor = rh
        else:
            factor = _RH_ALIASES.get(str(rh).strip().upper())
            if factor is None:
                raise InvalidBloodTypeError(f"{abo}{rh}")
        return cls(group, factor)

    @classmethod
    def parse(cls, value: str | BloodType) -> BloodType:
        """Parse the compact form, e.g. ``"AB-"`` or ``" o+ "``."""
        if isinstance(value, BloodType):
            return value
        if not isinstance(value, str):
            raise InvalidBloodTypeError(repr(value))
        text = value.strip().upper()
        if len(text) < 2 or text[-1] not in "+-":
            raise InvalidBloodTypeError(value)
        return cls.of(text[:-1], text[-1])

    @property
    def compact(self) -> str:
        """Compact string form, e.g. ``"O-"``."""
        return f"{self.abo.value}{self.rh.value}"

    @property
    def is_universal_donor(self) -> bool:
        return self.abo is AboGroup.O and self.rh is RhFactor.NEGATIVE

    def __str__(self) -> str:
        return self.compact


O_NEGATIVE = BloodType(AboGroup.O, RhFactor.NEGATIVE)

ALL_BLOOD_TYPES: tuple[BloodType, ...] = tuple(
    BloodType(abo, rh) for abo in AboGroup for rh in RhFactor
)
