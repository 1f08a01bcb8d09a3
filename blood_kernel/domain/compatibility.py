"""
Red-cell compatibility rules (ABO + Rh).

Fixed domain data, not configuration.  A donor unit may be given to a
recipient iff the donor's ABO group may donate to the recipient's group
AND the Rh factors are compatible:

    Donor | May donate to
    ------|----------------
    O     | O, A, B, AB
    A     | A, AB
    B     | B, AB
    AB    | AB

    Rh-negative donors may give to anyone; Rh-positive donors only to
    Rh-positive recipients.
"""

from __future__ import annotations

from dataclasses import dataclass

from blood_kernel.domain.blood_type import AboGroup, BloodType, RhFactor

ABO_RECIPIENTS: dict[AboGroup, frozenset[AboGroup]] = {
    AboGroup.O: frozenset({AboGroup.O, AboGroup.A, AboGroup.B, AboGroup.AB}),
    AboGroup.A: frozenset({AboGroup.A, AboGroup.AB}),
    AboGroup.B: frozenset({AboGroup.B, AboGroup.AB}),
    AboGroup.AB: frozenset({AboGroup.AB}),
}

# Donor listing order: the recipient's own group comes first because no
# compatible group ranks above it, then the remaining groups; + before -.
_DONOR_ORDER: tuple[BloodType, ...] = tuple(
    BloodType(abo, rh)
    for abo in (AboGroup.AB, AboGroup.A, AboGroup.B, AboGroup.O)
    for rh in (RhFactor.POSITIVE, RhFactor.NEGATIVE)
)


def is_abo_compatible(donor: AboGroup, recipient: AboGroup) -> bool:
    return recipient in ABO_RECIPIENTS.get(donor, frozenset())


def is_rh_compatible(donor: RhFactor, recipient: RhFactor) -> bool:
    return donor is RhFactor.NEGATIVE or recipient is RhFactor.POSITIVE


def is_compatible(donor: BloodType, recipient: BloodType) -> bool:
    """True iff a ``donor`` unit may be transfused to a ``recipient``."""
    if not isinstance(donor, BloodType) or not isinstance(recipient, BloodType):
        return False
    return is_abo_compatible(donor.abo, recipient.abo) and is_rh_compatible(
        donor.rh, recipient.rh
    )


def compatible_donor_types(recipient: BloodType) -> tuple[BloodType, ...]:
    """
    Donor types a recipient may receive, exact type first.

    e.g. ``A+`` -> ``(A+, A-, O+, O-)``; ``O-`` -> ``(O-,)``.
    """
    return tuple(d for d in _DONOR_ORDER if is_compatible(d, recipient))


@dataclass(frozen=True)
class CompatibilityCheck:
    """Outcome of a single donor/recipient cross-check."""

    donor: BloodType
    recipient: BloodType
    compatible: bool
    reason: str


def explain_compatibility(donor: BloodType, recipient: BloodType) -> CompatibilityCheck:
    ok = is_compatible(donor, recipient)
    return CompatibilityCheck(
        donor=donor,
        recipient=recipient,
        compatible=ok,
        reason="Compatible by ABO/Rh rules." if ok else "Incompatible by ABO/Rh rules.",
    )
