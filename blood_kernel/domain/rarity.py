"""
RarityTable -- population-frequency weights used as an allocation sort key.

Responsibility:
    Maps each compact blood type to a weight in [0, 1] reflecting how
    common it is in the donor population.  The allocation engine uses the
    weight ONLY to order substitutes (more common first, so scarce types are
    preserved); it is never used as a probability.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  The active table is
    built from configuration by ``blood_config`` and injected into services.

Invariants enforced:
    - Every weight is within [0, 1].
    - Missing types weigh 0 and therefore sort last.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from blood_kernel.domain.blood_type import BloodType
from blood_kernel.exceptions import ConfigurationError, InvalidBloodTypeError

DEFAULT_RARITY_WEIGHTS: Mapping[str, float] = MappingProxyType({
    "O+": 0.37,
    "A+": 0.34,
    "B+": 0.10,
    "AB+": 0.04,
    "O-": 0.06,
    "A-": 0.06,
    "B-": 0.02,
    "AB-": 0.01,
})


@dataclass(frozen=True)
class RarityTable:
    """
    Immutable weight table.

    Contract:
        Keys are compact blood type strings; they are normalised through
        ``BloodType.parse`` so ``"ab-"`` and ``"AB-"`` are the same key.

    Guarantees:
        - ``weight()`` never raises for a valid BloodType.
    """

    weights: Mapping[str, float] = field(default_factory=lambda: DEFAULT_RARITY_WEIGHTS)

    def __post_init__(self) -> None:
        normalized: dict[str, float] = {}
        for key, value in dict(self.weights).items():
            try:
                weight = float(value)
            except (TypeError, ValueError):
                raise ConfigurationError(f"rarity_weights.{key}", "weight must be a number") from None
            if not 0.0 <= weight <= 1.0:
                raise ConfigurationError(f"rarity_weights.{key}", "weight must be within [0, 1]")
            try:
                normalized[BloodType.parse(key).compact] = weight
            except InvalidBloodTypeError:
                raise ConfigurationError(f"rarity_weights.{key}", "unknown blood type") from None
        object.__setattr__(self, "weights", MappingProxyType(normalized))

    @classmethod
    def default(cls) -> RarityTable:
        return cls(DEFAULT_RARITY_WEIGHTS)

    def weight(self, blood_type: BloodType | str) -> float:
        key = blood_type.compact if isinstance(blood_type, BloodType) else str(blood_type)
        return self.weights.get(key, 0.0)
