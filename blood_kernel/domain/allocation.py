"""
Routine allocation -- pure selection over a snapshot of available stock.

Responsibility:
    Given a recipient blood type, a quantity and the available units, pick
    which units to issue and, on shortage, which alternative types are still
    in stock.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  AllocationService
    reads the snapshot through the inventory selector and delegates here.

Algorithm:
    1. Keep only available units compatible with the recipient.
    2. Exact-type units first, oldest donation first.
    3. Then substitutes: most common type first (rarity weight descending),
       oldest donation first within a weight.
    4. If still short, suggest the compatible non-exact types in stock,
       grouped by type, ordered by weight then count, capped at
       ``suggestion_limit``.  Proposed units are not issued yet, so they
       still count as stock the caller may fall back on.

Invariants enforced:
    - Never more than ``quantity`` units chosen.
    - Every chosen unit is available and compatible.
    - Exact-type stock is exhausted before any substitute is chosen.
    - Suggestions never include the exact type and are empty whenever
      the quantity is met.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable

from blood_kernel.domain.blood_type import BloodType
from blood_kernel.domain.compatibility import compatible_donor_types
from blood_kernel.domain.dtos import BloodUnitView, RoutineSelection, Suggestion
from blood_kernel.domain.rarity import RarityTable
from blood_kernel.exceptions import InvalidQuantityError

DEFAULT_SUGGESTION_LIMIT = 6


def validate_quantity(quantity: object) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidQuantityError(quantity)
    return quantity


def select_for_routine(
    requested: BloodType,
    quantity: int,
    available: Iterable[BloodUnitView],
    rarity: RarityTable,
    suggestion_limit: int = DEFAULT_SUGGESTION_LIMIT,
) -> RoutineSelection:
    """Choose up to ``quantity`` units for ``requested``; see module docstring."""
    quantity = validate_quantity(quantity)

    donor_types = compatible_donor_types(requested)
    preference = {bt: i for i, bt in enumerate(donor_types)}
    compatible = [
        u for u in available
        if u.is_available and u.blood_type in preference
    ]
    if not compatible:
        return RoutineSelection(chosen=(), suggestions=(), quantity=quantity)

    exact = sorted(
        (u for u in compatible if u.blood_type == requested),
        key=lambda u: (u.donation_date, str(u.id)),
    )
    alternatives = sorted(
        (u for u in compatible if u.blood_type != requested),
        key=lambda u: (
            -rarity.weight(u.blood_type),
            u.donation_date,
            preference[u.blood_type],
            str(u.id),
        ),
    )

    chosen = exact[:quantity]
    if len(chosen) < quantity:
        chosen += alternatives[: quantity - len(chosen)]

    if len(chosen) >= quantity:
        return RoutineSelection(chosen=tuple(chosen), suggestions=(), quantity=quantity)

    counts = Counter(u.blood_type for u in alternatives)
    ranked = sorted(
        counts.items(),
        key=lambda item: (-rarity.weight(item[0]), -item[1], preference[item[0]]),
    )
    suggestions = tuple(
        Suggestion(blood_type=bt, count=n) for bt, n in ranked[:suggestion_limit]
    )
    return RoutineSelection(
        chosen=tuple(chosen), suggestions=suggestions, quantity=quantity
    )
