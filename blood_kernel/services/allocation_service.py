"""
AllocationService -- routine and emergency issuance protocols.

Responsibility:
    Reads available stock through InventorySelector, runs the pure routine
    selection (``blood_kernel.domain.allocation``) and confirms issuance
    through InventoryService.

Architecture position:
    Kernel > Services -- imperative shell around the pure allocation core.

Invariants enforced:
    - Routine selection never issues anything; only ``confirm_issue`` and
      ``issue_emergency_o_neg`` change unit status.
    - Emergency issuance takes ALL available O- units in one transaction,
      with no quantity and no substitutes.
"""

from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from blood_kernel.domain.allocation import (
    DEFAULT_SUGGESTION_LIMIT,
    select_for_routine,
    validate_quantity,
)
from blood_kernel.domain.blood_type import O_NEGATIVE, BloodType
from blood_kernel.domain.clock import Clock
from blood_kernel.domain.dtos import (
    BloodUnitView,
    IssueType,
    RoutineSelection,
    UnitStatus,
)
from blood_kernel.domain.rarity import RarityTable
from blood_kernel.logging_config import get_logger
from blood_kernel.models.blood_unit import BloodUnit
from blood_kernel.selectors.inventory_selector import InventorySelector
from blood_kernel.services.base import BaseService
from blood_kernel.services.inventory_service import InventoryService

logger = get_logger("services.allocation")


class AllocationService(BaseService):
    """Allocation engine bound to one session."""

    def __init__(
        self,
        session: Session,
        rarity: RarityTable | None = None,
        clock: Clock | None = None,
        suggestion_limit: int = DEFAULT_SUGGESTION_LIMIT,
    ):
        super().__init__(session)
        self._rarity = rarity or RarityTable.default()
        self._suggestion_limit = suggestion_limit
        self._selector = InventorySelector(session)
        self._inventory = InventoryService(session, clock=clock)

    def select_for_routine(
        self,
        requested: BloodType | str,
        quantity: int,
    ) -> RoutineSelection:
        """
        Choose up to ``quantity`` compatible units for ``requested``.

        Raises:
            InvalidBloodTypeError: requested cannot be parsed.
            InvalidQuantityError: quantity is not a positive integer.
        """
        requested = BloodType.parse(requested)
        quantity = validate_quantity(quantity)

        stock = self._selector.compatible_available(requested)
        selection = select_for_routine(
            requested,
            quantity,
            stock,
            self._rarity,
            suggestion_limit=self._suggestion_limit,
        )

        logger.info(
            "routine_selection",
            extra={
                "requested": requested.compact,
                "quantity": quantity,
                "compatible_in_stock": len(stock),
                "chosen_count": len(selection.chosen),
                "suggestion_count": len(selection.suggestions),
            },
        )
        if selection.shortfall:
            logger.warning(
                "routine_shortage",
                extra={"requested": requested.compact, "shortfall": selection.shortfall},
            )
        return selection

    def confirm_issue(
        self,
        ids: Iterable[UUID | str],
        issue_type: IssueType | str = IssueType.ROUTINE,
    ) -> list[BloodUnitView]:
        """Issue the given units; returns the subset actually issued."""
        return self._inventory.issue_by_ids(ids, issue_type)

    def issue_emergency_o_neg(self) -> list[BloodUnitView]:
        """
        Issue every available O- unit.

        An empty result means no O- stock: the caller signals a critical
        shortage.
        """
        ids = self.session.execute(
            select(BloodUnit.id)
            .where(
                BloodUnit.status == UnitStatus.AVAILABLE.value,
                BloodUnit.abo == O_NEGATIVE.abo.value,
                BloodUnit.rh == O_NEGATIVE.rh.value,
            )
            .order_by(BloodUnit.donation_date, BloodUnit.id)
            .with_for_update()
        ).scalars().all()

        issued = self._inventory.issue_by_ids(ids, IssueType.EMERGENCY)
        if not issued:
            logger.warning("emergency_o_neg_unavailable")
        else:
            logger.info("emergency_o_neg_issued", extra={"issued_count": len(issued)})
        return issued

    def count_available(self, blood_type: BloodType | str = O_NEGATIVE) -> int:
        return self._selector.count_available(BloodType.parse(blood_type))
