"""
blood_services.kernel_services -- Per-session container for kernel services.

Responsibility:
    Creates every kernel service exactly once for one session and wires
    them together.  No kernel service constructs another service on the
    caller's behalf; BloodBankService builds one container per operation.

Architecture position:
    Services -- stateful orchestration over the kernel.

Invariants enforced:
    - Single-instance lifecycle: one AuditorService, one InventoryService
      and one AllocationService per session.
    - All services share the same Session and Clock instances.

Usage:
    with session_scope(factory) as session:
        kernel = KernelServices(session, pepper="...", clock=clock)
        selection = kernel.allocation.select_for_routine("A+", 3)
        kernel.auditor.append(entry)
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from blood_kernel.domain.allocation import DEFAULT_SUGGESTION_LIMIT
from blood_kernel.domain.clock import Clock, SystemClock
from blood_kernel.domain.rarity import RarityTable
from blood_kernel.selectors.audit_selector import AuditSelector
from blood_kernel.selectors.inventory_selector import InventorySelector
from blood_kernel.services.allocation_service import AllocationService
from blood_kernel.services.auditor_service import AuditorService
from blood_kernel.services.inventory_service import (
    DEFAULT_DONATION_SOURCE,
    InventoryService,
)


class KernelServices:
    """Kernel services bound to one session.

    Non-goals:
        - Does NOT manage transaction boundaries (caller's responsibility).
        - Does NOT own the Session lifecycle (no commit/rollback).
    """

    def __init__(
        self,
        session: Session,
        pepper: str,
        clock: Clock | None = None,
        rarity: RarityTable | None = None,
        default_donation_source: str = DEFAULT_DONATION_SOURCE,
        suggestion_limit: int = DEFAULT_SUGGESTION_LIMIT,
    ):
        self._session = session
        self._clock = clock or SystemClock()

        self.inventory = InventoryService(
            session,
            clock=self._clock,
            default_donation_source=default_donation_source,
        )
        self.allocation = AllocationService(
            session,
            rarity=rarity,
            clock=self._clock,
            suggestion_limit=suggestion_limit,
        )
        self.auditor = AuditorService(session, pepper, clock=self._clock)
        self.inventory_selector = InventorySelector(session)
        self.audit_selector = AuditSelector(session)

    @property
    def session(self) -> Session:
        return self._session

    @property
    def clock(self) -> Clock:
        return self._clock
