"""
blood_services.bank_service -- Caller-facing blood bank operations.

Responsibility:
    The single surface the outer layers (web handlers, scripts) call.
    Every operation runs in its own ``session_scope()``, drives the kernel
    services through a ``KernelServices`` container, appends the audit
    entry the operation produces and hands back frozen DTOs.

Architecture position:
    Services -- stateful orchestration over the kernel.  Owns transaction
    boundaries; the kernel services only flush.

Invariants enforced:
    - One transaction per operation: commit on success, rollback on any
      exception.  Nothing a failed operation wrote is visible.
    - Audit failure mode (``AuditFailureMode``):
        fail_open   -- the business transaction commits first; the audit
                       entry is appended in its own transaction and a
                       failure there is logged at ERROR (``audit_write_failed``)
                       without affecting the result.
        fail_closed -- the audit entry is appended inside the business
                       transaction; a failure rolls the business action
                       back and raises ``AuditWriteError``.
    - Every audit entry carries a correlation id (from the request context,
      the bound ``LogContext`` or a fresh uuid4).

Failure modes:
    - ValidationError subclasses propagate unchanged; nothing is written.
    - SQLAlchemyError during an operation -> ``StorageUnavailableError``
      chaining the cause.  The kernel never retries.
    - ``AuditWriteError`` in fail_closed mode only.

Audit relevance:
    Donation intake, routine selection, issue confirmation, emergency
    issuance and researcher queries each append exactly one entry.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import date
from typing import Any, TypeVar
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from blood_config.schema import AuditFailureMode, BloodBankConfig
from blood_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
    session_scope,
)
from blood_kernel.db.immutability import register_immutability_listeners
from blood_kernel.domain.allocation import DEFAULT_SUGGESTION_LIMIT
from blood_kernel.domain.blood_type import O_NEGATIVE, BloodType
from blood_kernel.domain.clock import Clock, SystemClock
from blood_kernel.domain.compatibility import CompatibilityCheck, explain_compatibility
from blood_kernel.domain.dtos import (
    AuditEntryData,
    AuditPage,
    BloodUnitView,
    ChainVerification,
    IssuanceView,
    IssueType,
    ResearchRow,
    RoutineSelection,
)
from blood_kernel.domain.rarity import RarityTable
from blood_kernel.exceptions import (
    AuditWriteError,
    InvalidAuditEntryError,
    StorageUnavailableError,
)
from blood_kernel.logging_config import LogContext, get_logger
from blood_kernel.models.audit_entry import AuditAction
from blood_kernel.selectors.audit_selector import DEFAULT_PAGE_SIZE
from blood_kernel.selectors.inventory_selector import DEFAULT_LISTING_LIMIT
from blood_kernel.services.auditor_service import AuditTrace
from blood_kernel.services.inventory_service import DEFAULT_DONATION_SOURCE
from blood_services.context import RequestContext
from blood_services.kernel_services import KernelServices

logger = get_logger("services.bank")

T = TypeVar("T")

UNIT_ENTITY = "BloodUnit"
ISSUE_ENTITY = "Issue"
RESEARCH_ENTITY = "ResearcherView"

# What a unit of work returns: its result and the audit entry to append.
_Outcome = tuple[T, AuditEntryData | None]


class BloodBankService:
    """Blood bank operations over one database.

    Contract:
        Receives a session factory plus plain configuration values.  Each
        public method opens, commits and closes its own session.

    Guarantees:
        - Safe to share between threads: no session or ORM object outlives
          a method call; results are frozen dataclasses.

    Non-goals:
        - Does NOT authenticate or authorise callers.
        - Does NOT retry on storage failure.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        pepper: str,
        failure_mode: AuditFailureMode = AuditFailureMode.FAIL_OPEN,
        clock: Clock | None = None,
        rarity: RarityTable | None = None,
        default_donation_source: str = DEFAULT_DONATION_SOURCE,
        suggestion_limit: int = DEFAULT_SUGGESTION_LIMIT,
        listing_limit: int = DEFAULT_LISTING_LIMIT,
    ):
        self._session_factory = session_factory
        self._pepper = pepper
        self._failure_mode = AuditFailureMode(failure_mode)
        self._clock = clock or SystemClock()
        self._rarity = rarity or RarityTable.default()
        self._default_donation_source = default_donation_source
        self._suggestion_limit = suggestion_limit
        self._listing_limit = listing_limit

    @classmethod
    def from_config(
        cls,
        config: BloodBankConfig,
        session_factory: sessionmaker[Session] | None = None,
        clock: Clock | None = None,
    ) -> BloodBankService:
        """Build a service from a parsed configuration set.

        Uses the module-level engine's session factory unless one is given.
        """
        return cls(
            session_factory=session_factory or get_session_factory(),
            pepper=config.audit.pepper,
            failure_mode=config.audit.failure_mode,
            clock=clock,
            rarity=RarityTable(config.rarity_weights),
            default_donation_source=config.inventory.default_donation_source,
            suggestion_limit=config.inventory.suggestion_limit,
            listing_limit=config.inventory.listing_limit,
        )

    @property
    def failure_mode(self) -> AuditFailureMode:
        return self._failure_mode

    # ------------------------------------------------------------------
    # Unit of work plumbing
    # ------------------------------------------------------------------

    def _kernel(self, session: Session) -> KernelServices:
        return KernelServices(
            session,
            pepper=self._pepper,
            clock=self._clock,
            rarity=self._rarity,
            default_donation_source=self._default_donation_source,
            suggestion_limit=self._suggestion_limit,
        )

    def _run(
        self,
        operation: str,
        work: Callable[[KernelServices], _Outcome],
        context: RequestContext | None = None,
    ) -> Any:
        ctx = (context or RequestContext()).resolved()
        with LogContext.bind(
            correlation_id=ctx.correlation_id,
            actor_id=ctx.actor_id,
            request_path=ctx.path,
        ):
            if self._failure_mode is AuditFailureMode.FAIL_CLOSED:
                return self._run_fail_closed(operation, work)

            result, entry = self._in_transaction(operation, work)
            if entry is not None:
                self._append_fail_open(entry)
            return result

    def _run_fail_closed(
        self,
        operation: str,
        work: Callable[[KernelServices], _Outcome],
    ) -> Any:
        try:
            with session_scope(self._session_factory) as session:
                kernel = self._kernel(session)
                result, entry = work(kernel)
                if entry is not None:
                    try:
                        kernel.auditor.append(entry)
                    except (SQLAlchemyError, InvalidAuditEntryError) as exc:
                        logger.error(
                            "audit_write_failed",
                            extra={"action": entry.action, "failure_mode": "fail_closed"},
                            exc_info=True,
                        )
                        raise AuditWriteError(entry.action, str(exc)) from exc
                return result
        except SQLAlchemyError as exc:
            raise StorageUnavailableError(operation, str(exc)) from exc

    def _append_fail_open(self, entry: AuditEntryData) -> int | None:
        """Append after the business commit; a failure is logged, not raised."""
        try:
            with session_scope(self._session_factory) as session:
                return self._kernel(session).auditor.append(entry)
        except (SQLAlchemyError, InvalidAuditEntryError):
            logger.error(
                "audit_write_failed",
                extra={"action": entry.action, "failure_mode": "fail_open"},
                exc_info=True,
            )
            return None

    def _in_transaction(self, operation: str, work: Callable[[KernelServices], T]) -> T:
        try:
            with session_scope(self._session_factory) as session:
                return work(self._kernel(session))
        except SQLAlchemyError as exc:
            raise StorageUnavailableError(operation, str(exc)) from exc

    # ------------------------------------------------------------------
    # Inventory
    # ------------------------------------------------------------------

    def add_donation(
        self,
        blood_type: BloodType | str,
        donation_date: date,
        donor_id: str,
        donor_name: str,
        donation_source: str | None = None,
        context: RequestContext | None = None,
    ) -> BloodUnitView:
        """Record a donated unit; returns the new, available unit."""
        ctx = (context or RequestContext()).resolved()

        def work(kernel: KernelServices) -> _Outcome:
            unit_id = kernel.inventory.add_unit(
                blood_type, donation_date, donor_id, donor_name, donation_source
            )
            unit = kernel.inventory_selector.get_unit(unit_id)
            entry = ctx.audit_entry(
                AuditAction.DONATION_CREATED,
                entity_name=UNIT_ENTITY,
                entity_id=str(unit.id),
                details={
                    "blood_type": unit.blood_type.compact,
                    "donation_date": unit.donation_date,
                    "donation_source": unit.donation_source,
                },
            )
            return unit, entry

        return self._run("add_donation", work, ctx)

    def get_unit(self, unit_id: UUID | str) -> BloodUnitView:
        """Raises UnitNotFoundError for an unknown id."""
        return self._in_transaction(
            "get_unit", lambda k: k.inventory_selector.get_unit(unit_id)
        )

    def list_units(self, limit: int | None = None) -> list[BloodUnitView]:
        """Intake listing, newest donation first, issued units included."""
        limit = limit or self._listing_limit
        return self._in_transaction(
            "list_units", lambda k: k.inventory_selector.list_units(limit)
        )

    def count_available(self, blood_type: BloodType | str = O_NEGATIVE) -> int:
        return self._in_transaction(
            "count_available", lambda k: k.allocation.count_available(blood_type)
        )

    def issuances_for(self, unit_ids: Iterable[UUID | str]) -> list[IssuanceView]:
        ids = list(unit_ids)
        return self._in_transaction(
            "issuances_for", lambda k: k.inventory_selector.issuances_for(ids)
        )

    def research_rows(self, context: RequestContext | None = None) -> list[ResearchRow]:
        """De-identified inventory rows; the query itself is audited."""
        ctx = (context or RequestContext()).resolved()

        def work(kernel: KernelServices) -> _Outcome:
            rows = kernel.inventory_selector.research_rows()
            entry = ctx.audit_entry(
                AuditAction.RESEARCHER_QUERY,
                entity_name=RESEARCH_ENTITY,
                details={"count": len(rows)},
            )
            return rows, entry

        return self._run("research_rows", work, ctx)

    # ------------------------------------------------------------------
    # Allocation
    # ------------------------------------------------------------------

    def select_for_routine(
        self,
        blood_type: BloodType | str,
        quantity: int,
        context: RequestContext | None = None,
    ) -> RoutineSelection:
        """Propose units for a routine request; nothing is issued."""
        ctx = (context or RequestContext()).resolved()

        def work(kernel: KernelServices) -> _Outcome:
            selection = kernel.allocation.select_for_routine(blood_type, quantity)
            entry = ctx.audit_entry(
                AuditAction.ROUTINE_SELECTED,
                entity_name=ISSUE_ENTITY,
                details={
                    "requested": BloodType.parse(blood_type).compact,
                    "quantity": quantity,
                    "chosen": [str(i) for i in selection.chosen_ids],
                    "shortfall": selection.shortfall,
                    "suggestions": {
                        s.blood_type.compact: s.count for s in selection.suggestions
                    },
                },
            )
            return selection, entry

        return self._run("select_for_routine", work, ctx)

    def confirm_issue(
        self,
        ids: Iterable[UUID | str],
        issue_type: IssueType | str = IssueType.ROUTINE,
        context: RequestContext | None = None,
    ) -> list[BloodUnitView]:
        """Issue the given units; returns the subset actually issued."""
        ctx = (context or RequestContext()).resolved()
        requested = [str(i) for i in ids]

        def work(kernel: KernelServices) -> _Outcome:
            issued = kernel.allocation.confirm_issue(requested, issue_type)
            entry = ctx.audit_entry(
                AuditAction.ISSUE_CONFIRMED,
                entity_name=ISSUE_ENTITY,
                details={
                    "issue_type": IssueType.parse(issue_type).value,
                    "requested_count": len(requested),
                    "issued": [str(u.id) for u in issued],
                },
            )
            return issued, entry

        return self._run("confirm_issue", work, ctx)

    def issue_emergency_o_neg(
        self,
        context: RequestContext | None = None,
    ) -> list[BloodUnitView]:
        """Issue every available O- unit.

        An empty list means no O- stock (critical shortage); the audit
        entry for that attempt is recorded with ``success=False``.
        """
        ctx = (context or RequestContext()).resolved()

        def work(kernel: KernelServices) -> _Outcome:
            issued = kernel.allocation.issue_emergency_o_neg()
            entry = ctx.audit_entry(
                AuditAction.EMERGENCY_ISSUED,
                entity_name=ISSUE_ENTITY,
                details={
                    "issued_count": len(issued),
                    "issued": [str(u.id) for u in issued],
                },
                success=bool(issued),
            )
            return issued, entry

        return self._run("issue_emergency_o_neg", work, ctx)

    def check_compatibility(
        self,
        donor: BloodType | str,
        recipient: BloodType | str,
    ) -> CompatibilityCheck:
        """Raises InvalidBloodTypeError for an unparseable type."""
        return explain_compatibility(BloodType.parse(donor), BloodType.parse(recipient))

    # ------------------------------------------------------------------
    # Audit ledger
    # ------------------------------------------------------------------

    def append_audit(self, entry: AuditEntryData) -> int:
        """Append a caller-built entry in its own transaction; returns seq.

        Fails on a storage fault (``StorageUnavailableError``) or on
        ``details`` that cannot be canonicalised (``InvalidAuditEntryError``).
        """

        def work(kernel: KernelServices) -> int:
            return kernel.auditor.append(entry)

        with LogContext.bind(correlation_id=entry.correlation_id, actor_id=entry.actor_id):
            return self._in_transaction("append_audit", work)

    def search_audit(
        self,
        search: str | None = None,
        action: str | None = None,
        entity: str | None = None,
        correlation_id: str | None = None,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> AuditPage:
        return self._in_transaction(
            "search_audit",
            lambda k: k.audit_selector.search(
                search=search,
                action=action,
                entity=entity,
                correlation_id=correlation_id,
                page=page,
                page_size=page_size,
            ),
        )

    def verify_audit_chain(self) -> ChainVerification:
        return self._in_transaction(
            "verify_audit_chain", lambda k: k.auditor.verify_chain()
        )

    def audit_trace(self, entity_name: str, entity_id: UUID | str) -> AuditTrace:
        return self._in_transaction(
            "audit_trace",
            lambda k: k.auditor.get_trace(entity_name, str(entity_id)),
        )


def bootstrap(
    config: BloodBankConfig,
    clock: Clock | None = None,
    create_schema: bool = True,
) -> BloodBankService:
    """
    Initialise the engine for ``config`` and return a ready service.

    Creates tables and immutability triggers (idempotent) and registers
    the ORM immutability listeners.
    """
    init_engine_from_url(
        config.database.url,
        echo=config.database.echo,
        pool_size=config.database.pool_size,
        pool_timeout=config.database.pool_timeout,
        busy_timeout_seconds=config.database.busy_timeout_seconds,
    )
    if create_schema:
        create_tables()
    register_immutability_listeners()

    logger.info(
        "blood_bank_ready",
        extra={
            "config_id": config.config_id,
            "checksum": config.checksum,
            "audit_failure_mode": config.audit.failure_mode.value,
        },
    )
    return BloodBankService.from_config(config, clock=clock)
