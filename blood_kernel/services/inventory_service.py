"""
InventoryService -- unit intake and atomic issue-by-id.

Responsibility:
    Owns the blood unit lifecycle: creates units on donation intake and
    moves them available -> issued, writing one Issuance per issued unit.

Architecture position:
    Kernel > Services -- imperative shell.  Called by AllocationService and
    BloodBankService.

Invariants enforced:
    - Unit ids are uuid4, assigned without any shared counter.
    - A unit is issued at most once: eligible rows are re-read inside the
      caller's transaction with a row lock (``SELECT ... FOR UPDATE``; the
      SQLite engine holds the database write lock from ``BEGIN IMMEDIATE``)
      and filtered to status=available, so a concurrent issuer that
      committed first makes the unit ineligible here.
    - The status change and the Issuance row are flushed together; the
      caller's commit or rollback applies to all of them.

Failure modes:
    - InvalidDonationError on missing or malformed donor data.
    - InvalidIssueTypeError on an unknown issue type.
    - SQLAlchemyError from the store; propagated, the caller rolls back.
"""

from collections.abc import Iterable
from datetime import date, datetime
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from blood_kernel.domain.blood_type import BloodType
from blood_kernel.domain.clock import Clock, SystemClock
from blood_kernel.domain.dtos import BloodUnitView, IssueType, UnitStatus
from blood_kernel.exceptions import InvalidDonationError
from blood_kernel.logging_config import get_logger
from blood_kernel.models.blood_unit import BloodUnit
from blood_kernel.models.issuance import Issuance
from blood_kernel.services.base import BaseService

logger = get_logger("services.inventory")

DEFAULT_DONATION_SOURCE = "Soroka"

DONOR_ID_MIN_LENGTH = 5
DONOR_ID_MAX_LENGTH = 12
DONOR_NAME_MAX_LENGTH = 80


def _coerce_unit_id(value: UUID | str) -> UUID | None:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        return None


class InventoryService(BaseService):
    """
    Write service for the unit inventory.

    Non-goals:
        - Does NOT audit; the orchestration layer appends audit entries.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        default_donation_source: str = DEFAULT_DONATION_SOURCE,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._default_donation_source = default_donation_source

    def add_unit(
        self,
        blood_type: BloodType | str,
        donation_date: date,
        donor_id: str,
        donor_name: str,
        donation_source: str | None = None,
    ) -> UUID:
        """
        Record a donated unit as available and return its new id.

        Raises:
            InvalidBloodTypeError: blood_type cannot be parsed.
            InvalidDonationError: donor or date fields are invalid.
        """
        blood_type = BloodType.parse(blood_type)

        if isinstance(donation_date, datetime):
            donation_date = donation_date.date()
        if not isinstance(donation_date, date):
            raise InvalidDonationError("donation_date", "must be a date")

        donor_id = (donor_id or "").strip()
        if not DONOR_ID_MIN_LENGTH <= len(donor_id) <= DONOR_ID_MAX_LENGTH:
            raise InvalidDonationError(
                "donor_id",
                f"length must be {DONOR_ID_MIN_LENGTH}-{DONOR_ID_MAX_LENGTH} characters",
            )

        donor_name = (donor_name or "").strip()
        if not donor_name:
            raise InvalidDonationError("donor_name", "is required")
        if len(donor_name) > DONOR_NAME_MAX_LENGTH:
            raise InvalidDonationError(
                "donor_name", f"must be at most {DONOR_NAME_MAX_LENGTH} characters"
            )

        source = (donation_source or "").strip() or self._default_donation_source

        unit = BloodUnit(
            id=uuid4(),
            abo=blood_type.abo.value,
            rh=blood_type.rh.value,
            donation_date=donation_date,
            donor_id=donor_id,
            donor_name=donor_name,
            donation_source=source,
            status=UnitStatus.AVAILABLE.value,
            created_at=self._clock.now(),
        )
        self.session.add(unit)
        self.session.flush()

        logger.info(
            "unit_added",
            extra={
                "unit_id": str(unit.id),
                "blood_type": blood_type.compact,
                "donation_date": donation_date.isoformat(),
                "donation_source": source,
            },
        )
        return unit.id

    def issue_by_ids(
        self,
        ids: Iterable[UUID | str],
        issue_type: IssueType | str,
    ) -> list[BloodUnitView]:
        """
        Issue every requested unit that is still available.

        Unknown, malformed, duplicate or already-issued ids are dropped
        from the result rather than raising.  Returned views keep the
        request order and show status=issued.
        """
        issue_type = IssueType.parse(issue_type)

        requested: list[UUID] = []
        seen: set[UUID] = set()
        for raw in ids:
            unit_id = _coerce_unit_id(raw)
            if unit_id is None or unit_id in seen:
                continue
            seen.add(unit_id)
            requested.append(unit_id)

        if not requested:
            return []

        eligible = self.session.execute(
            select(BloodUnit)
            .where(
                BloodUnit.id.in_(requested),
                BloodUnit.status == UnitStatus.AVAILABLE.value,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalars().all()
        by_id = {u.id: u for u in eligible}

        issued_at = self._clock.now()
        issued: list[BloodUnit] = []
        for unit_id in requested:
            unit = by_id.get(unit_id)
            if unit is None:
                continue
            unit.status = UnitStatus.ISSUED.value
            self.session.add(
                Issuance(
                    id=uuid4(),
                    unit_id=unit.id,
                    abo=unit.abo,
                    rh=unit.rh,
                    issue_type=issue_type.value,
                    issued_at=issued_at,
                )
            )
            issued.append(unit)

        self.session.flush()

        logger.info(
            "units_issued",
            extra={
                "issue_type": issue_type.value,
                "requested_count": len(requested),
                "issued_count": len(issued),
                "unit_ids": [str(u.id) for u in issued],
            },
        )
        return [u.to_view() for u in issued]
