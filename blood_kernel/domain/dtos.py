"""
Data Transfer Objects for the blood kernel.

Frozen dataclasses used at every boundary: selectors return them, services
accept and return them, and the orchestration layer hands them to callers.
ORM rows never leave a session.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any
from uuid import UUID

from blood_kernel.domain.blood_type import BloodType
from blood_kernel.exceptions import InvalidIssueTypeError


class UnitStatus(str, Enum):
    """Lifecycle state of a blood unit. ISSUED is terminal."""

    AVAILABLE = "available"
    ISSUED = "issued"


class IssueType(str, Enum):
    """Issuance protocol that released a unit."""

    ROUTINE = "routine"
    EMERGENCY = "emergency"

    @classmethod
    def parse(cls, value: str | IssueType) -> IssueType:
        if isinstance(value, IssueType):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise InvalidIssueTypeError(str(value)) from None


@dataclass(frozen=True)
class BloodUnitView:
    """Read-only snapshot of a blood unit."""

    id: UUID
    blood_type: BloodType
    donation_date: date
    donor_id: str
    donor_name: str
    donation_source: str
    status: UnitStatus

    @property
    def is_available(self) -> bool:
        return self.status is UnitStatus.AVAILABLE


@dataclass(frozen=True)
class Suggestion:
    """Count of still-available compatible units of one alternative type."""

    blood_type: BloodType
    count: int


@dataclass(frozen=True)
class RoutineSelection:
    """
    Result of routine allocation.

    ``chosen`` units are NOT issued yet; the caller confirms them through
    ``confirm_issue``.  ``suggestions`` is empty whenever the requested
    quantity was met.
    """

    chosen: tuple[BloodUnitView, ...]
    suggestions: tuple[Suggestion, ...]
    quantity: int = 0

    @property
    def chosen_ids(self) -> list[UUID]:
        return [u.id for u in self.chosen]

    @property
    def shortfall(self) -> int:
        return max(0, self.quantity - len(self.chosen))


@dataclass(frozen=True)
class IssuanceView:
    """Read-only snapshot of one issuance record."""

    id: UUID
    unit_id: UUID
    blood_type: BloodType
    issue_type: IssueType
    issued_at: datetime


@dataclass(frozen=True)
class ResearchRow:
    """De-identified unit row: no donor identity."""

    blood_type: BloodType
    abo: str
    rh: str
    donation_date: date
    status: UnitStatus
    donation_source: str


@dataclass(frozen=True)
class AuditEntryData:
    """
    Content of an audit entry to append.

    ``occurred_at`` defaults to the ledger clock's ``now()``; ``details``
    must be JSON-serializable.
    """

    action: str
    actor_id: str | None = None
    actor_name: str | None = None
    actor_type: str = "user"
    entity_name: str | None = None
    entity_id: str | None = None
    details: Mapping[str, Any] = field(default_factory=dict)
    success: bool = True
    correlation_id: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    http_method: str | None = None
    path: str | None = None
    occurred_at: datetime | None = None


@dataclass(frozen=True)
class AuditRecord:
    """A persisted audit entry as read back from the ledger."""

    seq: int
    occurred_at: datetime
    actor_id: str | None
    actor_name: str | None
    actor_type: str
    action: str
    entity_name: str | None
    entity_id: str | None
    details: Mapping[str, Any]
    success: bool
    correlation_id: str | None
    ip_address: str | None
    user_agent: str | None
    http_method: str | None
    path: str | None
    prev_hash: str | None
    hash: str


@dataclass(frozen=True)
class AuditPage:
    """One page of audit search results, newest first."""

    rows: tuple[AuditRecord, ...]
    total: int
    page: int
    page_size: int

    @property
    def page_count(self) -> int:
        return max(1, -(-self.total // self.page_size))


@dataclass(frozen=True)
class ChainVerification:
    """
    Result of walking the audit chain.

    ``broken_at`` is the first seq whose stored hash does not match the
    recomputed chain; ``invalid_seqs`` lists every such seq.
    """

    valid: bool
    checked: int
    broken_at: int | None = None
    invalid_seqs: tuple[int, ...] = ()
