"""
Module: blood_kernel.models.audit_entry
Responsibility: ORM persistence for the tamper-evident audit hash chain.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ only.

Invariants enforced:
    - Audit records are append-only; no UPDATE or DELETE (ORM + DB trigger).
    - Hash chain integrity: hash = SHA-256(canonical JSON of every content
      field, prev_hash and the pepper).  Validated by AuditorService.
    - seq is unique and increasing, allocated by SequenceService.

Failure modes:
    - ImmutabilityViolationError on any UPDATE/DELETE attempt.
    - AuditChainBrokenError when chain validation detects a hash mismatch.

Audit relevance:
    AuditEntry IS the audit trail.  Every state-changing inventory action
    (donation intake, routine and emergency issuance) and every sensitive
    read (researcher query) produces an entry.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import JSON, BigInteger, Boolean, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from blood_kernel.db.base import Base
from blood_kernel.domain.dtos import AuditRecord


class AuditAction(str, Enum):
    """Action names written by the kernel itself.

    Callers may append entries with any action string; these are the ones
    BloodBankService produces.
    """

    DONATION_CREATED = "Donation.Create"
    ROUTINE_SELECTED = "Issue.RoutineSelect"
    ISSUE_CONFIRMED = "Issue.Confirm"
    EMERGENCY_ISSUED = "Issue.EmergencyONeg"
    RESEARCHER_QUERY = "Researcher.Query"

    def __str__(self) -> str:
        return self.value


# Content fields covered by the hash, in no particular order (the canonical
# serialization sorts keys).
HASHED_FIELDS: tuple[str, ...] = (
    "seq",
    "occurred_at",
    "actor_id",
    "actor_name",
    "actor_type",
    "action",
    "entity_name",
    "entity_id",
    "details",
    "success",
    "correlation_id",
    "ip_address",
    "user_agent",
    "http_method",
    "path",
)


class AuditEntry(Base):
    """
    Audit entry with hash chain for tamper evidence.

    Guarantees:
        - seq is unique and increasing.
        - prev_hash is None only for the genesis entry.

    Non-goals:
        - This model does NOT enforce hash correctness at INSERT time;
          that is the responsibility of AuditorService.
    """

    __tablename__ = "audit_entries"

    __table_args__ = (
        Index("idx_audit_entity", "entity_name", "entity_id"),
        Index("idx_audit_action", "action"),
        Index("idx_audit_occurred", "occurred_at"),
        Index("idx_audit_correlation", "correlation_id"),
    )

    seq: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)

    occurred_at: Mapped[datetime] = mapped_column(nullable=False)

    # Who performed the action
    actor_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    actor_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    actor_type: Mapped[str] = mapped_column(String(20), nullable=False, default="user")

    action: Mapped[str] = mapped_column(String(100), nullable=False)

    # What the action touched (e.g. "BloodUnit", unit id)
    entity_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    entity_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    details: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    success: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Request metadata
    correlation_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(500), nullable=True)
    http_method: Mapped[str | None] = mapped_column(String(10), nullable=True)
    path: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Hash of the previous entry (null for the genesis entry)
    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)

    hash: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<AuditEntry #{self.seq} {self.action}>"

    @property
    def is_genesis(self) -> bool:
        return self.prev_hash is None

    def hashed_content(self) -> dict[str, Any]:
        """Field values covered by the hash, as stored."""
        return {name: getattr(self, name) for name in HASHED_FIELDS}

    def to_record(self) -> AuditRecord:
        return AuditRecord(
            seq=self.seq,
            occurred_at=self.occurred_at,
            actor_id=self.actor_id,
            actor_name=self.actor_name,
            actor_type=self.actor_type,
            action=self.action,
            entity_name=self.entity_name,
            entity_id=self.entity_id,
            details=dict(self.details or {}),
            success=self.success,
            correlation_id=self.correlation_id,
            ip_address=self.ip_address,
            user_agent=self.user_agent,
            http_method=self.http_method,
            path=self.path,
            prev_hash=self.prev_hash,
            hash=self.hash,
        )
