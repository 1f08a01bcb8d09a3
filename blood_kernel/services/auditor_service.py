"""
AuditorService -- tamper-evident audit ledger and hash chain maintenance.

Responsibility:
    Appends immutable, hash-chained audit entries for every significant
    action of the blood bank.  Provides chain verification for tamper
    detection and trace queries for forensic review.

Architecture position:
    Kernel > Services -- imperative shell, called by BloodBankService as a
    side effect of every state-mutating operation.

Invariants enforced:
    - seq is allocated via SequenceService (locked counter row, never
      max+1).  The counter lock is taken BEFORE the previous hash is read,
      so two writers can never chain onto the same predecessor.
    - hash = SHA-256(canonical JSON of every content field, prev_hash and
      the pepper).  Every entry carries a cryptographic link to its
      predecessor.
    - Append-only: entries are never modified or deleted (ORM listener +
      DB trigger on AuditEntry).

Failure modes:
    - AuditChainBrokenError from ``validate_chain()`` when a recomputed hash
      or a prev_hash link does not match what is stored.
    - SQLAlchemyError from the store; propagated, the caller rolls back.

Audit relevance:
    This IS the audit service.  All entries flow through ``append()``.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from blood_kernel.domain.clock import Clock, SystemClock
from blood_kernel.domain.dtos import AuditEntryData, ChainVerification
from blood_kernel.exceptions import AuditChainBrokenError, InvalidAuditEntryError
from blood_kernel.logging_config import get_logger
from blood_kernel.models.audit_entry import AuditEntry
from blood_kernel.services.sequence_service import SequenceService
from blood_kernel.utils.hashing import hash_audit_entry, normalize_json

logger = get_logger("services.auditor")


@dataclass(frozen=True)
class AuditTraceEntry:
    """A single entry in an audit trace."""

    seq: int
    action: str
    occurred_at: datetime
    actor_id: str | None
    success: bool
    details: dict[str, Any]
    hash: str


@dataclass(frozen=True)
class AuditTrace:
    """
    Complete audit trace for an entity.

    Contains all audit entries in chronological order.
    """

    entity_name: str
    entity_id: str
    entries: tuple[AuditTraceEntry, ...]

    @property
    def is_empty(self) -> bool:
        return len(self.entries) == 0

    @property
    def first_action(self) -> str | None:
        return self.entries[0].action if self.entries else None

    @property
    def last_action(self) -> str | None:
        return self.entries[-1].action if self.entries else None


class AuditorService:
    """
    Service for appending and verifying tamper-evident audit entries.

    Guarantees:
        - Every entry's ``hash`` is a deterministic function of its content
          fields, ``prev_hash`` and the pepper.  Tampering with any field is
          detectable by ``verify_chain()``.
        - Entries form a single chain ordered by ``seq``.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
    """

    def __init__(
        self,
        session: Session,
        pepper: str,
        clock: Clock | None = None,
    ):
        self._session = session
        self._pepper = pepper
        self._clock = clock or SystemClock()
        self._sequence_service = SequenceService(session)

    def _get_last_hash(self) -> str | None:
        """Get the hash of the most recent audit entry."""
        return self._session.execute(
            select(AuditEntry.hash)
            .order_by(AuditEntry.seq.desc())
            .limit(1)
        ).scalar_one_or_none()

    def append(self, entry: AuditEntryData) -> int:
        """
        Append one entry to the chain and return its seq.

        Postconditions:
            - A new ``AuditEntry`` row is flushed with the next seq and
              ``prev_hash`` equal to the hash of the entry before it.

        Raises:
            InvalidAuditEntryError: ``details`` cannot be serialised to
                canonical JSON (for example mixed key types).  Raised
                before a seq is allocated.
        """
        # Stored in its plain-JSON form so the hash recomputes from what
        # the JSON column reads back.
        try:
            details = normalize_json(dict(entry.details or {}))
        except (TypeError, ValueError) as exc:
            raise InvalidAuditEntryError("details", str(exc)) from exc

        seq = self._sequence_service.next_value(SequenceService.AUDIT_ENTRY)
        prev_hash = self._get_last_hash()

        audit_entry = AuditEntry(
            seq=seq,
            occurred_at=entry.occurred_at or self._clock.now(),
            actor_id=entry.actor_id,
            actor_name=entry.actor_name,
            # Column defaults are resolved here; the hash covers stored values.
            actor_type=entry.actor_type or "user",
            action=str(entry.action),
            entity_name=entry.entity_name,
            entity_id=None if entry.entity_id is None else str(entry.entity_id),
            details=details,
            success=bool(entry.success),
            correlation_id=entry.correlation_id,
            ip_address=entry.ip_address,
            user_agent=entry.user_agent,
            http_method=entry.http_method,
            path=entry.path,
            prev_hash=prev_hash,
        )
        audit_entry.hash = hash_audit_entry(
            audit_entry.hashed_content(), prev_hash, self._pepper
        )

        self._session.add(audit_entry)
        self._session.flush()

        logger.info(
            "audit_entry_appended",
            extra={
                "seq": seq,
                "action": audit_entry.action,
                "entity_name": audit_entry.entity_name,
                "entity_id": audit_entry.entity_id,
                "success": audit_entry.success,
            },
        )
        return seq

    def verify_chain(self) -> ChainVerification:
        """
        Walk the chain in seq order and report every entry that fails.

        Each entry's hash is recomputed from its stored content and the
        recomputed hash of its predecessor, so a change to entry k also
        invalidates every entry after k.  An entry whose stored
        ``prev_hash`` does not equal its predecessor's stored ``hash``
        (for example after a deletion) is invalid too.
        """
        entries = self._session.execute(
            select(AuditEntry).order_by(AuditEntry.seq)
        ).scalars().all()

        invalid: list[int] = []
        chained_prev: str | None = None
        stored_prev: str | None = None
        for entry in entries:
            expected = hash_audit_entry(
                entry.hashed_content(), chained_prev, self._pepper
            )
            if entry.hash != expected or entry.prev_hash != stored_prev:
                invalid.append(entry.seq)
            chained_prev = expected
            stored_prev = entry.hash

        result = ChainVerification(
            valid=not invalid,
            checked=len(entries),
            broken_at=invalid[0] if invalid else None,
            invalid_seqs=tuple(invalid),
        )
        if invalid:
            logger.critical(
                "audit_chain_broken",
                extra={
                    "broken_at": result.broken_at,
                    "invalid_count": len(invalid),
                    "checked": result.checked,
                },
            )
        else:
            logger.info("audit_chain_valid", extra={"entry_count": len(entries)})
        return result

    def validate_chain(self) -> bool:
        """
        Validate the entire audit chain.

        Raises:
            AuditChainBrokenError: at the first entry whose hash or
                prev_hash link does not match.
        """
        entries = self._session.execute(
            select(AuditEntry).order_by(AuditEntry.seq)
        ).scalars().all()

        prev: AuditEntry | None = None
        for entry in entries:
            expected_prev = prev.hash if prev is not None else None
            if entry.prev_hash != expected_prev:
                logger.critical("audit_chain_broken", extra={"seq": entry.seq})
                raise AuditChainBrokenError(
                    entry.seq, str(expected_prev), str(entry.prev_hash)
                )
            expected = hash_audit_entry(
                entry.hashed_content(), expected_prev, self._pepper
            )
            if entry.hash != expected:
                logger.critical("audit_chain_broken", extra={"seq": entry.seq})
                raise AuditChainBrokenError(entry.seq, expected, entry.hash)
            prev = entry

        logger.info("audit_chain_valid", extra={"entry_count": len(entries)})
        return True

    # Trace and query methods

    def get_trace(self, entity_name: str, entity_id: str) -> AuditTrace:
        """All entries for one entity, in chronological order."""
        entries = self._session.execute(
            select(AuditEntry)
            .where(
                AuditEntry.entity_name == entity_name,
                AuditEntry.entity_id == str(entity_id),
            )
            .order_by(AuditEntry.seq)
        ).scalars().all()

        return AuditTrace(
            entity_name=entity_name,
            entity_id=str(entity_id),
            entries=tuple(
                AuditTraceEntry(
                    seq=e.seq,
                    action=e.action,
                    occurred_at=e.occurred_at,
                    actor_id=e.actor_id,
                    success=e.success,
                    details=dict(e.details or {}),
                    hash=e.hash,
                )
                for e in entries
            ),
        )
