"""
ORM-Level Immutability Enforcement (Layer 1 of 2).

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity      | Rule
------------|---------------------------------------------------------------
AuditEntry  | ALWAYS immutable from creation; never deleted
Issuance    | ALWAYS immutable from creation; never deleted
BloodUnit   | Only ``status`` may change, and only available -> issued;
            | never deleted

Layer 2 is db/triggers.py, which enforces the same rules inside the
database for raw SQL and bulk statements.

===============================================================================
HOW IT WORKS
===============================================================================

    session.flush()
         |
         v
    [before_update event] --> _check_*() --> ImmutabilityViolationError
         |                                   UnitStatusTransitionError
         v
    [before_delete event] --> _check_*_delete() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
USAGE
===============================================================================

Called once at startup (BloodBankService.bootstrap, scripts, test setup):

    from blood_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()

To temporarily disable (TESTS ONLY - never in production):

    unregister_immutability_listeners()
    # ... do forbidden operation ...
    register_immutability_listeners()

===============================================================================
"""

from sqlalchemy import event, inspect

from blood_kernel.exceptions import (
    ImmutabilityViolationError,
    UnitStatusTransitionError,
)
from blood_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _blocked(entity_type: str, entity_id: object, operation: str, reason: str, **extra):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            **extra,
        },
    )
    return ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _check_audit_entry_immutability(mapper, connection, target):
    """Audit entries are always immutable."""
    raise _blocked(
        "AuditEntry", target.id, "UPDATE",
        "Audit entries are immutable and cannot be modified",
        seq=target.seq,
    )


def _check_audit_entry_delete(mapper, connection, target):
    raise _blocked(
        "AuditEntry", target.id, "DELETE",
        "Audit entries cannot be deleted",
        seq=target.seq,
    )


def _check_issuance_immutability(mapper, connection, target):
    raise _blocked(
        "Issuance", target.id, "UPDATE",
        "Issuance records are immutable and cannot be modified",
    )


def _check_issuance_delete(mapper, connection, target):
    raise _blocked(
        "Issuance", target.id, "DELETE",
        "Issuance records cannot be deleted",
    )


def _check_blood_unit_immutability(mapper, connection, target):
    """
    Allow exactly one change on a blood unit: status available -> issued.

    Any other attribute change is an ImmutabilityViolationError; any other
    status change is a UnitStatusTransitionError.
    """
    from blood_kernel.domain.dtos import UnitStatus

    insp = inspect(target)
    for attr in insp.attrs:
        if attr.key == "status":
            continue
        if attr.history.has_changes():
            raise _blocked(
                "BloodUnit", target.id, "UPDATE",
                f"Cannot modify field '{attr.key}' on a blood unit",
                field=attr.key,
            )

    status_history = insp.attrs.status.history
    if not status_history.has_changes():
        return

    old = status_history.deleted[0] if status_history.deleted else None
    new = status_history.added[0] if status_history.added else None
    old_status = UnitStatus(old) if old is not None else None
    new_status = UnitStatus(new) if new is not None else None
    if old_status is UnitStatus.AVAILABLE and new_status is UnitStatus.ISSUED:
        return

    logger.error(
        "unit_status_transition_blocked",
        extra={
            "unit_id": str(target.id),
            "from_status": str(old),
            "to_status": str(new),
        },
    )
    raise UnitStatusTransitionError(
        str(target.id),
        old_status.value if old_status else str(old),
        new_status.value if new_status else str(new),
    )


def _check_blood_unit_delete(mapper, connection, target):
    raise _blocked(
        "BloodUnit", target.id, "DELETE",
        "Blood units are retained permanently and cannot be deleted",
    )


_LISTENERS = (
    ("AuditEntry", "before_update", _check_audit_entry_immutability),
    ("AuditEntry", "before_delete", _check_audit_entry_delete),
    ("Issuance", "before_update", _check_issuance_immutability),
    ("Issuance", "before_delete", _check_issuance_delete),
    ("BloodUnit", "before_update", _check_blood_unit_immutability),
    ("BloodUnit", "before_delete", _check_blood_unit_delete),
)


def _models() -> dict:
    from blood_kernel.models.audit_entry import AuditEntry
    from blood_kernel.models.blood_unit import BloodUnit
    from blood_kernel.models.issuance import Issuance

    return {"AuditEntry": AuditEntry, "BloodUnit": BloodUnit, "Issuance": Issuance}


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners (idempotent).
    """
    models = _models()
    for model_name, event_name, fn in _LISTENERS:
        target = models[model_name]
        if not event.contains(target, event_name, fn):
            event.listen(target, event_name, fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests where you need to intentionally
    violate immutability rules to verify detection.
    """
    models = _models()
    for model_name, event_name, fn in _LISTENERS:
        target = models[model_name]
        if event.contains(target, event_name, fn):
            event.remove(target, event_name, fn)
