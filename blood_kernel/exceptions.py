"""
Typed Exception Hierarchy for the Blood Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the kernel (the web layer, scripts, operators) must be able to
tell a malformed blood type from a storage outage without parsing messages.

Every error:
  1. Has a TYPED exception class (catch by type, not message)
  2. Has a CODE attribute (machine-readable, API-safe)
  3. Carries structured DATA (not just a message string)

Example - WRONG way to handle errors:
    try:
        bank.confirm_issue(ids)
    except Exception as e:
        if "locked" in str(e):  # FRAGILE - message might change
            retry_later()

Example - RIGHT way (what this module enables):
    try:
        bank.confirm_issue(ids)
    except StorageUnavailableError as e:
        log.warning("issue deferred", extra={"operation": e.operation})
        api_response(code=e.code)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from BloodKernelError:

    BloodKernelError (base)
    |
    +-- ValidationError
    |   +-- InvalidBloodTypeError
    |   +-- InvalidQuantityError
    |   +-- InvalidIssueTypeError
    |   +-- InvalidDonationError
    |   +-- InvalidMonthError
    |   +-- InvalidAuditEntryError
    |
    +-- InventoryError
    |   +-- UnitNotFoundError
    |   +-- UnitStatusTransitionError
    |
    +-- AuditError
    |   +-- AuditChainBrokenError
    |   +-- AuditWriteError
    |
    +-- StorageError
    |   +-- StorageUnavailableError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- ConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Validation      | INVALID_BLOOD_TYPE          | ABO/Rh not in the closed set
                | INVALID_QUANTITY            | Requested quantity <= 0
                | INVALID_ISSUE_TYPE          | Issue type not routine/emergency
                | INVALID_DONATION            | Missing donor identity on intake
                | INVALID_MONTH               | Forecast month outside 1..12
                | INVALID_AUDIT_ENTRY         | Audit details not canonical JSON
----------------|-----------------------------|-----------------------------------------
Inventory       | UNIT_NOT_FOUND              | Unit id doesn't exist (lookups only)
                | UNIT_STATUS_TRANSITION      | Anything but available -> issued
----------------|-----------------------------|-----------------------------------------
Audit           | AUDIT_CHAIN_BROKEN          | Hash chain validation failed
                | AUDIT_WRITE_FAILED          | Fail-closed audit append failed
----------------|-----------------------------|-----------------------------------------
Storage         | STORAGE_UNAVAILABLE         | Connection failure / lock timeout
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | Modifying an append-only record
----------------|-----------------------------|-----------------------------------------
Configuration   | CONFIGURATION_ERROR         | Invalid configuration set

Not-found and already-issued ids passed to issuance are NOT errors: they are
dropped from the result and the caller compares requested vs. issued counts.
Insufficient stock is NOT an error either: it is a short ``chosen`` list
plus non-empty ``suggestions``.

===============================================================================
"""


class BloodKernelError(Exception):
    """
    Base exception for all blood kernel errors.

    All subclasses must have a `code` class attribute
    for machine-readable error identification.
    """

    code: str = "BLOOD_KERNEL_ERROR"


# Validation exceptions


class ValidationError(BloodKernelError):
    """Base exception for rejected input."""

    code: str = "VALIDATION_ERROR"


class InvalidBloodTypeError(ValidationError):
    """ABO group or Rh factor is not recognised."""

    code: str = "INVALID_BLOOD_TYPE"

    def __init__(self, value: str):
        self.value = value
        super().__init__(f"Invalid blood type: {value!r}")


class InvalidQuantityError(ValidationError):
    """Requested quantity must be a positive integer."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, quantity: object):
        self.quantity = quantity
        super().__init__(f"Quantity must be a positive integer, got {quantity!r}")


class InvalidIssueTypeError(ValidationError):
    """Issue type is not one of the known issuance protocols."""

    code: str = "INVALID_ISSUE_TYPE"

    def __init__(self, issue_type: str):
        self.issue_type = issue_type
        super().__init__(f"Unknown issue type: {issue_type!r}")


class InvalidDonationError(ValidationError):
    """Donation intake data is incomplete."""

    code: str = "INVALID_DONATION"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid donation field '{field}': {reason}")


class InvalidMonthError(ValidationError):
    """Forecast month outside 1..12."""

    code: str = "INVALID_MONTH"

    def __init__(self, month: object):
        self.month = month
        super().__init__(f"Month must be between 1 and 12, got {month!r}")


class InvalidAuditEntryError(ValidationError):
    """Audit entry content cannot be canonicalised for hashing."""

    code: str = "INVALID_AUDIT_ENTRY"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid audit entry field '{field}': {reason}")


# Inventory exceptions


class InventoryError(BloodKernelError):
    """Base exception for inventory errors."""

    code: str = "INVENTORY_ERROR"


class UnitNotFoundError(InventoryError):
    """Blood unit with given ID was not found."""

    code: str = "UNIT_NOT_FOUND"

    def __init__(self, unit_id: str):
        self.unit_id = unit_id
        super().__init__(f"Blood unit not found: {unit_id}")


class UnitStatusTransitionError(InventoryError):
    """
    Attempted an illegal unit status change.

    The only legal transition is available -> issued; issued is terminal.
    """

    code: str = "UNIT_STATUS_TRANSITION"

    def __init__(self, unit_id: str, from_status: str, to_status: str):
        self.unit_id = unit_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Illegal status transition for unit {unit_id}: "
            f"{from_status} -> {to_status}"
        )


# Audit exceptions


class AuditError(BloodKernelError):
    """Base exception for audit-related errors."""

    code: str = "AUDIT_ERROR"


class AuditChainBrokenError(AuditError):
    """Audit hash chain validation failed."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, seq: int, expected_hash: str, actual_hash: str):
        self.seq = seq
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken at seq {seq}: "
            f"expected {expected_hash}, found {actual_hash}"
        )


class AuditWriteError(AuditError):
    """
    Audit entry could not be written in fail-closed mode.

    The business action that produced the entry has been rolled back.
    """

    code: str = "AUDIT_WRITE_FAILED"

    def __init__(self, action: str, reason: str):
        self.action = action
        self.reason = reason
        super().__init__(f"Audit write failed for action '{action}': {reason}")


# Storage exceptions


class StorageError(BloodKernelError):
    """Base exception for backing-store failures."""

    code: str = "STORAGE_ERROR"


class StorageUnavailableError(StorageError):
    """
    The backing store failed while running an operation.

    The operation's transaction was rolled back; nothing it wrote is
    visible.  The kernel never retries on its own.
    """

    code: str = "STORAGE_UNAVAILABLE"

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Storage unavailable during {operation}: {reason}")


# Immutability exceptions


class ImmutabilityError(BloodKernelError):
    """Base exception for immutability violations."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an immutable record.

    AuditEntry and Issuance rows are immutable from creation; BloodUnit
    rows are immutable except for the single status transition.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Configuration exceptions


class ConfigurationError(BloodKernelError):
    """Configuration set is missing or invalid."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Invalid configuration '{key}': {reason}")
