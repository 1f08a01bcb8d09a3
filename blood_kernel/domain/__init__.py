"""
Pure domain layer.

This module contains pure value objects, data transfer objects and the
allocation core with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O

All domain objects are immutable and deterministic.
"""

from blood_kernel.domain.allocation import select_for_routine, validate_quantity
from blood_kernel.domain.blood_type import (
    ALL_BLOOD_TYPES,
    O_NEGATIVE,
    AboGroup,
    BloodType,
    RhFactor,
)
from blood_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from blood_kernel.domain.compatibility import (
    CompatibilityCheck,
    compatible_donor_types,
    explain_compatibility,
    is_compatible,
)
from blood_kernel.domain.dtos import (
    AuditEntryData,
    AuditPage,
    AuditRecord,
    BloodUnitView,
    ChainVerification,
    IssuanceView,
    IssueType,
    ResearchRow,
    RoutineSelection,
    Suggestion,
    UnitStatus,
)
from blood_kernel.domain.rarity import DEFAULT_RARITY_WEIGHTS, RarityTable

__all__ = [
    # Value objects
    "AboGroup",
    "RhFactor",
    "BloodType",
    "O_NEGATIVE",
    "ALL_BLOOD_TYPES",
    # Rules
    "CompatibilityCheck",
    "compatible_donor_types",
    "explain_compatibility",
    "is_compatible",
    "RarityTable",
    "DEFAULT_RARITY_WEIGHTS",
    # Allocation
    "select_for_routine",
    "validate_quantity",
    # Clock
    "Clock",
    "SystemClock",
    "DeterministicClock",
    # DTOs
    "UnitStatus",
    "IssueType",
    "BloodUnitView",
    "Suggestion",
    "RoutineSelection",
    "IssuanceView",
    "ResearchRow",
    "AuditEntryData",
    "AuditRecord",
    "AuditPage",
    "ChainVerification",
]
