"""Services for the blood kernel (write side)."""

from blood_kernel.services.allocation_service import AllocationService
from blood_kernel.services.auditor_service import (
    AuditorService,
    AuditTrace,
    AuditTraceEntry,
)
from blood_kernel.services.inventory_service import InventoryService
from blood_kernel.services.sequence_service import SequenceCounter, SequenceService

__all__ = [
    "AllocationService",
    "AuditorService",
    "AuditTrace",
    "AuditTraceEntry",
    "InventoryService",
    "SequenceCounter",
    "SequenceService",
]
