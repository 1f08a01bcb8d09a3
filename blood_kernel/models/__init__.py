"""ORM models for the blood kernel."""

from blood_kernel.models.audit_entry import AuditAction, AuditEntry
from blood_kernel.models.blood_unit import BloodUnit
from blood_kernel.models.issuance import Issuance

__all__ = [
    "AuditAction",
    "AuditEntry",
    "BloodUnit",
    "Issuance",
]
