"""Selectors for the blood kernel (read side)."""

from blood_kernel.selectors.audit_selector import AuditSelector
from blood_kernel.selectors.inventory_selector import InventorySelector

__all__ = [
    "AuditSelector",
    "InventorySelector",
]
