"""
Blood Kernel - inventory, allocation and audit core

A persisted, transaction-safe blood-bank inventory core with:
- ABO/Rh compatibility rules
- Status-retaining unit lifecycle (available -> issued)
- Exact-first, rarity-ordered routine allocation
- Emergency O-negative issuance
- Full auditability via hash chain
"""

__version__ = "0.1.0"
