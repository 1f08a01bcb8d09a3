"""Utility modules for the blood kernel."""

from blood_kernel.utils.hashing import (
    canonicalize_json,
    hash_audit_entry,
    hash_payload,
    normalize_json,
    utc_isoformat,
)

__all__ = [
    "canonicalize_json",
    "hash_audit_entry",
    "hash_payload",
    "normalize_json",
    "utc_isoformat",
]
