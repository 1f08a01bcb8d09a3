"""
Deterministic hashing utilities.

All hashing in the blood kernel must be deterministic and reproducible:
the audit chain is verified by recomputing hashes from stored fields, so
the content-to-hash mapping here is a persistent contract.
"""

import hashlib
import json
from collections.abc import Mapping
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


def utc_isoformat(value: datetime) -> str:
    """ISO-8601 text of an aware datetime, normalised to UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _json_serializer(obj: Any) -> Any:
    """
    Custom JSON serializer for types not natively supported.

    Raises:
        TypeError: If object type is not supported.
    """
    if isinstance(obj, Decimal):
        return str(obj.normalize())
    if isinstance(obj, datetime):
        return utc_isoformat(obj)
    if isinstance(obj, date):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (set, frozenset)):
        return sorted(obj, key=str)
    if isinstance(obj, Mapping):
        return dict(obj)
    if isinstance(obj, bytes):
        return obj.hex()

    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def canonicalize_json(data: dict | list | Any) -> str:
    """
    Convert data to canonical JSON string.

    Produces a deterministic JSON representation:
    - Keys are sorted alphabetically
    - No whitespace
    - Consistent handling of special types (datetime in UTC, UUID, Enum)
    """
    return json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=_json_serializer,
    )


def normalize_json(data: Any) -> Any:
    """
    Plain-JSON form of ``data``, exactly as it will read back from a JSON
    column (tuples become lists, UUIDs become strings, and so on).
    """
    return json.loads(canonicalize_json(data))


def hash_payload(payload: dict) -> str:
    """Hex-encoded SHA-256 of the canonical JSON form of ``payload``."""
    canonical = canonicalize_json(payload)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def hash_audit_entry(
    content: Mapping[str, Any],
    prev_hash: str | None,
    pepper: str,
) -> str:
    """
    Compute the chained hash of one audit entry.

    hash = SHA-256(canonical JSON of every content field plus ``prev_hash``
    and ``pepper``).  ``prev_hash`` is JSON null for the genesis entry.
    """
    data = dict(content)
    data["prev_hash"] = prev_hash
    data["pepper"] = pepper
    return hash_payload(data)
