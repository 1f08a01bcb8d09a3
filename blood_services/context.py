"""
Request context carried into audit entries.

The web layer (out of scope here) knows who is acting and over which
request; it hands that to BloodBankService as a ``RequestContext`` so every
audit entry is enriched the same way.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, replace
from typing import Any
from uuid import uuid4

from blood_kernel.domain.dtos import AuditEntryData
from blood_kernel.logging_config import LogContext


def new_correlation_id() -> str:
    return uuid4().hex


@dataclass(frozen=True)
class RequestContext:
    """Who is acting, and over which request."""

    actor_id: str | None = None
    actor_name: str | None = None
    actor_type: str = "user"
    correlation_id: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    http_method: str | None = None
    path: str | None = None

    def resolved(self) -> RequestContext:
        """
        Copy with a correlation id.

        Taken from this context, then from the bound ``LogContext``, and
        generated only when neither has one.
        """
        if self.correlation_id:
            return self
        return replace(
            self,
            correlation_id=LogContext.get("correlation_id") or new_correlation_id(),
        )

    def audit_entry(
        self,
        action: str,
        entity_name: str | None = None,
        entity_id: str | None = None,
        details: Mapping[str, Any] | None = None,
        success: bool = True,
    ) -> AuditEntryData:
        return AuditEntryData(
            action=str(action),
            actor_id=self.actor_id,
            actor_name=self.actor_name,
            actor_type=self.actor_type,
            entity_name=entity_name,
            entity_id=entity_id,
            details=dict(details or {}),
            success=success,
            correlation_id=self.correlation_id,
            ip_address=self.ip_address,
            user_agent=self.user_agent,
            http_method=self.http_method,
            path=self.path,
        )


SYSTEM_CONTEXT = RequestContext(
    actor_id="system",
    actor_name="system",
    actor_type="system",
)
