"""
AuditSelector -- paged search over the audit ledger for the audit viewer.
"""

from sqlalchemy import String, cast, func, or_, select

from blood_kernel.domain.dtos import AuditPage, AuditRecord
from blood_kernel.models.audit_entry import AuditEntry
from blood_kernel.selectors.base import BaseSelector

MIN_PAGE_SIZE = 10
MAX_PAGE_SIZE = 200
DEFAULT_PAGE_SIZE = 50


def _like(value: str) -> str:
    return f"%{value.strip()}%"


class AuditSelector(BaseSelector):
    """Read-only access to audit entries, newest first."""

    def search(
        self,
        search: str | None = None,
        action: str | None = None,
        entity: str | None = None,
        correlation_id: str | None = None,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> AuditPage:
        """
        Filter and page audit entries.

        ``search`` matches action, details, actor name, entity name or
        entity id; ``action`` and ``entity`` are substring filters;
        ``correlation_id`` must match exactly.  ``page`` is clamped to at
        least 1 and ``page_size`` to [10, 200].
        """
        page = max(1, int(page))
        page_size = min(MAX_PAGE_SIZE, max(MIN_PAGE_SIZE, int(page_size)))

        conditions = []
        if search and search.strip():
            pattern = _like(search)
            conditions.append(or_(
                AuditEntry.action.like(pattern),
                cast(AuditEntry.details, String).like(pattern),
                AuditEntry.actor_name.like(pattern),
                AuditEntry.entity_name.like(pattern),
                AuditEntry.entity_id.like(pattern),
            ))
        if action and action.strip():
            conditions.append(AuditEntry.action.like(_like(action)))
        if entity and entity.strip():
            conditions.append(AuditEntry.entity_name.like(_like(entity)))
        if correlation_id and correlation_id.strip():
            conditions.append(AuditEntry.correlation_id == correlation_id.strip())

        total = self.session.execute(
            select(func.count()).select_from(AuditEntry).where(*conditions)
        ).scalar_one()

        entries = self.session.execute(
            select(AuditEntry)
            .where(*conditions)
            .order_by(AuditEntry.seq.desc())
            .limit(page_size)
            .offset((page - 1) * page_size)
        ).scalars().all()

        return AuditPage(
            rows=tuple(e.to_record() for e in entries),
            total=total,
            page=page,
            page_size=page_size,
        )

    def recent(self, limit: int = 100) -> list[AuditRecord]:
        entries = self.session.execute(
            select(AuditEntry).order_by(AuditEntry.seq.desc()).limit(limit)
        ).scalars().all()
        return [e.to_record() for e in entries]

    def get(self, seq: int) -> AuditRecord | None:
        entry = self.session.execute(
            select(AuditEntry).where(AuditEntry.seq == seq)
        ).scalar_one_or_none()
        return entry.to_record() if entry is not None else None
