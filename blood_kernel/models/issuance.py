"""
Module: blood_kernel.models.issuance
Responsibility: ORM persistence for issuance records.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ only.

Invariants enforced:
    - One issuance per unit (unique unit_id), written in the same
      transaction as the unit's available -> issued transition.
    - Issuance rows are immutable from creation (ORM listener + DB trigger).
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from blood_kernel.db.base import Base, UUIDString
from blood_kernel.domain.blood_type import BloodType
from blood_kernel.domain.dtos import IssuanceView, IssueType


class Issuance(Base):
    """Release of one unit under the routine or emergency protocol."""

    __tablename__ = "issuances"

    __table_args__ = (
        UniqueConstraint("unit_id", name="uq_issuance_unit"),
        Index("idx_issuance_issued_at", "issued_at"),
    )

    unit_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("blood_units.id"),
        nullable=False,
    )

    # Blood type snapshot at issue time
    abo: Mapped[str] = mapped_column(String(2), nullable=False)
    rh: Mapped[str] = mapped_column(String(1), nullable=False)

    issue_type: Mapped[IssueType] = mapped_column(String(10), nullable=False)

    issued_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<Issuance {self.unit_id} {self.issue_type}>"

    def to_view(self) -> IssuanceView:
        return IssuanceView(
            id=self.id,
            unit_id=self.unit_id,
            blood_type=BloodType.of(self.abo, self.rh),
            issue_type=IssueType(self.issue_type),
            issued_at=self.issued_at,
        )
