"""
Module: blood_kernel.models.blood_unit
Responsibility: ORM persistence for donated blood units.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ value objects only.

Invariants enforced:
    - id, blood type, donation date and donor fields never change after
      INSERT (ORM listener + DB trigger).
    - status moves available -> issued exactly once; issued is terminal.
    - Rows are never deleted; issued units are retained for traceability.

Failure modes:
    - UnitStatusTransitionError on any status change other than
      available -> issued.
    - ImmutabilityViolationError on any other UPDATE, or on DELETE.
"""

from datetime import date, datetime

from sqlalchemy import Date, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from blood_kernel.db.base import Base
from blood_kernel.domain.blood_type import BloodType
from blood_kernel.domain.dtos import BloodUnitView, ResearchRow, UnitStatus


class BloodUnit(Base):
    """
    One donated unit of red cells.

    Guarantees:
        - ``abo``/``rh`` always hold a valid BloodType (parsed on intake).
        - ``status`` is stored as the UnitStatus value string.
    """

    __tablename__ = "blood_units"

    __table_args__ = (
        Index("idx_unit_status_type", "status", "abo", "rh"),
        Index("idx_unit_donation_date", "donation_date"),
    )

    # ABO group ("O", "A", "B", "AB")
    abo: Mapped[str] = mapped_column(String(2), nullable=False)

    # Rh sign ("+", "-")
    rh: Mapped[str] = mapped_column(String(1), nullable=False)

    # FEFO proxy: oldest donation leaves first
    donation_date: Mapped[date] = mapped_column(Date, nullable=False)

    donor_id: Mapped[str] = mapped_column(String(32), nullable=False)

    # Denormalized for the intake listing
    donor_name: Mapped[str] = mapped_column(String(200), nullable=False)

    donation_source: Mapped[str] = mapped_column(String(100), nullable=False)

    status: Mapped[UnitStatus] = mapped_column(
        String(10),
        default=UnitStatus.AVAILABLE,
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<BloodUnit {self.id} {self.abo}{self.rh} status={self.status}>"

    @property
    def blood_type(self) -> BloodType:
        return BloodType.of(self.abo, self.rh)

    @property
    def is_available(self) -> bool:
        return UnitStatus(self.status) is UnitStatus.AVAILABLE

    def to_view(self) -> BloodUnitView:
        return BloodUnitView(
            id=self.id,
            blood_type=self.blood_type,
            donation_date=self.donation_date,
            donor_id=self.donor_id,
            donor_name=self.donor_name,
            donation_source=self.donation_source,
            status=UnitStatus(self.status),
        )

    def to_research_row(self) -> ResearchRow:
        return ResearchRow(
            blood_type=self.blood_type,
            abo=self.abo,
            rh=self.rh,
            donation_date=self.donation_date,
            status=UnitStatus(self.status),
            donation_source=self.donation_source,
        )
