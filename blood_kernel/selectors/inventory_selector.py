"""
InventorySelector -- read-only queries over blood units and issuances.

Every "available" query filters on status, since issued units are retained
in the same table.
"""

from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import and_, func, or_, select

from blood_kernel.domain.blood_type import BloodType
from blood_kernel.domain.compatibility import compatible_donor_types
from blood_kernel.domain.dtos import (
    BloodUnitView,
    IssuanceView,
    ResearchRow,
    UnitStatus,
)
from blood_kernel.exceptions import UnitNotFoundError
from blood_kernel.models.blood_unit import BloodUnit
from blood_kernel.models.issuance import Issuance
from blood_kernel.selectors.base import BaseSelector

DEFAULT_LISTING_LIMIT = 500


def _type_filter(types: Iterable[BloodType]):
    return or_(*(
        and_(BloodUnit.abo == bt.abo.value, BloodUnit.rh == bt.rh.value)
        for bt in types
    ))


class InventorySelector(BaseSelector):
    """Queries over the unit inventory."""

    def all_available_units(self, newest_first: bool = False) -> list[BloodUnitView]:
        """Available units by donation date (oldest first unless asked)."""
        order = (
            (BloodUnit.donation_date.desc(), BloodUnit.id)
            if newest_first
            else (BloodUnit.donation_date.asc(), BloodUnit.id)
        )
        units = self.session.execute(
            select(BloodUnit)
            .where(BloodUnit.status == UnitStatus.AVAILABLE.value)
            .order_by(*order)
        ).scalars().all()
        return [u.to_view() for u in units]

    def compatible_available(self, recipient: BloodType) -> list[BloodUnitView]:
        """Available units a ``recipient`` may receive, oldest first."""
        units = self.session.execute(
            select(BloodUnit)
            .where(
                BloodUnit.status == UnitStatus.AVAILABLE.value,
                _type_filter(compatible_donor_types(recipient)),
            )
            .order_by(BloodUnit.donation_date.asc(), BloodUnit.id)
        ).scalars().all()
        return [u.to_view() for u in units]

    def count_available(self, blood_type: BloodType) -> int:
        return self.session.execute(
            select(func.count())
            .select_from(BloodUnit)
            .where(
                BloodUnit.status == UnitStatus.AVAILABLE.value,
                BloodUnit.abo == blood_type.abo.value,
                BloodUnit.rh == blood_type.rh.value,
            )
        ).scalar_one()

    def list_units(self, limit: int = DEFAULT_LISTING_LIMIT) -> list[BloodUnitView]:
        """Intake listing: every unit, issued included, newest first."""
        units = self.session.execute(
            select(BloodUnit)
            .order_by(BloodUnit.donation_date.desc(), BloodUnit.created_at.desc())
            .limit(max(0, int(limit)))
        ).scalars().all()
        return [u.to_view() for u in units]

    def get_unit(self, unit_id: UUID | str) -> BloodUnitView:
        """
        Raises:
            UnitNotFoundError: If no unit has this id.
        """
        try:
            key = unit_id if isinstance(unit_id, UUID) else UUID(str(unit_id))
        except ValueError:
            raise UnitNotFoundError(str(unit_id)) from None
        unit = self.session.get(BloodUnit, key)
        if unit is None:
            raise UnitNotFoundError(str(unit_id))
        return unit.to_view()

    def research_rows(self) -> list[ResearchRow]:
        """De-identified rows for research use, newest donation first."""
        units = self.session.execute(
            select(BloodUnit)
            .order_by(BloodUnit.donation_date.desc(), BloodUnit.id)
        ).scalars().all()
        return [u.to_research_row() for u in units]

    def issuances_for(self, unit_ids: Iterable[UUID]) -> list[IssuanceView]:
        ids = list(unit_ids)
        if not ids:
            return []
        rows = self.session.execute(
            select(Issuance)
            .where(Issuance.unit_id.in_(ids))
            .order_by(Issuance.issued_at, Issuance.unit_id)
        ).scalars().all()
        return [r.to_view() for r in rows]
