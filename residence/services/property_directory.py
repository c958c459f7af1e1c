"""Read-only lookups over buildings, apartments and occupancy."""
from __future__ import annotations

import enum
from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from residence.models import Apartment, ApartmentOwner, ApartmentRenter, Building, BuildingManager
from residence.services.identity import Principal, is_admin


class _AllBuildings(enum.Enum):
    ALL = "all"


ALL_BUILDINGS = _AllBuildings.ALL
BuildingScope = frozenset[str] | _AllBuildings


@dataclass(frozen=True, slots=True)
class OwnedApartment:
    apartment_id: str
    size_sq_m: Decimal


class OwnershipSnapshotProvider(Protocol):
    """Resolves the apartments a user owns at the moment of the call."""

    def apartments_owned_by(self, user_id: str, building_id: str | None) -> list[OwnedApartment]: ...


class PropertyDirectory:
    """SQL-backed building membership and ownership lookups."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def building_exists(self, building_id: str) -> bool:
        building = self._session.get(Building, building_id)
        return building is not None and not building.is_deleted

    def user_building_ids(self, principal: Principal) -> BuildingScope:
        """Return the buildings ``principal`` belongs to, or ``ALL_BUILDINGS`` for admins."""

        if is_admin(principal):
            return ALL_BUILDINGS

        owned = select(Apartment.building_id).join(
            ApartmentOwner, ApartmentOwner.apartment_id == Apartment.id
        ).where(ApartmentOwner.user_id == principal.id, Apartment.is_deleted.is_(False))
        rented = select(Apartment.building_id).join(
            ApartmentRenter, ApartmentRenter.apartment_id == Apartment.id
        ).where(
            ApartmentRenter.user_id == principal.id,
            ApartmentRenter.is_active.is_(True),
            Apartment.is_deleted.is_(False),
        )
        managed = select(BuildingManager.building_id).where(BuildingManager.user_id == principal.id)

        building_ids: set[str] = set()
        for statement in (owned, rented, managed):
            building_ids.update(self._session.scalars(statement).all())
        return frozenset(building_ids)

    def apartments_owned_by(self, user_id: str, building_id: str | None) -> list[OwnedApartment]:
        """Return the non-deleted apartments ``user_id`` owns, optionally within one building."""

        statement = (
            select(Apartment.id, Apartment.size_sq_m)
            .join(ApartmentOwner, ApartmentOwner.apartment_id == Apartment.id)
            .where(ApartmentOwner.user_id == user_id, Apartment.is_deleted.is_(False))
            .order_by(Apartment.id)
        )
        if building_id is not None:
            statement = statement.where(Apartment.building_id == building_id)

        return [
            OwnedApartment(apartment_id=apartment_id, size_sq_m=Decimal(size or 0))
            for apartment_id, size in self._session.execute(statement).all()
        ]


def in_building_scope(scope: BuildingScope, building_id: str | None) -> bool:
    if building_id is None or scope is ALL_BUILDINGS:
        return True
    return building_id in scope


__all__ = [
    "ALL_BUILDINGS",
    "BuildingScope",
    "OwnedApartment",
    "OwnershipSnapshotProvider",
    "PropertyDirectory",
    "in_building_scope",
]
