"""Seed script for demo roles, residents and a building."""
from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from residence.api.routes.auth import hash_password
from residence.db.session import SessionLocal, engine
from residence.models import (
    Apartment,
    ApartmentOwner,
    ApartmentRenter,
    Base,
    Building,
    BuildingManager,
    Role,
    RoleName,
    User,
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

DEMO_PASSWORD = "ChangeMe123!"

SEED_USERS = [
    ("admin@demo.local", "Demo Admin", RoleName.ADMIN),
    ("manager@demo.local", "Demo Manager", RoleName.MANAGER),
    ("owner@demo.local", "Demo Owner", RoleName.HOMEOWNER),
    ("renter@demo.local", "Demo Renter", RoleName.RENTER),
]


def _ensure_roles(session: Session) -> dict[str, Role]:
    roles = {role.name: role for role in session.scalars(select(Role))}
    for name in RoleName:
        if name.value not in roles:
            roles[name.value] = Role(name=name.value)
            session.add(roles[name.value])
            logger.info("Created role %s", name.value)
    return roles


def seed(session: Session) -> None:
    """Seed roles, one user per role and a small building."""

    roles = _ensure_roles(session)
    existing = {user.email: user for user in session.scalars(select(User))}
    users: dict[RoleName, User] = {}
    for email, name, role in SEED_USERS:
        user = existing.get(email)
        if user is None:
            user = User(email=email, name=name, hashed_password=hash_password(DEMO_PASSWORD))
            user.roles.append(roles[role.value])
            session.add(user)
            logger.info("Added user %s", email)
        else:
            logger.info("User %s already exists", email)
        users[role] = user

    if session.scalars(select(Building).limit(1)).first() is not None:
        logger.info("Demo building already exists")
        return

    building = Building(address="1 Demo Street", construction_year=1998)
    owned = Apartment(number="1A", size_sq_m=Decimal("72.50"))
    rented = Apartment(number="1B", size_sq_m=Decimal("54.00"))
    building.apartments.extend([owned, rented])
    session.add(building)
    session.flush()

    session.add_all(
        [
            ApartmentOwner(apartment_id=owned.id, user_id=users[RoleName.HOMEOWNER].id),
            ApartmentOwner(apartment_id=rented.id, user_id=users[RoleName.HOMEOWNER].id),
            ApartmentRenter(apartment_id=rented.id, user_id=users[RoleName.RENTER].id),
            BuildingManager(building_id=building.id, user_id=users[RoleName.MANAGER].id),
        ]
    )
    logger.info("Created building %s with 2 apartments", building.id)


def main() -> None:
    Base.metadata.create_all(bind=engine)
    with SessionLocal() as session:
        seed(session)
        session.commit()


if __name__ == "__main__":
    main()
