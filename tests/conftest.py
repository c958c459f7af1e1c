from __future__ import annotations

import os
import sys
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from pathlib import Path

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))


def _generate_private_key() -> str:
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")


os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("JWT_PRIVATE_KEY", _generate_private_key())
os.environ.setdefault("ENABLE_TRACING", "false")

from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from residence.api.deps import get_db_session, get_now  # noqa: E402
from residence.api.routes.auth import AuthenticatedUser, hash_password, refresh_token_store  # noqa: E402
from residence.main import app  # noqa: E402
from residence.models import (  # noqa: E402
    Apartment,
    ApartmentOwner,
    ApartmentRenter,
    Base,
    Building,
    BuildingManager,
    Proposal,
    Role,
    RoleName,
    User,
    VotingMethod,
)

DATABASE_URL = "sqlite+pysqlite:///:memory:"
DEFAULT_PASSWORD = "changeme"
EPOCH = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)


engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)

# Shared hash for every seeded test account.
_DEFAULT_PASSWORD_HASH = hash_password(DEFAULT_PASSWORD)


@dataclass
class Clock:
    """Controllable request clock injected in place of ``get_now``."""

    now: datetime = EPOCH

    def advance(self, **delta: float) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now


@pytest.fixture(autouse=True)
def reset_refresh_store() -> Iterator[None]:
    refresh_token_store.reset()
    yield
    refresh_token_store.reset()


@pytest.fixture()
def db_session() -> Iterator[Session]:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()

    session.add_all([Role(name=role.value) for role in RoleName])
    session.commit()

    yield session
    session.close()


@pytest.fixture()
def clock() -> Clock:
    return Clock()


@pytest.fixture()
def make_user(db_session: Session) -> Callable[..., User]:
    def _make_user(email: str, *roles: str, name: str | None = None) -> User:
        role_rows = {role.name: role for role in db_session.query(Role).all()}
        user = User(
            email=email,
            name=name or email.split("@")[0].title(),
            hashed_password=_DEFAULT_PASSWORD_HASH,
        )
        for role in roles:
            if role not in role_rows:
                role_rows[role] = Role(name=role)
            user.roles.append(role_rows[role])
        db_session.add(user)
        db_session.commit()
        return user

    return _make_user


@pytest.fixture()
def as_principal() -> Callable[[User], AuthenticatedUser]:
    def _as_principal(user: User) -> AuthenticatedUser:
        return AuthenticatedUser(id=user.id, email=user.email, roles=user.role_names, token_id="test")

    return _as_principal


@pytest.fixture()
def admin(make_user: Callable[..., User]) -> User:
    return make_user("admin@example.com", RoleName.ADMIN.value)


@pytest.fixture()
def manager(make_user: Callable[..., User]) -> User:
    return make_user("manager@example.com", RoleName.MANAGER.value)


@pytest.fixture()
def homeowners(make_user: Callable[..., User]) -> list[User]:
    return [make_user(f"owner{index}@example.com", RoleName.HOMEOWNER.value) for index in range(1, 4)]


@pytest.fixture()
def renter(make_user: Callable[..., User]) -> User:
    return make_user("renter@example.com", RoleName.RENTER.value)


@pytest.fixture()
def building(db_session: Session) -> Building:
    building = Building(address="12 Harbour Road", construction_year=1987)
    db_session.add(building)
    db_session.commit()
    return building


@pytest.fixture()
def add_apartment(db_session: Session) -> Callable[..., Apartment]:
    def _add_apartment(
        building: Building,
        number: str,
        *,
        size: str | None = None,
        owners: tuple[User, ...] = (),
        renters: tuple[User, ...] = (),
    ) -> Apartment:
        apartment = Apartment(
            building_id=building.id,
            number=number,
            size_sq_m=Decimal(size) if size is not None else None,
        )
        db_session.add(apartment)
        db_session.flush()
        for owner in owners:
            db_session.add(ApartmentOwner(apartment_id=apartment.id, user_id=owner.id))
        for occupant in renters:
            db_session.add(ApartmentRenter(apartment_id=apartment.id, user_id=occupant.id))
        db_session.commit()
        return apartment

    return _add_apartment


@pytest.fixture()
def assign_manager(db_session: Session) -> Callable[[Building, User], None]:
    def _assign_manager(building: Building, user: User) -> None:
        db_session.add(BuildingManager(building_id=building.id, user_id=user.id))
        db_session.commit()

    return _assign_manager


@pytest.fixture()
def make_proposal(db_session: Session, admin: User) -> Callable[..., Proposal]:
    """Insert a proposal directly; the window opens at ``EPOCH`` and lasts one day."""

    def _make_proposal(
        *,
        voting_method: VotingMethod = VotingMethod.SIMPLE_MAJORITY,
        eligible_roles: list[str] | None = None,
        building_id: str | None = None,
        start_time: datetime = EPOCH,
        end_time: datetime | None = None,
        title: str = "Repaint the stairwell",
    ) -> Proposal:
        proposal = Proposal(
            title=title,
            description="",
            created_by=admin.id,
            building_id=building_id,
            start_time=start_time,
            end_time=end_time or start_time + timedelta(days=1),
            voting_method=voting_method,
            eligible_roles=eligible_roles or [RoleName.HOMEOWNER.value],
            tallied=False,
        )
        db_session.add(proposal)
        db_session.commit()
        return proposal

    return _make_proposal


@pytest.fixture()
def client(db_session: Session, clock: Clock) -> Iterator[TestClient]:
    def override_get_db() -> Iterator[Session]:
        try:
            yield db_session
        finally:
            db_session.rollback()

    app.dependency_overrides[get_db_session] = override_get_db
    app.dependency_overrides[get_now] = lambda: clock.now

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.pop(get_db_session, None)
    app.dependency_overrides.pop(get_now, None)


@pytest.fixture()
def login(client: TestClient) -> Callable[[User], dict[str, str]]:
    """Return a helper that signs ``user`` in and builds bearer headers."""

    def _login(user: User, password: str = DEFAULT_PASSWORD) -> dict[str, str]:
        response = client.post("/api/auth/login", json={"email": user.email, "password": password})
        assert response.status_code == 200, response.text
        return {"Authorization": f"Bearer {response.json()['access_token']}"}

    return _login
