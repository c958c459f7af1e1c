from __future__ import annotations

from cryptography.hazmat.primitives import serialization
from jose import jwt

from residence.core.config import get_settings


def _public_key() -> str:
    settings = get_settings()
    private_key = serialization.load_pem_private_key(settings.jwt_private_key.encode("utf-8"), password=None)
    return private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("utf-8")


def _login(client, email: str, password: str = "changeme"):
    return client.post("/api/auth/login", json={"email": email, "password": password})


def test_login_returns_signed_tokens(client, homeowners) -> None:
    owner = homeowners[0]

    response = _login(client, owner.email)

    assert response.status_code == 200
    body = response.json()
    settings = get_settings()
    access_payload = jwt.decode(body["access_token"], _public_key(), algorithms=[settings.jwt_algorithm])
    refresh_payload = jwt.decode(body["refresh_token"], _public_key(), algorithms=[settings.jwt_algorithm])
    assert access_payload["sub"] == owner.id
    assert access_payload["roles"] == ["Homeowner"]
    assert access_payload["type"] == "access"
    assert refresh_payload["type"] == "refresh"
    assert body["expires_in"] == settings.access_token_expire_minutes * 60


def test_login_rejects_bad_credentials(client, homeowners) -> None:
    assert _login(client, homeowners[0].email, password="wrong").status_code == 401
    assert _login(client, "nobody@example.com").status_code == 401
    assert _login(client, "not-an-email").status_code == 422


def test_me_describes_the_caller(client, login, make_user) -> None:
    user = make_user("both@example.com", "Homeowner", "Manager")

    response = client.get("/api/auth/me", headers=login(user))

    assert response.status_code == 200
    assert response.json() == {"id": user.id, "email": user.email, "roles": ["Homeowner", "Manager"]}


def test_refresh_rotates_and_blacklists_tokens(client, homeowners) -> None:
    refresh_token = _login(client, homeowners[0].email).json()["refresh_token"]

    first_response = client.post("/api/auth/refresh", json={"refresh_token": refresh_token})
    assert first_response.status_code == 200
    new_refresh_token = first_response.json()["refresh_token"]

    second_response = client.post("/api/auth/refresh", json={"refresh_token": refresh_token})
    assert second_response.status_code == 401

    third_response = client.post("/api/auth/refresh", json={"refresh_token": new_refresh_token})
    assert third_response.status_code == 200


def test_refresh_refuses_disabled_accounts(client, db_session, homeowners) -> None:
    owner = homeowners[0]
    refresh_token = _login(client, owner.email).json()["refresh_token"]
    owner.is_active = False
    db_session.commit()

    response = client.post("/api/auth/refresh", json={"refresh_token": refresh_token})

    assert response.status_code == 401


def test_access_token_cannot_refresh(client, homeowners) -> None:
    access_token = _login(client, homeowners[0].email).json()["access_token"]

    response = client.post("/api/auth/refresh", json={"refresh_token": access_token})

    assert response.status_code == 400


def test_protected_routes_require_a_token(client) -> None:
    assert client.get("/api/proposals").status_code in {401, 403}
    assert client.get("/api/auth/me", headers={"Authorization": "Bearer garbage"}).status_code == 401
