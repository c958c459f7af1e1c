"""Authentication endpoints issuing JWTs and the identity dependencies built on them."""
from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from threading import Lock
from typing import Any, Literal
from uuid import uuid4

import bcrypt
from cryptography.hazmat.primitives import serialization
from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt  # type: ignore[import-untyped]
from pydantic import BaseModel, ValidationError
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from residence.api.deps import get_db_session
from residence.core.config import Settings, get_settings
from residence.models import User

router = APIRouter()
security_scheme = HTTPBearer(auto_error=True)
optional_security_scheme = HTTPBearer(auto_error=False)


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int


class LoginRequest(BaseModel):
    email: str
    password: str


class RefreshRequest(BaseModel):
    refresh_token: str


class TokenPayload(BaseModel):
    sub: str
    email: str
    roles: list[str]
    type: Literal["access", "refresh"]
    iat: datetime
    exp: datetime
    jti: str


class IdentityResponse(BaseModel):
    id: str
    email: str
    roles: list[str]


@dataclass(frozen=True)
class AuthenticatedUser:
    id: str
    email: str
    roles: frozenset[str]
    token_id: str


class RefreshTokenStore:
    """In-memory store tracking active and blacklisted refresh tokens."""

    def __init__(self) -> None:
        self._active: dict[str, str] = {}
        self._blacklist: set[str] = set()
        self._lock = Lock()

    def mark_active(self, subject: str, token_id: str) -> None:
        with self._lock:
            self._active[subject] = token_id

    def is_active(self, subject: str, token_id: str) -> bool:
        with self._lock:
            if token_id in self._blacklist:
                return False
            return self._active.get(subject) == token_id

    def blacklist(self, token_id: str) -> None:
        with self._lock:
            self._blacklist.add(token_id)

    def reset(self) -> None:
        with self._lock:
            self._active.clear()
            self._blacklist.clear()


refresh_token_store = RefreshTokenStore()


def hash_password(raw_password: str) -> str:
    return bcrypt.hashpw(raw_password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def _verify_password(raw_password: str, hashed_password: str) -> bool:
    try:
        return bcrypt.checkpw(raw_password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError:  # pragma: no cover - invalid hash format
        return False


def _load_signing_key(settings: Settings) -> Any:
    try:
        return serialization.load_pem_private_key(
            settings.jwt_private_key.encode("utf-8"),
            password=None,
        )
    except ValueError as exc:  # pragma: no cover - configuration issue
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Invalid JWT signing key",
        ) from exc


def _verification_key(settings: Settings) -> str:
    public_key = _load_signing_key(settings).public_key()
    return public_key.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("utf-8")


def _create_token(
    *,
    user: User,
    settings: Settings,
    expires_delta: timedelta,
    token_type: Literal["access", "refresh"],
    signing_key: Any,
) -> tuple[str, str]:
    now = datetime.now(UTC)
    token_id = uuid4().hex
    payload = {
        "sub": user.id,
        "email": user.email,
        "roles": sorted(user.role_names),
        "iat": int(now.timestamp()),
        "exp": int((now + expires_delta).timestamp()),
        "type": token_type,
        "jti": token_id,
    }
    encoded = jwt.encode(payload, signing_key, algorithm=settings.jwt_algorithm)
    return encoded, token_id


def _issue_tokens(*, user: User, settings: Settings) -> tuple[TokenResponse, str]:
    signing_key = _load_signing_key(settings)
    access_token, _ = _create_token(
        user=user,
        settings=settings,
        expires_delta=timedelta(minutes=settings.access_token_expire_minutes),
        token_type="access",
        signing_key=signing_key,
    )
    refresh_token, refresh_id = _create_token(
        user=user,
        settings=settings,
        expires_delta=timedelta(days=settings.refresh_token_expire_days),
        token_type="refresh",
        signing_key=signing_key,
    )

    response = TokenResponse(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_in=settings.access_token_expire_minutes * 60,
    )
    return response, refresh_id


def _decode_token(*, token: str, settings: Settings) -> TokenPayload:
    try:
        payload = jwt.decode(token, _verification_key(settings), algorithms=[settings.jwt_algorithm])
    except JWTError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from exc
    try:
        return TokenPayload(**payload)
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from exc


def _authenticated_user(request: Request, token: str) -> AuthenticatedUser:
    payload = _decode_token(token=token, settings=get_settings())
    if payload.type != "access":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token type")
    request.state.actor_id = payload.sub
    return AuthenticatedUser(
        id=payload.sub,
        email=payload.email,
        roles=frozenset(payload.roles),
        token_id=payload.jti,
    )


def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(security_scheme),
) -> AuthenticatedUser:
    return _authenticated_user(request, credentials.credentials)


def get_optional_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(optional_security_scheme),
) -> AuthenticatedUser | None:
    """Resolve the caller when a bearer token is present, else ``None``."""

    if credentials is None:
        return None
    return _authenticated_user(request, credentials.credentials)


def require_role(*roles: str) -> Callable[..., AuthenticatedUser]:
    allowed_roles: set[str] = set(roles)

    def dependency(user: AuthenticatedUser = Depends(get_current_user)) -> AuthenticatedUser:
        if allowed_roles.isdisjoint(user.roles):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return user

    return dependency


def _active_user(session: Session, *, email: str | None = None, user_id: str | None = None) -> User | None:
    if user_id is not None:
        user = session.get(User, user_id)
    else:
        user = session.scalar(select(User).where(func.lower(User.email) == (email or "").lower()))
    if user is None or not user.is_active:
        return None
    return user


@router.post("/login", response_model=TokenResponse, summary="Issue JWT access tokens")
def login(request: LoginRequest, session: Session = Depends(get_db_session)) -> TokenResponse:
    settings = get_settings()
    if "@" not in request.email:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_CONTENT,
            detail="Invalid email address",
        )
    user = _active_user(session, email=request.email)
    if user is None or not _verify_password(request.password, user.hashed_password):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    response, refresh_id = _issue_tokens(user=user, settings=settings)
    refresh_token_store.mark_active(user.id, refresh_id)
    return response


@router.post("/refresh", response_model=TokenResponse, summary="Rotate JWT refresh tokens")
def refresh_token(request: RefreshRequest, session: Session = Depends(get_db_session)) -> TokenResponse:
    settings = get_settings()
    payload = _decode_token(token=request.refresh_token, settings=settings)
    if payload.type != "refresh":
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid token type")
    if not refresh_token_store.is_active(payload.sub, payload.jti):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Refresh token revoked")

    user = _active_user(session, user_id=payload.sub)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Account disabled")

    refresh_token_store.blacklist(payload.jti)
    # Roles are re-read so that grants and revocations apply from the next token on.
    response, refresh_id = _issue_tokens(user=user, settings=settings)
    refresh_token_store.mark_active(user.id, refresh_id)
    return response


@router.get("/me", response_model=IdentityResponse, summary="Describe the calling identity")
def me(user: AuthenticatedUser = Depends(get_current_user)) -> IdentityResponse:
    return IdentityResponse(id=user.id, email=user.email, roles=sorted(user.roles))


__all__ = [
    "AuthenticatedUser",
    "get_current_user",
    "get_optional_user",
    "hash_password",
    "refresh_token_store",
    "require_role",
    "router",
]
