"""User and role ORM models."""
from __future__ import annotations

import enum
import uuid

from sqlalchemy import Boolean, Column, ForeignKey, Index, String, Table
from sqlalchemy.orm import Mapped, mapped_column, relationship

from residence.models.base import Base, TimestampMixin


class RoleName(str, enum.Enum):
    """Built-in platform roles."""

    ADMIN = "Admin"
    MANAGER = "Manager"
    HOMEOWNER = "Homeowner"
    RENTER = "Renter"


user_roles = Table(
    "user_roles",
    Base.metadata,
    Column("user_id", String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("role_id", String(36), ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    Index("ix_user_roles_role_id", "role_id"),
)


class Role(Base):
    """A named role that can be granted to users."""

    __tablename__ = "roles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)

    users = relationship("User", secondary=user_roles, back_populates="roles")


class User(TimestampMixin, Base):
    """A platform account able to authenticate and act on proposals."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    roles = relationship("Role", secondary=user_roles, back_populates="users", lazy="selectin")
    audit_logs = relationship("AuditLog", back_populates="actor")

    @property
    def role_names(self) -> frozenset[str]:
        return frozenset(role.name for role in self.roles)


__all__ = ["Role", "RoleName", "User", "user_roles"]
