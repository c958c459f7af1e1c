"""Building, apartment and occupancy ORM models."""
from __future__ import annotations

import uuid
from decimal import Decimal

from sqlalchemy import Boolean, ForeignKey, Index, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from residence.models.base import Base, TimestampMixin


class Building(TimestampMixin, Base):
    """A residential building; proposals may be scoped to one."""

    __tablename__ = "buildings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    address: Mapped[str] = mapped_column(String(255), nullable=False)
    construction_year: Mapped[int | None] = mapped_column(Integer)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    apartments = relationship("Apartment", back_populates="building", cascade="all, delete-orphan")
    managers = relationship("BuildingManager", back_populates="building", cascade="all, delete-orphan")
    proposals = relationship("Proposal", back_populates="building")


class Apartment(TimestampMixin, Base):
    """A unit within a building. One apartment is one seat."""

    __tablename__ = "apartments"
    __table_args__ = (
        UniqueConstraint("building_id", "number", name="uq_apartments_building_number"),
        Index("ix_apartments_building_id", "building_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    building_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("buildings.id", ondelete="CASCADE"), nullable=False
    )
    number: Mapped[str] = mapped_column(String(64), nullable=False)
    size_sq_m: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    building = relationship("Building", back_populates="apartments")
    owners = relationship("ApartmentOwner", back_populates="apartment", cascade="all, delete-orphan")
    renters = relationship("ApartmentRenter", back_populates="apartment", cascade="all, delete-orphan")


class ApartmentOwner(Base):
    __tablename__ = "apartment_owners"
    __table_args__ = (Index("ix_apartment_owners_user_id", "user_id"),)

    apartment_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("apartments.id", ondelete="CASCADE"), primary_key=True
    )
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )

    apartment = relationship("Apartment", back_populates="owners")


class ApartmentRenter(TimestampMixin, Base):
    __tablename__ = "apartment_renters"
    __table_args__ = (Index("ix_apartment_renters_user_id", "user_id"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    apartment_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("apartments.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    apartment = relationship("Apartment", back_populates="renters")


class BuildingManager(TimestampMixin, Base):
    __tablename__ = "building_managers"
    __table_args__ = (Index("ix_building_managers_user_id", "user_id"),)

    building_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("buildings.id", ondelete="CASCADE"), primary_key=True
    )
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )

    building = relationship("Building", back_populates="managers")


__all__ = ["Apartment", "ApartmentOwner", "ApartmentRenter", "Building", "BuildingManager"]
