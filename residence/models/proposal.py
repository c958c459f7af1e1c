"""Proposal ORM model and governance enumerations."""
from __future__ import annotations

import enum
import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Enum, ForeignKey, Index, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from residence.models.base import Base, TimestampMixin


class VotingMethod(str, enum.Enum):
    SIMPLE_MAJORITY = "SimpleMajority"
    PER_SEAT = "PerSeat"
    WEIGHTED_AREA = "WeightedArea"
    CONSENSUS = "Consensus"


class ProposalStatus(str, enum.Enum):
    """Lifecycle status. Only ``TALLIED`` is persisted; the rest derive from the clock."""

    SCHEDULED = "Scheduled"
    OPEN = "Open"
    CLOSED = "Closed"
    TALLIED = "Tallied"


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class Proposal(TimestampMixin, Base):
    """A governance question open for a bounded voting window."""

    __tablename__ = "proposals"
    __table_args__ = (
        Index("ix_proposals_building_id", "building_id"),
        Index("ix_proposals_start_end", "start_time", "end_time"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    created_by: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False
    )
    building_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("buildings.id", ondelete="SET NULL"), nullable=True
    )
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    voting_method: Mapped[VotingMethod] = mapped_column(
        Enum(VotingMethod, name="voting_method", values_callable=_enum_values), nullable=False
    )
    eligible_roles: Mapped[list[str]] = mapped_column(JSON, nullable=False)
    tallied: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    building = relationship("Building", back_populates="proposals")
    votes = relationship(
        "Vote", back_populates="proposal", cascade="all, delete-orphan", passive_deletes=True
    )
    result = relationship(
        "ProposalResult",
        back_populates="proposal",
        uselist=False,
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


__all__ = ["Proposal", "ProposalStatus", "VotingMethod"]
