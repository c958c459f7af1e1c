"""Immutable tally result ORM model."""
from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, ForeignKey, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from residence.models.base import Base


class ProposalResult(Base):
    """Outcome of a tally; written once and never updated."""

    __tablename__ = "proposal_results"
    __table_args__ = (UniqueConstraint("proposal_id", name="uq_proposal_results_proposal_id"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    proposal_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("proposals.id", ondelete="CASCADE"), nullable=False
    )
    passed: Mapped[bool] = mapped_column(Boolean, nullable=False)
    yes_weight: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    no_weight: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    abstain_weight: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    total_weight: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    tallied_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    tallied_by: Mapped[str] = mapped_column(String(36), nullable=False)
    method_applied_version: Mapped[str] = mapped_column(String(32), nullable=False)

    proposal = relationship("Proposal", back_populates="result")


__all__ = ["ProposalResult"]
