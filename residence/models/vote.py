"""Vote ORM model."""
from __future__ import annotations

import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, Enum, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from residence.models.base import Base


class VoteChoice(str, enum.Enum):
    YES = "Yes"
    NO = "No"
    ABSTAIN = "Abstain"


class Vote(Base):
    """The current vote of one user on one proposal."""

    __tablename__ = "votes"
    __table_args__ = (
        UniqueConstraint("proposal_id", "user_id", name="uq_votes_proposal_user"),
        Index("ix_votes_proposal_id", "proposal_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    proposal_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("proposals.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False
    )
    choice: Mapped[VoteChoice] = mapped_column(
        Enum(VoteChoice, name="vote_choice", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    cast_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    proposal = relationship("Proposal", back_populates="votes")


__all__ = ["Vote", "VoteChoice"]
