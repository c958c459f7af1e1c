"""Schemas for proposal, vote and tally endpoints."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from residence.models.proposal import ProposalStatus, VotingMethod
from residence.models.vote import VoteChoice


class ProposalCreate(BaseModel):
    """Payload for opening a new vote. Naive timestamps are read as UTC."""

    title: str = Field(..., examples=["Replace the roof membrane"])
    description: str = Field(default="")
    building_id: str | None = Field(
        default=None, description="Building scope; omit for a platform-wide proposal"
    )
    start_time: datetime
    end_time: datetime
    voting_method: str = Field(
        ...,
        examples=["SimpleMajority"],
        description="One of SimpleMajority, PerSeat, Consensus, WeightedArea",
    )
    eligible_roles: list[str] = Field(..., examples=[["Homeowner"]])


class ProposalRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    description: str
    created_by: str
    building_id: str | None
    start_time: datetime
    end_time: datetime
    voting_method: VotingMethod
    eligible_roles: list[str]
    status: ProposalStatus
    created_at: datetime | None = None


class ProposalResultRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    proposal_id: str
    passed: bool
    yes_weight: Decimal
    no_weight: Decimal
    abstain_weight: Decimal
    total_weight: Decimal
    tallied_at: datetime
    tallied_by: str
    method_applied_version: str


class ProposalDetailRead(ProposalRead):
    """Proposal with raw vote counts; counts never reflect the weighting method."""

    yes_count: int
    no_count: int
    abstain_count: int
    total_votes: int
    user_vote: VoteChoice | None
    user_eligible: bool
    result: ProposalResultRead | None


class VoteCast(BaseModel):
    choice: str = Field(..., examples=["Yes"], description="One of Yes, No, Abstain")


class VoteReceipt(BaseModel):
    success: bool = True
    proposal_id: str
    choice: VoteChoice
    cast_at: datetime
    updated_at: datetime


__all__ = [
    "ProposalCreate",
    "ProposalDetailRead",
    "ProposalRead",
    "ProposalResultRead",
    "VoteCast",
    "VoteReceipt",
]
