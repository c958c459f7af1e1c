"""Pydantic schemas package."""

from .proposal import (
    ProposalCreate,
    ProposalDetailRead,
    ProposalRead,
    ProposalResultRead,
    VoteCast,
    VoteReceipt,
)

__all__ = [
    "ProposalCreate",
    "ProposalDetailRead",
    "ProposalRead",
    "ProposalResultRead",
    "VoteCast",
    "VoteReceipt",
]
