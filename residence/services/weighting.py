"""Weighting policies that turn a frozen vote set into comparable weights.

Each policy is one closed variant registered in ``POLICIES``; the tally engine
dispatches on ``Proposal.voting_method`` through ``policy_for`` and never
branches on the method itself. Bump a policy's ``version`` whenever its rule
changes so stored results keep naming the rule that produced them.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from decimal import Decimal
from typing import ClassVar

from residence.models import Proposal, VoteChoice, VotingMethod
from residence.services.property_directory import OwnershipSnapshotProvider
from residence.services.vote_ledger import VoteRecord

ZERO = Decimal("0")
ONE = Decimal("1")


@dataclass(frozen=True, slots=True)
class Weights:
    yes_weight: Decimal
    no_weight: Decimal
    abstain_weight: Decimal
    total_weight: Decimal

    @classmethod
    def accumulate(cls, weighted_choices: Iterable[tuple[VoteChoice, Decimal]]) -> "Weights":
        totals = {choice: ZERO for choice in VoteChoice}
        for choice, weight in weighted_choices:
            totals[choice] += weight
        yes, no, abstain = totals[VoteChoice.YES], totals[VoteChoice.NO], totals[VoteChoice.ABSTAIN]
        return cls(yes_weight=yes, no_weight=no, abstain_weight=abstain, total_weight=yes + no + abstain)


class WeightingPolicy(ABC):
    """Contract shared by every weighting rule."""

    method: ClassVar[VotingMethod]
    version: ClassVar[int] = 1

    @property
    def version_tag(self) -> str:
        return f"{self.method.value}@v{self.version}"

    def weigh(
        self,
        votes: Sequence[VoteRecord],
        proposal: Proposal,
        ownership: OwnershipSnapshotProvider,
    ) -> Weights:
        return Weights.accumulate(
            (vote.choice, self.vote_weight(vote, proposal, ownership)) for vote in votes
        )

    @abstractmethod
    def vote_weight(
        self, vote: VoteRecord, proposal: Proposal, ownership: OwnershipSnapshotProvider
    ) -> Decimal:
        """Return the weight carried by a single vote."""

    def decide(self, weights: Weights) -> bool:
        # Abstentions are reported in total_weight but never counted for either side.
        return weights.yes_weight > weights.no_weight


class SimpleMajority(WeightingPolicy):
    method = VotingMethod.SIMPLE_MAJORITY

    def vote_weight(
        self, vote: VoteRecord, proposal: Proposal, ownership: OwnershipSnapshotProvider
    ) -> Decimal:
        return ONE


class PerSeat(WeightingPolicy):
    """One weight unit per owned apartment in scope; apartment-less voters weigh 1."""

    method = VotingMethod.PER_SEAT

    def vote_weight(
        self, vote: VoteRecord, proposal: Proposal, ownership: OwnershipSnapshotProvider
    ) -> Decimal:
        apartments = ownership.apartments_owned_by(vote.user_id, proposal.building_id)
        seats = len({apartment.apartment_id for apartment in apartments})
        return Decimal(seats) if seats else ONE


class WeightedArea(WeightingPolicy):
    """Weight is the floor area owned in scope; non-owners weigh 0."""

    method = VotingMethod.WEIGHTED_AREA

    def vote_weight(
        self, vote: VoteRecord, proposal: Proposal, ownership: OwnershipSnapshotProvider
    ) -> Decimal:
        apartments = ownership.apartments_owned_by(vote.user_id, proposal.building_id)
        return sum((apartment.size_sq_m for apartment in apartments), ZERO)


class Consensus(WeightingPolicy):
    method = VotingMethod.CONSENSUS

    def vote_weight(
        self, vote: VoteRecord, proposal: Proposal, ownership: OwnershipSnapshotProvider
    ) -> Decimal:
        return ONE

    def decide(self, weights: Weights) -> bool:
        if weights.no_weight > ZERO:
            return False
        return weights.yes_weight > ZERO


POLICIES: dict[VotingMethod, WeightingPolicy] = {
    policy.method: policy for policy in (SimpleMajority(), PerSeat(), WeightedArea(), Consensus())
}


def policy_for(method: VotingMethod | str) -> WeightingPolicy:
    """Return the registered policy for ``method``."""

    return POLICIES[VotingMethod(method)]


__all__ = [
    "Consensus",
    "POLICIES",
    "PerSeat",
    "SimpleMajority",
    "WeightedArea",
    "Weights",
    "WeightingPolicy",
    "policy_for",
]
