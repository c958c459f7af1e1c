"""Tally engine: freezes the votes of a closed proposal into one immutable result."""
from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from residence.core.config import Settings, get_settings
from residence.models import Proposal, ProposalResult, ProposalStatus
from residence.obs import TALLIES_COUNTER, TALLY_REJECTIONS_COUNTER, span_from_traceparent
from residence.services.audit_trail import record_event
from residence.services.errors import (
    AlreadyTalliedError,
    ForbiddenError,
    GovernanceError,
    NotClosedYetError,
    NotFoundError,
    UnauthorizedError,
)
from residence.services.identity import Principal, is_privileged
from residence.services.property_directory import OwnershipSnapshotProvider, PropertyDirectory
from residence.services.proposal_status import as_utc, current_status
from residence.services.vote_ledger import VoteRecord, votes_for
from residence.services.weighting import Weights, WeightingPolicy, policy_for

LOGGER = logging.getLogger(__name__)


class TallyEngine:
    """Runs the one-time, privileged tally of a proposal."""

    def __init__(
        self,
        session: Session,
        *,
        ownership: OwnershipSnapshotProvider | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._session = session
        self._ownership = ownership or PropertyDirectory(session)
        self._settings = settings or get_settings()

    def tally(self, proposal_id: str, actor: Principal | None, *, now: datetime) -> ProposalResult:
        """Weigh the frozen vote set, persist the result and mark the proposal Tallied."""

        try:
            with span_from_traceparent("governance.tally", None, proposal_id=proposal_id):
                return self._tally(proposal_id, actor, now=now)
        except GovernanceError as exc:
            TALLY_REJECTIONS_COUNTER.labels(code=exc.code).inc()
            LOGGER.info(
                "tally rejected", extra={"proposal_id": proposal_id, "code": exc.code}
            )
            raise

    def _tally(self, proposal_id: str, actor: Principal | None, *, now: datetime) -> ProposalResult:
        if actor is None:
            raise UnauthorizedError("Tallying requires an authenticated user")
        if not is_privileged(actor):
            raise ForbiddenError("Only Admin or Manager users may tally proposals")

        proposal = self._session.get(Proposal, proposal_id)
        if proposal is None:
            raise NotFoundError(f"Proposal '{proposal_id}' was not found")

        status = current_status(proposal, now)
        if status is ProposalStatus.TALLIED or self._result_exists(proposal_id):
            raise AlreadyTalliedError(f"Proposal '{proposal_id}' has already been tallied")
        if status is not ProposalStatus.CLOSED:
            raise NotClosedYetError(
                f"Proposal '{proposal_id}' cannot be tallied while {status.value}"
            )

        votes = votes_for(self._session, proposal_id)
        policy = policy_for(proposal.voting_method)
        # Ownership is read now, not at cast time: current owners decide the weight.
        weights = policy.weigh(votes, proposal, self._ownership)

        result = self._persist_with_recheck(
            proposal, actor=actor, policy=policy, votes=votes, weights=weights, now=now
        )
        passed = result.passed

        TALLIES_COUNTER.labels(method=policy.method.value, passed=str(passed).lower()).inc()
        LOGGER.info(
            "proposal tallied",
            extra={
                "proposal_id": proposal_id,
                "method_applied_version": policy.version_tag,
                "passed": passed,
                "yes_weight": str(result.yes_weight),
                "no_weight": str(result.no_weight),
                "abstain_weight": str(result.abstain_weight),
            },
        )
        return result

    def _persist_with_recheck(
        self,
        proposal: Proposal,
        *,
        actor: Principal,
        policy: WeightingPolicy,
        votes: list[VoteRecord],
        weights: Weights,
        now: datetime,
    ) -> ProposalResult:
        proposal_id = proposal.id
        attempts = 0
        while True:
            try:
                return self._persist(
                    proposal, actor=actor, policy=policy, votes=votes, weights=weights, now=now
                )
            except IntegrityError as exc:
                if self._result_exists(proposal_id):
                    raise AlreadyTalliedError(
                        f"Proposal '{proposal_id}' was tallied by a concurrent request"
                    ) from exc
                if attempts >= self._settings.tally_conflict_retries:
                    raise
                attempts += 1
                LOGGER.warning(
                    "retrying tally after constraint violation",
                    extra={"proposal_id": proposal_id, "attempt": attempts},
                )

    def _persist(
        self,
        proposal: Proposal,
        *,
        actor: Principal,
        policy: WeightingPolicy,
        votes: list[VoteRecord],
        weights: Weights,
        now: datetime,
    ) -> ProposalResult:
        session = self._session
        proposal_id = proposal.id
        try:
            flipped = session.execute(
                update(Proposal)
                .where(Proposal.id == proposal_id, Proposal.tallied.is_(False))
                .values(tallied=True)
                .execution_options(synchronize_session=False)
            )
            if flipped.rowcount != 1:
                raise AlreadyTalliedError(f"Proposal '{proposal_id}' has already been tallied")

            # Casts serialize on the flipped row; any vote committed before it is counted.
            frozen = votes_for(session, proposal_id)
            if frozen != votes:
                LOGGER.info(
                    "vote set changed before tally; re-weighing",
                    extra={"proposal_id": proposal_id, "votes": len(frozen)},
                )
                weights = policy.weigh(frozen, proposal, self._ownership)
            passed = policy.decide(weights)

            result = ProposalResult(
                proposal_id=proposal_id,
                passed=passed,
                yes_weight=weights.yes_weight,
                no_weight=weights.no_weight,
                abstain_weight=weights.abstain_weight,
                total_weight=weights.total_weight,
                tallied_at=as_utc(now),
                tallied_by=actor.id,
                method_applied_version=policy.version_tag,
            )
            session.add(result)
            session.flush()
            record_event(
                session,
                actor_id=actor.id,
                action="proposal.tallied",
                resource_type="proposal",
                resource_id=proposal_id,
                payload={
                    "passed": passed,
                    "yes_weight": str(weights.yes_weight),
                    "no_weight": str(weights.no_weight),
                    "abstain_weight": str(weights.abstain_weight),
                    "total_weight": str(weights.total_weight),
                    "method_applied_version": policy.version_tag,
                },
            )
            session.commit()
        except Exception:
            session.rollback()
            raise

        session.refresh(result)
        return result

    def _result_exists(self, proposal_id: str) -> bool:
        return (
            self._session.scalar(
                select(ProposalResult.id).where(ProposalResult.proposal_id == proposal_id)
            )
            is not None
        )


def tally(
    session: Session,
    *,
    proposal_id: str,
    actor: Principal | None,
    now: datetime,
    ownership: OwnershipSnapshotProvider | None = None,
) -> ProposalResult:
    """Convenience wrapper around :class:`TallyEngine`."""

    return TallyEngine(session, ownership=ownership).tally(proposal_id, actor, now=now)


__all__ = ["TallyEngine", "tally"]
