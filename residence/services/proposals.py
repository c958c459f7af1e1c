"""Proposal creation and read models."""
from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from residence.models import Proposal, ProposalResult, ProposalStatus, VoteChoice, VotingMethod
from residence.services.audit_trail import record_event
from residence.services.eligibility import is_eligible_with_scope
from residence.services.errors import (
    ForbiddenError,
    GovernanceValidationError,
    NotFoundError,
    UnauthorizedError,
)
from residence.services.identity import Principal, is_privileged
from residence.services.property_directory import (
    ALL_BUILDINGS,
    BuildingScope,
    PropertyDirectory,
    in_building_scope,
)
from residence.services.proposal_status import as_utc, current_status
from residence.services.vote_ledger import VoteCounts, vote_counts, vote_of

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ProposalSummary:
    proposal: Proposal
    status: ProposalStatus


@dataclass(frozen=True, slots=True)
class ProposalDetail:
    proposal: Proposal
    status: ProposalStatus
    counts: VoteCounts
    user_vote: VoteChoice | None
    user_eligible: bool
    result: ProposalResult | None


MAX_TITLE_LENGTH = 255


def _require_principal(principal: Principal | None) -> Principal:
    if principal is None:
        raise UnauthorizedError("Authentication is required")
    return principal


def normalize_roles(roles: Iterable[str]) -> list[str]:
    """Trim and de-duplicate role names, keeping their first-seen order."""

    normalized: list[str] = []
    for role in roles:
        name = role.strip()
        if name and name not in normalized:
            normalized.append(name)
    return normalized


def _parse_method(value: VotingMethod | str) -> VotingMethod:
    try:
        return VotingMethod(value)
    except ValueError as exc:
        allowed = ", ".join(method.value for method in VotingMethod)
        raise GovernanceValidationError(
            f"Unknown voting method '{value}'. Expected one of: {allowed}"
        ) from exc


def create_proposal(
    session: Session,
    *,
    actor: Principal | None,
    title: str,
    description: str,
    start_time: datetime,
    end_time: datetime,
    voting_method: VotingMethod | str,
    eligible_roles: Iterable[str],
    building_id: str | None = None,
    directory: PropertyDirectory | None = None,
) -> Proposal:
    """Create a proposal on behalf of an Admin or Manager."""

    actor = _require_principal(actor)
    if not is_privileged(actor):
        raise ForbiddenError("Only Admin or Manager users may create proposals")

    clean_title = title.strip()
    if not clean_title:
        raise GovernanceValidationError("Proposal title must not be empty")
    if len(clean_title) > MAX_TITLE_LENGTH:
        raise GovernanceValidationError(f"Proposal title must be at most {MAX_TITLE_LENGTH} characters")
    start, end = as_utc(start_time), as_utc(end_time)
    if end <= start:
        raise GovernanceValidationError("end_time must be later than start_time")
    roles = normalize_roles(eligible_roles)
    if not roles:
        raise GovernanceValidationError("eligible_roles must contain at least one role")
    method = _parse_method(voting_method)

    if building_id is not None:
        directory = directory or PropertyDirectory(session)
        if not directory.building_exists(building_id):
            raise NotFoundError(f"Building '{building_id}' was not found")
        if not in_building_scope(directory.user_building_ids(actor), building_id):
            raise ForbiddenError(f"User '{actor.id}' does not manage building '{building_id}'")

    proposal = Proposal(
        title=clean_title,
        description=description,
        created_by=actor.id,
        building_id=building_id,
        start_time=start,
        end_time=end,
        voting_method=method,
        eligible_roles=roles,
        tallied=False,
    )
    try:
        session.add(proposal)
        session.flush()
        record_event(
            session,
            actor_id=actor.id,
            action="proposal.created",
            resource_type="proposal",
            resource_id=proposal.id,
            payload={
                "voting_method": method.value,
                "eligible_roles": roles,
                "building_id": building_id,
            },
        )
        session.commit()
    except Exception:
        session.rollback()
        raise

    session.refresh(proposal)
    LOGGER.info(
        "proposal created",
        extra={"proposal_id": proposal.id, "voting_method": method.value, "building_id": building_id},
    )
    return proposal


def _visible(scope: BuildingScope, proposal: Proposal) -> bool:
    return in_building_scope(scope, proposal.building_id)


def list_proposals(
    session: Session,
    *,
    viewer: Principal | None,
    now: datetime,
    status: ProposalStatus | None = None,
    directory: PropertyDirectory | None = None,
) -> list[ProposalSummary]:
    """Return the proposals visible to ``viewer``, latest voting window first."""

    viewer = _require_principal(viewer)
    directory = directory or PropertyDirectory(session)
    scope = directory.user_building_ids(viewer)

    statement = select(Proposal).order_by(Proposal.start_time.desc(), Proposal.title)
    if scope is not ALL_BUILDINGS:
        statement = statement.where(
            or_(Proposal.building_id.is_(None), Proposal.building_id.in_(sorted(scope)))
        )

    summaries = [
        ProposalSummary(proposal=proposal, status=current_status(proposal, now))
        for proposal in session.scalars(statement).all()
    ]
    if status is not None:
        summaries = [summary for summary in summaries if summary.status is status]
    return summaries


def get_proposal(
    session: Session,
    *,
    proposal_id: str,
    viewer: Principal | None,
    now: datetime,
    directory: PropertyDirectory | None = None,
) -> ProposalDetail:
    """Return one proposal with live raw counts, the viewer's vote and any result."""

    viewer = _require_principal(viewer)
    directory = directory or PropertyDirectory(session)

    proposal = session.get(Proposal, proposal_id)
    scope = directory.user_building_ids(viewer)
    if proposal is None or not _visible(scope, proposal):
        raise NotFoundError(f"Proposal '{proposal_id}' was not found")

    result = session.scalar(select(ProposalResult).where(ProposalResult.proposal_id == proposal.id))
    return ProposalDetail(
        proposal=proposal,
        status=current_status(proposal, now),
        counts=vote_counts(session, proposal.id),
        user_vote=vote_of(session, proposal.id, viewer.id),
        user_eligible=is_eligible_with_scope(viewer, proposal, scope),
        result=result,
    )


__all__ = [
    "ProposalDetail",
    "ProposalSummary",
    "create_proposal",
    "get_proposal",
    "list_proposals",
    "normalize_roles",
]
