"""Governance endpoints: proposals, votes and tallies."""
from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from residence.api.deps import get_db_session, get_now
from residence.api.routes.auth import (
    AuthenticatedUser,
    get_current_user,
    get_optional_user,
    require_role,
)
from residence.models import Proposal, ProposalResult, ProposalStatus
from residence.schemas import (
    ProposalCreate,
    ProposalDetailRead,
    ProposalRead,
    ProposalResultRead,
    VoteCast,
    VoteReceipt,
)
from residence.services.errors import (
    ForbiddenError,
    GovernanceError,
    GovernanceValidationError,
    InvalidStateError,
    NotFoundError,
    UnauthorizedError,
)
from residence.services.proposal_status import as_utc, current_status
from residence.services.proposals import create_proposal, get_proposal, list_proposals
from residence.services.tally import TallyEngine
from residence.services.vote_ledger import cast_vote

router = APIRouter(prefix="/proposals")

_STATUS_CODES: tuple[tuple[type[GovernanceError], int], ...] = (
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (UnauthorizedError, status.HTTP_401_UNAUTHORIZED),
    (ForbiddenError, status.HTTP_403_FORBIDDEN),
    (InvalidStateError, status.HTTP_409_CONFLICT),
    (GovernanceValidationError, status.HTTP_422_UNPROCESSABLE_CONTENT),
)


def _http_error(exc: GovernanceError) -> HTTPException:
    status_code = next(
        (code for error_type, code in _STATUS_CODES if isinstance(exc, error_type)),
        status.HTTP_400_BAD_REQUEST,
    )
    headers = {"WWW-Authenticate": "Bearer"} if status_code == status.HTTP_401_UNAUTHORIZED else None
    return HTTPException(
        status_code=status_code,
        detail={"code": exc.code, "message": str(exc)},
        headers=headers,
    )


def _proposal_read(proposal: Proposal, proposal_status: ProposalStatus) -> ProposalRead:
    return ProposalRead(
        id=proposal.id,
        title=proposal.title,
        description=proposal.description,
        created_by=proposal.created_by,
        building_id=proposal.building_id,
        start_time=as_utc(proposal.start_time),
        end_time=as_utc(proposal.end_time),
        voting_method=proposal.voting_method,
        eligible_roles=list(proposal.eligible_roles),
        status=proposal_status,
        created_at=as_utc(proposal.created_at) if proposal.created_at else None,
    )


def _result_read(result: ProposalResult) -> ProposalResultRead:
    read = ProposalResultRead.model_validate(result)
    return read.model_copy(update={"tallied_at": as_utc(read.tallied_at)})


@router.get("", response_model=list[ProposalRead])
def list_visible_proposals(
    status_filter: ProposalStatus | None = Query(default=None, alias="status"),
    session: Session = Depends(get_db_session),
    user: AuthenticatedUser = Depends(get_current_user),
    now: datetime = Depends(get_now),
) -> list[ProposalRead]:
    try:
        summaries = list_proposals(session, viewer=user, now=now, status=status_filter)
    except GovernanceError as exc:
        raise _http_error(exc) from exc
    return [_proposal_read(summary.proposal, summary.status) for summary in summaries]


@router.post("", response_model=ProposalRead, status_code=status.HTTP_201_CREATED)
def create_new_proposal(
    payload: ProposalCreate,
    session: Session = Depends(get_db_session),
    user: AuthenticatedUser = Depends(require_role("Admin", "Manager")),
    now: datetime = Depends(get_now),
) -> ProposalRead:
    """Open a new proposal. Admin and Manager only."""

    try:
        proposal = create_proposal(
            session,
            actor=user,
            title=payload.title,
            description=payload.description,
            building_id=payload.building_id,
            start_time=payload.start_time,
            end_time=payload.end_time,
            voting_method=payload.voting_method,
            eligible_roles=payload.eligible_roles,
        )
    except GovernanceError as exc:
        raise _http_error(exc) from exc
    return _proposal_read(proposal, current_status(proposal, now))


@router.get("/{proposal_id}", response_model=ProposalDetailRead)
def read_proposal(
    proposal_id: str,
    session: Session = Depends(get_db_session),
    user: AuthenticatedUser = Depends(get_current_user),
    now: datetime = Depends(get_now),
) -> ProposalDetailRead:
    try:
        detail = get_proposal(session, proposal_id=proposal_id, viewer=user, now=now)
    except GovernanceError as exc:
        raise _http_error(exc) from exc

    return ProposalDetailRead(
        **_proposal_read(detail.proposal, detail.status).model_dump(),
        yes_count=detail.counts.yes_count,
        no_count=detail.counts.no_count,
        abstain_count=detail.counts.abstain_count,
        total_votes=detail.counts.total_votes,
        user_vote=detail.user_vote,
        user_eligible=detail.user_eligible,
        result=_result_read(detail.result) if detail.result is not None else None,
    )


@router.post("/{proposal_id}/vote", response_model=VoteReceipt)
def vote_on_proposal(
    proposal_id: str,
    payload: VoteCast,
    session: Session = Depends(get_db_session),
    user: AuthenticatedUser | None = Depends(get_optional_user),
    now: datetime = Depends(get_now),
) -> VoteReceipt:
    """Cast or change the caller's vote while the proposal is open."""

    try:
        record = cast_vote(
            session, proposal_id=proposal_id, voter=user, choice=payload.choice, now=now
        )
    except GovernanceError as exc:
        raise _http_error(exc) from exc
    return VoteReceipt(
        proposal_id=record.proposal_id,
        choice=record.choice,
        cast_at=record.cast_at,
        updated_at=record.updated_at,
    )


@router.post("/{proposal_id}/tally", response_model=ProposalResultRead)
def tally_proposal(
    proposal_id: str,
    session: Session = Depends(get_db_session),
    user: AuthenticatedUser | None = Depends(get_optional_user),
    now: datetime = Depends(get_now),
) -> ProposalResultRead:
    """Tally a closed proposal exactly once. Admin and Manager only."""

    try:
        result = TallyEngine(session).tally(proposal_id, user, now=now)
    except GovernanceError as exc:
        raise _http_error(exc) from exc
    return _result_read(result)


__all__ = [
    "create_new_proposal",
    "list_visible_proposals",
    "read_proposal",
    "router",
    "tally_proposal",
    "vote_on_proposal",
]
