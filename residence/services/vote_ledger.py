"""Vote storage: one current vote per (proposal, user), overwritten in place."""
from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.dialects import mysql, postgresql, sqlite
from sqlalchemy.orm import Session
from sqlalchemy.sql.dml import Insert

from residence.models import Proposal, ProposalStatus, Vote, VoteChoice
from residence.obs import VOTES_CAST_COUNTER, traced
from residence.services.audit_trail import record_event
from residence.services.eligibility import is_eligible
from residence.services.errors import (
    InvalidChoiceError,
    NotEligibleError,
    NotFoundError,
    ProposalNotOpenError,
    UnauthorizedError,
)
from residence.services.identity import Principal
from residence.services.property_directory import PropertyDirectory
from residence.services.proposal_status import as_utc, current_status

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class VoteRecord:
    proposal_id: str
    user_id: str
    choice: VoteChoice
    cast_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, vote: Vote) -> "VoteRecord":
        return cls(
            proposal_id=vote.proposal_id,
            user_id=vote.user_id,
            choice=VoteChoice(vote.choice),
            cast_at=as_utc(vote.cast_at),
            updated_at=as_utc(vote.updated_at),
        )

    @property
    def changed(self) -> bool:
        return self.updated_at != self.cast_at


@dataclass(frozen=True, slots=True)
class VoteCounts:
    """Raw per-choice counts, independent of the proposal's weighting method."""

    yes_count: int = 0
    no_count: int = 0
    abstain_count: int = 0

    @property
    def total_votes(self) -> int:
        return self.yes_count + self.no_count + self.abstain_count


@contextmanager
def _atomic(session: Session) -> Iterator[None]:
    """Commit the enclosed writes together or roll all of them back."""

    try:
        yield
        session.commit()
    except Exception:
        session.rollback()
        raise


def parse_choice(value: VoteChoice | str) -> VoteChoice:
    try:
        return VoteChoice(value)
    except ValueError as exc:
        allowed = ", ".join(choice.value for choice in VoteChoice)
        raise InvalidChoiceError(f"Invalid choice '{value}'. Expected one of: {allowed}") from exc


def _upsert_statement(session: Session, values: dict[str, object]) -> Insert:
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        statement = postgresql.insert(Vote).values(**values)
        return statement.on_conflict_do_update(
            constraint="uq_votes_proposal_user",
            set_={"choice": statement.excluded.choice, "updated_at": statement.excluded.updated_at},
        )
    if dialect == "sqlite":
        statement = sqlite.insert(Vote).values(**values)
        return statement.on_conflict_do_update(
            index_elements=[Vote.proposal_id, Vote.user_id],
            set_={"choice": statement.excluded.choice, "updated_at": statement.excluded.updated_at},
        )
    if dialect in {"mysql", "mariadb"}:
        statement = mysql.insert(Vote).values(**values)
        return statement.on_duplicate_key_update(
            choice=statement.inserted.choice, updated_at=statement.inserted.updated_at
        )
    raise RuntimeError(f"Vote upsert is not supported on dialect '{dialect}'")


def _load_proposal(session: Session, proposal_id: str) -> Proposal:
    proposal = session.get(Proposal, proposal_id)
    if proposal is None:
        raise NotFoundError(f"Proposal '{proposal_id}' was not found")
    return proposal


def _claim_untallied(session: Session, proposal_id: str) -> None:
    """Lock the proposal row for this transaction; refuse once it has been tallied.

    The tally flips ``tallied`` on the same row, so a cast and a tally on one
    proposal serialize and a vote never lands after the result is frozen.
    """

    claimed = session.execute(
        update(Proposal)
        .where(Proposal.id == proposal_id, Proposal.tallied.is_(False))
        .values(tallied=False, updated_at=Proposal.updated_at)
        .execution_options(synchronize_session=False)
    )
    if claimed.rowcount != 1:
        raise ProposalNotOpenError(
            f"Voting is not open for proposal '{proposal_id}' ({ProposalStatus.TALLIED.value})"
        )


@traced("governance.cast_vote")
def cast_vote(
    session: Session,
    *,
    proposal_id: str,
    voter: Principal | None,
    choice: VoteChoice | str,
    now: datetime,
    directory: PropertyDirectory | None = None,
) -> VoteRecord:
    """Record ``voter``'s choice, replacing any earlier vote on the same proposal.

    The write is a single upsert against the (proposal_id, user_id) unique
    constraint, so concurrent casts by the same user resolve last-writer-wins
    without duplicate rows.
    """

    if voter is None:
        raise UnauthorizedError("Voting requires an authenticated user")
    proposal = _load_proposal(session, proposal_id)
    directory = directory or PropertyDirectory(session)

    status = current_status(proposal, now)
    if status is not ProposalStatus.OPEN:
        raise ProposalNotOpenError(f"Voting is not open for proposal '{proposal_id}' ({status.value})")
    if not is_eligible(voter, proposal, directory):
        raise NotEligibleError(f"User '{voter.id}' is not eligible to vote on proposal '{proposal_id}'")
    parsed_choice = parse_choice(choice)

    timestamp = as_utc(now)
    with _atomic(session):
        _claim_untallied(session, proposal.id)
        session.execute(
            _upsert_statement(
                session,
                {
                    "proposal_id": proposal.id,
                    "user_id": voter.id,
                    "choice": parsed_choice,
                    "cast_at": timestamp,
                    "updated_at": timestamp,
                },
            )
        )
        vote = session.scalars(
            select(Vote)
            .where(Vote.proposal_id == proposal.id, Vote.user_id == voter.id)
            .execution_options(populate_existing=True)
        ).one()
        record = VoteRecord.from_model(vote)
        record_event(
            session,
            actor_id=voter.id,
            action="vote.changed" if record.changed else "vote.cast",
            resource_type="proposal",
            resource_id=proposal.id,
            payload={"choice": record.choice.value},
        )

    VOTES_CAST_COUNTER.labels(change=str(record.changed).lower()).inc()
    LOGGER.info(
        "vote recorded",
        extra={"proposal_id": proposal.id, "user_id": voter.id, "changed": record.changed},
    )
    return record


def votes_for(session: Session, proposal_id: str) -> list[VoteRecord]:
    """Return every current vote on ``proposal_id`` in casting order."""

    statement = (
        select(Vote)
        .where(Vote.proposal_id == proposal_id)
        .order_by(Vote.cast_at, Vote.user_id)
        .execution_options(populate_existing=True)
    )
    return [VoteRecord.from_model(vote) for vote in session.scalars(statement).all()]


def vote_counts(session: Session, proposal_id: str) -> VoteCounts:
    statement = (
        select(Vote.choice, func.count(Vote.id))
        .where(Vote.proposal_id == proposal_id)
        .group_by(Vote.choice)
    )
    counts = {VoteChoice(choice): int(total) for choice, total in session.execute(statement).all()}
    return VoteCounts(
        yes_count=counts.get(VoteChoice.YES, 0),
        no_count=counts.get(VoteChoice.NO, 0),
        abstain_count=counts.get(VoteChoice.ABSTAIN, 0),
    )


def vote_of(session: Session, proposal_id: str, user_id: str) -> VoteChoice | None:
    choice = session.scalar(
        select(Vote.choice).where(Vote.proposal_id == proposal_id, Vote.user_id == user_id)
    )
    return VoteChoice(choice) if choice is not None else None


__all__ = [
    "VoteCounts",
    "VoteRecord",
    "cast_vote",
    "parse_choice",
    "vote_counts",
    "vote_of",
    "votes_for",
]
