from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest
from prometheus_client import REGISTRY
from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from residence.models import (
    AuditLog,
    Proposal,
    ProposalResult,
    ProposalStatus,
    RoleName,
    VoteChoice,
    VotingMethod,
)
from residence.services.errors import (
    AlreadyTalliedError,
    ForbiddenError,
    NotClosedYetError,
    ProposalNotOpenError,
    UnauthorizedError,
)
from residence.services.property_directory import OwnedApartment, PropertyDirectory
from residence.services.proposal_status import current_status
from residence.services.tally import TallyEngine, tally
from residence.services.vote_ledger import cast_vote, votes_for


CLOSES_AT = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)


def _rejections(code: str) -> float:
    return REGISTRY.get_sample_value("governance_tally_rejections_total", {"code": code}) or 0.0


def _results(session: Session, proposal_id: str) -> int:
    return session.scalar(
        select(func.count(ProposalResult.id)).where(ProposalResult.proposal_id == proposal_id)
    )


def _vote_all(session: Session, proposal: Proposal, voters, choices, clock, as_principal) -> None:
    for voter, choice in zip(voters, choices):
        cast_vote(
            session,
            proposal_id=proposal.id,
            voter=as_principal(voter),
            choice=choice,
            now=clock.advance(minutes=10),
        )


@dataclass
class CallbackOwnership:
    """Delegates to the real directory after running ``before`` once."""

    directory: PropertyDirectory
    before: object

    def apartments_owned_by(self, user_id: str, building_id: str | None) -> list[OwnedApartment]:
        if self.before is not None:
            callback, self.before = self.before, None
            callback()
        return self.directory.apartments_owned_by(user_id, building_id)


class BrokenOwnership:
    def apartments_owned_by(self, user_id: str, building_id: str | None) -> list[OwnedApartment]:
        raise RuntimeError("property directory unavailable")


class CallbackDirectory(PropertyDirectory):
    """Runs ``before`` once while the voter's buildings are being resolved."""

    def __init__(self, session: Session, before) -> None:
        super().__init__(session)
        self._before = before

    def user_building_ids(self, principal):
        if self._before is not None:
            callback, self._before = self._before, None
            callback()
        return super().user_building_ids(principal)


def test_tally_freezes_result_and_marks_tallied(
    db_session: Session, make_proposal, homeowners, admin, clock, as_principal
) -> None:
    proposal = make_proposal()
    _vote_all(db_session, proposal, homeowners, ["Yes", "Yes", "No"], clock, as_principal)
    closed_at = clock.advance(days=2)

    result = TallyEngine(db_session).tally(proposal.id, as_principal(admin), now=closed_at)

    assert result.passed is True
    assert result.yes_weight == Decimal(2)
    assert result.no_weight == Decimal(1)
    assert result.abstain_weight == Decimal(0)
    assert result.total_weight == Decimal(3)
    assert result.tallied_by == admin.id
    assert result.method_applied_version == "SimpleMajority@v1"
    db_session.refresh(proposal)
    assert proposal.tallied is True
    assert current_status(proposal, closed_at) is ProposalStatus.TALLIED
    audit = db_session.scalars(select(AuditLog).where(AuditLog.action == "proposal.tallied")).one()
    assert audit.resource_id == proposal.id
    assert audit.payload["method_applied_version"] == "SimpleMajority@v1"


def test_tally_while_open_is_rejected(
    db_session: Session, make_proposal, homeowners, admin, clock, as_principal
) -> None:
    proposal = make_proposal()
    _vote_all(db_session, proposal, homeowners, ["Yes"], clock, as_principal)
    before = _rejections("not_closed_yet")

    with pytest.raises(NotClosedYetError):
        tally(db_session, proposal_id=proposal.id, actor=as_principal(admin), now=clock.now)

    assert _results(db_session, proposal.id) == 0
    assert _rejections("not_closed_yet") == before + 1


def test_only_privileged_users_may_tally(
    db_session: Session, make_proposal, homeowners, manager, clock, as_principal
) -> None:
    proposal = make_proposal()
    closed_at = clock.advance(days=2)

    with pytest.raises(UnauthorizedError):
        TallyEngine(db_session).tally(proposal.id, None, now=closed_at)
    with pytest.raises(ForbiddenError):
        TallyEngine(db_session).tally(proposal.id, as_principal(homeowners[0]), now=closed_at)
    assert _results(db_session, proposal.id) == 0

    result = TallyEngine(db_session).tally(proposal.id, as_principal(manager), now=closed_at)

    assert result.passed is False
    assert result.total_weight == Decimal(0)


def test_second_tally_is_rejected_and_result_unchanged(
    db_session: Session, make_proposal, homeowners, admin, manager, clock, as_principal
) -> None:
    proposal = make_proposal()
    _vote_all(db_session, proposal, homeowners, ["No", "No", "Yes"], clock, as_principal)
    closed_at = clock.advance(days=2)
    first = TallyEngine(db_session).tally(proposal.id, as_principal(admin), now=closed_at)

    with pytest.raises(AlreadyTalliedError):
        TallyEngine(db_session).tally(proposal.id, as_principal(manager), now=clock.advance(hours=1))

    assert _results(db_session, proposal.id) == 1
    stored = db_session.scalars(select(ProposalResult)).one()
    assert stored.id == first.id
    assert stored.tallied_by == admin.id
    assert stored.passed is False


def test_votes_are_refused_once_tallied(
    db_session: Session, make_proposal, homeowners, admin, clock, as_principal
) -> None:
    proposal = make_proposal(end_time=datetime(2026, 3, 1, 10, 0, tzinfo=UTC))
    TallyEngine(db_session).tally(proposal.id, as_principal(admin), now=clock.advance(hours=2))

    with pytest.raises(ProposalNotOpenError):
        cast_vote(
            db_session,
            proposal_id=proposal.id,
            voter=as_principal(homeowners[0]),
            choice="Yes",
            now=clock.now,
        )


def test_concurrent_flag_flip_loses_cleanly(
    db_session: Session, make_proposal, homeowners, admin, building, add_apartment, clock, as_principal
) -> None:
    add_apartment(building, "3C", owners=(homeowners[0],))
    proposal = make_proposal(voting_method=VotingMethod.PER_SEAT, building_id=building.id)
    _vote_all(db_session, proposal, homeowners[:1], ["Yes"], clock, as_principal)

    def competing_tally() -> None:
        db_session.execute(update(Proposal).where(Proposal.id == proposal.id).values(tallied=True))
        db_session.commit()

    engine = TallyEngine(
        db_session, ownership=CallbackOwnership(PropertyDirectory(db_session), competing_tally)
    )
    with pytest.raises(AlreadyTalliedError):
        engine.tally(proposal.id, as_principal(admin), now=clock.advance(days=2))

    assert _results(db_session, proposal.id) == 0


def test_concurrent_result_insert_is_detected(
    db_session: Session, make_proposal, homeowners, admin, building, add_apartment, clock, as_principal
) -> None:
    add_apartment(building, "4D", owners=(homeowners[0],))
    proposal = make_proposal(voting_method=VotingMethod.PER_SEAT, building_id=building.id)
    _vote_all(db_session, proposal, homeowners[:1], ["Yes"], clock, as_principal)
    closed_at = clock.advance(days=2)

    def competing_result() -> None:
        db_session.add(
            ProposalResult(
                proposal_id=proposal.id,
                passed=False,
                yes_weight=Decimal(0),
                no_weight=Decimal(0),
                abstain_weight=Decimal(0),
                total_weight=Decimal(0),
                tallied_at=closed_at,
                tallied_by="someone-else",
                method_applied_version="PerSeat@v1",
            )
        )
        db_session.commit()

    engine = TallyEngine(
        db_session, ownership=CallbackOwnership(PropertyDirectory(db_session), competing_result)
    )
    with pytest.raises(AlreadyTalliedError):
        engine.tally(proposal.id, as_principal(admin), now=closed_at)

    assert _results(db_session, proposal.id) == 1
    assert db_session.scalars(select(ProposalResult)).one().tallied_by == "someone-else"


def test_ownership_is_read_at_tally_time(
    db_session: Session, make_proposal, homeowners, admin, building, add_apartment, clock, as_principal
) -> None:
    owner = homeowners[0]
    add_apartment(building, "5A", size="50", owners=(owner,))
    proposal = make_proposal(voting_method=VotingMethod.PER_SEAT, building_id=building.id)
    _vote_all(db_session, proposal, [owner], ["Yes"], clock, as_principal)
    add_apartment(building, "5B", size="65", owners=(owner,))

    result = TallyEngine(db_session).tally(proposal.id, as_principal(admin), now=clock.advance(days=2))

    assert result.yes_weight == Decimal(2)
    assert result.method_applied_version == "PerSeat@v1"


def test_weighted_area_uses_building_floor_area(
    db_session: Session, make_proposal, homeowners, admin, building, add_apartment, clock, as_principal
) -> None:
    add_apartment(building, "6A", size="80.50", owners=(homeowners[0],))
    add_apartment(building, "6B", size="40.25", owners=(homeowners[1],))
    add_apartment(building, "6C", size="35.00", owners=(homeowners[2],))
    proposal = make_proposal(voting_method=VotingMethod.WEIGHTED_AREA, building_id=building.id)
    _vote_all(db_session, proposal, homeowners, ["Yes", "No", "No"], clock, as_principal)

    result = TallyEngine(db_session).tally(proposal.id, as_principal(admin), now=clock.advance(days=2))

    assert result.yes_weight == Decimal("80.50")
    assert result.no_weight == Decimal("75.25")
    assert result.passed is True


def test_ownership_failure_aborts_without_result(
    db_session: Session, make_proposal, homeowners, admin, clock, as_principal
) -> None:
    proposal = make_proposal(voting_method=VotingMethod.WEIGHTED_AREA)
    _vote_all(db_session, proposal, homeowners[:1], ["Yes"], clock, as_principal)
    closed_at = clock.advance(days=2)

    with pytest.raises(RuntimeError, match="unavailable"):
        TallyEngine(db_session, ownership=BrokenOwnership()).tally(
            proposal.id, as_principal(admin), now=closed_at
        )

    assert _results(db_session, proposal.id) == 0
    db_session.refresh(proposal)
    assert current_status(proposal, closed_at) is ProposalStatus.CLOSED


def test_consensus_blocked_by_single_objection(
    db_session: Session, make_proposal, homeowners, admin, clock, as_principal
) -> None:
    proposal = make_proposal(
        voting_method=VotingMethod.CONSENSUS, eligible_roles=[RoleName.HOMEOWNER.value]
    )
    _vote_all(db_session, proposal, homeowners, ["Yes", "Yes", "No"], clock, as_principal)

    result = TallyEngine(db_session).tally(proposal.id, as_principal(admin), now=clock.advance(days=2))

    assert result.passed is False
    assert result.method_applied_version == "Consensus@v1"


def test_vote_racing_a_tally_is_refused(
    db_session: Session, make_proposal, homeowners, admin, building, add_apartment, as_principal
) -> None:
    early, late = homeowners[0], homeowners[1]
    add_apartment(building, "8A", owners=(early,))
    add_apartment(building, "8B", owners=(late,))
    proposal = make_proposal(voting_method=VotingMethod.PER_SEAT, building_id=building.id)
    cast_vote(
        db_session,
        proposal_id=proposal.id,
        voter=as_principal(early),
        choice="Yes",
        now=CLOSES_AT - timedelta(hours=1),
    )

    def competing_tally() -> None:
        TallyEngine(db_session).tally(
            proposal.id, as_principal(admin), now=CLOSES_AT + timedelta(milliseconds=1)
        )

    # The cast passed its window check on its own clock; the tally commits before its write.
    with pytest.raises(ProposalNotOpenError):
        cast_vote(
            db_session,
            proposal_id=proposal.id,
            voter=as_principal(late),
            choice="No",
            now=CLOSES_AT - timedelta(milliseconds=1),
            directory=CallbackDirectory(db_session, competing_tally),
        )

    assert [vote.choice for vote in votes_for(db_session, proposal.id)] == [VoteChoice.YES]
    stored = db_session.scalars(select(ProposalResult)).one()
    assert stored.yes_weight == Decimal(1)
    assert stored.no_weight == Decimal(0)
    assert stored.passed is True


def test_vote_committed_before_the_flag_flip_is_counted(
    db_session: Session, make_proposal, homeowners, admin, building, add_apartment, as_principal
) -> None:
    early, late = homeowners[0], homeowners[1]
    add_apartment(building, "9A", owners=(early,))
    add_apartment(building, "9B", owners=(late,))
    proposal = make_proposal(voting_method=VotingMethod.PER_SEAT, building_id=building.id)
    cast_vote(
        db_session,
        proposal_id=proposal.id,
        voter=as_principal(early),
        choice="Yes",
        now=CLOSES_AT - timedelta(hours=1),
    )

    def late_vote() -> None:
        cast_vote(
            db_session,
            proposal_id=proposal.id,
            voter=as_principal(late),
            choice="No",
            now=CLOSES_AT - timedelta(milliseconds=1),
        )

    engine = TallyEngine(
        db_session, ownership=CallbackOwnership(PropertyDirectory(db_session), late_vote)
    )
    result = engine.tally(proposal.id, as_principal(admin), now=CLOSES_AT + timedelta(milliseconds=1))

    choices = [vote.choice for vote in votes_for(db_session, proposal.id)]
    assert choices == [VoteChoice.YES, VoteChoice.NO]
    assert result.yes_weight == Decimal(1)
    assert result.no_weight == Decimal(1)
    assert result.total_weight == Decimal(2)
    assert result.passed is False
