"""Data retention for the governance audit trail and tallied proposals."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete, or_, select
from sqlalchemy.orm import Session

from residence.core.config import Settings, get_settings
from residence.models import AuditLog, Proposal, ProposalResult, Vote
from residence.services.proposal_status import as_utc


@dataclass(slots=True)
class DataRetentionReport:
    """Summary of a retention cycle."""

    audit_logs_deleted: int
    proposals_deleted: int
    votes_deleted: int

    def total_deleted(self) -> int:
        return self.audit_logs_deleted + self.proposals_deleted + self.votes_deleted


class DataRetentionService:
    """Purges records that have outlived their configured retention window.

    Only Tallied proposals are eligible; their votes and result go with them.
    Proposals still awaiting a tally are kept regardless of age, and so are
    the audit rows of any proposal that is still stored.
    """

    def __init__(self, session: Session, *, settings: Settings | None = None) -> None:
        self._session = session
        self._settings = settings or get_settings()

    def purge_expired_records(self, *, now: datetime | None = None) -> DataRetentionReport:
        current_time = as_utc(now) if now is not None else datetime.now(timezone.utc)
        audit_cutoff = current_time - timedelta(days=self._settings.audit_log_retention_days)
        proposal_cutoff = current_time - timedelta(days=self._settings.proposal_retention_days)

        expired_ids = list(
            self._session.scalars(
                select(Proposal.id).where(
                    Proposal.tallied.is_(True), Proposal.end_time < proposal_cutoff
                )
            ).all()
        )

        deleted_votes = 0
        deleted_proposals = 0
        if expired_ids:
            vote_result = self._session.execute(
                delete(Vote).where(Vote.proposal_id.in_(expired_ids))
            )
            self._session.execute(
                delete(ProposalResult).where(ProposalResult.proposal_id.in_(expired_ids))
            )
            proposal_result = self._session.execute(
                delete(Proposal).where(Proposal.id.in_(expired_ids))
            )
            deleted_votes = int(vote_result.rowcount or 0)
            deleted_proposals = int(proposal_result.rowcount or 0)

        # Rows describing a proposal that is still stored outlive the audit window.
        audit_result = self._session.execute(
            delete(AuditLog).where(
                AuditLog.created_at < audit_cutoff,
                or_(
                    AuditLog.resource_type != "proposal",
                    AuditLog.resource_id.is_(None),
                    AuditLog.resource_id.not_in(select(Proposal.id)),
                ),
            ).execution_options(synchronize_session=False)
        )

        return DataRetentionReport(
            audit_logs_deleted=int(audit_result.rowcount or 0),
            proposals_deleted=deleted_proposals,
            votes_deleted=deleted_votes,
        )


__all__ = ["DataRetentionReport", "DataRetentionService"]
