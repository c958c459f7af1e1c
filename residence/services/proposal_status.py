"""Temporal state machine for proposals."""
from __future__ import annotations

from datetime import UTC, datetime

from residence.models import Proposal, ProposalStatus


def as_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime; naive values are taken to be UTC."""

    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def derive_status(
    *, start_time: datetime, end_time: datetime, tallied: bool, now: datetime
) -> ProposalStatus:
    if tallied:
        return ProposalStatus.TALLIED
    current = as_utc(now)
    if current < as_utc(start_time):
        return ProposalStatus.SCHEDULED
    if current < as_utc(end_time):
        return ProposalStatus.OPEN
    return ProposalStatus.CLOSED


def current_status(proposal: Proposal, now: datetime) -> ProposalStatus:
    """Return the status of ``proposal`` at ``now``.

    Callers must use this instead of caching a status: the Scheduled, Open
    and Closed states are never stored, only the sticky tallied flag is.
    """

    return derive_status(
        start_time=proposal.start_time,
        end_time=proposal.end_time,
        tallied=bool(proposal.tallied),
        now=now,
    )


__all__ = ["as_utc", "current_status", "derive_status"]
