from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone

import pytest

from residence.models import ProposalStatus
from residence.services.proposal_status import as_utc, derive_status

START = datetime(2026, 5, 1, 12, 0, tzinfo=UTC)
END = START + timedelta(days=2)


@pytest.mark.parametrize(
    ("now", "expected"),
    [
        (START - timedelta(seconds=1), ProposalStatus.SCHEDULED),
        (START, ProposalStatus.OPEN),
        (END - timedelta(seconds=1), ProposalStatus.OPEN),
        (END, ProposalStatus.CLOSED),
        (END + timedelta(days=30), ProposalStatus.CLOSED),
    ],
)
def test_status_follows_the_clock(now: datetime, expected: ProposalStatus) -> None:
    assert derive_status(start_time=START, end_time=END, tallied=False, now=now) is expected


@pytest.mark.parametrize("now", [START - timedelta(days=1), START, END + timedelta(days=1)])
def test_tallied_is_sticky(now: datetime) -> None:
    assert derive_status(start_time=START, end_time=END, tallied=True, now=now) is ProposalStatus.TALLIED


def test_naive_timestamps_are_read_as_utc() -> None:
    naive_start = START.replace(tzinfo=None)
    naive_end = END.replace(tzinfo=None)

    status = derive_status(start_time=naive_start, end_time=naive_end, tallied=False, now=START)

    assert status is ProposalStatus.OPEN
    assert as_utc(naive_start) == START


def test_offset_timestamps_compare_in_utc() -> None:
    plus_two = timezone(timedelta(hours=2))
    # 13:00 at +02:00 is 11:00 UTC, one hour before the window opens.
    now = datetime(2026, 5, 1, 13, 0, tzinfo=plus_two)

    assert derive_status(start_time=START, end_time=END, tallied=False, now=now) is ProposalStatus.SCHEDULED
    assert as_utc(now).tzinfo is UTC
