"""Asynchronous worker executing governance data retention policies."""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime

from residence.db.session import get_session
from residence.obs import DATA_RETENTION_AUDIT_COUNTER, DATA_RETENTION_PROPOSAL_COUNTER
from residence.services.data_retention import DataRetentionReport, DataRetentionService
from residence.workers.observability import configure_worker, worker_span

LOGGER = logging.getLogger(__name__)


async def run_once(service: DataRetentionService) -> DataRetentionReport:
    """Execute a single retention cycle."""

    with worker_span("data_retention.cycle"):
        report = service.purge_expired_records(now=datetime.now(tz=UTC))
        if report.audit_logs_deleted:
            DATA_RETENTION_AUDIT_COUNTER.inc(report.audit_logs_deleted)
        if report.proposals_deleted:
            DATA_RETENTION_PROPOSAL_COUNTER.inc(report.proposals_deleted)
        LOGGER.info(
            "data retention cycle complete",
            extra={
                "audit_logs_deleted": report.audit_logs_deleted,
                "proposals_deleted": report.proposals_deleted,
                "votes_deleted": report.votes_deleted,
            },
        )
    return report


async def run() -> None:
    """Continuously run data retention cycles at the configured cadence."""

    settings = configure_worker("data-retention-worker")
    interval = max(60, settings.data_retention_interval_seconds)
    LOGGER.info("starting data retention worker", extra={"interval_seconds": interval})
    while True:
        with get_session() as session:
            await run_once(DataRetentionService(session=session, settings=settings))
        await asyncio.sleep(interval)


def main() -> None:
    try:
        asyncio.run(run())
    except KeyboardInterrupt:  # pragma: no cover - manual shutdown
        LOGGER.info("data retention worker stopped")


if __name__ == "__main__":
    main()
