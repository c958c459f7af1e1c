"""Governance audit trail writer."""
from __future__ import annotations

from typing import Any

from sqlalchemy.orm import Session

from residence.models import AuditLog


def record_event(
    session: Session,
    *,
    actor_id: str | None,
    action: str,
    resource_type: str,
    resource_id: str | None,
    payload: dict[str, Any] | None = None,
) -> AuditLog:
    """Stage an audit row in the caller's transaction; it commits or rolls back with it."""

    entry = AuditLog(
        actor_id=actor_id,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        payload=payload,
    )
    session.add(entry)
    return entry


__all__ = ["record_event"]
