"""Common dependencies for API routes."""
from __future__ import annotations

from collections.abc import Iterator
from datetime import UTC, datetime

from sqlalchemy.orm import Session

from residence.db.session import SessionLocal


def get_db_session() -> Iterator[Session]:
    """Yield a database session for FastAPI dependencies."""

    session: Session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def get_now() -> datetime:
    """Return the request clock. Tests override this to drive proposal windows."""

    return datetime.now(UTC)


__all__ = ["get_db_session", "get_now"]
