"""Engine and session factory for the governance database."""
from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from residence.core.config import get_settings
from residence.obs import instrument_sqlalchemy_engine


def _engine_options(database_url: str) -> dict[str, Any]:
    if not database_url.startswith("sqlite"):
        return {"pool_pre_ping": True}
    options: dict[str, Any] = {"connect_args": {"check_same_thread": False}}
    if ":memory:" in database_url:
        options["poolclass"] = StaticPool
    return options


def build_engine(database_url: str) -> Engine:
    """Create an engine; SQLite connections get foreign key enforcement switched on."""

    built = create_engine(database_url, **_engine_options(database_url))
    if built.dialect.name == "sqlite":

        @event.listens_for(built, "connect")
        def _enable_foreign_keys(dbapi_connection: Any, _: Any) -> None:
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return built


settings = get_settings()
engine = build_engine(settings.database_url)
if settings.enable_tracing:
    instrument_sqlalchemy_engine(engine)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@contextmanager
def get_session(factory: sessionmaker[Session] | None = None) -> Iterator[Session]:
    """Yield a session that commits on success and rolls back on error."""
    session: Session = (factory or SessionLocal)()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


__all__ = ["SessionLocal", "build_engine", "engine", "get_session"]
