"""Database connection and session management."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from settlement_engine.config import Settings, get_settings
from settlement_engine.models import Base

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine


def get_engine(settings: Settings | None = None) -> Engine:
    """Create the ledger store engine.

    SQLite (local runs and tests) gets the default pool, server databases
    a pre-pinged one.
    """
    settings = settings or get_settings()
    if settings.uses_sqlite:
        return create_engine(settings.database_url)
    return create_engine(
        settings.database_url,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
    )


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Session factory used by the ledger store.

    Rows must stay readable after commit because services hand them back to
    callers once the unit of work has closed.
    """
    return sessionmaker(engine, expire_on_commit=False, autoflush=False)


# Global engine and session factory
_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


def init_db(settings: Settings | None = None) -> tuple[Engine, sessionmaker[Session]]:
    """Initialize the process-wide engine and session factory once."""
    global _engine, _session_factory
    if _engine is None:
        _engine = get_engine(settings)
        _session_factory = create_session_factory(_engine)
    return _engine, _session_factory


def create_schema(engine: Engine) -> None:
    """Create all settlement tables that do not exist yet."""
    Base.metadata.create_all(engine)

