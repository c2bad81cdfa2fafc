"""FastAPI dependencies for dependency injection."""

from collections.abc import Iterator
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from settlement_engine.engine import SettlementEngine


def get_db_session(request: Request) -> Iterator[Session]:
    """Get database session dependency."""
    with request.app.state.session_factory() as session:
        yield session


def get_settlement_engine(request: Request) -> SettlementEngine:
    """Engine wired at application startup."""
    return request.app.state.engine


# Type aliases for cleaner dependency injection
DbSession = Annotated[Session, Depends(get_db_session)]
Engine = Annotated[SettlementEngine, Depends(get_settlement_engine)]
