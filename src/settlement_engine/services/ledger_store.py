"""Ledger store - the single source of truth for settlement state.

Wraps a SQLAlchemy session factory with:
- One short unit of work per operation (commit on success, rollback on error)
- A single automatic retry for reads on transient store errors
- Status-conditioned writes (UPDATE ... WHERE status = :expected) so two
  concurrent actors can never both move the same row out of a status
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any, TypeVar
from uuid import UUID

from sqlalchemy import exc as sa_exc
from sqlalchemy import update
from sqlalchemy.orm import Session, sessionmaker

from settlement_engine.errors import (
    BackendUnavailableError,
    ConcurrentModificationError,
    NotFoundError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")
M = TypeVar("M")

# Errors that mean the store could not be reached or the connection dropped
TRANSIENT_ERRORS = (sa_exc.OperationalError, sa_exc.InterfaceError)

READ_ATTEMPTS = 2


class LedgerStore:
    """Transactional access to settlement rows.

    Usage:
        store = LedgerStore(session_factory)

        row = store.add(TournamentCommission(...))
        row = store.get(TournamentCommission, commission_id)
        row = store.compare_and_set(
            TournamentCommission,
            commission_id,
            expected="paid",
            values={"payment_status": "verified"},
        )
    """

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    @contextmanager
    def unit_of_work(self) -> Iterator[Session]:
        """Open a session, commit on success, roll back on error.

        Transient connection failures surface as BackendUnavailableError.
        """
        try:
            with self._session_factory() as session:
                try:
                    yield session
                    session.commit()
                except Exception:
                    session.rollback()
                    raise
        except TRANSIENT_ERRORS as e:
            raise BackendUnavailableError(f"Ledger store unavailable: {e}") from e

    def read(self, fn: Callable[[Session], T]) -> T:
        """Run an idempotent read, retrying once on a transient failure."""
        attempt = 1
        while True:
            try:
                with self.unit_of_work() as session:
                    return fn(session)
            except BackendUnavailableError as e:
                if attempt >= READ_ATTEMPTS:
                    raise
                logger.warning("Ledger read failed, retrying once: %s", e)
                attempt += 1

    def get(self, model: type[M], entity_id: UUID) -> M:
        """Load a row by id or raise NotFoundError."""
        def _load(session: Session) -> M:
            row = session.get(model, entity_id)
            if row is None:
                raise NotFoundError(_entity_name(model), entity_id)
            return row

        return self.read(_load)

    def add(self, row: M) -> M:
        """Insert a new row and return it with defaults populated."""
        with self.unit_of_work() as session:
            session.add(row)
            session.flush()
            session.refresh(row)
        return row

    def compare_and_set(
        self,
        model: type[M],
        entity_id: UUID,
        *,
        expected: str,
        values: dict[str, Any],
    ) -> M:
        """Update a row only if its status still equals `expected`.

        The status check and the write are one statement, so a lost race shows
        up as zero affected rows rather than a silent overwrite.

        Raises:
            NotFoundError: If the row does not exist
            ConcurrentModificationError: If the row left `expected` first
        """
        status_column = getattr(model, model.status_field)  # type: ignore[attr-defined]
        entity = _entity_name(model)

        with self.unit_of_work() as session:
            result = session.execute(
                update(model)
                .where(model.id == entity_id, status_column == expected)  # type: ignore[attr-defined]
                .values(**values)
                .execution_options(synchronize_session=False)
            )

            if result.rowcount == 0:
                current = session.get(model, entity_id)
                if current is None:
                    raise NotFoundError(entity, entity_id)
                raise ConcurrentModificationError(
                    entity,
                    entity_id,
                    expected_status=expected,
                    actual_status=getattr(current, model.status_field),  # type: ignore[attr-defined]
                )

            row = session.get(model, entity_id, populate_existing=True)

        logger.debug("%s %s updated from '%s'", entity, entity_id, expected)
        return row  # type: ignore[return-value]


def _entity_name(model: type[Any]) -> str:
    return getattr(model, "entity_name", model.__name__)
