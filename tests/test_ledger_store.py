"""Tests for the ledger store: units of work, read retry and conditional writes."""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import exc as sa_exc

from settlement_engine.errors import (
    BackendUnavailableError,
    ConcurrentModificationError,
    NotFoundError,
)
from settlement_engine.models import TournamentCommission
from settlement_engine.services.ledger_store import LedgerStore


def _operational_error() -> sa_exc.OperationalError:
    return sa_exc.OperationalError("SELECT 1", {}, Exception("connection dropped"))


def _commission(**overrides) -> TournamentCommission:
    values = dict(
        tournament_id="tournament-1",
        organizer_id="organizer-1",
        total_amount=Decimal("1000.00"),
        commission_percentage=Decimal("5.00"),
        commission_amount=Decimal("50.00"),
        payment_status="pending",
    )
    values.update(overrides)
    return TournamentCommission(**values)


class CountingFactory:
    """Session factory that fails a given number of times before delegating."""

    def __init__(self, factory, failures: int):
        self.factory = factory
        self.failures = failures
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise _operational_error()
        return self.factory()


class TestReads:
    """Test reads and the single retry."""

    def test_get_returns_row(self, store):
        row = store.add(_commission())

        loaded = store.get(TournamentCommission, row.id)

        assert loaded.id == row.id
        assert loaded.commission_amount == Decimal("50.00")

    def test_get_missing_raises_not_found(self, store):
        missing = uuid4()
        with pytest.raises(NotFoundError) as exc_info:
            store.get(TournamentCommission, missing)

        assert exc_info.value.entity == "tournament_commission"
        assert exc_info.value.entity_id == missing

    def test_read_retries_once_on_transient_error(self, session_factory):
        factory = CountingFactory(session_factory, failures=1)
        store = LedgerStore(factory)

        result = store.read(lambda session: "ok")

        assert result == "ok"
        assert factory.calls == 2

    def test_read_gives_up_after_second_failure(self, session_factory):
        factory = CountingFactory(session_factory, failures=5)
        store = LedgerStore(factory)

        with pytest.raises(BackendUnavailableError):
            store.read(lambda session: "ok")

        assert factory.calls == 2

    def test_read_retry_is_logged(self, session_factory, caplog):
        store = LedgerStore(CountingFactory(session_factory, failures=1))

        with caplog.at_level("WARNING"):
            store.read(lambda session: None)

        assert "retrying once" in caplog.text


class TestWrites:
    """Test inserts and status-conditioned updates."""

    def test_add_populates_defaults(self, store):
        row = store.add(_commission())

        assert row.id is not None
        assert row.created_at is not None

    def test_writes_are_not_retried(self, session_factory):
        factory = CountingFactory(session_factory, failures=1)
        store = LedgerStore(factory)

        with pytest.raises(BackendUnavailableError):
            store.add(_commission())

        assert factory.calls == 1

    def test_compare_and_set_updates_matching_row(self, store):
        row = store.add(_commission())

        updated = store.compare_and_set(
            TournamentCommission,
            row.id,
            expected="pending",
            values={"payment_status": "paid", "payment_proof_url": "https://x/p.png"},
        )

        assert updated.payment_status == "paid"
        assert updated.payment_proof_url == "https://x/p.png"
        assert store.get(TournamentCommission, row.id).payment_status == "paid"

    def test_compare_and_set_rejects_stale_expectation(self, store):
        row = store.add(_commission(payment_status="verified"))

        with pytest.raises(ConcurrentModificationError) as exc_info:
            store.compare_and_set(
                TournamentCommission,
                row.id,
                expected="paid",
                values={"payment_status": "failed"},
            )

        assert exc_info.value.expected_status == "paid"
        assert exc_info.value.actual_status == "verified"
        # Nothing was overwritten
        assert store.get(TournamentCommission, row.id).payment_status == "verified"

    def test_compare_and_set_missing_row(self, store):
        with pytest.raises(NotFoundError):
            store.compare_and_set(
                TournamentCommission,
                uuid4(),
                expected="pending",
                values={"payment_status": "paid"},
            )

    def test_failed_unit_of_work_rolls_back(self, store, session_factory):
        with pytest.raises(RuntimeError):
            with store.unit_of_work() as session:
                session.add(_commission(tournament_id="rolled-back"))
                session.flush()
                raise RuntimeError("boom")

        with session_factory() as session:
            assert session.query(TournamentCommission).count() == 0
