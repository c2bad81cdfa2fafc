"""Pytest fixtures for settlement engine tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from settlement_engine.config import Settings
from settlement_engine.database import create_schema, create_session_factory
from settlement_engine.engine import SettlementEngine
from settlement_engine.events.notifications import NotificationEmitter
from settlement_engine.services.commission_ledger import CommissionLedger
from settlement_engine.services.ledger_store import LedgerStore
from settlement_engine.services.refunds import RefundRequestManager
from settlement_engine.services.verification import PaymentVerificationWorkflow

# In-memory SQLite shared across threads, so the API test client sees the
# same database as the test body
TEST_DATABASE_URL = "sqlite://"


class TickingClock:
    """Deterministic clock; every reading is one second after the last."""

    def __init__(
        self,
        start: datetime = datetime(2025, 3, 15, 9, 0, tzinfo=timezone.utc),
        step: timedelta = timedelta(seconds=1),
    ):
        self.now = start
        self.step = step

    def __call__(self) -> datetime:
        current = self.now
        self.now += self.step
        return current


class RecordingAuditTrail:
    """Audit trail that keeps everything in memory and can be told to fail."""

    def __init__(self) -> None:
        self.events: list = []
        self.verifications: list = []
        self.fail = False

    def record(self, event) -> bool:
        if self.fail:
            raise RuntimeError("audit store unreachable")
        self.events.append(event)
        return True

    def record_verification(self, record) -> None:
        if self.fail:
            raise RuntimeError("audit store unreachable")
        self.verifications.append(record)

    def of_type(self, event_type: str) -> list:
        return [e for e in self.events if e.event_type == event_type]


@pytest.fixture
def db_engine():
    """Create test database engine with the settlement schema."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    create_schema(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return create_session_factory(db_engine)


@pytest.fixture
def store(session_factory) -> LedgerStore:
    return LedgerStore(session_factory)


@pytest.fixture
def clock() -> TickingClock:
    return TickingClock()


@pytest.fixture
def audit() -> RecordingAuditTrail:
    return RecordingAuditTrail()


@pytest.fixture
def notifications() -> list:
    """Every notification intent emitted during the test."""
    return []


@pytest.fixture
def notifier(notifications) -> NotificationEmitter:
    emitter = NotificationEmitter()
    emitter.on_all(notifications.append)
    return emitter


@pytest.fixture
def ledger(store, audit, notifier, clock) -> CommissionLedger:
    return CommissionLedger(store, audit, notifier, clock)


@pytest.fixture
def workflow(store, audit, notifier, clock) -> PaymentVerificationWorkflow:
    return PaymentVerificationWorkflow(store, audit, notifier, clock)


@pytest.fixture
def refunds(store, ledger, audit, notifier, clock) -> RefundRequestManager:
    return RefundRequestManager(store, ledger, audit, notifier, clock)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        database_url=TEST_DATABASE_URL,
        host="127.0.0.1",
        port=8000,
        debug=False,
        log_level="INFO",
        currency_prefix="Rs. ",
        export_date_format="%m/%d/%Y",
    )


@pytest.fixture
def settlement(session_factory, audit, notifier, clock) -> SettlementEngine:
    return SettlementEngine(session_factory, audit=audit, notifier=notifier, clock=clock)


@pytest.fixture
def commission(ledger):
    """Pending commission: 5% of 10,000."""
    return ledger.create_tournament_commission(
        tournament_id="tournament-1",
        organizer_id="organizer-1",
        total_amount=Decimal("10000"),
        percentage=Decimal("5"),
    ).entry


@pytest.fixture
def paid_commission(ledger, commission):
    """Commission with payment proof submitted."""
    return ledger.submit_payment_proof(
        commission.id,
        "tournament_commission",
        "https://files.example.com/proof/commission.png",
        payment_method="esewa",
    ).entry


@pytest.fixture
def verified_commission(workflow, paid_commission):
    return workflow.verify_payment(
        paid_commission.id, "tournament_commission", "approved", "admin-1"
    ).entry


@pytest.fixture
def fee(ledger):
    """Pending registration fee: 1,000 plus 10% commission."""
    return ledger.create_player_registration_fee(
        tournament_id="tournament-1",
        player_id="player-1",
        registration_fee=Decimal("1000"),
        percentage=Decimal("10"),
    ).entry


@pytest.fixture
def paid_fee(ledger, fee):
    return ledger.submit_payment_proof(
        fee.id,
        "player_registration",
        "https://files.example.com/proof/fee.png",
    ).entry
