"""Tests for domain events, the SQL audit trail and notification intents."""

import json
from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from settlement_engine.engine import SettlementEngine
from settlement_engine.events import (
    AuditTrail,
    CommissionCreated,
    EventCategory,
    EventMetadata,
    NotificationEmitter,
    NotificationIntent,
    NullAuditTrail,
    PaymentVerified,
    RefundStatusChanged,
    SqlAuditTrail,
    record_safely,
)
from settlement_engine.events.notifications import (
    PAYMENT_VERIFIED,
    REFUND_REQUESTED,
    notify_safely,
)
from settlement_engine.models import PaymentVerification

NOW = datetime(2025, 3, 15, 9, 0, tzinfo=timezone.utc)


def commission_created(commission_id=None, metadata=None):
    return CommissionCreated(
        metadata=metadata or EventMetadata.create(actor_id="organizer-1", timestamp=NOW),
        commission_id=commission_id or uuid4(),
        tournament_id="tournament-1",
        organizer_id="organizer-1",
        total_amount=Decimal("10000.00"),
        commission_percentage=Decimal("5.00"),
        commission_amount=Decimal("500.00"),
    )


class TestDomainEvents:
    """Test event identity and serialization."""

    def test_event_type_is_class_name(self):
        assert commission_created().event_type == "CommissionCreated"

    def test_categories_and_entities(self):
        payment_id = uuid4()
        event = PaymentVerified(
            metadata=EventMetadata.create(actor_id="admin-1"),
            payment_id=payment_id,
            payment_type="player_registration",
            verified_by="admin-1",
            notes=None,
        )

        assert event.category == EventCategory.VERIFICATION
        assert event.entity_type == "player_registration_fee"
        assert event.entity_id == payment_id

    def test_refund_event_entity_type(self):
        event = RefundStatusChanged(
            metadata=EventMetadata.create(),
            refund_id=uuid4(),
            refund_kind="tournament_commission",
            from_status="pending",
            to_status="approved",
            admin_notes=None,
            refund_method=None,
            refund_transaction_id=None,
        )

        assert event.category == EventCategory.REFUND
        assert event.entity_type == "tournament_commission_refund"

    def test_to_dict_serializes_values(self):
        event = commission_created()

        data = event.to_dict()

        assert data["commission_amount"] == "500.00"
        assert data["commission_id"] == str(event.commission_id)
        assert data["metadata"]["timestamp"] == NOW.isoformat()
        assert data["metadata"]["actor_type"] == "system"

    def test_to_json_round_trips(self):
        event = commission_created()

        data = json.loads(event.to_json())

        assert data["tournament_id"] == "tournament-1"
        assert data["metadata"]["event_id"] == str(event.metadata.event_id)

    def test_events_are_immutable(self):
        event = commission_created()

        with pytest.raises(AttributeError):
            event.commission_amount = Decimal("1")

    def test_metadata_generates_ids(self):
        first = EventMetadata.create()
        second = EventMetadata.create()

        assert first.event_id != second.event_id
        assert first.correlation_id != second.correlation_id
        assert first.version == 1


class TestSqlAuditTrail:
    """Test the database-backed audit trail."""

    def test_satisfies_protocol(self, session_factory):
        assert isinstance(SqlAuditTrail(session_factory), AuditTrail)
        assert isinstance(NullAuditTrail(), AuditTrail)

    def test_record_is_idempotent(self, session_factory):
        audit = SqlAuditTrail(session_factory)
        event = commission_created()

        assert audit.record(event) is True
        assert audit.record(event) is False

        history = audit.get_by_entity("tournament_commission", event.commission_id)
        assert len(history) == 1
        assert history[0].event_type == "CommissionCreated"
        assert history[0].category == "ledger"
        assert history[0].payload["commission_amount"] == "500.00"

    def test_history_is_per_entity(self, session_factory):
        audit = SqlAuditTrail(session_factory)
        commission_id = uuid4()
        audit.record(commission_created(commission_id))
        audit.record(commission_created(commission_id))
        audit.record(commission_created())

        assert len(audit.get_by_entity("tournament_commission", commission_id)) == 2

    def test_verification_records(self, session_factory):
        audit = SqlAuditTrail(session_factory)
        payment_id = uuid4()
        audit.record_verification(
            PaymentVerification(
                payment_id=payment_id,
                payment_type="tournament_commission",
                verified_by="admin-1",
                verified_at=NOW,
                status="approved",
                notes="matches bank statement",
            )
        )

        records = audit.get_verifications(payment_id)

        assert len(records) == 1
        assert records[0].status == "approved"
        assert records[0].notes == "matches bank statement"
        assert audit.get_verifications(uuid4()) == []

    def test_full_flow_is_audited(self, session_factory, notifier, clock):
        """Every mutating step of a commission lands in the audit log."""
        audit = SqlAuditTrail(session_factory)
        engine = SettlementEngine(session_factory, audit=audit, notifier=notifier, clock=clock)

        commission = engine.create_tournament_commission(
            "tournament-1", "organizer-1", Decimal("1000"), Decimal("5")
        ).entry
        engine.submit_payment_proof(commission.id, "tournament_commission", "https://x/p.png")
        engine.verify_payment(commission.id, "tournament_commission", "approved", "admin-1")

        history = audit.get_by_entity("tournament_commission", commission.id)
        assert [entry.event_type for entry in history] == [
            "CommissionCreated",
            "PaymentProofSubmitted",
            "PaymentVerified",
        ]
        assert len(audit.get_verifications(commission.id)) == 1


class TestRecordSafely:
    """Test best-effort audit appends."""

    def test_success_returns_none(self, audit):
        assert record_safely(audit, commission_created()) is None
        assert len(audit.events) == 1

    def test_failure_returns_warning(self, audit, caplog):
        audit.fail = True
        event = commission_created()

        with caplog.at_level("WARNING", logger="settlement_engine.events.audit"):
            warning = record_safely(audit, event)

        assert warning.startswith("Audit append failed for CommissionCreated")
        assert "audit store unreachable" in warning
        assert warning in caplog.text


class TestNotificationEmitter:
    """Test handler registration and isolation."""

    def intent(self, template=REFUND_REQUESTED):
        return NotificationIntent("player-1", template, {"refund_id": "r-1"})

    def test_template_filtering(self):
        emitter = NotificationEmitter()
        received = []
        emitter.on(PAYMENT_VERIFIED, received.append)

        emitter.emit(self.intent(REFUND_REQUESTED))
        emitter.emit(self.intent(PAYMENT_VERIFIED))

        assert [i.template for i in received] == [PAYMENT_VERIFIED]

    def test_multiple_templates(self):
        emitter = NotificationEmitter()
        received = []
        emitter.on([PAYMENT_VERIFIED, REFUND_REQUESTED], received.append)

        emitter.emit(self.intent(REFUND_REQUESTED))
        emitter.emit(self.intent(PAYMENT_VERIFIED))

        assert len(received) == 2

    def test_handler_failure_is_isolated(self):
        emitter = NotificationEmitter()
        received = []

        def broken(intent):
            raise ValueError("template missing")

        emitter.on_all(broken)
        emitter.on_all(received.append)

        errors = emitter.emit(self.intent())

        assert len(errors) == 1
        assert isinstance(errors[0], ValueError)
        assert len(received) == 1

    def test_off_removes_handler(self):
        emitter = NotificationEmitter()
        received = []

        def handler(intent):
            received.append(intent)

        emitter.on_all(handler)
        emitter.off(handler)

        emitter.emit(self.intent())

        assert received == []

    def test_notify_safely_formats_failures(self):
        emitter = NotificationEmitter()

        def broken(intent):
            raise ConnectionError("push gateway down")

        emitter.on(REFUND_REQUESTED, broken)

        warnings = notify_safely(emitter, self.intent())

        assert warnings == [
            "Notification refund_requested to player-1 failed: push gateway down"
        ]
