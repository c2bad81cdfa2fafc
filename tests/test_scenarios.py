"""End-to-end settlement scenarios through the engine facade."""

from decimal import Decimal

import pytest

from settlement_engine.engine import SettlementEngine
from settlement_engine.errors import ConcurrentModificationError
from settlement_engine.services.refunds import RegistrationRejected, TournamentRejected

COMMISSION = "tournament_commission"


@pytest.fixture
def open_commission(settlement):
    commission = settlement.create_tournament_commission(
        "tournament-1", "organizer-1", Decimal("10000"), Decimal("5")
    ).entry
    assert commission.commission_amount == Decimal("500")
    assert commission.payment_status == "pending"
    return commission


class TestCommissionLifecycle:
    """Commission from creation to verification, rejection and refund."""

    def test_verified_commission(self, settlement, open_commission):
        paid = settlement.submit_payment_proof(
            open_commission.id, COMMISSION, "https://files.example.com/proof.png"
        ).entry
        assert paid.payment_status == "paid"

        result = settlement.verify_payment(open_commission.id, COMMISSION, "approved", "admin-1")

        assert result.status == "verified"
        assert result.entry.verified_by == "admin-1"
        stats = settlement.get_revenue_stats(year=2025)
        assert stats.total_revenue == Decimal("500")
        assert stats.verified_payments == 1

    def test_rejected_commission_owes_no_refund(self, settlement, open_commission):
        settlement.submit_payment_proof(
            open_commission.id, COMMISSION, "https://files.example.com/proof.png"
        )
        result = settlement.verify_payment(
            open_commission.id, COMMISSION, "rejected", "admin-1", notes="Proof unreadable"
        )
        assert result.status == "failed"

        refund = settlement.on_rejection(
            TournamentRejected("tournament-1", "organizer-1", "Venue unavailable")
        )

        assert refund.refund is None
        assert settlement.list_refunds(COMMISSION) == []
        assert settlement.get_revenue_stats(year=2025).total_revenue == Decimal("0")

    def test_verified_commission_refunded_after_rejection(self, settlement, open_commission):
        settlement.submit_payment_proof(
            open_commission.id, COMMISSION, "https://files.example.com/proof.png"
        )
        settlement.verify_payment(open_commission.id, COMMISSION, "approved", "admin-1")

        opened = settlement.on_rejection(
            TournamentRejected("tournament-1", "organizer-1", "Venue unavailable", "admin-2")
        )
        refund = opened.refund
        assert opened.created is True
        assert refund.refund_amount == Decimal("500")
        assert refund.status == "pending"

        settlement.advance_refund_status(refund.id, COMMISSION, "approved")
        settlement.advance_refund_status(refund.id, COMMISSION, "processing")
        done = settlement.advance_refund_status(
            refund.id,
            COMMISSION,
            "completed",
            refund_method="bank",
            refund_transaction_id="tx123",
        ).refund

        assert done.status == "completed"
        assert done.completed_at is not None
        assert done.refund_method == "bank"
        assert done.refund_transaction_id == "tx123"
        # The commission row itself is untouched by the refund
        assert settlement.get_entry(open_commission.id, COMMISSION).payment_status == "verified"


class TestRegistrationLifecycle:
    """Player fee from creation to refund."""

    def test_rejected_registration_refunds_fee_and_commission(self, settlement):
        fee = settlement.create_player_registration_fee(
            "tournament-1", "player-1", Decimal("1000"), Decimal("10")
        ).entry
        settlement.submit_payment_proof(fee.id, "player_registration", "https://x/fee.png")

        assert [e.id for e in settlement.get_pending_payments()] == [fee.id]

        result = settlement.on_rejection(
            RegistrationRejected("tournament-1", "player-1", "registration-1", "Roster full")
        )

        assert result.refund.refund_amount == Decimal("1100")
        assert settlement.list_refunds("player_registration", "pending")[0].id == result.refund.id


class TestConcurrentVerification:
    """Two admins deciding the same paid entry at once."""

    def test_exactly_one_decision_wins(
        self, session_factory, audit, notifier, clock, monkeypatch
    ):
        first = SettlementEngine(session_factory, audit=audit, notifier=notifier, clock=clock)
        second = SettlementEngine(session_factory, audit=audit, notifier=notifier, clock=clock)

        commission = first.create_tournament_commission(
            "tournament-1", "organizer-1", Decimal("10000"), Decimal("5")
        ).entry
        first.submit_payment_proof(commission.id, COMMISSION, "https://x/p.png")

        original_get = first.store.get

        def interleaved_get(model, entity_id):
            row = original_get(model, entity_id)
            second.verify_payment(entity_id, COMMISSION, "approved", "admin-2")
            return row

        monkeypatch.setattr(first.store, "get", interleaved_get)

        with pytest.raises(ConcurrentModificationError):
            first.verify_payment(commission.id, COMMISSION, "approved", "admin-1")

        entry = second.get_entry(commission.id, COMMISSION)
        assert entry.payment_status == "verified"
        assert entry.verified_by == "admin-2"
        assert len(audit.verifications) == 1
        assert len(audit.of_type("PaymentVerified")) == 1


class TestDuplicateCommissionRows:
    """Retried creation leaves duplicate rows that reporting ignores."""

    def test_revenue_and_export_count_tournament_once(self, settlement):
        for _ in range(3):
            row = settlement.create_tournament_commission(
                "tournament-1", "organizer-1", Decimal("10000"), Decimal("5")
            ).entry
            settlement.submit_payment_proof(row.id, COMMISSION, "https://x/p.png")
            settlement.verify_payment(row.id, COMMISSION, "approved", "admin-1")

        stats = settlement.get_revenue_stats(year=2025)
        export = settlement.export_verified_payments({"tournament-1": "Spring Open"})

        assert stats.total_commissions == Decimal("500")
        assert stats.duplicate_commission_rows == 2
        assert len(settlement.get_verified_payments()) == 3
        assert export.count("Spring Open") == 1
