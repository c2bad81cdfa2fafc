"""Settlement facade - single integration path for the API and CLI.

Usage:
    engine = SettlementEngine(session_factory, audit=SqlAuditTrail(session_factory))

    commission = engine.create_tournament_commission("t-1", "org-1", 10000, 5).entry
    engine.submit_payment_proof(commission.id, "tournament_commission", proof_url)
    result = engine.verify_payment(
        commission.id, "tournament_commission", "approved", "admin-1"
    )

    stats = engine.get_revenue_stats()

The facade:
- Wires the components around one ledger store
- Injects the same audit trail, notifier and clock into each of them
- Exposes the conceptual operations and nothing else
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker

from settlement_engine.config import Settings
from settlement_engine.events.audit import AuditTrail, NullAuditTrail
from settlement_engine.events.notifications import NotificationEmitter
from settlement_engine.models import utcnow
from settlement_engine.services.commission_ledger import (
    CommissionLedger,
    LedgerEntry,
    LedgerResult,
    parse_payment_type,
)
from settlement_engine.services.ledger_store import LedgerStore
from settlement_engine.services.refunds import (
    RefundRequest,
    RefundRequestManager,
    RefundResult,
    RefundSummary,
    Rejection,
)
from settlement_engine.services.revenue import (
    RevenueAggregator,
    RevenueStats,
    dedupe_commissions,
)
from settlement_engine.services.state_machine import PaymentStatus, PaymentType
from settlement_engine.services.verification import (
    PaymentVerificationWorkflow,
    ResetResult,
    VerificationResult,
)


class SettlementEngine:
    """Payment and commission settlement operations."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        audit: AuditTrail | None = None,
        notifier: NotificationEmitter | None = None,
        clock: Callable[[], datetime] = utcnow,
        currency_prefix: str = "Rs. ",
        export_date_format: str = "%m/%d/%Y",
    ):
        self.store = LedgerStore(session_factory)
        self.audit = audit or NullAuditTrail()
        self.notifier = notifier or NotificationEmitter()

        self.ledger = CommissionLedger(self.store, self.audit, self.notifier, clock)
        self.verification = PaymentVerificationWorkflow(
            self.store, self.audit, self.notifier, clock
        )
        self.refunds = RefundRequestManager(
            self.store, self.ledger, self.audit, self.notifier, clock
        )
        self.revenue = RevenueAggregator(currency_prefix, export_date_format, clock)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        session_factory: sessionmaker[Session],
        audit: AuditTrail | None = None,
        notifier: NotificationEmitter | None = None,
    ) -> SettlementEngine:
        """Build an engine using the reporting options from settings."""
        return cls(
            session_factory,
            audit=audit,
            notifier=notifier,
            currency_prefix=settings.currency_prefix,
            export_date_format=settings.export_date_format,
        )

    # -------------------------------------------------------------------------
    # Ledger
    # -------------------------------------------------------------------------

    def create_tournament_commission(
        self,
        tournament_id: str,
        organizer_id: str,
        total_amount: Decimal,
        percentage: Decimal,
    ) -> LedgerResult:
        return self.ledger.create_tournament_commission(
            tournament_id, organizer_id, total_amount, percentage
        )

    def create_player_registration_fee(
        self,
        tournament_id: str,
        player_id: str,
        registration_fee: Decimal,
        percentage: Decimal,
    ) -> LedgerResult:
        return self.ledger.create_player_registration_fee(
            tournament_id, player_id, registration_fee, percentage
        )

    def submit_payment_proof(
        self,
        entry_id: UUID,
        payment_type: str,
        proof_url: str,
        payment_method: str | None = None,
    ) -> LedgerResult:
        return self.ledger.submit_payment_proof(
            entry_id, payment_type, proof_url, payment_method
        )

    def get_entry(self, entry_id: UUID, payment_type: str) -> LedgerEntry:
        return self.ledger.get_entry(entry_id, payment_type)

    # -------------------------------------------------------------------------
    # Verification
    # -------------------------------------------------------------------------

    def verify_payment(
        self,
        entry_id: UUID,
        payment_type: str,
        decision: str,
        verifier_id: str,
        notes: str | None = None,
    ) -> VerificationResult:
        return self.verification.verify_payment(
            entry_id, payment_type, decision, verifier_id, notes
        )

    def reset_failed_payment(
        self,
        entry_id: UUID,
        payment_type: str,
        admin_id: str,
        reason: str,
    ) -> ResetResult:
        return self.verification.reset_failed_payment(
            entry_id, payment_type, admin_id, reason
        )

    # -------------------------------------------------------------------------
    # Refunds
    # -------------------------------------------------------------------------

    def on_rejection(self, rejection: Rejection) -> RefundResult:
        return self.refunds.on_rejection(rejection)

    def create_refund_request(
        self,
        kind: str,
        entry_id: UUID,
        reason: str,
        refund_amount: Decimal | None = None,
        registration_id: str | None = None,
        actor_id: str | None = None,
    ) -> RefundResult:
        return self.refunds.create_refund_request(
            kind,
            entry_id,
            reason,
            refund_amount=refund_amount,
            registration_id=registration_id,
            actor_id=actor_id,
        )

    def advance_refund_status(
        self,
        refund_id: UUID,
        kind: str,
        new_status: str,
        admin_notes: str | None = None,
        refund_method: str | None = None,
        refund_transaction_id: str | None = None,
        actor_id: str | None = None,
    ) -> RefundResult:
        return self.refunds.advance_status(
            refund_id,
            kind,
            new_status,
            admin_notes=admin_notes,
            refund_method=refund_method,
            refund_transaction_id=refund_transaction_id,
            actor_id=actor_id,
        )

    def list_refunds(self, kind: str, status: str | None = None) -> list[RefundRequest]:
        return self.refunds.list_refunds(kind, status)

    def get_refund_summary(self) -> RefundSummary:
        return self.refunds.summary()

    # -------------------------------------------------------------------------
    # Reporting
    # -------------------------------------------------------------------------

    def get_revenue_stats(self, year: int | None = None) -> RevenueStats:
        return self.revenue.compute_stats(
            self.ledger.list_commissions(),
            self.ledger.list_registration_fees(),
            year=year,
        )

    def get_pending_payments(self, payment_type: str | None = None) -> list[LedgerEntry]:
        """Entries awaiting admin verification (status paid)."""
        return self._entries(PaymentStatus.PAID, payment_type)

    def get_verified_payments(self, payment_type: str | None = None) -> list[LedgerEntry]:
        return self._entries(PaymentStatus.VERIFIED, payment_type)

    def export_verified_payments(
        self,
        tournament_names: Mapping[str, str] | None = None,
        organizer_names: Mapping[str, str] | None = None,
    ) -> str:
        """CSV of verified tournament commissions."""
        return self.revenue.export_verified_csv(
            self.ledger.list_commissions(PaymentStatus.VERIFIED.value),
            tournament_names,
            organizer_names,
        )

    def export_refund_requests(
        self,
        status: str | None = None,
        tournament_names: Mapping[str, str] | None = None,
        organizer_names: Mapping[str, str] | None = None,
    ) -> str:
        """CSV of refund requests of both kinds, newest first."""
        commissions, _ = dedupe_commissions(self.ledger.list_commissions())
        return self.revenue.export_refunds_csv(
            self.refunds.list_all_refunds(status),
            {row.tournament_id: row.organizer_id for row in commissions},
            tournament_names,
            organizer_names,
        )

    def _entries(self, status: PaymentStatus, payment_type: str | None) -> list[LedgerEntry]:
        kinds = (
            [parse_payment_type(payment_type)]
            if payment_type is not None
            else list(PaymentType)
        )
        entries: list[LedgerEntry] = []
        if PaymentType.TOURNAMENT_COMMISSION in kinds:
            entries.extend(self.ledger.list_commissions(status.value))
        if PaymentType.PLAYER_REGISTRATION in kinds:
            entries.extend(self.ledger.list_registration_fees(status.value))
        return entries
