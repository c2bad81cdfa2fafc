"""Payment verification workflow - admin decisions on paid entries.

Owns paid → verified/failed and the explicit admin correction failed → pending.

The ledger row update commits first. The verification record and audit event
are appended afterwards; if that append fails the decision still stands and
the failure comes back to the caller as a warning.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from settlement_engine.errors import InvalidTransitionError, ValidationError
from settlement_engine.events.audit import AuditTrail, record_safely
from settlement_engine.events.notifications import (
    PAYMENT_REJECTED,
    PAYMENT_VERIFIED,
    NotificationEmitter,
    NotificationIntent,
    notify_safely,
)
from settlement_engine.events.types import (
    EventMetadata,
    PaymentRejected,
    PaymentStatusReset,
    PaymentVerified,
)
from settlement_engine.models import PaymentVerification, utcnow
from settlement_engine.services.commission_ledger import (
    LedgerEntry,
    model_for,
    parse_payment_type,
    require_text,
)
from settlement_engine.services.ledger_store import LedgerStore
from settlement_engine.services.state_machine import (
    PaymentStateMachine,
    PaymentStatus,
    VerificationDecision,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VerificationResult:
    """Outcome of an admin decision.

    `warnings` lists audit or notification failures. The decision itself is
    committed even when warnings are present.
    """

    entry: LedgerEntry
    record: PaymentVerification
    warnings: list[str] = field(default_factory=list)

    @property
    def status(self) -> str:
        return self.entry.payment_status


@dataclass(frozen=True)
class ResetResult:
    """Outcome of an admin correction failed → pending."""

    entry: LedgerEntry
    warnings: list[str] = field(default_factory=list)


class PaymentVerificationWorkflow:
    """Admin verification of submitted payments.

    Usage:
        workflow = PaymentVerificationWorkflow(store, audit, notifier)

        result = workflow.verify_payment(
            entry_id, "tournament_commission", "approved", verifier_id="admin-1"
        )
        if result.warnings:
            show(result.warnings)
    """

    def __init__(
        self,
        store: LedgerStore,
        audit: AuditTrail,
        notifier: NotificationEmitter,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._store = store
        self._audit = audit
        self._notifier = notifier
        self._clock = clock

    def verify_payment(
        self,
        entry_id: UUID,
        payment_type: str,
        decision: str,
        verifier_id: str,
        notes: str | None = None,
    ) -> VerificationResult:
        """Approve or reject a paid entry.

        Calling this twice never double-counts: the second call finds the
        entry already decided and raises InvalidTransitionError.

        Raises:
            ValidationError: If the decision, type or verifier is invalid
            NotFoundError: If the entry does not exist
            InvalidTransitionError: If the entry is not paid
            ConcurrentModificationError: If another admin decided first
        """
        kind = parse_payment_type(payment_type)
        model = model_for(kind)
        verifier_id = require_text(verifier_id, "verifier_id")
        try:
            verdict = VerificationDecision(decision)
        except ValueError:
            raise ValidationError(
                f"Unknown decision '{decision}'", field="decision"
            ) from None

        target = PaymentStateMachine.decision_status(verdict)
        current = self._store.get(model, entry_id)
        PaymentStateMachine.validate_transition(current.payment_status, target)

        now = self._clock()
        entry = self._store.compare_and_set(
            model,
            entry_id,
            expected=PaymentStatus.PAID.value,
            values={
                "payment_status": target.value,
                "verified_by": verifier_id,
                "verified_at": now,
                "updated_at": now,
            },
        )

        logger.info(
            "%s %s %s by %s",
            model.entity_name,
            entry_id,
            target.value,
            verifier_id,
        )

        record = PaymentVerification(
            payment_id=entry.id,
            payment_type=kind.value,
            verified_by=verifier_id,
            verified_at=now,
            status=verdict.value,
            notes=notes,
        )
        event_type = (
            PaymentVerified if verdict == VerificationDecision.APPROVED else PaymentRejected
        )
        event = event_type(
            metadata=self._metadata(verifier_id, now),
            payment_id=entry.id,
            payment_type=kind.value,
            verified_by=verifier_id,
            notes=notes,
        )

        warnings: list[str] = []
        audit_warning = record_safely(self._audit, event, verification=record)
        if audit_warning:
            warnings.append(audit_warning)
        warnings.extend(
            notify_safely(
                self._notifier,
                NotificationIntent(
                    recipient_id=entry.payer_id,
                    template=(
                        PAYMENT_VERIFIED
                        if verdict == VerificationDecision.APPROVED
                        else PAYMENT_REJECTED
                    ),
                    payload={
                        "payment_id": str(entry.id),
                        "payment_type": kind.value,
                        "tournament_id": entry.tournament_id,
                        "amount": str(entry.amount_paid),
                        "notes": notes,
                    },
                ),
            )
        )

        return VerificationResult(entry=entry, record=record, warnings=warnings)

    def reset_failed_payment(
        self,
        entry_id: UUID,
        payment_type: str,
        admin_id: str,
        reason: str,
    ) -> ResetResult:
        """Admin correction: move a failed entry back to pending.

        Clears the proof and the verification stamps so the payer can submit
        again. This is the only backward move in the payment lifecycle.

        Raises:
            ValidationError: If admin_id or reason is blank
            NotFoundError: If the entry does not exist
            InvalidTransitionError: If the entry is not failed
            ConcurrentModificationError: If the entry changed meanwhile
        """
        kind = parse_payment_type(payment_type)
        model = model_for(kind)
        admin_id = require_text(admin_id, "admin_id")
        reason = require_text(reason, "reason")

        current = self._store.get(model, entry_id)
        if not PaymentStateMachine.can_reset(current.payment_status):
            raise InvalidTransitionError(
                current.payment_status,
                PaymentStatus.PENDING.value,
                "only failed payments can be reset",
            )

        now = self._clock()
        entry = self._store.compare_and_set(
            model,
            entry_id,
            expected=PaymentStatus.FAILED.value,
            values={
                "payment_status": PaymentStatus.PENDING.value,
                "payment_date": None,
                "payment_proof_url": None,
                "payment_method": None,
                "verified_by": None,
                "verified_at": None,
                "updated_at": now,
            },
        )

        logger.warning(
            "Admin %s reset %s %s from failed to pending: %s",
            admin_id,
            model.entity_name,
            entry_id,
            reason,
        )

        warnings: list[str] = []
        audit_warning = record_safely(
            self._audit,
            PaymentStatusReset(
                metadata=self._metadata(admin_id, now),
                payment_id=entry.id,
                payment_type=kind.value,
                reset_by=admin_id,
                reason=reason,
            ),
        )
        if audit_warning:
            warnings.append(audit_warning)

        return ResetResult(entry=entry, warnings=warnings)

    def _metadata(self, admin_id: str, now: datetime) -> EventMetadata:
        return EventMetadata.create(
            actor_id=admin_id,
            actor_type="admin",
            source_service="payment_verification",
            timestamp=now,
        )
