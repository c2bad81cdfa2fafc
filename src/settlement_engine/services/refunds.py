"""Refund request manager.

Reacts to tournament and registration rejections and moves refund requests
through their workflow:

    pending → approved → processing → completed
    pending → rejected

A subject (a registration payment, or a tournament's organizer) has at most
one active request at a time. Creation is idempotent: asking again while a
request is active returns that request.

Every request that is not rejected counts against the amount paid, so the
requests for one subject never add up to more than was collected. Once the
full amount has been refunded, a repeated rejection returns the last request.

Payment rows are only read here; their status belongs to the ledger and the
verification workflow.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Union
from uuid import UUID

from sqlalchemy import exc as sa_exc
from sqlalchemy import select

from settlement_engine.errors import ValidationError
from settlement_engine.events.audit import AuditTrail, record_safely
from settlement_engine.events.notifications import (
    REFUND_REQUESTED,
    REFUND_STATUS_CHANGED,
    NotificationEmitter,
    NotificationIntent,
    notify_safely,
)
from settlement_engine.events.types import (
    EventMetadata,
    RefundRequested,
    RefundStatusChanged,
)
from settlement_engine.models import (
    PlayerRefundRequest,
    PlayerRegistrationFee,
    TournamentCommission,
    TournamentCommissionRefund,
    utcnow,
)
from settlement_engine.services.commission_ledger import (
    CommissionLedger,
    parse_money,
    require_text,
)
from settlement_engine.services.ledger_store import LedgerStore
from settlement_engine.services.state_machine import (
    PaymentStateMachine,
    RefundKind,
    RefundStateMachine,
    RefundStatus,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")

RefundRequest = Union[PlayerRefundRequest, TournamentCommissionRefund]


@dataclass(frozen=True)
class TournamentRejected:
    """A tournament was rejected; its organizer may be owed the commission."""

    tournament_id: str
    organizer_id: str
    reason: str
    rejected_by: str | None = None


@dataclass(frozen=True)
class RegistrationRejected:
    """A registration was rejected; the player may be owed the fee."""

    tournament_id: str
    player_id: str
    registration_id: str
    reason: str
    rejected_by: str | None = None


Rejection = Union[TournamentRejected, RegistrationRejected]


@dataclass(frozen=True)
class RefundResult:
    """Result of a refund operation.

    IMPORTANT: `created` is False when an existing request was returned
    instead: the active one for the subject, or the newest one once the
    amount paid has been refunded in full. `refund` is None when a rejection
    owed no refund.
    """

    refund: RefundRequest | None
    created: bool
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class RefundSummary:
    """Refund request counts and amounts across both kinds.

    total_amount covers every request, as requested. completed_amount is the
    money actually returned.
    """

    pending: int
    approved: int
    processing: int
    completed: int
    rejected: int
    total_amount: Decimal
    completed_amount: Decimal

    @property
    def total_requests(self) -> int:
        return self.pending + self.approved + self.processing + self.completed + self.rejected


def parse_refund_kind(kind: str) -> RefundKind:
    """Parse a refund kind, raising ValidationError for unknown values."""
    try:
        return RefundKind(kind)
    except ValueError:
        raise ValidationError(f"Unknown refund kind '{kind}'", field="kind") from None


def refund_model_for(kind: str) -> type[PlayerRefundRequest] | type[TournamentCommissionRefund]:
    """ORM model holding refund requests of the given kind."""
    if parse_refund_kind(kind) == RefundKind.TOURNAMENT_COMMISSION:
        return TournamentCommissionRefund
    return PlayerRefundRequest


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


class RefundRequestManager:
    """Creates refund requests and advances them to completion.

    Usage:
        manager = RefundRequestManager(store, ledger, audit, notifier)

        result = manager.on_rejection(
            TournamentRejected("t-1", "org-1", reason="Venue unavailable")
        )
        if result.refund is not None:
            manager.advance_status(result.refund.id, "tournament_commission", "approved")
    """

    def __init__(
        self,
        store: LedgerStore,
        ledger: CommissionLedger,
        audit: AuditTrail,
        notifier: NotificationEmitter,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._store = store
        self._ledger = ledger
        self._audit = audit
        self._notifier = notifier
        self._clock = clock

    # -------------------------------------------------------------------------
    # Creation
    # -------------------------------------------------------------------------

    def on_rejection(self, rejection: Rejection) -> RefundResult:
        """Open a refund if the rejected subject had already paid.

        A rejection with nothing collected is refund-free: it is logged and
        returns a result whose `refund` is None.
        """
        if isinstance(rejection, TournamentRejected):
            kind = RefundKind.TOURNAMENT_COMMISSION
            entry: TournamentCommission | PlayerRegistrationFee | None = (
                self._ledger.get_commission_for_refund(rejection.tournament_id)
            )
            registration_id = None
        elif isinstance(rejection, RegistrationRejected):
            kind = RefundKind.PLAYER_REGISTRATION
            entry = self._ledger.get_registration_fee_for_refund(
                rejection.tournament_id, rejection.player_id
            )
            registration_id = rejection.registration_id
        else:
            raise ValidationError(f"Unsupported rejection {type(rejection).__name__}")

        if entry is None:
            logger.info(
                "No refund for rejected %s in tournament %s: no payment record",
                kind.value,
                rejection.tournament_id,
            )
            return RefundResult(refund=None, created=False)

        if not PaymentStateMachine.is_collected(entry.payment_status) or entry.amount_paid <= 0:
            logger.info(
                "No refund for rejected %s in tournament %s: payment %s is %s (amount %s)",
                kind.value,
                rejection.tournament_id,
                entry.id,
                entry.payment_status,
                entry.amount_paid,
            )
            return RefundResult(refund=None, created=False)

        return self.create_refund_request(
            kind,
            entry.id,
            reason=rejection.reason,
            registration_id=registration_id,
            actor_id=rejection.rejected_by,
        )

    def create_refund_request(
        self,
        kind: str,
        entry_id: UUID,
        reason: str,
        refund_amount: Decimal | None = None,
        registration_id: str | None = None,
        actor_id: str | None = None,
    ) -> RefundResult:
        """Open a refund request against a paid commission or fee.

        Defaults to refunding whatever of the amount paid has not been refunded
        yet. Returns the active request instead of creating a second one for
        the same subject, and the newest request when nothing is left to refund.

        Raises:
            ValidationError: If the amount is not positive or exceeds what is
                left to refund, the entry has not been paid, or a required
                field is blank
            NotFoundError: If the commission or fee does not exist
        """
        refund_kind = parse_refund_kind(kind)
        reason = require_text(reason, "reason")

        if refund_kind == RefundKind.TOURNAMENT_COMMISSION:
            entry: TournamentCommission | PlayerRegistrationFee = self._store.get(
                TournamentCommission, entry_id
            )
        else:
            registration_id = require_text(registration_id, "registration_id")
            entry = self._store.get(PlayerRegistrationFee, entry_id)

        if not PaymentStateMachine.is_collected(entry.payment_status):
            raise ValidationError(
                f"{entry.entity_name} {entry_id} is '{entry.payment_status}', nothing to refund",
                field="entry_id",
            )

        paid = entry.amount_paid
        if refund_kind == RefundKind.TOURNAMENT_COMMISSION:
            model: Any = TournamentCommissionRefund
            subject: dict[str, Any] = {
                "tournament_id": entry.tournament_id,
                "organizer_id": entry.organizer_id,
            }
        else:
            model = PlayerRefundRequest
            subject = {"payment_id": entry.id}

        existing = self._find_active(model, subject)
        if existing is not None:
            logger.info(
                "Active %s %s already open for %s, returning it",
                model.entity_name,
                existing.id,
                subject,
            )
            return RefundResult(refund=existing, created=False)

        counted = self._find_counted(model, subject)
        remaining = paid - sum((r.refund_amount for r in counted), ZERO)
        if refund_amount is None:
            if counted and remaining <= 0:
                logger.info(
                    "%s for %s already refunded in full (%s), returning %s",
                    entry.entity_name,
                    subject,
                    paid,
                    counted[0].id,
                )
                return RefundResult(refund=counted[0], created=False)
            amount = remaining
        else:
            amount = parse_money(refund_amount, "refund_amount")
        if amount <= 0:
            raise ValidationError("refund_amount must be positive", field="refund_amount")
        if amount > paid:
            raise ValidationError(
                f"refund_amount {amount} exceeds amount paid {paid}",
                field="refund_amount",
            )
        if amount > remaining:
            raise ValidationError(
                f"refund_amount {amount} exceeds refundable balance {remaining} "
                f"({paid - remaining} of {paid} already refunded)",
                field="refund_amount",
            )

        now = self._clock()
        if refund_kind == RefundKind.TOURNAMENT_COMMISSION:
            row: RefundRequest = TournamentCommissionRefund(
                **subject,
                commission_id=entry.id,
                commission_amount=entry.commission_amount,
                refund_amount=amount,
                reason=reason,
                status=RefundStatus.PENDING.value,
                created_at=now,
                updated_at=now,
            )
        else:
            row = PlayerRefundRequest(
                **subject,
                registration_id=registration_id,
                player_id=entry.player_id,
                tournament_id=entry.tournament_id,
                refund_amount=amount,
                reason=reason,
                status=RefundStatus.PENDING.value,
                created_at=now,
                updated_at=now,
            )

        try:
            refund = self._store.add(row)
        except sa_exc.IntegrityError:
            # Lost the race to the one-active-request index
            existing = self._find_active(model, subject)
            if existing is None:
                raise
            return RefundResult(refund=existing, created=False)

        logger.info(
            "%s %s opened for %s: %s",
            model.entity_name,
            refund.id,
            refund.recipient_id,
            refund.refund_amount,
        )

        warnings: list[str] = []
        audit_warning = record_safely(
            self._audit,
            RefundRequested(
                metadata=self._metadata(actor_id, now),
                refund_id=refund.id,
                refund_kind=refund_kind.value,
                recipient_id=refund.recipient_id,
                tournament_id=refund.tournament_id,
                refund_amount=refund.refund_amount,
                reason=reason,
            ),
        )
        if audit_warning:
            warnings.append(audit_warning)
        warnings.extend(
            notify_safely(
                self._notifier,
                NotificationIntent(
                    recipient_id=refund.recipient_id,
                    template=REFUND_REQUESTED,
                    payload={
                        "refund_id": str(refund.id),
                        "refund_kind": refund_kind.value,
                        "tournament_id": refund.tournament_id,
                        "amount": str(refund.refund_amount),
                        "reason": reason,
                    },
                ),
            )
        )
        return RefundResult(refund=refund, created=True, warnings=warnings)

    # -------------------------------------------------------------------------
    # Workflow
    # -------------------------------------------------------------------------

    def advance_status(
        self,
        refund_id: UUID,
        kind: str,
        new_status: str,
        admin_notes: str | None = None,
        refund_method: str | None = None,
        refund_transaction_id: str | None = None,
        actor_id: str | None = None,
    ) -> RefundResult:
        """Move a refund request one step along its workflow.

        Completing requires a refund method and transaction id, given now or
        stored on an earlier step.

        Raises:
            ValidationError: If the status is unknown or completion data is missing
            NotFoundError: If the request does not exist
            InvalidTransitionError: If the move skips or leaves a terminal state
            ConcurrentModificationError: If the request changed meanwhile
        """
        refund_kind = parse_refund_kind(kind)
        model = refund_model_for(refund_kind)
        try:
            target = RefundStatus(new_status)
        except ValueError:
            raise ValidationError(
                f"Unknown refund status '{new_status}'", field="status"
            ) from None

        current = self._store.get(model, refund_id)
        RefundStateMachine.validate_transition(current.status, target)

        method = _clean(refund_method) or current.refund_method
        transaction_id = _clean(refund_transaction_id) or current.refund_transaction_id
        if target == RefundStatus.COMPLETED:
            if not method:
                raise ValidationError(
                    "refund_method is required to complete a refund",
                    field="refund_method",
                )
            if not transaction_id:
                raise ValidationError(
                    "refund_transaction_id is required to complete a refund",
                    field="refund_transaction_id",
                )

        now = self._clock()
        values: dict[str, Any] = {
            "status": target.value,
            "refund_method": method,
            "refund_transaction_id": transaction_id,
            "updated_at": now,
        }
        if admin_notes is not None:
            values["admin_notes"] = admin_notes
        if target in RefundStateMachine.DECISIONS:
            values["admin_decision_at"] = now
        if target == RefundStatus.COMPLETED:
            values["completed_at"] = now

        refund = self._store.compare_and_set(
            model, refund_id, expected=current.status, values=values
        )

        logger.info(
            "%s %s moved from %s to %s",
            model.entity_name,
            refund_id,
            current.status,
            target.value,
        )

        warnings: list[str] = []
        audit_warning = record_safely(
            self._audit,
            RefundStatusChanged(
                metadata=self._metadata(actor_id, now),
                refund_id=refund.id,
                refund_kind=refund_kind.value,
                from_status=current.status,
                to_status=target.value,
                admin_notes=admin_notes,
                refund_method=method,
                refund_transaction_id=transaction_id,
            ),
        )
        if audit_warning:
            warnings.append(audit_warning)
        warnings.extend(
            notify_safely(
                self._notifier,
                NotificationIntent(
                    recipient_id=refund.recipient_id,
                    template=REFUND_STATUS_CHANGED,
                    payload={
                        "refund_id": str(refund.id),
                        "refund_kind": refund_kind.value,
                        "status": target.value,
                        "amount": str(refund.refund_amount),
                    },
                ),
            )
        )
        return RefundResult(refund=refund, created=False, warnings=warnings)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get_refund(self, refund_id: UUID, kind: str) -> RefundRequest:
        """Load a refund request; NotFoundError if missing."""
        return self._store.get(refund_model_for(kind), refund_id)

    def list_refunds(self, kind: str, status: str | None = None) -> list[RefundRequest]:
        """Refund requests of one kind, newest first."""
        model: Any = refund_model_for(kind)
        stmt = select(model).order_by(model.created_at.desc())
        if status is not None:
            try:
                wanted = RefundStatus(status)
            except ValueError:
                raise ValidationError(
                    f"Unknown refund status '{status}'", field="status"
                ) from None
            stmt = stmt.where(model.status == wanted.value)
        return self._store.read(lambda session: list(session.scalars(stmt)))

    def list_all_refunds(self, status: str | None = None) -> list[RefundRequest]:
        """Refund requests of both kinds, newest first."""
        rows: list[RefundRequest] = []
        for kind in RefundKind:
            rows.extend(self.list_refunds(kind, status))
        return sorted(rows, key=lambda r: r.created_at, reverse=True)

    def summary(self) -> RefundSummary:
        """Counts per status and refund totals for the admin refund screen."""
        counts = {s.value: 0 for s in RefundStatus}
        total = ZERO
        completed = ZERO
        for refund in self.list_all_refunds():
            counts[refund.status] += 1
            total += refund.refund_amount
            if refund.status == RefundStatus.COMPLETED:
                completed += refund.refund_amount

        return RefundSummary(
            pending=counts[RefundStatus.PENDING.value],
            approved=counts[RefundStatus.APPROVED.value],
            processing=counts[RefundStatus.PROCESSING.value],
            completed=counts[RefundStatus.COMPLETED.value],
            rejected=counts[RefundStatus.REJECTED.value],
            total_amount=total,
            completed_amount=completed,
        )

    def _find_active(self, model: Any, subject: dict[str, Any]) -> RefundRequest | None:
        stmt = select(model).where(
            model.status.in_([s.value for s in RefundStateMachine.ACTIVE]),
            *(getattr(model, column) == value for column, value in subject.items()),
        )
        return self._store.read(lambda session: session.scalars(stmt).first())

    def _find_counted(self, model: Any, subject: dict[str, Any]) -> list[RefundRequest]:
        """Requests that count against the amount paid, newest first."""
        stmt = (
            select(model)
            .where(
                model.status != RefundStatus.REJECTED.value,
                *(getattr(model, column) == value for column, value in subject.items()),
            )
            .order_by(model.created_at.desc(), model.id.desc())
        )
        return self._store.read(lambda session: list(session.scalars(stmt)))

    def _metadata(self, actor_id: str | None, now: datetime) -> EventMetadata:
        return EventMetadata.create(
            actor_id=actor_id,
            actor_type="admin" if actor_id else "system",
            source_service="refunds",
            timestamp=now,
        )
