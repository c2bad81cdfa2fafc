"""Commission ledger - creates and reads the money the platform is owed.

Owns the pending → paid transition. Commission amounts are computed once at
creation and never rewritten afterwards.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Union
from uuid import UUID

from sqlalchemy import select

from settlement_engine.errors import ValidationError
from settlement_engine.events.audit import AuditTrail, record_safely
from settlement_engine.events.notifications import (
    PAYMENT_PROOF_SUBMITTED,
    NotificationEmitter,
    NotificationIntent,
    notify_safely,
)
from settlement_engine.events.types import (
    CommissionCreated,
    EventMetadata,
    PaymentProofSubmitted,
    RegistrationFeeCreated,
)
from settlement_engine.models import PlayerRegistrationFee, TournamentCommission, utcnow
from settlement_engine.services.ledger_store import LedgerStore
from settlement_engine.services.state_machine import (
    PaymentStateMachine,
    PaymentStatus,
    PaymentType,
)

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
HUNDRED = Decimal("100")

# Recipient of intents meant for whoever reviews payments
ADMIN_RECIPIENT = "admins"

LedgerEntry = Union[TournamentCommission, PlayerRegistrationFee]

MODEL_BY_TYPE: dict[str, type[TournamentCommission] | type[PlayerRegistrationFee]] = {
    PaymentType.TOURNAMENT_COMMISSION: TournamentCommission,
    PaymentType.PLAYER_REGISTRATION: PlayerRegistrationFee,
}


@dataclass(frozen=True)
class LedgerResult:
    """A created or updated ledger entry.

    `warnings` lists audit or notification failures; the entry is committed
    even when warnings are present.
    """

    entry: LedgerEntry
    warnings: list[str] = field(default_factory=list)


def to_money(value: Decimal) -> Decimal:
    """Round to currency precision."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def compute_commission(amount: Decimal, percentage: Decimal) -> Decimal:
    """commission = round(amount * percentage / 100, 2)."""
    return to_money(amount * percentage / HUNDRED)


def parse_payment_type(payment_type: str) -> PaymentType:
    """Parse a payment type, raising ValidationError for unknown values."""
    try:
        return PaymentType(payment_type)
    except ValueError:
        raise ValidationError(
            f"Unknown payment type '{payment_type}'", field="payment_type"
        ) from None


def model_for(payment_type: str) -> type[TournamentCommission] | type[PlayerRegistrationFee]:
    """ORM model holding entries of the given payment type."""
    return MODEL_BY_TYPE[parse_payment_type(payment_type)]


def parse_money(value: Any, field: str) -> Decimal:
    """Parse a non-negative amount with at most two decimal places."""
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number", field=field) from None

    if not amount.is_finite():
        raise ValidationError(f"{field} must be a finite number", field=field)
    if amount < 0:
        raise ValidationError(f"{field} cannot be negative", field=field)
    if amount != amount.quantize(CENT):
        raise ValidationError(
            f"{field} has more than two decimal places", field=field
        )
    return amount


def parse_percentage(value: Any) -> Decimal:
    """Parse a commission percentage in [0, 100]."""
    if value is None:
        raise ValidationError("percentage is required", field="percentage")
    percentage = parse_money(value, "percentage")
    if percentage > HUNDRED:
        raise ValidationError("percentage must be between 0 and 100", field="percentage")
    return percentage


def require_text(value: str | None, field: str) -> str:
    """Reject missing or blank identifiers and free text."""
    if value is None or not str(value).strip():
        raise ValidationError(f"{field} is required", field=field)
    return str(value).strip()


class CommissionLedger:
    """Creates commission and registration-fee obligations.

    Usage:
        ledger = CommissionLedger(store, audit, notifier)

        commission = ledger.create_tournament_commission(
            tournament_id="t-1",
            organizer_id="org-1",
            total_amount=Decimal("10000"),
            percentage=Decimal("5"),
        ).entry
        result = ledger.submit_payment_proof(
            commission.id, "tournament_commission", "https://.../proof.png"
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

    # -------------------------------------------------------------------------
    # Creation
    # -------------------------------------------------------------------------

    def create_tournament_commission(
        self,
        tournament_id: str,
        organizer_id: str,
        total_amount: Decimal,
        percentage: Decimal,
    ) -> LedgerResult:
        """Record the commission an organizer owes on a tournament.

        Raises:
            ValidationError: If an amount, the percentage or an id is invalid
        """
        tournament_id = require_text(tournament_id, "tournament_id")
        organizer_id = require_text(organizer_id, "organizer_id")
        total = parse_money(total_amount, "total_amount")
        pct = parse_percentage(percentage)
        now = self._clock()

        commission = self._store.add(
            TournamentCommission(
                tournament_id=tournament_id,
                organizer_id=organizer_id,
                total_amount=total,
                commission_percentage=pct,
                commission_amount=compute_commission(total, pct),
                payment_status=PaymentStatus.PENDING.value,
                created_at=now,
                updated_at=now,
            )
        )

        logger.info(
            "Commission %s created for tournament %s: %s%% of %s = %s",
            commission.id,
            tournament_id,
            pct,
            total,
            commission.commission_amount,
        )
        audit_warning = record_safely(
            self._audit,
            CommissionCreated(
                metadata=self._metadata(organizer_id, "organizer", now),
                commission_id=commission.id,
                tournament_id=tournament_id,
                organizer_id=organizer_id,
                total_amount=commission.total_amount,
                commission_percentage=commission.commission_percentage,
                commission_amount=commission.commission_amount,
            ),
        )
        return LedgerResult(commission, [audit_warning] if audit_warning else [])

    def create_player_registration_fee(
        self,
        tournament_id: str,
        player_id: str,
        registration_fee: Decimal,
        percentage: Decimal,
    ) -> LedgerResult:
        """Record the fee a player owes to enter a tournament.

        The player pays the fee plus the platform's commission on it.

        Raises:
            ValidationError: If an amount, the percentage or an id is invalid
        """
        tournament_id = require_text(tournament_id, "tournament_id")
        player_id = require_text(player_id, "player_id")
        fee_amount = parse_money(registration_fee, "registration_fee")
        pct = parse_percentage(percentage)
        commission = compute_commission(fee_amount, pct)
        now = self._clock()

        fee = self._store.add(
            PlayerRegistrationFee(
                tournament_id=tournament_id,
                player_id=player_id,
                registration_fee=fee_amount,
                commission_percentage=pct,
                commission_amount=commission,
                total_amount=fee_amount + commission,
                payment_status=PaymentStatus.PENDING.value,
                created_at=now,
                updated_at=now,
            )
        )

        logger.info(
            "Registration fee %s created for player %s in tournament %s: total %s",
            fee.id,
            player_id,
            tournament_id,
            fee.total_amount,
        )
        audit_warning = record_safely(
            self._audit,
            RegistrationFeeCreated(
                metadata=self._metadata(player_id, "player", now),
                fee_id=fee.id,
                tournament_id=tournament_id,
                player_id=player_id,
                registration_fee=fee.registration_fee,
                commission_amount=fee.commission_amount,
                total_amount=fee.total_amount,
            ),
        )
        return LedgerResult(fee, [audit_warning] if audit_warning else [])

    # -------------------------------------------------------------------------
    # Payment proof
    # -------------------------------------------------------------------------

    def submit_payment_proof(
        self,
        entry_id: UUID,
        payment_type: str,
        proof_url: str,
        payment_method: str | None = None,
    ) -> LedgerResult:
        """Move an entry from pending to paid.

        Raises:
            ValidationError: If the proof url is blank or the type unknown
            NotFoundError: If the entry does not exist
            InvalidTransitionError: If the entry is not pending
            ConcurrentModificationError: If the entry changed while submitting
        """
        model = model_for(payment_type)
        proof_url = require_text(proof_url, "proof_url")

        current = self._store.get(model, entry_id)
        PaymentStateMachine.validate_transition(
            current.payment_status, PaymentStatus.PAID
        )

        now = self._clock()
        entry = self._store.compare_and_set(
            model,
            entry_id,
            expected=PaymentStatus.PENDING.value,
            values={
                "payment_status": PaymentStatus.PAID.value,
                "payment_date": now,
                "payment_proof_url": proof_url,
                "payment_method": payment_method,
                "updated_at": now,
            },
        )

        logger.info("Payment proof submitted for %s %s", model.entity_name, entry_id)
        warnings: list[str] = []
        audit_warning = record_safely(
            self._audit,
            PaymentProofSubmitted(
                metadata=self._metadata(entry.payer_id, "payer", now),
                payment_id=entry.id,
                payment_type=parse_payment_type(payment_type).value,
                proof_url=proof_url,
                payment_method=payment_method,
            ),
        )
        if audit_warning:
            warnings.append(audit_warning)
        warnings.extend(
            notify_safely(
                self._notifier,
                NotificationIntent(
                    recipient_id=ADMIN_RECIPIENT,
                    template=PAYMENT_PROOF_SUBMITTED,
                    payload={
                        "payment_id": str(entry.id),
                        "payment_type": parse_payment_type(payment_type).value,
                        "tournament_id": entry.tournament_id,
                        "amount": str(entry.amount_paid),
                    },
                ),
            )
        )
        return LedgerResult(entry, warnings)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get_entry(self, entry_id: UUID, payment_type: str) -> LedgerEntry:
        """Load a commission or fee row; NotFoundError if missing."""
        return self._store.get(model_for(payment_type), entry_id)

    def get_commission_for_refund(self, tournament_id: str) -> TournamentCommission | None:
        """Most recently created commission row for a tournament.

        Duplicate rows are possible; the newest one is authoritative. Rows
        created at the same instant are ordered by id so the answer is stable.
        """
        return self._store.read(
            lambda session: session.scalars(
                select(TournamentCommission)
                .where(TournamentCommission.tournament_id == tournament_id)
                .order_by(
                    TournamentCommission.created_at.desc(),
                    TournamentCommission.id.desc(),
                )
                .limit(1)
            ).first()
        )

    def get_registration_fee_for_refund(
        self, tournament_id: str, player_id: str
    ) -> PlayerRegistrationFee | None:
        """Most recently created fee row for a player in a tournament."""
        return self._store.read(
            lambda session: session.scalars(
                select(PlayerRegistrationFee)
                .where(
                    PlayerRegistrationFee.tournament_id == tournament_id,
                    PlayerRegistrationFee.player_id == player_id,
                )
                .order_by(
                    PlayerRegistrationFee.created_at.desc(),
                    PlayerRegistrationFee.id.desc(),
                )
                .limit(1)
            ).first()
        )

    def list_commissions(self, status: str | None = None) -> list[TournamentCommission]:
        """Commission rows, oldest first, optionally filtered by status."""
        return self._list(TournamentCommission, status)

    def list_registration_fees(self, status: str | None = None) -> list[PlayerRegistrationFee]:
        """Registration fee rows, oldest first, optionally filtered by status."""
        return self._list(PlayerRegistrationFee, status)

    def _list(self, model: Any, status: str | None) -> list[Any]:
        stmt = select(model).order_by(model.created_at)
        if status is not None:
            try:
                wanted = PaymentStatus(status)
            except ValueError:
                raise ValidationError(
                    f"Unknown payment status '{status}'", field="status"
                ) from None
            stmt = stmt.where(model.payment_status == wanted.value)
        return self._store.read(lambda session: list(session.scalars(stmt)))

    def _metadata(self, actor_id: str | None, actor_type: str, now: datetime) -> EventMetadata:
        return EventMetadata.create(
            actor_id=actor_id,
            actor_type=actor_type,
            source_service="commission_ledger",
            timestamp=now,
        )
