"""Refund request models.

Two variants with the same workflow shape:
- Player refunds: registration fee returned after a registration is rejected
- Tournament commission refunds: commission returned after a tournament is rejected

A subject has at most one active (pending/approved/processing) request; the
partial unique indexes below make that hold even when two creations race.
A player refund's subject is the fee payment it returns; the registration id
is kept for reference.
Refund rows are never deleted.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, DateTime, Index, Numeric, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from settlement_engine.models.base import Base, TimestampMixin

REFUND_STATUS_CHECK = (
    "status IN ('pending', 'approved', 'rejected', 'processing', 'completed')"
)
ACTIVE_REFUND_WHERE = "status IN ('pending', 'approved', 'processing')"


class RefundFieldsMixin(TimestampMixin):
    """Workflow columns shared by both refund variants."""

    status_field: ClassVar[str] = "status"

    refund_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    admin_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    admin_decision_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    refund_method: Mapped[str | None] = mapped_column(String(32), nullable=True)
    refund_transaction_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )


class PlayerRefundRequest(Base, RefundFieldsMixin):
    """Refund of a player's registration payment."""

    __tablename__ = "player_refund_request"

    entity_name: ClassVar[str] = "player_refund_request"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    player_id: Mapped[str] = mapped_column(String(64), nullable=False)
    tournament_id: Mapped[str] = mapped_column(String(64), nullable=False)
    registration_id: Mapped[str] = mapped_column(String(64), nullable=False)
    payment_id: Mapped[UUID] = mapped_column(nullable=False)

    __table_args__ = (
        CheckConstraint(REFUND_STATUS_CHECK, name="player_refund_request_status_ck"),
        CheckConstraint("refund_amount > 0", name="player_refund_request_amount_ck"),
        Index(
            "player_refund_request_one_active",
            "payment_id",
            unique=True,
            postgresql_where=text(ACTIVE_REFUND_WHERE),
            sqlite_where=text(ACTIVE_REFUND_WHERE),
        ),
        Index("player_refund_request_by_status", "status", "created_at"),
    )

    @property
    def recipient_id(self) -> str:
        """Who receives the money back."""
        return self.player_id


class TournamentCommissionRefund(Base, RefundFieldsMixin):
    """Refund of an organizer's tournament commission."""

    __tablename__ = "tournament_commission_refund"

    entity_name: ClassVar[str] = "tournament_commission_refund"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    tournament_id: Mapped[str] = mapped_column(String(64), nullable=False)
    organizer_id: Mapped[str] = mapped_column(String(64), nullable=False)
    commission_id: Mapped[UUID | None] = mapped_column(nullable=True)
    commission_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)

    __table_args__ = (
        CheckConstraint(REFUND_STATUS_CHECK, name="tournament_commission_refund_status_ck"),
        CheckConstraint(
            "refund_amount > 0 AND refund_amount <= commission_amount",
            name="tournament_commission_refund_amount_ck",
        ),
        Index(
            "tournament_commission_refund_one_active",
            "tournament_id",
            "organizer_id",
            unique=True,
            postgresql_where=text(ACTIVE_REFUND_WHERE),
            sqlite_where=text(ACTIVE_REFUND_WHERE),
        ),
        Index("tournament_commission_refund_by_status", "status", "created_at"),
    )

    @property
    def recipient_id(self) -> str:
        """Who receives the money back."""
        return self.organizer_id
