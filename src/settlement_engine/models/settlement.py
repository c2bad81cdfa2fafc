"""Commission and registration-fee ledger models.

Covers the money the platform is owed:
- Tournament commissions (percentage of tournament revenue, paid by organizers)
- Player registration fees (entry fee plus the platform's cut, paid by players)
- Payment verification records (append-only admin decisions)
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, DateTime, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from settlement_engine.models.base import Base, TimestampMixin, utcnow

PAYMENT_STATUS_CHECK = "payment_status IN ('pending', 'paid', 'verified', 'failed')"


class TournamentCommission(Base, TimestampMixin):
    """Commission an organizer owes on a tournament's gross revenue.

    One logical obligation per tournament, but retried creation upstream can
    leave several rows for the same tournament_id. Readers must not assume
    one row per tournament.
    """

    __tablename__ = "tournament_commission"

    status_field: ClassVar[str] = "payment_status"
    entity_name: ClassVar[str] = "tournament_commission"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    tournament_id: Mapped[str] = mapped_column(String(64), nullable=False)
    organizer_id: Mapped[str] = mapped_column(String(64), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    commission_percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    commission_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    payment_status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    payment_method: Mapped[str | None] = mapped_column(String(32), nullable=True)
    payment_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    payment_proof_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    verified_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(PAYMENT_STATUS_CHECK, name="tournament_commission_status_ck"),
        CheckConstraint("total_amount >= 0", name="tournament_commission_total_ck"),
        CheckConstraint(
            "commission_percentage >= 0 AND commission_percentage <= 100",
            name="tournament_commission_percentage_ck",
        ),
        CheckConstraint(
            "commission_amount <= total_amount",
            name="tournament_commission_amount_ck",
        ),
        Index("tournament_commission_by_tournament", "tournament_id", "created_at"),
    )

    @property
    def payer_id(self) -> str:
        """Who owes this commission."""
        return self.organizer_id

    @property
    def amount_paid(self) -> Decimal:
        """Amount that changes hands once proof is submitted."""
        return self.commission_amount


class PlayerRegistrationFee(Base, TimestampMixin):
    """Registration fee a player pays to enter a tournament.

    total_amount = registration_fee + commission_amount; the commission is the
    platform's cut and never exceeds the fee itself.
    """

    __tablename__ = "player_registration_fee"

    status_field: ClassVar[str] = "payment_status"
    entity_name: ClassVar[str] = "player_registration_fee"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    tournament_id: Mapped[str] = mapped_column(String(64), nullable=False)
    player_id: Mapped[str] = mapped_column(String(64), nullable=False)
    registration_fee: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    commission_percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    commission_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    payment_status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    payment_method: Mapped[str | None] = mapped_column(String(32), nullable=True)
    payment_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    payment_proof_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    verified_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(PAYMENT_STATUS_CHECK, name="player_registration_fee_status_ck"),
        CheckConstraint("registration_fee >= 0", name="player_registration_fee_fee_ck"),
        CheckConstraint(
            "commission_amount <= registration_fee",
            name="player_registration_fee_commission_ck",
        ),
        Index(
            "player_registration_fee_by_player",
            "tournament_id",
            "player_id",
            "created_at",
        ),
    )

    @property
    def payer_id(self) -> str:
        """Who owes this fee."""
        return self.player_id

    @property
    def amount_paid(self) -> Decimal:
        """Amount that changes hands once proof is submitted."""
        return self.total_amount


class PaymentVerification(Base):
    """Append-only record of an admin verify/reject decision."""

    __tablename__ = "payment_verification"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    payment_id: Mapped[UUID] = mapped_column(nullable=False)
    payment_type: Mapped[str] = mapped_column(String(32), nullable=False)
    verified_by: Mapped[str] = mapped_column(String(64), nullable=False)
    verified_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "payment_type IN ('tournament_commission', 'player_registration')",
            name="payment_verification_type_ck",
        ),
        CheckConstraint(
            "status IN ('approved', 'rejected')",
            name="payment_verification_status_ck",
        ),
        Index("payment_verification_by_payment", "payment_id"),
    )
