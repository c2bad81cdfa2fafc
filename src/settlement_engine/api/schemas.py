"""Pydantic schemas for API request/response models."""

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Error schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Schema for error responses."""

    detail: str
    code: str
    field: str | None = None
    action: str | None = None


# ============================================================================
# Ledger schemas
# ============================================================================


class CommissionCreate(BaseModel):
    """Schema for recording a tournament commission."""

    tournament_id: str
    organizer_id: str
    total_amount: Decimal
    percentage: Decimal


class CommissionResponse(BaseModel):
    """Schema for tournament commission response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tournament_id: str
    organizer_id: str
    total_amount: Decimal
    commission_percentage: Decimal
    commission_amount: Decimal
    payment_status: str
    payment_method: str | None = None
    payment_date: datetime | None = None
    payment_proof_url: str | None = None
    verified_by: str | None = None
    verified_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
    warnings: list[str] = []


class RegistrationFeeCreate(BaseModel):
    """Schema for recording a player registration fee."""

    tournament_id: str
    player_id: str
    registration_fee: Decimal
    percentage: Decimal


class RegistrationFeeResponse(BaseModel):
    """Schema for player registration fee response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tournament_id: str
    player_id: str
    registration_fee: Decimal
    commission_percentage: Decimal
    commission_amount: Decimal
    total_amount: Decimal
    payment_status: str
    payment_method: str | None = None
    payment_date: datetime | None = None
    payment_proof_url: str | None = None
    verified_by: str | None = None
    verified_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
    warnings: list[str] = []


# ============================================================================
# Payment schemas
# ============================================================================


class PaymentEntryResponse(BaseModel):
    """One commission or fee entry in a payment listing."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    payment_type: str
    tournament_id: str
    payer_id: str
    amount_paid: Decimal
    commission_amount: Decimal
    payment_status: str
    payment_method: str | None = None
    payment_date: datetime | None = None
    payment_proof_url: str | None = None
    verified_by: str | None = None
    verified_at: datetime | None = None
    created_at: datetime
    warnings: list[str] = []


class PaymentListResponse(BaseModel):
    """Schema for listing payment entries."""

    items: list[PaymentEntryResponse]
    total: int


class PaymentProofRequest(BaseModel):
    """Schema for submitting payment proof."""

    proof_url: str
    payment_method: str | None = None


class VerifyRequest(BaseModel):
    """Schema for an admin verification decision."""

    decision: str = Field(description="approved or rejected")
    verifier_id: str
    notes: str | None = None


class VerificationResponse(BaseModel):
    """Schema for verification result."""

    payment_id: UUID
    payment_type: str
    status: str
    decision: str
    verified_by: str
    verified_at: datetime
    notes: str | None = None
    warnings: list[str] = []


class ResetRequest(BaseModel):
    """Schema for resetting a failed payment to pending."""

    admin_id: str
    reason: str


class ResetResponse(BaseModel):
    """Schema for reset result."""

    payment_id: UUID
    payment_type: str
    status: str
    warnings: list[str] = []


# ============================================================================
# Refund schemas
# ============================================================================


class TournamentRejectionRequest(BaseModel):
    """A tournament was rejected."""

    tournament_id: str
    organizer_id: str
    reason: str
    rejected_by: str | None = None


class RegistrationRejectionRequest(BaseModel):
    """A player registration was rejected."""

    tournament_id: str
    player_id: str
    registration_id: str
    reason: str
    rejected_by: str | None = None


class RefundCreate(BaseModel):
    """Schema for explicitly opening a refund request."""

    entry_id: UUID
    reason: str
    refund_amount: Decimal | None = None
    registration_id: str | None = None
    actor_id: str | None = None


class RefundStatusUpdate(BaseModel):
    """Schema for advancing a refund request."""

    status: str
    admin_notes: str | None = None
    refund_method: str | None = None
    refund_transaction_id: str | None = None
    actor_id: str | None = None


class RefundResponse(BaseModel):
    """Schema for refund request response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tournament_id: str
    recipient_id: str
    refund_amount: Decimal
    reason: str
    status: str
    admin_notes: str | None = None
    admin_decision_at: datetime | None = None
    refund_method: str | None = None
    refund_transaction_id: str | None = None
    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None = None


class RefundResultResponse(BaseModel):
    """Schema for the outcome of a refund operation."""

    refund: RefundResponse | None
    created: bool
    warnings: list[str] = []


class RefundListResponse(BaseModel):
    """Schema for listing refund requests."""

    items: list[RefundResponse]
    total: int


class RefundSummaryResponse(BaseModel):
    """Refund counts per status and totals across both kinds."""

    model_config = ConfigDict(from_attributes=True)

    pending: int
    approved: int
    processing: int
    completed: int
    rejected: int
    total_requests: int
    total_amount: Decimal
    completed_amount: Decimal


# ============================================================================
# Revenue schemas
# ============================================================================


class TournamentRevenueResponse(BaseModel):
    """Revenue for one tournament."""

    model_config = ConfigDict(from_attributes=True)

    tournament_id: str
    organizer_id: str
    commission_amount: Decimal
    commission_status: str
    commission_collected: Decimal
    registration_commissions: Decimal
    registrations_paid: int
    duplicate_rows: int
    total: Decimal


class RevenueStatsResponse(BaseModel):
    """Schema for revenue statistics."""

    model_config = ConfigDict(from_attributes=True)

    total_revenue: Decimal
    total_commissions: Decimal
    total_registration_fees: Decimal
    total_obligations: Decimal
    awaiting_payment: int
    awaiting_verification: int
    pending_payments: int
    verified_payments: int
    failed_payments: int
    duplicate_commission_rows: int
    year: int
    monthly_revenue: list[Decimal]
    by_tournament: list[TournamentRevenueResponse]


def payment_entry(
    entry: Any, payment_type: str, warnings: list[str] | None = None
) -> PaymentEntryResponse:
    """Build a listing item from a commission or fee row."""
    return PaymentEntryResponse(
        id=entry.id,
        payment_type=payment_type,
        tournament_id=entry.tournament_id,
        payer_id=entry.payer_id,
        amount_paid=entry.amount_paid,
        commission_amount=entry.commission_amount,
        payment_status=entry.payment_status,
        payment_method=entry.payment_method,
        payment_date=entry.payment_date,
        payment_proof_url=entry.payment_proof_url,
        verified_by=entry.verified_by,
        verified_at=entry.verified_at,
        created_at=entry.created_at,
        warnings=warnings or [],
    )
