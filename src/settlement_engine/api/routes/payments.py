"""Commission, registration fee and payment verification endpoints."""

from datetime import datetime, timezone
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, Response, status

from settlement_engine.api.dependencies import Engine
from settlement_engine.api.schemas import (
    CommissionCreate,
    CommissionResponse,
    ErrorResponse,
    PaymentEntryResponse,
    PaymentListResponse,
    PaymentProofRequest,
    RegistrationFeeCreate,
    RegistrationFeeResponse,
    ResetRequest,
    ResetResponse,
    VerificationResponse,
    VerifyRequest,
    payment_entry,
)
from settlement_engine.models import TournamentCommission
from settlement_engine.services.state_machine import PaymentType

router = APIRouter(tags=["payments"])

ERRORS = {
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    422: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}


def _payment_type_of(entry: object) -> str:
    if isinstance(entry, TournamentCommission):
        return PaymentType.TOURNAMENT_COMMISSION.value
    return PaymentType.PLAYER_REGISTRATION.value


# ============================================================================
# Ledger entries
# ============================================================================


@router.post(
    "/commissions",
    response_model=CommissionResponse,
    status_code=status.HTTP_201_CREATED,
    responses=ERRORS,
)
def create_commission(engine: Engine, payload: CommissionCreate) -> CommissionResponse:
    """Record the commission an organizer owes on a tournament."""
    result = engine.create_tournament_commission(
        payload.tournament_id,
        payload.organizer_id,
        payload.total_amount,
        payload.percentage,
    )
    response = CommissionResponse.model_validate(result.entry)
    response.warnings = result.warnings
    return response


@router.post(
    "/registration-fees",
    response_model=RegistrationFeeResponse,
    status_code=status.HTTP_201_CREATED,
    responses=ERRORS,
)
def create_registration_fee(
    engine: Engine, payload: RegistrationFeeCreate
) -> RegistrationFeeResponse:
    """Record the fee a player owes to enter a tournament."""
    result = engine.create_player_registration_fee(
        payload.tournament_id,
        payload.player_id,
        payload.registration_fee,
        payload.percentage,
    )
    response = RegistrationFeeResponse.model_validate(result.entry)
    response.warnings = result.warnings
    return response


# ============================================================================
# Payment workflow
# ============================================================================


@router.post(
    "/payments/{payment_type}/{entry_id}/proof",
    response_model=PaymentEntryResponse,
    responses=ERRORS,
)
def submit_payment_proof(
    engine: Engine,
    payment_type: Annotated[str, Path()],
    entry_id: Annotated[UUID, Path()],
    payload: PaymentProofRequest,
) -> PaymentEntryResponse:
    """Submit proof of payment (pending → paid)."""
    result = engine.submit_payment_proof(
        entry_id, payment_type, payload.proof_url, payload.payment_method
    )
    return payment_entry(result.entry, payment_type, result.warnings)


@router.post(
    "/payments/{payment_type}/{entry_id}/verify",
    response_model=VerificationResponse,
    responses=ERRORS,
)
def verify_payment(
    engine: Engine,
    payment_type: Annotated[str, Path()],
    entry_id: Annotated[UUID, Path()],
    payload: VerifyRequest,
) -> VerificationResponse:
    """Approve or reject a paid entry.

    A second decision on the same entry returns 409.
    """
    result = engine.verify_payment(
        entry_id,
        payment_type,
        payload.decision,
        payload.verifier_id,
        payload.notes,
    )
    return VerificationResponse(
        payment_id=result.entry.id,
        payment_type=result.record.payment_type,
        status=result.status,
        decision=result.record.status,
        verified_by=result.record.verified_by,
        verified_at=result.record.verified_at,
        notes=result.record.notes,
        warnings=result.warnings,
    )


@router.post(
    "/payments/{payment_type}/{entry_id}/reset",
    response_model=ResetResponse,
    responses=ERRORS,
)
def reset_failed_payment(
    engine: Engine,
    payment_type: Annotated[str, Path()],
    entry_id: Annotated[UUID, Path()],
    payload: ResetRequest,
) -> ResetResponse:
    """Admin correction: move a failed entry back to pending."""
    result = engine.reset_failed_payment(
        entry_id, payment_type, payload.admin_id, payload.reason
    )
    return ResetResponse(
        payment_id=result.entry.id,
        payment_type=payment_type,
        status=result.entry.payment_status,
        warnings=result.warnings,
    )


# ============================================================================
# Listings
# ============================================================================


@router.get(
    "/payments/pending",
    response_model=PaymentListResponse,
    responses=ERRORS,
)
def list_pending_payments(
    engine: Engine,
    payment_type: Annotated[str | None, Query()] = None,
) -> PaymentListResponse:
    """Entries with proof submitted, awaiting admin verification."""
    entries = engine.get_pending_payments(payment_type)
    items = [payment_entry(e, _payment_type_of(e)) for e in entries]
    return PaymentListResponse(items=items, total=len(items))


@router.get(
    "/payments/verified",
    response_model=PaymentListResponse,
    responses=ERRORS,
)
def list_verified_payments(
    engine: Engine,
    payment_type: Annotated[str | None, Query()] = None,
) -> PaymentListResponse:
    """Entries an admin has verified."""
    entries = engine.get_verified_payments(payment_type)
    items = [payment_entry(e, _payment_type_of(e)) for e in entries]
    return PaymentListResponse(items=items, total=len(items))


@router.get(
    "/payments/verified/export",
    response_class=Response,
    responses={200: {"content": {"text/csv": {}}}, 503: {"model": ErrorResponse}},
)
def export_verified_payments(engine: Engine) -> Response:
    """Verified tournament commissions as CSV."""
    filename = f"verified_payments_{datetime.now(timezone.utc):%Y-%m-%d}.csv"
    return Response(
        content=engine.export_verified_payments(),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
