"""Rejection and refund request endpoints."""

from datetime import datetime, timezone
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, Response, status

from settlement_engine.api.dependencies import Engine
from settlement_engine.api.schemas import (
    ErrorResponse,
    RefundCreate,
    RefundListResponse,
    RefundResponse,
    RefundResultResponse,
    RefundStatusUpdate,
    RefundSummaryResponse,
    RegistrationRejectionRequest,
    TournamentRejectionRequest,
)
from settlement_engine.services.refunds import (
    RefundResult,
    RegistrationRejected,
    TournamentRejected,
)

router = APIRouter(tags=["refunds"])

ERRORS = {
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    422: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}


def _result_response(result: RefundResult, response: Response) -> RefundResultResponse:
    if result.created:
        response.status_code = status.HTTP_201_CREATED
    return RefundResultResponse(
        refund=RefundResponse.model_validate(result.refund) if result.refund else None,
        created=result.created,
        warnings=result.warnings,
    )


# ============================================================================
# Rejections
# ============================================================================


@router.post(
    "/rejections/tournament",
    response_model=RefundResultResponse,
    responses=ERRORS,
)
def reject_tournament(
    engine: Engine,
    payload: TournamentRejectionRequest,
    response: Response,
) -> RefundResultResponse:
    """Handle a tournament rejection; opens a commission refund if one is owed."""
    result = engine.on_rejection(
        TournamentRejected(
            tournament_id=payload.tournament_id,
            organizer_id=payload.organizer_id,
            reason=payload.reason,
            rejected_by=payload.rejected_by,
        )
    )
    return _result_response(result, response)


@router.post(
    "/rejections/registration",
    response_model=RefundResultResponse,
    responses=ERRORS,
)
def reject_registration(
    engine: Engine,
    payload: RegistrationRejectionRequest,
    response: Response,
) -> RefundResultResponse:
    """Handle a registration rejection; opens a player refund if one is owed."""
    result = engine.on_rejection(
        RegistrationRejected(
            tournament_id=payload.tournament_id,
            player_id=payload.player_id,
            registration_id=payload.registration_id,
            reason=payload.reason,
            rejected_by=payload.rejected_by,
        )
    )
    return _result_response(result, response)


# ============================================================================
# Refund requests
# ============================================================================


@router.post(
    "/refunds/{kind}",
    response_model=RefundResultResponse,
    responses=ERRORS,
)
def create_refund_request(
    engine: Engine,
    kind: Annotated[str, Path()],
    payload: RefundCreate,
    response: Response,
) -> RefundResultResponse:
    """Open a refund request; returns the active one if it already exists."""
    result = engine.create_refund_request(
        kind,
        payload.entry_id,
        payload.reason,
        refund_amount=payload.refund_amount,
        registration_id=payload.registration_id,
        actor_id=payload.actor_id,
    )
    return _result_response(result, response)


@router.get(
    "/refunds/summary",
    response_model=RefundSummaryResponse,
    responses={503: {"model": ErrorResponse}},
)
def get_refund_summary(engine: Engine) -> RefundSummaryResponse:
    """Counts per status and refund totals across both kinds."""
    return RefundSummaryResponse.model_validate(engine.get_refund_summary())


@router.get(
    "/refunds/export",
    response_class=Response,
    responses={
        200: {"content": {"text/csv": {}}},
        422: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)
def export_refund_requests(
    engine: Engine,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
) -> Response:
    """Refund requests of both kinds as CSV, newest first."""
    filename = f"refund_requests_{datetime.now(timezone.utc):%Y-%m-%d}.csv"
    return Response(
        content=engine.export_refund_requests(status_filter),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get(
    "/refunds/{kind}",
    response_model=RefundListResponse,
    responses=ERRORS,
)
def list_refunds(
    engine: Engine,
    kind: Annotated[str, Path()],
    status_filter: Annotated[str | None, Query(alias="status")] = None,
) -> RefundListResponse:
    """Refund requests of one kind, newest first."""
    refunds = engine.list_refunds(kind, status_filter)
    return RefundListResponse(
        items=[RefundResponse.model_validate(r) for r in refunds],
        total=len(refunds),
    )


@router.post(
    "/refunds/{kind}/{refund_id}/status",
    response_model=RefundResultResponse,
    responses=ERRORS,
)
def advance_refund_status(
    engine: Engine,
    kind: Annotated[str, Path()],
    refund_id: Annotated[UUID, Path()],
    payload: RefundStatusUpdate,
    response: Response,
) -> RefundResultResponse:
    """Move a refund request one step along its workflow."""
    result = engine.advance_refund_status(
        refund_id,
        kind,
        payload.status,
        admin_notes=payload.admin_notes,
        refund_method=payload.refund_method,
        refund_transaction_id=payload.refund_transaction_id,
        actor_id=payload.actor_id,
    )
    return _result_response(result, response)
