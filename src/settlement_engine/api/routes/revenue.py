"""Revenue reporting endpoints."""

from typing import Annotated

from fastapi import APIRouter, Query

from settlement_engine.api.dependencies import Engine
from settlement_engine.api.schemas import (
    ErrorResponse,
    RevenueStatsResponse,
    TournamentRevenueResponse,
)

router = APIRouter(prefix="/revenue", tags=["revenue"])


@router.get(
    "/stats",
    response_model=RevenueStatsResponse,
    responses={503: {"model": ErrorResponse}},
)
def get_revenue_stats(
    engine: Engine,
    year: Annotated[int | None, Query(ge=2000, le=9999)] = None,
) -> RevenueStatsResponse:
    """Revenue collected, payment counts and per-tournament breakdown."""
    stats = engine.get_revenue_stats(year)
    return RevenueStatsResponse(
        total_revenue=stats.total_revenue,
        total_commissions=stats.total_commissions,
        total_registration_fees=stats.total_registration_fees,
        total_obligations=stats.total_obligations,
        awaiting_payment=stats.awaiting_payment,
        awaiting_verification=stats.awaiting_verification,
        pending_payments=stats.pending_payments,
        verified_payments=stats.verified_payments,
        failed_payments=stats.failed_payments,
        duplicate_commission_rows=stats.duplicate_commission_rows,
        year=stats.year,
        monthly_revenue=stats.monthly_revenue,
        by_tournament=[
            TournamentRevenueResponse.model_validate(t) for t in stats.by_tournament
        ],
    )
