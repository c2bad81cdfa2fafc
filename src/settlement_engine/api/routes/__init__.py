"""API routes."""

from settlement_engine.api.routes.health import router as health_router
from settlement_engine.api.routes.payments import router as payments_router
from settlement_engine.api.routes.refunds import router as refunds_router
from settlement_engine.api.routes.revenue import router as revenue_router

__all__ = ["health_router", "payments_router", "refunds_router", "revenue_router"]
