"""FastAPI application factory."""

import logging

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session, sessionmaker

from settlement_engine.api.routes import (
    health_router,
    payments_router,
    refunds_router,
    revenue_router,
)
from settlement_engine.config import Settings, get_settings
from settlement_engine.database import init_db
from settlement_engine.engine import SettlementEngine
from settlement_engine.errors import (
    BackendUnavailableError,
    ConcurrentModificationError,
    InvalidTransitionError,
    NotFoundError,
    SettlementError,
    ValidationError,
)
from settlement_engine.events.audit import AuditTrail, SqlAuditTrail
from settlement_engine.events.notifications import NotificationEmitter

logger = logging.getLogger(__name__)

ERROR_STATUS: dict[type[SettlementError], int] = {
    BackendUnavailableError: status.HTTP_503_SERVICE_UNAVAILABLE,
    ValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    InvalidTransitionError: status.HTTP_409_CONFLICT,
    ConcurrentModificationError: status.HTTP_409_CONFLICT,
    NotFoundError: status.HTTP_404_NOT_FOUND,
}

REFRESH_AND_RETRY = "Someone already acted on this entry. Refresh and retry."


def error_response(exc: SettlementError) -> JSONResponse:
    """Translate an engine error into its HTTP response."""
    status_code = ERROR_STATUS.get(type(exc), status.HTTP_500_INTERNAL_SERVER_ERROR)
    content: dict[str, str | None] = {"detail": str(exc), "code": exc.code}
    if isinstance(exc, ValidationError):
        content["field"] = exc.field
    if isinstance(exc, (InvalidTransitionError, ConcurrentModificationError)):
        content["action"] = REFRESH_AND_RETRY
    return JSONResponse(status_code=status_code, content=content)


def create_app(
    session_factory: sessionmaker[Session] | None = None,
    audit: AuditTrail | None = None,
    notifier: NotificationEmitter | None = None,
    settings: Settings | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Without a session factory the global database from settings is used.
    """
    settings = settings or get_settings()
    if session_factory is None:
        _, session_factory = init_db(settings)

    app = FastAPI(
        title="Settlement Engine API",
        description="Tournament payment and commission settlement",
        version="0.1.0",
    )
    app.state.session_factory = session_factory
    app.state.engine = SettlementEngine.from_settings(
        settings,
        session_factory,
        audit=audit or SqlAuditTrail(session_factory),
        notifier=notifier,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(SettlementError)
    async def settlement_exception_handler(
        request: Request, exc: SettlementError
    ) -> JSONResponse:
        """Map engine errors to typed HTTP responses."""
        if isinstance(exc, BackendUnavailableError):
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return error_response(exc)

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(payments_router, prefix="/api/v1")
    app.include_router(refunds_router, prefix="/api/v1")
    app.include_router(revenue_router, prefix="/api/v1")

    return app
