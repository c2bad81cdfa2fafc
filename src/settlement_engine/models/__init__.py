"""Settlement ledger ORM models."""

from settlement_engine.models.audit import AuditLogEntry
from settlement_engine.models.base import Base, TimestampMixin, utcnow
from settlement_engine.models.refunds import PlayerRefundRequest, TournamentCommissionRefund
from settlement_engine.models.settlement import (
    PaymentVerification,
    PlayerRegistrationFee,
    TournamentCommission,
)

__all__ = [
    "Base",
    "TimestampMixin",
    "utcnow",
    "TournamentCommission",
    "PlayerRegistrationFee",
    "PaymentVerification",
    "PlayerRefundRequest",
    "TournamentCommissionRefund",
    "AuditLogEntry",
]
