"""Settlement services package."""

from settlement_engine.services.commission_ledger import (
    CommissionLedger,
    LedgerResult,
    compute_commission,
    model_for,
)
from settlement_engine.services.ledger_store import LedgerStore
from settlement_engine.services.refunds import (
    RefundRequestManager,
    RefundResult,
    RefundSummary,
    RegistrationRejected,
    TournamentRejected,
)
from settlement_engine.services.revenue import (
    RevenueAggregator,
    RevenueStats,
    TournamentRevenue,
    dedupe_commissions,
)
from settlement_engine.services.state_machine import (
    PaymentStateMachine,
    PaymentStatus,
    PaymentType,
    RefundKind,
    RefundStateMachine,
    RefundStatus,
    VerificationDecision,
)
from settlement_engine.services.verification import (
    PaymentVerificationWorkflow,
    ResetResult,
    VerificationResult,
)

__all__ = [
    # Store
    "LedgerStore",
    # Ledger
    "CommissionLedger",
    "LedgerResult",
    "compute_commission",
    "model_for",
    # Verification
    "PaymentVerificationWorkflow",
    "VerificationResult",
    "ResetResult",
    # Refunds
    "RefundRequestManager",
    "RefundResult",
    "RefundSummary",
    "TournamentRejected",
    "RegistrationRejected",
    # Revenue
    "RevenueAggregator",
    "RevenueStats",
    "TournamentRevenue",
    "dedupe_commissions",
    # State machines
    "PaymentStateMachine",
    "RefundStateMachine",
    "PaymentStatus",
    "PaymentType",
    "RefundKind",
    "RefundStatus",
    "VerificationDecision",
]
