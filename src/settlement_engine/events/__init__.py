"""Settlement domain events, audit trail and notification intents."""

from settlement_engine.events.audit import (
    AuditTrail,
    NullAuditTrail,
    SqlAuditTrail,
    record_safely,
)
from settlement_engine.events.notifications import (
    NotificationEmitter,
    NotificationIntent,
    notify_safely,
)
from settlement_engine.events.types import (
    CommissionCreated,
    DomainEvent,
    EventCategory,
    EventMetadata,
    PaymentProofSubmitted,
    PaymentRejected,
    PaymentStatusReset,
    PaymentVerified,
    RefundRequested,
    RefundStatusChanged,
    RegistrationFeeCreated,
)

__all__ = [
    # Types
    "DomainEvent",
    "EventCategory",
    "EventMetadata",
    "CommissionCreated",
    "RegistrationFeeCreated",
    "PaymentProofSubmitted",
    "PaymentVerified",
    "PaymentRejected",
    "PaymentStatusReset",
    "RefundRequested",
    "RefundStatusChanged",
    # Audit
    "AuditTrail",
    "SqlAuditTrail",
    "NullAuditTrail",
    "record_safely",
    # Notifications
    "NotificationEmitter",
    "NotificationIntent",
    "notify_safely",
]
