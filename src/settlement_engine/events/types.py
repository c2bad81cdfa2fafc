"""Domain event types for settlement operations.

All events are:
- Immutable (frozen dataclasses)
- Typed with explicit payloads
- Traceable via metadata
- Serializable for the audit trail

Every mutating ledger action emits exactly one event; the AuditTrail records it.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from settlement_engine.models.base import utcnow


class EventCategory(str, Enum):
    """Event categories for routing and filtering."""

    LEDGER = "ledger"
    PAYMENT = "payment"
    VERIFICATION = "verification"
    REFUND = "refund"


@dataclass(frozen=True)
class EventMetadata:
    """Metadata attached to every domain event."""

    event_id: UUID
    timestamp: datetime
    correlation_id: UUID  # Links related events
    actor_id: str | None  # User or system that triggered
    actor_type: str  # 'organizer', 'player', 'admin', 'system'
    source_service: str  # Component that emitted
    version: int = 1  # Schema version for evolution

    @classmethod
    def create(
        cls,
        actor_id: str | None = None,
        actor_type: str = "system",
        source_service: str = "settlement",
        correlation_id: UUID | None = None,
        timestamp: datetime | None = None,
    ) -> EventMetadata:
        """Create metadata with auto-generated fields."""
        return cls(
            event_id=uuid4(),
            timestamp=timestamp or utcnow(),
            correlation_id=correlation_id or uuid4(),
            actor_id=actor_id,
            actor_type=actor_type,
            source_service=source_service,
        )


@dataclass(frozen=True)
class DomainEvent:
    """Base class for all domain events."""

    metadata: EventMetadata

    @property
    def event_type(self) -> str:
        """Event type name for routing."""
        return self.__class__.__name__

    @property
    def category(self) -> EventCategory:
        """Event category for filtering."""
        raise NotImplementedError("Subclasses must define category")

    @property
    def entity_type(self) -> str:
        """Kind of ledger row this event is about."""
        raise NotImplementedError("Subclasses must define entity_type")

    @property
    def entity_id(self) -> UUID:
        """Id of the ledger row this event is about."""
        raise NotImplementedError("Subclasses must define entity_id")

    def to_dict(self) -> dict[str, Any]:
        """Serialize event to dictionary."""
        data = asdict(self)
        return _serialize_dict(data)

    def to_json(self) -> str:
        """Serialize event to JSON string."""
        return json.dumps(self.to_dict(), default=str)


def _serialize_dict(obj: Any) -> Any:
    """Recursively serialize objects for JSON compatibility."""
    if isinstance(obj, dict):
        return {k: _serialize_dict(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_serialize_dict(v) for v in obj]
    elif isinstance(obj, UUID):
        return str(obj)
    elif isinstance(obj, datetime):
        return obj.isoformat()
    elif isinstance(obj, date):
        return obj.isoformat()
    elif isinstance(obj, Decimal):
        return str(obj)
    elif isinstance(obj, Enum):
        return obj.value
    return obj


# =============================================================================
# Ledger Events
# =============================================================================


@dataclass(frozen=True)
class CommissionCreated(DomainEvent):
    """A tournament commission obligation was recorded."""

    commission_id: UUID
    tournament_id: str
    organizer_id: str
    total_amount: Decimal
    commission_percentage: Decimal
    commission_amount: Decimal

    @property
    def category(self) -> EventCategory:
        return EventCategory.LEDGER

    @property
    def entity_type(self) -> str:
        return "tournament_commission"

    @property
    def entity_id(self) -> UUID:
        return self.commission_id


@dataclass(frozen=True)
class RegistrationFeeCreated(DomainEvent):
    """A player registration fee obligation was recorded."""

    fee_id: UUID
    tournament_id: str
    player_id: str
    registration_fee: Decimal
    commission_amount: Decimal
    total_amount: Decimal

    @property
    def category(self) -> EventCategory:
        return EventCategory.LEDGER

    @property
    def entity_type(self) -> str:
        return "player_registration_fee"

    @property
    def entity_id(self) -> UUID:
        return self.fee_id


# =============================================================================
# Payment Events
# =============================================================================


@dataclass(frozen=True)
class _PaymentEvent(DomainEvent):
    """Shared shape of events about one payment entry."""

    payment_id: UUID
    payment_type: str

    @property
    def entity_type(self) -> str:
        if self.payment_type == "tournament_commission":
            return "tournament_commission"
        return "player_registration_fee"

    @property
    def entity_id(self) -> UUID:
        return self.payment_id


@dataclass(frozen=True)
class PaymentProofSubmitted(_PaymentEvent):
    """Payer submitted proof of payment (pending → paid)."""

    proof_url: str
    payment_method: str | None

    @property
    def category(self) -> EventCategory:
        return EventCategory.PAYMENT


@dataclass(frozen=True)
class PaymentVerified(_PaymentEvent):
    """Admin approved a paid entry (paid → verified)."""

    verified_by: str
    notes: str | None

    @property
    def category(self) -> EventCategory:
        return EventCategory.VERIFICATION


@dataclass(frozen=True)
class PaymentRejected(_PaymentEvent):
    """Admin rejected a paid entry (paid → failed)."""

    verified_by: str
    notes: str | None

    @property
    def category(self) -> EventCategory:
        return EventCategory.VERIFICATION


@dataclass(frozen=True)
class PaymentStatusReset(_PaymentEvent):
    """Admin correction moved a failed entry back to pending."""

    reset_by: str
    reason: str

    @property
    def category(self) -> EventCategory:
        return EventCategory.VERIFICATION


# =============================================================================
# Refund Events
# =============================================================================


@dataclass(frozen=True)
class RefundRequested(DomainEvent):
    """A refund request was opened for a rejected tournament or registration."""

    refund_id: UUID
    refund_kind: str
    recipient_id: str
    tournament_id: str
    refund_amount: Decimal
    reason: str

    @property
    def category(self) -> EventCategory:
        return EventCategory.REFUND

    @property
    def entity_type(self) -> str:
        if self.refund_kind == "tournament_commission":
            return "tournament_commission_refund"
        return "player_refund_request"

    @property
    def entity_id(self) -> UUID:
        return self.refund_id


@dataclass(frozen=True)
class RefundStatusChanged(DomainEvent):
    """A refund request advanced through its workflow."""

    refund_id: UUID
    refund_kind: str
    from_status: str
    to_status: str
    admin_notes: str | None
    refund_method: str | None
    refund_transaction_id: str | None

    @property
    def category(self) -> EventCategory:
        return EventCategory.REFUND

    @property
    def entity_type(self) -> str:
        if self.refund_kind == "tournament_commission":
            return "tournament_commission_refund"
        return "player_refund_request"

    @property
    def entity_id(self) -> UUID:
        return self.refund_id
