"""Payment and refund state machines with transition validation."""

from __future__ import annotations

from enum import Enum

from settlement_engine.errors import InvalidTransitionError


def _value(status: str) -> str:
    return status.value if isinstance(status, Enum) else status


def _transition_reason(from_status: str, allowed: list[str], known: bool) -> str:
    if not known:
        return f"unknown status '{_value(from_status)}'"
    if not allowed:
        return f"'{_value(from_status)}' is terminal"
    return "expected " + " or ".join(f"'{_value(s)}'" for s in allowed)


class PaymentStatus(str, Enum):
    """Payment status values for commissions and registration fees."""

    PENDING = "pending"  # awaiting payment
    PAID = "paid"  # proof submitted, awaiting verification
    VERIFIED = "verified"
    FAILED = "failed"


class PaymentType(str, Enum):
    """Which ledger a payment entry lives in."""

    TOURNAMENT_COMMISSION = "tournament_commission"
    PLAYER_REGISTRATION = "player_registration"


class VerificationDecision(str, Enum):
    """Admin decision on a paid entry."""

    APPROVED = "approved"
    REJECTED = "rejected"


class RefundStatus(str, Enum):
    """Refund request status values."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    PROCESSING = "processing"
    COMPLETED = "completed"


class RefundKind(str, Enum):
    """Refund variants."""

    PLAYER_REGISTRATION = "player_registration"
    TOURNAMENT_COMMISSION = "tournament_commission"


class PaymentStateMachine:
    """State machine for commission and registration-fee payments.

    Allowed transitions:
    - pending → paid (proof submitted)
    - paid → verified (admin approved)
    - paid → failed (admin rejected)
    - failed → pending (explicit admin correction only)
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        PaymentStatus.PENDING: [PaymentStatus.PAID],
        PaymentStatus.PAID: [PaymentStatus.VERIFIED, PaymentStatus.FAILED],
        PaymentStatus.VERIFIED: [],  # Terminal state
        PaymentStatus.FAILED: [],  # Terminal, except for the admin reset
    }

    # Money has changed hands in these statuses
    COLLECTED = {
        PaymentStatus.PAID,
        PaymentStatus.VERIFIED,
    }

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(
                _value(from_status),
                _value(to_status),
                _transition_reason(
                    from_status,
                    cls.get_next_statuses(from_status),
                    from_status in cls.VALID_TRANSITIONS,
                ),
            )

    @classmethod
    def is_collected(cls, status: str) -> bool:
        """Check if money changed hands for an entry in this status."""
        return status in cls.COLLECTED

    @classmethod
    def can_reset(cls, status: str) -> bool:
        """Check if the admin correction failed → pending applies."""
        return status == PaymentStatus.FAILED

    @classmethod
    def decision_status(cls, decision: str) -> PaymentStatus:
        """Map an admin decision to the resulting payment status."""
        if VerificationDecision(decision) == VerificationDecision.APPROVED:
            return PaymentStatus.VERIFIED
        return PaymentStatus.FAILED

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        """Get list of valid next statuses from current status."""
        return cls.VALID_TRANSITIONS.get(current_status, [])


class RefundStateMachine:
    """State machine for refund requests.

    Allowed transitions:
    - pending → approved
    - pending → rejected
    - approved → processing
    - processing → completed (requires refund method and transaction id)
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        RefundStatus.PENDING: [RefundStatus.APPROVED, RefundStatus.REJECTED],
        RefundStatus.APPROVED: [RefundStatus.PROCESSING],
        RefundStatus.PROCESSING: [RefundStatus.COMPLETED],
        RefundStatus.REJECTED: [],  # Terminal state
        RefundStatus.COMPLETED: [],  # Terminal state
    }

    ACTIVE = {
        RefundStatus.PENDING,
        RefundStatus.APPROVED,
        RefundStatus.PROCESSING,
    }

    TERMINAL = {
        RefundStatus.REJECTED,
        RefundStatus.COMPLETED,
    }

    # Statuses that record an admin decision timestamp
    DECISIONS = {
        RefundStatus.APPROVED,
        RefundStatus.REJECTED,
    }

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(
                _value(from_status),
                _value(to_status),
                _transition_reason(
                    from_status,
                    cls.get_next_statuses(from_status),
                    from_status in cls.VALID_TRANSITIONS,
                ),
            )

    @classmethod
    def is_active(cls, status: str) -> bool:
        """Check if a request in this status still blocks a new one."""
        return status in cls.ACTIVE

    @classmethod
    def is_terminal(cls, status: str) -> bool:
        """Check if the workflow has ended."""
        return status in cls.TERMINAL

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        """Get list of valid next statuses from current status."""
        return cls.VALID_TRANSITIONS.get(current_status, [])
