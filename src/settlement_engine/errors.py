"""Settlement engine error taxonomy.

Every monetary-state failure surfaces as one of these. Callers treat
InvalidTransitionError and ConcurrentModificationError as "someone already
acted on this entry, refresh and retry", and BackendUnavailableError as a hard
failure with no partial success.
"""

from __future__ import annotations

from typing import Any


class SettlementError(Exception):
    """Base class for settlement engine errors."""

    code = "SETTLEMENT_ERROR"


class BackendUnavailableError(SettlementError):
    """Raised when the ledger store cannot be reached."""

    code = "BACKEND_UNAVAILABLE"


class ValidationError(SettlementError):
    """Raised for malformed input or a missing field required by a transition."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class InvalidTransitionError(SettlementError):
    """Raised when an invalid state transition is attempted."""

    code = "INVALID_TRANSITION"

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class ConcurrentModificationError(SettlementError):
    """Raised when a status-conditioned write lost a race.

    The caller should re-read the entity and decide again.
    """

    code = "CONCURRENT_MODIFICATION"

    def __init__(
        self,
        entity: str,
        entity_id: Any,
        expected_status: str,
        actual_status: str | None = None,
    ):
        self.entity = entity
        self.entity_id = entity_id
        self.expected_status = expected_status
        self.actual_status = actual_status
        msg = (
            f"{entity} {entity_id} is no longer '{expected_status}'"
        )
        if actual_status:
            msg += f" (now '{actual_status}')"
        super().__init__(msg)


class NotFoundError(SettlementError):
    """Raised when a referenced entity id does not exist."""

    code = "NOT_FOUND"

    def __init__(self, entity: str, entity_id: Any):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")
