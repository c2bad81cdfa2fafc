"""Notification intents.

The engine never delivers notifications. It emits an intent (recipient,
template, payload) and delivery handlers registered from outside pick it up.

The emitter provides:
- Handler registration per template or for all intents
- Error isolation (handler failures don't break other handlers)

Services emit only after their ledger write has committed, so an intent
always describes a change that happened.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

logger = logging.getLogger(__name__)


# Templates the engine emits
PAYMENT_PROOF_SUBMITTED = "payment_proof_submitted"
PAYMENT_VERIFIED = "payment_verified"
PAYMENT_REJECTED = "payment_rejected"
REFUND_REQUESTED = "refund_requested"
REFUND_STATUS_CHANGED = "refund_status_changed"


@dataclass(frozen=True)
class NotificationIntent:
    """Request that a recipient be told about something."""

    recipient_id: str
    template: str
    payload: dict[str, Any] = field(default_factory=dict)


NotificationHandler = Callable[[NotificationIntent], None]


@dataclass
class HandlerRegistration:
    """Registration of a notification handler."""

    handler: NotificationHandler
    templates: set[str] | None  # None = all templates


class NotificationEmitter:
    """Synchronous notification intent emitter.

    Usage:
        notifier = NotificationEmitter()
        notifier.on(REFUND_REQUESTED, send_refund_email)
        notifier.on_all(push_to_queue)

        notifier.emit(NotificationIntent("player-1", REFUND_REQUESTED, {...}))
    """

    def __init__(self) -> None:
        self._handlers: list[HandlerRegistration] = []

    def on(self, template: str | list[str], handler: NotificationHandler) -> None:
        """Register handler for specific template(s)."""
        templates = set(template) if isinstance(template, list) else {template}
        self._handlers.append(HandlerRegistration(handler=handler, templates=templates))

    def on_all(self, handler: NotificationHandler) -> None:
        """Register handler for every intent."""
        self._handlers.append(HandlerRegistration(handler=handler, templates=None))

    def off(self, handler: NotificationHandler) -> None:
        """Unregister a handler."""
        self._handlers = [reg for reg in self._handlers if reg.handler is not handler]

    def emit(self, intent: NotificationIntent) -> list[Exception]:
        """Emit an intent to all matching handlers.

        Returns list of any exceptions raised by handlers.
        """
        errors: list[Exception] = []

        for reg in self._handlers:
            if reg.templates and intent.template not in reg.templates:
                continue

            try:
                reg.handler(intent)
            except Exception as e:
                logger.exception(
                    "Notification handler %s failed for %s to %s",
                    reg.handler,
                    intent.template,
                    intent.recipient_id,
                )
                errors.append(e)

        return errors


def notify_safely(notifier: NotificationEmitter, intent: NotificationIntent) -> list[str]:
    """Emit an intent and turn handler failures into warning strings."""
    errors = notifier.emit(intent)
    return [
        f"Notification {intent.template} to {intent.recipient_id} failed: {e}"
        for e in errors
    ]
