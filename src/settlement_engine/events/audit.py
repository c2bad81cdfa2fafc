"""Audit trail for settlement events.

The audit trail is injected into every component. It provides:
- Idempotent appends (via event_id)
- Append-only payment verification records
- Lookup of the history of one ledger row

Audit writes happen after the ledger change has committed. A failed append
never undoes the ledger change; callers go through record_safely() and hand
the warning back to their own caller.
"""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable
from uuid import UUID

from sqlalchemy import exc as sa_exc
from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from settlement_engine.events.types import DomainEvent
from settlement_engine.models import AuditLogEntry, PaymentVerification

logger = logging.getLogger(__name__)


@runtime_checkable
class AuditTrail(Protocol):
    """Append-only sink for mutating actions."""

    def record(self, event: DomainEvent) -> bool:
        """Append an event. Returns False if it was already recorded."""
        ...

    def record_verification(self, record: PaymentVerification) -> None:
        """Append an admin verification decision."""
        ...


class SqlAuditTrail:
    """Audit trail backed by the audit_log and payment_verification tables.

    Usage:
        audit = SqlAuditTrail(session_factory)

        audit.record(event)
        history = audit.get_by_entity("tournament_commission", commission_id)
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def record(self, event: DomainEvent) -> bool:
        """Append event to the audit log.

        Returns True if event was stored, False if duplicate (idempotent).
        """
        entry = AuditLogEntry(
            event_id=event.metadata.event_id,
            event_type=event.event_type,
            category=event.category.value,
            entity_type=event.entity_type,
            entity_id=str(event.entity_id),
            actor_id=event.metadata.actor_id,
            payload=event.to_dict(),
            recorded_at=event.metadata.timestamp,
        )

        with self._session_factory() as session:
            existing = session.scalar(
                select(AuditLogEntry.id).where(
                    AuditLogEntry.event_id == event.metadata.event_id
                )
            )
            if existing is not None:
                return False
            session.add(entry)
            try:
                session.commit()
            except sa_exc.IntegrityError:
                # Same event appended concurrently
                session.rollback()
                return False
        return True

    def record_verification(self, record: PaymentVerification) -> None:
        """Append a verification record. Records are never updated."""
        with self._session_factory() as session:
            session.add(record)
            session.commit()

    def get_by_entity(self, entity_type: str, entity_id: UUID) -> list[AuditLogEntry]:
        """Audit history for one ledger row, oldest first."""
        with self._session_factory() as session:
            return list(
                session.scalars(
                    select(AuditLogEntry)
                    .where(
                        AuditLogEntry.entity_type == entity_type,
                        AuditLogEntry.entity_id == str(entity_id),
                    )
                    .order_by(AuditLogEntry.recorded_at)
                )
            )

    def get_verifications(self, payment_id: UUID) -> list[PaymentVerification]:
        """Verification records for one payment entry, oldest first."""
        with self._session_factory() as session:
            return list(
                session.scalars(
                    select(PaymentVerification)
                    .where(PaymentVerification.payment_id == payment_id)
                    .order_by(PaymentVerification.verified_at)
                )
            )


class NullAuditTrail:
    """Audit trail that drops everything. For tools that only read."""

    def record(self, event: DomainEvent) -> bool:
        return True

    def record_verification(self, record: PaymentVerification) -> None:
        return None


def record_safely(
    audit: AuditTrail,
    event: DomainEvent,
    verification: PaymentVerification | None = None,
) -> str | None:
    """Append to the audit trail without failing the caller.

    Returns a warning message if the append failed, None otherwise.
    """
    try:
        if verification is not None:
            audit.record_verification(verification)
        audit.record(event)
    except Exception as e:
        message = f"Audit append failed for {event.event_type} on {event.entity_id}: {e}"
        logger.warning(message)
        return message
    return None
