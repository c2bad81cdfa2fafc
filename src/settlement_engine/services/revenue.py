"""Revenue aggregation and reporting.

Upstream retries can leave several commission rows for one tournament. Every
figure here is computed on a deduplicated view (first row seen per
tournament wins), so a retried creation never inflates revenue.

Revenue is money collected: rows whose payment is paid or verified.
"""

from __future__ import annotations

import csv
import io
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any

from settlement_engine.models import utcnow
from settlement_engine.services.state_machine import PaymentStateMachine, PaymentStatus

ZERO = Decimal("0.00")

EXPORT_HEADER = [
    "Tournament",
    "Organizer",
    "Commission %",
    "Amount",
    "Verified Date",
    "Verified By",
]

REFUND_EXPORT_HEADER = [
    "Tournament",
    "Organizer",
    "Recipient",
    "Amount",
    "Reason",
    "Status",
    "Created Date",
]


@dataclass(frozen=True)
class TournamentRevenue:
    """Revenue collected for one tournament."""

    tournament_id: str
    organizer_id: str
    commission_amount: Decimal
    commission_status: str
    commission_collected: Decimal
    registration_commissions: Decimal
    registrations_paid: int
    duplicate_rows: int = 0

    @property
    def total(self) -> Decimal:
        return self.commission_collected + self.registration_commissions


@dataclass(frozen=True)
class RevenueStats:
    """Aggregate revenue figures.

    Two distinct notions of "pending":
    - awaiting_payment: entries still waiting for the payer (status pending)
    - awaiting_verification: proof submitted, waiting for an admin (status paid)
    """

    total_revenue: Decimal
    total_commissions: Decimal
    total_registration_fees: Decimal
    total_obligations: Decimal
    awaiting_payment: int
    awaiting_verification: int
    verified_payments: int
    failed_payments: int
    duplicate_commission_rows: int
    year: int
    monthly_revenue: list[Decimal]
    by_tournament: list[TournamentRevenue] = field(default_factory=list)

    @property
    def pending_payments(self) -> int:
        """Reporting "pending" bucket: entries awaiting admin verification."""
        return self.awaiting_verification


def dedupe_commissions(commissions: Iterable[Any]) -> tuple[list[Any], dict[str, int]]:
    """Keep the first row seen per tournament_id.

    Returns the kept rows in input order and, per tournament, how many
    duplicate rows were dropped.
    """
    kept: dict[str, Any] = {}
    dropped: dict[str, int] = {}
    for row in commissions:
        if row.tournament_id in kept:
            dropped[row.tournament_id] = dropped.get(row.tournament_id, 0) + 1
            continue
        kept[row.tournament_id] = row
    return list(kept.values()), dropped


class RevenueAggregator:
    """Derives reporting figures from ledger rows.

    Works on any rows carrying the commission/fee attributes, so callers can
    feed it ORM rows or plain records.

    Usage:
        aggregator = RevenueAggregator(currency_prefix="Rs. ")
        stats = aggregator.compute_stats(commissions, fees, year=2025)
        csv_text = aggregator.export_verified_csv(commissions)
    """

    def __init__(
        self,
        currency_prefix: str = "Rs. ",
        date_format: str = "%m/%d/%Y",
        clock: Callable[[], datetime] = utcnow,
    ):
        self.currency_prefix = currency_prefix
        self.date_format = date_format
        self._clock = clock

    def compute_stats(
        self,
        commissions: Iterable[Any],
        fees: Iterable[Any],
        year: int | None = None,
    ) -> RevenueStats:
        """Compute revenue statistics without double-counting duplicates."""
        unique, dropped = dedupe_commissions(commissions)
        fees = list(fees)
        year = year or self._clock().year

        monthly = [ZERO] * 12
        status_counts = {status.value: 0 for status in PaymentStatus}
        obligations = ZERO

        def collect(rows: list[Any]) -> Decimal:
            nonlocal obligations
            collected = ZERO
            for row in rows:
                status_counts[row.payment_status] = status_counts.get(row.payment_status, 0) + 1
                if row.payment_status != PaymentStatus.FAILED:
                    obligations += row.commission_amount
                if not PaymentStateMachine.is_collected(row.payment_status):
                    continue
                collected += row.commission_amount
                paid_on = row.payment_date or row.created_at
                if paid_on is not None and paid_on.year == year:
                    monthly[paid_on.month - 1] += row.commission_amount
            return collected

        total_commissions = collect(unique)
        total_fees = collect(fees)

        return RevenueStats(
            total_revenue=total_commissions + total_fees,
            total_commissions=total_commissions,
            total_registration_fees=total_fees,
            total_obligations=obligations,
            awaiting_payment=status_counts[PaymentStatus.PENDING.value],
            awaiting_verification=status_counts[PaymentStatus.PAID.value],
            verified_payments=status_counts[PaymentStatus.VERIFIED.value],
            failed_payments=status_counts[PaymentStatus.FAILED.value],
            duplicate_commission_rows=sum(dropped.values()),
            year=year,
            monthly_revenue=monthly,
            by_tournament=self._by_tournament(unique, fees, dropped),
        )

    def _by_tournament(
        self,
        unique: list[Any],
        fees: list[Any],
        dropped: Mapping[str, int],
    ) -> list[TournamentRevenue]:
        fee_totals: dict[str, Decimal] = {}
        fee_counts: dict[str, int] = {}
        for fee in fees:
            if not PaymentStateMachine.is_collected(fee.payment_status):
                continue
            fee_totals[fee.tournament_id] = (
                fee_totals.get(fee.tournament_id, ZERO) + fee.commission_amount
            )
            fee_counts[fee.tournament_id] = fee_counts.get(fee.tournament_id, 0) + 1

        breakdown = []
        for row in unique:
            collected = (
                row.commission_amount
                if PaymentStateMachine.is_collected(row.payment_status)
                else ZERO
            )
            breakdown.append(
                TournamentRevenue(
                    tournament_id=row.tournament_id,
                    organizer_id=row.organizer_id,
                    commission_amount=row.commission_amount,
                    commission_status=row.payment_status,
                    commission_collected=collected,
                    registration_commissions=fee_totals.get(row.tournament_id, ZERO),
                    registrations_paid=fee_counts.get(row.tournament_id, 0),
                    duplicate_rows=dropped.get(row.tournament_id, 0),
                )
            )
        return breakdown

    def export_verified_csv(
        self,
        commissions: Iterable[Any],
        tournament_names: Mapping[str, str] | None = None,
        organizer_names: Mapping[str, str] | None = None,
    ) -> str:
        """Export verified commissions as CSV text.

        Unknown names fall back to the raw ids.
        """
        tournament_names = tournament_names or {}
        organizer_names = organizer_names or {}
        verified = [row for row in commissions if row.payment_status == PaymentStatus.VERIFIED]
        unique, _ = dedupe_commissions(verified)

        output = io.StringIO()
        writer = csv.writer(output, lineterminator="\n")
        writer.writerow(EXPORT_HEADER)

        for row in unique:
            writer.writerow([
                tournament_names.get(row.tournament_id, row.tournament_id),
                organizer_names.get(row.organizer_id, row.organizer_id),
                f"{row.commission_percentage:.2f}%",
                self.format_amount(row.commission_amount),
                row.verified_at.strftime(self.date_format) if row.verified_at else "",
                row.verified_by or "",
            ])

        return output.getvalue()

    def format_amount(self, amount: Decimal) -> str:
        return f"{self.currency_prefix}{amount:.2f}"

    def export_refunds_csv(
        self,
        refunds: Iterable[Any],
        tournament_organizers: Mapping[str, str] | None = None,
        tournament_names: Mapping[str, str] | None = None,
        organizer_names: Mapping[str, str] | None = None,
    ) -> str:
        """Export refund requests of either kind as CSV text.

        Player refunds carry no organizer, so it is looked up by tournament in
        `tournament_organizers`. Unknown names fall back to the raw ids.
        """
        tournament_organizers = tournament_organizers or {}
        tournament_names = tournament_names or {}
        organizer_names = organizer_names or {}

        output = io.StringIO()
        writer = csv.writer(output, lineterminator="\n")
        writer.writerow(REFUND_EXPORT_HEADER)

        for refund in refunds:
            organizer_id = getattr(refund, "organizer_id", None) or tournament_organizers.get(
                refund.tournament_id, ""
            )
            writer.writerow([
                tournament_names.get(refund.tournament_id, refund.tournament_id),
                organizer_names.get(organizer_id, organizer_id),
                refund.recipient_id,
                self.format_amount(refund.refund_amount),
                refund.reason,
                refund.status,
                refund.created_at.strftime(self.date_format),
            ])

        return output.getvalue()
