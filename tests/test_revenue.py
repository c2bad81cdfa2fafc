"""Tests for revenue aggregation and the CSV exports."""

import csv
import io
from datetime import datetime
from decimal import Decimal
from types import SimpleNamespace

from settlement_engine.services.revenue import (
    EXPORT_HEADER,
    REFUND_EXPORT_HEADER,
    RevenueAggregator,
    dedupe_commissions,
)


def commission_row(tournament_id, amount, status, paid_on=None, **extra):
    values = dict(
        tournament_id=tournament_id,
        organizer_id=extra.pop("organizer_id", "organizer-1"),
        commission_percentage=Decimal("5.00"),
        commission_amount=Decimal(amount),
        payment_status=status,
        payment_date=paid_on,
        created_at=datetime(2025, 1, 2, 10, 0),
        verified_at=None,
        verified_by=None,
    )
    values.update(extra)
    return SimpleNamespace(**values)


def fee_row(tournament_id, commission, status, paid_on=None):
    return SimpleNamespace(
        tournament_id=tournament_id,
        player_id="player-1",
        commission_amount=Decimal(commission),
        payment_status=status,
        payment_date=paid_on,
        created_at=datetime(2025, 1, 2, 10, 0),
    )


def fixed_clock():
    return datetime(2025, 6, 1, 12, 0)


class TestDedupe:
    """Test first-seen deduplication."""

    def test_first_row_wins(self):
        first = commission_row("t-1", "500", "verified")
        dup = commission_row("t-1", "500", "pending")
        other = commission_row("t-2", "100", "paid")

        kept, dropped = dedupe_commissions([first, dup, other])

        assert kept == [first, other]
        assert dropped == {"t-1": 1}

    def test_no_duplicates(self):
        rows = [commission_row("t-1", "1", "paid"), commission_row("t-2", "1", "paid")]

        kept, dropped = dedupe_commissions(rows)

        assert kept == rows
        assert dropped == {}


class TestComputeStats:
    """Test revenue figures."""

    def test_empty_ledger(self):
        stats = RevenueAggregator(clock=fixed_clock).compute_stats([], [])

        assert stats.total_revenue == Decimal("0")
        assert stats.total_obligations == Decimal("0")
        assert stats.year == 2025
        assert stats.monthly_revenue == [Decimal("0")] * 12
        assert stats.by_tournament == []

    def test_duplicates_do_not_inflate_revenue(self):
        """Three rows for one tournament count once."""
        rows = [
            commission_row("t-1", "500", "verified", datetime(2025, 3, 1)),
            commission_row("t-1", "500", "verified", datetime(2025, 3, 1)),
            commission_row("t-1", "500", "verified", datetime(2025, 3, 1)),
        ]

        stats = RevenueAggregator(clock=fixed_clock).compute_stats(rows, [], year=2025)

        assert stats.total_commissions == Decimal("500")
        assert stats.total_revenue == Decimal("500")
        assert stats.verified_payments == 1
        assert stats.duplicate_commission_rows == 2
        assert stats.by_tournament[0].duplicate_rows == 2

    def test_only_collected_rows_are_revenue(self):
        commissions = [
            commission_row("t-1", "500", "verified", datetime(2025, 3, 1)),
            commission_row("t-2", "200", "paid", datetime(2025, 4, 1)),
            commission_row("t-3", "300", "pending"),
            commission_row("t-4", "400", "failed", datetime(2025, 4, 1)),
        ]
        fees = [
            fee_row("t-1", "100", "verified", datetime(2025, 3, 5)),
            fee_row("t-1", "100", "pending"),
        ]

        stats = RevenueAggregator(clock=fixed_clock).compute_stats(commissions, fees, 2025)

        assert stats.total_commissions == Decimal("700")
        assert stats.total_registration_fees == Decimal("100")
        assert stats.total_revenue == Decimal("800")
        # Everything owed except failed rows
        assert stats.total_obligations == Decimal("1200")

    def test_status_counts(self):
        commissions = [
            commission_row("t-1", "500", "verified"),
            commission_row("t-2", "200", "paid"),
            commission_row("t-3", "300", "pending"),
            commission_row("t-4", "400", "failed"),
        ]
        fees = [fee_row("t-1", "100", "paid"), fee_row("t-1", "100", "pending")]

        stats = RevenueAggregator(clock=fixed_clock).compute_stats(commissions, fees)

        assert stats.awaiting_payment == 2
        assert stats.awaiting_verification == 2
        assert stats.pending_payments == stats.awaiting_verification
        assert stats.verified_payments == 1
        assert stats.failed_payments == 1

    def test_monthly_buckets(self):
        commissions = [
            commission_row("t-1", "500", "verified", datetime(2025, 3, 1)),
            commission_row("t-2", "200", "paid", datetime(2025, 3, 20)),
            commission_row("t-3", "50", "paid", datetime(2024, 3, 20)),
            # No payment date: bucketed by creation date (January)
            commission_row("t-4", "25", "paid"),
        ]
        fees = [fee_row("t-1", "100", "verified", datetime(2025, 12, 31))]

        stats = RevenueAggregator(clock=fixed_clock).compute_stats(commissions, fees, 2025)

        assert stats.monthly_revenue[0] == Decimal("25")
        assert stats.monthly_revenue[2] == Decimal("700")
        assert stats.monthly_revenue[11] == Decimal("100")
        # Last year's payment counts toward totals but not this year's months
        assert stats.total_commissions == Decimal("775")
        assert sum(stats.monthly_revenue) == Decimal("825")

    def test_by_tournament_breakdown(self):
        commissions = [
            commission_row("t-1", "500", "verified"),
            commission_row("t-2", "200", "pending", organizer_id="organizer-2"),
        ]
        fees = [
            fee_row("t-1", "100", "verified"),
            fee_row("t-1", "50", "paid"),
            fee_row("t-2", "10", "pending"),
        ]

        stats = RevenueAggregator(clock=fixed_clock).compute_stats(commissions, fees)

        first, second = stats.by_tournament
        assert first.tournament_id == "t-1"
        assert first.commission_collected == Decimal("500")
        assert first.registration_commissions == Decimal("150")
        assert first.registrations_paid == 2
        assert first.total == Decimal("650")
        assert second.organizer_id == "organizer-2"
        assert second.commission_status == "pending"
        assert second.commission_collected == Decimal("0")
        assert second.registrations_paid == 0


class TestExportVerifiedCsv:
    """Test the verified-commission CSV."""

    def test_header_and_formatting(self):
        rows = [
            commission_row(
                "t-1",
                "500",
                "verified",
                commission_percentage=Decimal("5"),
                verified_at=datetime(2025, 3, 7, 15, 30),
                verified_by="admin-1",
            )
        ]

        text = RevenueAggregator().export_verified_csv(
            rows, {"t-1": "Spring Open"}, {"organizer-1": "Valley Club"}
        )

        lines = text.splitlines()
        assert lines[0] == "Tournament,Organizer,Commission %,Amount,Verified Date,Verified By"
        assert lines[1] == "Spring Open,Valley Club,5.00%,Rs. 500.00,03/07/2025,admin-1"
        assert len(lines) == 2

    def test_only_verified_and_deduplicated(self):
        rows = [
            commission_row("t-1", "500", "paid"),
            commission_row("t-1", "500", "verified", verified_by="admin-1"),
            commission_row("t-1", "500", "verified", verified_by="admin-2"),
            commission_row("t-2", "100", "failed"),
        ]

        text = RevenueAggregator().export_verified_csv(rows)

        parsed = list(csv.reader(io.StringIO(text)))
        assert parsed[0] == EXPORT_HEADER
        assert len(parsed) == 2
        # Unknown names fall back to ids; the first verified row is kept
        assert parsed[1][0] == "t-1"
        assert parsed[1][1] == "organizer-1"
        assert parsed[1][5] == "admin-1"

    def test_names_with_commas_are_quoted(self):
        rows = [commission_row("t-1", "12.5", "verified")]

        text = RevenueAggregator(currency_prefix="$").export_verified_csv(
            rows, {"t-1": "Open, Spring Edition"}
        )

        parsed = list(csv.reader(io.StringIO(text)))
        assert parsed[1][0] == "Open, Spring Edition"
        assert parsed[1][3] == "$12.50"
        assert parsed[1][4] == ""

    def test_empty_export_has_header_only(self):
        assert RevenueAggregator().export_verified_csv([]) == ",".join(EXPORT_HEADER) + "\n"


def refund_row(tournament_id, amount, status, **extra):
    values = dict(
        tournament_id=tournament_id,
        recipient_id=extra.pop("recipient_id", "player-1"),
        refund_amount=Decimal(amount),
        reason="Registration rejected",
        status=status,
        created_at=datetime(2025, 4, 9, 8, 30),
    )
    values.update(extra)
    return SimpleNamespace(**values)


class TestExportRefundsCsv:
    """Test the refund request export."""

    def test_both_kinds_in_one_file(self):
        rows = [
            refund_row("tournament-1", "1100.00", "pending"),
            refund_row(
                "tournament-2",
                "500.00",
                "completed",
                organizer_id="organizer-2",
                recipient_id="organizer-2",
                reason="Venue unavailable",
            ),
        ]

        text = RevenueAggregator().export_refunds_csv(
            rows,
            tournament_organizers={"tournament-1": "organizer-1"},
            tournament_names={"tournament-1": "Spring Open"},
            organizer_names={"organizer-2": "Valley Club"},
        )

        parsed = list(csv.reader(io.StringIO(text)))
        assert parsed[0] == REFUND_EXPORT_HEADER
        assert parsed[1] == [
            "Spring Open",
            "organizer-1",
            "player-1",
            "Rs. 1100.00",
            "Registration rejected",
            "pending",
            "04/09/2025",
        ]
        assert parsed[2][:4] == ["tournament-2", "Valley Club", "organizer-2", "Rs. 500.00"]
        assert parsed[2][5] == "completed"

    def test_reason_with_comma_is_quoted(self):
        row = refund_row("tournament-1", "10.00", "rejected", reason="Late, and unpaid")

        text = RevenueAggregator(date_format="%Y-%m-%d").export_refunds_csv([row])

        assert '"Late, and unpaid"' in text
        assert text.splitlines()[1].endswith("rejected,2025-04-09")

    def test_unknown_organizer_is_blank(self):
        row = refund_row("tournament-9", "1.00", "pending")

        text = RevenueAggregator().export_refunds_csv([row])

        assert text.splitlines()[1].startswith("tournament-9,,player-1,")
