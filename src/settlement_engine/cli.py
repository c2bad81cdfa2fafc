"""Settlement Command Line Interface.

Provides admin tools for:
- Schema creation
- Revenue statistics
- Pending and verified payment listings
- Verified payment and refund request export
- Refund summary
- Payment verification and refund progression

Usage:
    python -m settlement_engine.cli init-db
    python -m settlement_engine.cli stats --year 2025
    python -m settlement_engine.cli pending --type tournament_commission
    python -m settlement_engine.cli export-verified --output verified.csv
    python -m settlement_engine.cli export-refunds --output refunds.csv --status pending
    python -m settlement_engine.cli refund-summary
    python -m settlement_engine.cli verify --type tournament_commission --id X \\
        --decision approved --verifier admin-1
    python -m settlement_engine.cli advance-refund --kind player_registration --id X \\
        --status completed --method bank --transaction-id tx123
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Callable
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker

from settlement_engine.config import Settings, get_settings
from settlement_engine.database import create_schema, init_db
from settlement_engine.engine import SettlementEngine
from settlement_engine.errors import SettlementError
from settlement_engine.events.audit import SqlAuditTrail
from settlement_engine.services.state_machine import (
    PaymentType,
    RefundKind,
    RefundStatus,
    VerificationDecision,
)

EXIT_OK = 0
EXIT_USAGE = 1
EXIT_ERROR = 2


def parse_uuid(s: str) -> UUID:
    """Parse UUID string."""
    return UUID(s)


class SettlementCli:
    """Settlement Command Line Interface."""

    def __init__(
        self,
        session_factory: sessionmaker[Session] | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.parser = self._build_parser()
        self._session_factory = session_factory
        self._settings = settings
        self._engine: SettlementEngine | None = None

    def _build_parser(self) -> argparse.ArgumentParser:
        """Build argument parser."""
        parser = argparse.ArgumentParser(
            prog="python -m settlement_engine.cli",
            description="Tournament settlement admin tools",
        )
        subparsers = parser.add_subparsers(dest="command", help="Commands")

        # init-db command
        subparsers.add_parser("init-db", help="Create settlement tables")

        # stats command
        stats = subparsers.add_parser("stats", help="Show revenue statistics")
        stats.add_argument(
            "--year",
            type=int,
            help="Year for the monthly breakdown (default: current year)",
        )

        # pending / verified commands
        payment_types = [t.value for t in PaymentType]
        pending = subparsers.add_parser(
            "pending",
            help="List payments awaiting verification",
        )
        pending.add_argument("--type", dest="payment_type", choices=payment_types)
        verified = subparsers.add_parser("verified", help="List verified payments")
        verified.add_argument("--type", dest="payment_type", choices=payment_types)

        # export-verified command
        export = subparsers.add_parser(
            "export-verified",
            help="Export verified commissions to CSV",
        )
        export.add_argument(
            "--output",
            type=Path,
            required=True,
            help="Output file path (.csv)",
        )

        # refund-summary / export-refunds commands
        subparsers.add_parser("refund-summary", help="Show refund counts and totals")
        export_refunds = subparsers.add_parser(
            "export-refunds",
            help="Export refund requests to CSV",
        )
        export_refunds.add_argument(
            "--output",
            type=Path,
            required=True,
            help="Output file path (.csv)",
        )
        export_refunds.add_argument(
            "--status", choices=[s.value for s in RefundStatus]
        )

        # verify command
        verify = subparsers.add_parser("verify", help="Approve or reject a paid entry")
        verify.add_argument(
            "--type", dest="payment_type", choices=payment_types, required=True
        )
        verify.add_argument("--id", dest="entry_id", type=parse_uuid, required=True)
        verify.add_argument(
            "--decision",
            choices=[d.value for d in VerificationDecision],
            required=True,
        )
        verify.add_argument("--verifier", required=True, help="Admin id")
        verify.add_argument("--notes")

        # reset-payment command
        reset = subparsers.add_parser(
            "reset-payment",
            help="Admin correction: move a failed entry back to pending",
        )
        reset.add_argument(
            "--type", dest="payment_type", choices=payment_types, required=True
        )
        reset.add_argument("--id", dest="entry_id", type=parse_uuid, required=True)
        reset.add_argument("--admin", required=True, help="Admin id")
        reset.add_argument("--reason", required=True)

        # advance-refund command
        refund = subparsers.add_parser(
            "advance-refund",
            help="Move a refund request one step along its workflow",
        )
        refund.add_argument(
            "--kind", choices=[k.value for k in RefundKind], required=True
        )
        refund.add_argument("--id", dest="refund_id", type=parse_uuid, required=True)
        refund.add_argument(
            "--status", choices=[s.value for s in RefundStatus], required=True
        )
        refund.add_argument("--notes", help="Admin notes")
        refund.add_argument("--method", help="Refund method (bank, esewa, ...)")
        refund.add_argument("--transaction-id", help="Refund transaction reference")
        refund.add_argument("--actor", help="Admin id")

        return parser

    def run(self, args: list[str] | None = None) -> int:
        """Run the CLI with given arguments."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return EXIT_USAGE

        # Dispatch to command handler
        handlers: dict[str, Callable[..., int]] = {
            "init-db": self._cmd_init_db,
            "stats": self._cmd_stats,
            "pending": self._cmd_pending,
            "verified": self._cmd_verified,
            "export-verified": self._cmd_export_verified,
            "refund-summary": self._cmd_refund_summary,
            "export-refunds": self._cmd_export_refunds,
            "verify": self._cmd_verify,
            "reset-payment": self._cmd_reset_payment,
            "advance-refund": self._cmd_advance_refund,
        }

        handler = handlers.get(parsed.command)
        if handler is None:
            print(f"Unknown command: {parsed.command}", file=sys.stderr)
            return EXIT_USAGE

        try:
            return handler(parsed)
        except SettlementError as e:
            print(f"Error [{e.code}]: {e}", file=sys.stderr)
            return EXIT_ERROR

    # -------------------------------------------------------------------------
    # Wiring
    # -------------------------------------------------------------------------

    @property
    def settings(self) -> Settings:
        if self._settings is None:
            self._settings = get_settings()
        return self._settings

    @property
    def session_factory(self) -> sessionmaker[Session]:
        if self._session_factory is None:
            _, self._session_factory = init_db(self.settings)
        return self._session_factory

    @property
    def engine(self) -> SettlementEngine:
        if self._engine is None:
            self._engine = SettlementEngine.from_settings(
                self.settings,
                self.session_factory,
                audit=SqlAuditTrail(self.session_factory),
            )
        return self._engine

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    def _cmd_init_db(self, args: argparse.Namespace) -> int:
        """Create settlement tables."""
        with self.session_factory() as session:
            create_schema(session.get_bind())
        print("Settlement tables created")
        return EXIT_OK

    def _cmd_stats(self, args: argparse.Namespace) -> int:
        """Show revenue statistics."""
        stats = self.engine.get_revenue_stats(args.year)
        fmt = self.engine.revenue.format_amount

        print("Revenue Statistics")
        print("=" * 40)
        print(f"  Total revenue:          {fmt(stats.total_revenue)}")
        print(f"  Tournament commissions: {fmt(stats.total_commissions)}")
        print(f"  Registration fees:      {fmt(stats.total_registration_fees)}")
        print(f"  Awaiting payment:       {stats.awaiting_payment}")
        print(f"  Awaiting verification:  {stats.awaiting_verification}")
        print(f"  Verified:               {stats.verified_payments}")
        print(f"  Failed:                 {stats.failed_payments}")
        if stats.duplicate_commission_rows:
            print(f"  Duplicate rows ignored: {stats.duplicate_commission_rows}")

        print(f"\nMonthly revenue {stats.year}:")
        for month, amount in enumerate(stats.monthly_revenue, start=1):
            if amount:
                print(f"  {month:02d}: {fmt(amount)}")
        return EXIT_OK

    def _cmd_pending(self, args: argparse.Namespace) -> int:
        """List payments awaiting verification."""
        entries = self.engine.get_pending_payments(args.payment_type)
        self._print_entries("Awaiting verification", entries)
        return EXIT_OK

    def _cmd_verified(self, args: argparse.Namespace) -> int:
        """List verified payments."""
        entries = self.engine.get_verified_payments(args.payment_type)
        self._print_entries("Verified", entries)
        return EXIT_OK

    def _cmd_export_verified(self, args: argparse.Namespace) -> int:
        """Export verified commissions to CSV."""
        content = self.engine.export_verified_payments()
        args.output.write_text(content, encoding="utf-8")
        rows = max(content.count("\n") - 1, 0)
        print(f"Exported {rows} verified payments to {args.output}")
        return EXIT_OK

    def _cmd_refund_summary(self, args: argparse.Namespace) -> int:
        """Show refund counts and totals."""
        summary = self.engine.get_refund_summary()
        fmt = self.engine.revenue.format_amount

        print("Refund Requests")
        print("=" * 40)
        print(f"  Pending:          {summary.pending}")
        print(f"  Approved:         {summary.approved}")
        print(f"  Processing:       {summary.processing}")
        print(f"  Completed:        {summary.completed}")
        print(f"  Rejected:         {summary.rejected}")
        print(f"  Total requested:  {fmt(summary.total_amount)}")
        print(f"  Total refunded:   {fmt(summary.completed_amount)}")
        return EXIT_OK

    def _cmd_export_refunds(self, args: argparse.Namespace) -> int:
        """Export refund requests to CSV."""
        content = self.engine.export_refund_requests(args.status)
        args.output.write_text(content, encoding="utf-8")
        rows = max(content.count("\n") - 1, 0)
        print(f"Exported {rows} refund requests to {args.output}")
        return EXIT_OK

    def _cmd_verify(self, args: argparse.Namespace) -> int:
        """Approve or reject a paid entry."""
        result = self.engine.verify_payment(
            args.entry_id,
            args.payment_type,
            args.decision,
            args.verifier,
            args.notes,
        )
        print(f"{args.payment_type} {args.entry_id}: {result.status}")
        self._print_warnings(result.warnings)
        return EXIT_OK

    def _cmd_reset_payment(self, args: argparse.Namespace) -> int:
        """Move a failed entry back to pending."""
        result = self.engine.reset_failed_payment(
            args.entry_id, args.payment_type, args.admin, args.reason
        )
        print(f"{args.payment_type} {args.entry_id}: {result.entry.payment_status}")
        self._print_warnings(result.warnings)
        return EXIT_OK

    def _cmd_advance_refund(self, args: argparse.Namespace) -> int:
        """Advance a refund request."""
        result = self.engine.advance_refund_status(
            args.refund_id,
            args.kind,
            args.status,
            admin_notes=args.notes,
            refund_method=args.method,
            refund_transaction_id=args.transaction_id,
            actor_id=args.actor,
        )
        print(f"Refund {args.refund_id}: {result.refund.status}")
        self._print_warnings(result.warnings)
        return EXIT_OK

    def _print_entries(self, title: str, entries: list) -> None:
        fmt = self.engine.revenue.format_amount
        print(f"{title}: {len(entries)}")
        for entry in entries:
            print(
                f"  {entry.id}  {entry.entity_name:<24} {entry.tournament_id:<16} "
                f"{entry.payer_id:<16} {fmt(entry.amount_paid)}"
            )

    def _print_warnings(self, warnings: list[str]) -> None:
        for warning in warnings:
            print(f"Warning: {warning}", file=sys.stderr)


def main() -> int:
    """CLI entry point."""
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    cli = SettlementCli(settings=settings)
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
