"""ChallengeHub command line interface.

Operational tools for:
- Running the API server
- Creating the schema
- Previewing the fee policy
- Listing funding charges stuck in PENDING

Usage:
    challengehub serve
    challengehub init-db --database-url sqlite+aiosqlite:///./dev.db
    challengehub fees 100 --buyout
    challengehub stale-payments --older-than-hours 24
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from datetime import timedelta
from decimal import Decimal, InvalidOperation
from typing import Callable

from challengehub.calculators.fees import (
    MAX_AMOUNT,
    compute_fees,
    fee_breakdown_text,
    format_currency,
    validate_minimum_reward,
)
from challengehub.database import create_schema, get_engine, make_session_factory
from challengehub.services.payment_store import PaymentStore


def parse_amount(s: str) -> Decimal:
    """Parse a non-negative decimal amount."""
    try:
        value = Decimal(s)
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"invalid amount: {s!r}") from None
    if not value.is_finite() or value < 0:
        raise argparse.ArgumentTypeError(f"amount must be a non-negative number: {s!r}")
    if value > MAX_AMOUNT:
        raise argparse.ArgumentTypeError(f"amount must not exceed {MAX_AMOUNT}: {s!r}")
    return value


class ChallengeHubCli:
    """ChallengeHub Command Line Interface."""

    def __init__(self) -> None:
        self.parser = self._build_parser()

    def _build_parser(self) -> argparse.ArgumentParser:
        """Build argument parser."""
        parser = argparse.ArgumentParser(
            prog="challengehub",
            description="ChallengeHub operational tools",
        )
        subparsers = parser.add_subparsers(dest="command", help="Commands")

        # serve command
        subparsers.add_parser("serve", help="Run the HTTP API with uvicorn")

        # init-db command
        init_db = subparsers.add_parser("init-db", help="Create all tables")
        init_db.add_argument(
            "--database-url",
            type=str,
            help="Database URL (default: DATABASE_URL from the environment)",
        )

        # fees command
        fees = subparsers.add_parser("fees", help="Show the fee breakdown for a reward")
        fees.add_argument("amount", type=parse_amount, help="Reward amount in USD")
        fees.add_argument(
            "--buyout",
            action="store_true",
            help="Pay the flat buyout fee instead of the percentage fee",
        )

        # stale-payments command
        stale = subparsers.add_parser(
            "stale-payments",
            help="List funding charges still PENDING after a cutoff",
        )
        stale.add_argument(
            "--older-than-hours",
            type=float,
            default=24.0,
            help="Age threshold in hours (default: 24)",
        )
        stale.add_argument(
            "--database-url",
            type=str,
            help="Database URL (default: DATABASE_URL from the environment)",
        )

        return parser

    def run(self, args: list[str] | None = None) -> int:
        """Run the CLI with given arguments."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 1

        handlers: dict[str, Callable[..., int]] = {
            "serve": self._cmd_serve,
            "init-db": self._cmd_init_db,
            "fees": self._cmd_fees,
            "stale-payments": self._cmd_stale_payments,
        }

        handler = handlers.get(parsed.command)
        if handler:
            return handler(parsed)

        print(f"Unknown command: {parsed.command}", file=sys.stderr)
        return 1

    def _cmd_serve(self, args: argparse.Namespace) -> int:
        """Run the API server."""
        from challengehub.__main__ import main as serve

        serve()
        return 0

    def _cmd_init_db(self, args: argparse.Namespace) -> int:
        """Create the schema from ORM metadata."""

        async def _run() -> None:
            engine = get_engine(args.database_url)
            try:
                await create_schema(engine)
            finally:
                await engine.dispose()

        asyncio.run(_run())
        print("Schema created")
        return 0

    def _cmd_fees(self, args: argparse.Namespace) -> int:
        """Print the fee breakdown for a reward amount."""
        problem = validate_minimum_reward(args.amount, args.buyout)
        if problem:
            print(problem, file=sys.stderr)
            return 1

        breakdown = compute_fees(args.amount, args.buyout)
        print(fee_breakdown_text(breakdown))
        print(f"  Platform fee: {format_currency(breakdown.platform_fee)}")
        print(f"  Net payout:   {format_currency(breakdown.net_payout)}")
        print(f"  Charged:      {format_currency(breakdown.total_cost)}")
        return 0

    def _cmd_stale_payments(self, args: argparse.Namespace) -> int:
        """List PENDING funding payments older than the threshold.

        Exits 1 when any are found so the command can gate an alert.
        """

        async def _run() -> list:
            engine = get_engine(args.database_url)
            try:
                factory = make_session_factory(engine)
                async with factory() as session:
                    store = PaymentStore(session)
                    return await store.find_stale_pending_funding(
                        timedelta(hours=args.older_than_hours)
                    )
            finally:
                await engine.dispose()

        stale = asyncio.run(_run())
        if not stale:
            print("No stale pending funding payments")
            return 0

        print(f"{len(stale)} stale pending funding payment(s):")
        for payment in stale:
            print(
                f"  {payment.payment_id}  challenge={payment.challenge_id}  "
                f"{format_currency(payment.amount, payment.currency)}  "
                f"processor_id={payment.processor_payment_id or '-'}  "
                f"created={payment.created_at.isoformat()}"
            )
        return 1


def main() -> int:
    """CLI entry point."""
    cli = ChallengeHubCli()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
