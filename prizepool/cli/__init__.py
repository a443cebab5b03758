#!/usr/bin/env python3
"""
Prize Pool Settlement CLI

Usage:
    python -m prizepool.cli <command> [options]

Commands:
    db          Database operations (init)
    tournament  Settlement operations (sweep, transition, distribute, refund)
    compliance  Compliance reporting (tds-report, audit-trail)

Environment:
    DATABASE_URL    Database connection string
    REDIS_URL       Redis connection string (optional)
    LOG_LEVEL       DEBUG|INFO|WARNING|ERROR
"""
import sys
import argparse
import logging
from typing import Optional

from prizepool.cli.compliance_commands import ComplianceCommand
from prizepool.cli.db_commands import DbCommand
from prizepool.cli.settlement_commands import SettlementCommand

CLI_ACTOR = "cli"


def setup_logging(level: str = "INFO") -> None:
    """Configure logging."""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


def create_parser() -> argparse.ArgumentParser:
    """Create CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="prizepool",
        description="Tournament Prize Pool Settlement CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s db init
  %(prog)s tournament sweep
  %(prog)s tournament transition --id 42 --status COMPLETED
  %(prog)s tournament distribute --id 42
  %(prog)s compliance tds-report --from 2026-04-01 --to 2026-06-30
        """
    )

    parser.add_argument(
        "--version",
        action="version",
        version="%(prog)s 1.0.0"
    )

    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)"
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be done without executing"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Database commands
    db_parser = subparsers.add_parser("db", help="Database operations")
    db_subparsers = db_parser.add_subparsers(dest="db_action")
    db_subparsers.add_parser("init", help="Create missing tables")

    # Tournament settlement commands
    tournament_parser = subparsers.add_parser("tournament", help="Settlement operations")
    tournament_subparsers = tournament_parser.add_subparsers(dest="tournament_action")

    sweep_parser = tournament_subparsers.add_parser("sweep", help="Start due OPEN tournaments")
    sweep_parser.add_argument("--actor", default=CLI_ACTOR, help="Actor recorded in the audit log")

    transition_parser = tournament_subparsers.add_parser("transition", help="Change tournament status")
    transition_parser.add_argument("--id", "-i", type=int, required=True, help="Tournament ID")
    transition_parser.add_argument(
        "--status", required=True, choices=["OPEN", "LIVE", "COMPLETED", "CANCELLED"], help="Target status"
    )
    transition_parser.add_argument("--reason", help="Reason recorded in the audit log")
    transition_parser.add_argument("--actor", default=CLI_ACTOR, help="Actor recorded in the audit log")

    for action, help_text in (("distribute", "Distribute a locked prize pool"),
                              ("refund", "Refund entry fees")):
        job_parser = tournament_subparsers.add_parser(action, help=help_text)
        job_parser.add_argument("--id", "-i", type=int, required=True, help="Tournament ID")
        job_parser.add_argument("--actor", default=CLI_ACTOR, help="Actor recorded in the audit log")

    # Compliance commands
    compliance_parser = subparsers.add_parser("compliance", help="Compliance reporting")
    compliance_subparsers = compliance_parser.add_subparsers(dest="compliance_action")

    tds_parser = compliance_subparsers.add_parser("tds-report", help="TDS withheld on payouts")
    tds_parser.add_argument("--from", dest="from_date", help="Start date (ISO format, default: 30 days ago)")
    tds_parser.add_argument("--to", dest="to_date", help="End date (ISO format, default: now)")
    tds_parser.add_argument("--organizer", help="Restrict to one organizer")
    tds_parser.add_argument("--output", "-o", help="Write JSON to file")

    trail_parser = compliance_subparsers.add_parser("audit-trail", help="Compliance audit entries")
    trail_parser.add_argument("--tournament", "-t", type=int, help="Tournament ID")
    trail_parser.add_argument("--organizer", help="Organizer ID")
    trail_parser.add_argument("--limit", type=int, default=200, help="Maximum entries (default: 200)")
    trail_parser.add_argument("--output", "-o", help="Write JSON to file")

    return parser


def main(args: Optional[list] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    parsed = parser.parse_args(args)

    if not parsed.command:
        parser.print_help()
        return 1

    setup_logging(parsed.log_level)

    command_map = {
        "db": DbCommand,
        "tournament": SettlementCommand,
        "compliance": ComplianceCommand,
    }

    handler = command_map[parsed.command](dry_run=parsed.dry_run)
    return handler.execute(parsed)


if __name__ == "__main__":
    sys.exit(main())
