"""
Unified CLI entry point for Dialect Upsert.

Usage:
    python -m dialect_upsert.cli <command> [options]

Available commands:
    upsert       - Write JSON records into a table

Examples:
    # Commit every 500 records
    python -m dialect_upsert.cli upsert --table orders --input orders.jsonl --batch-size 500

    # Commit per unit of work
    python -m dialect_upsert.cli upsert --table orders --input orders.json \
        --commit-by-profile --unit-field order_batch
"""

import argparse
import sys
from typing import List, Optional


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point with subcommand routing.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    parser = argparse.ArgumentParser(
        prog="dialect_upsert.cli",
        description="Dialect Upsert CLI - write JSON records into relational tables",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )

    subparsers = parser.add_subparsers(
        title="commands",
        description="Available commands",
        dest="command",
        required=True,
        help="Command to execute",
    )

    # Upsert command (delegate all argument parsing to upsert.py)
    subparsers.add_parser(
        "upsert",
        help="Write JSON records into a table",
        description="Insert or update JSON records in a relational table",
        add_help=False,  # Let the delegated module handle help
    )

    args, remaining_args = parser.parse_known_args(argv)

    if args.command == "upsert":
        from dialect_upsert.cli.upsert import main as upsert_main

        return upsert_main(remaining_args or [])

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
