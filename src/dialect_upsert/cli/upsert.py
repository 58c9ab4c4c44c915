"""
CLI for writing JSON records into a table.

Input is either a JSON array of objects or JSON lines (one object per line),
read from ``--input`` or standard input. Every object is one record; its keys
are matched against the table's columns. One JSON outcome per record is
printed to standard output, in input order.

Exit codes:
    0 - every record succeeded
    1 - at least one record failed
    2 - the run could not start or was aborted (settings, input, table lookup,
        lost connection)

Usage:
    python -m dialect_upsert.cli upsert --table orders --input orders.jsonl \
        --database-url sqlite:///local.db --batch-size 500

    cat orders.json | python -m dialect_upsert.cli upsert --table orders \
        --schema sales --commit-by-profile --unit-field order_batch
"""

import argparse
import json
import sys
from typing import Any, Dict, List, Optional, Sequence, TextIO

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError

from dialect_upsert.io.loader import (
    CommitStrategy,
    InputRecord,
    TableMetadataCache,
    UpsertEngine,
    UpsertError,
)
from dialect_upsert.utils.logging import get_logger

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_RECORD_FAILURES = 1
EXIT_FATAL = 2


class InputFormatError(ValueError):
    """Raised when the input is neither a JSON array nor JSON lines of objects."""


def parse_documents(text: str) -> List[Dict[str, Any]]:
    """
    Parse a JSON array of objects or JSON lines.

    Raises:
        InputFormatError: If the text is not valid input
    """
    stripped = text.strip()
    if not stripped:
        return []

    if stripped.startswith("["):
        try:
            documents = json.loads(stripped)
        except json.JSONDecodeError as e:
            raise InputFormatError(f"Invalid JSON array: {e}") from e
    else:
        documents = []
        for line_number, line in enumerate(stripped.splitlines(), start=1):
            if not line.strip():
                continue
            try:
                documents.append(json.loads(line))
            except json.JSONDecodeError as e:
                raise InputFormatError(f"Invalid JSON on line {line_number}: {e}") from e

    for position, document in enumerate(documents, start=1):
        if not isinstance(document, dict):
            raise InputFormatError(f"Record {position} is not a JSON object")
    return documents


def build_records(
    documents: Sequence[Dict[str, Any]],
    id_field: Optional[str] = None,
    unit_field: Optional[str] = None,
) -> List[InputRecord]:
    """Wrap parsed documents as input records; ids default to the 1-based position."""
    records = []
    for position, document in enumerate(documents, start=1):
        document_id = document.get(id_field) if id_field else None
        unit_id = document.get(unit_field) if unit_field else None
        records.append(
            InputRecord(
                document_id=str(document_id if document_id is not None else position),
                fields=document,
                unit_id=str(unit_id) if unit_id is not None else None,
            )
        )
    return records


def _read_input(path: Optional[str], stdin: TextIO) -> str:
    if path is None or path == "-":
        return stdin.read()
    with open(path, encoding="utf-8") as handle:
        return handle.read()


def _resolve_strategy(args: argparse.Namespace, settings: Any) -> CommitStrategy:
    if args.commit_by_profile:
        return CommitStrategy.by_profile()
    if args.batch_size is not None:
        return CommitStrategy.by_rows(args.batch_size)
    return settings.commit_strategy()


def main(
    argv: Optional[Sequence[str]] = None,
    stdin: Optional[TextIO] = None,
    stdout: Optional[TextIO] = None,
) -> int:
    """
    Main CLI entry point.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])
        stdin: Input stream used when no ``--input`` file is given
        stdout: Stream receiving one JSON outcome per line

    Returns:
        Exit code (see module docstring)
    """
    stdin = stdin or sys.stdin
    stdout = stdout or sys.stdout

    parser = argparse.ArgumentParser(
        prog="dialect_upsert.cli upsert",
        description="Insert or update JSON records in a relational table",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )

    # Required arguments
    parser.add_argument("--table", required=True, help="Target table name")

    # Optional arguments
    parser.add_argument("--schema", default=None, help="Schema of the table")
    parser.add_argument("--catalog", default=None, help="Catalog (database) of the table")
    parser.add_argument(
        "--input",
        default=None,
        help="JSON array or JSON lines file (default: standard input)",
    )
    commit_group = parser.add_mutually_exclusive_group()
    commit_group.add_argument(
        "--batch-size",
        type=int,
        default=None,
        help="Commit every N records (default: UPSERT_DB_BATCH_SIZE)",
    )
    commit_group.add_argument(
        "--commit-by-profile",
        action="store_true",
        help="Commit once per unit of work instead of every N records",
    )
    parser.add_argument(
        "--database-url",
        default=None,
        help="SQLAlchemy database URL (default: UPSERT_DATABASE_URL)",
    )
    parser.add_argument("--id-field", default=None, help="Field holding the document id")
    parser.add_argument(
        "--unit-field",
        default=None,
        help="Field grouping records into commit units (with --commit-by-profile)",
    )

    args = parser.parse_args(argv)

    # Load settings
    try:
        from dialect_upsert.config.settings import get_settings

        settings = get_settings()
    except Exception as e:
        print(f"❌ Failed to load settings: {e}", file=sys.stderr)
        return EXIT_FATAL

    database_url = args.database_url or settings.DATABASE_URL
    if not database_url:
        print(
            "❌ No database URL: pass --database-url or set UPSERT_DATABASE_URL",
            file=sys.stderr,
        )
        return EXIT_FATAL

    try:
        strategy = _resolve_strategy(args, settings)
        records = build_records(
            parse_documents(_read_input(args.input, stdin)),
            id_field=args.id_field,
            unit_field=args.unit_field,
        )
    except (UpsertError, InputFormatError, OSError) as e:
        print(f"❌ {e}", file=sys.stderr)
        return EXIT_FATAL

    try:
        engine = create_engine(database_url)
    except (SQLAlchemyError, ValueError) as e:
        print(f"❌ Failed to create database engine: {e}", file=sys.stderr)
        return EXIT_FATAL

    failed = 0
    try:
        with engine.connect() as connection:
            upsert_engine = UpsertEngine(
                connection,
                args.table,
                catalog=args.catalog,
                schema=args.schema,
                strategy=strategy,
                cache=TableMetadataCache(settings.METADATA_CACHE_SIZE),
            )
            for outcome in upsert_engine.run(records):
                if not outcome.succeeded:
                    failed += 1
                stdout.write(json.dumps(outcome.to_dict(), default=str) + "\n")
            for report in upsert_engine.reports:
                logger.info(
                    "upsert.cli.batch_summary",
                    batch_number=report.batch_number,
                    summary=report.message,
                )
    except (UpsertError, SQLAlchemyError) as e:
        print(f"❌ Upsert aborted: {e}", file=sys.stderr)
        return EXIT_FATAL
    finally:
        engine.dispose()

    return EXIT_RECORD_FAILURES if failed else EXIT_OK
