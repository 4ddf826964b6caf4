#!/usr/bin/env python3
"""
Command-line client

Runs each SQL argument through one session and prints the results
tab-separated. Connection defaults come from PGWIRE_* environment
variables; flags override them.
"""

import argparse
import logging
import sys
from typing import List, Optional

import structlog

from . import connect
from .config import SessionConfig
from .exceptions import DatabaseError
from .models import ResultBundle


def configure_logging(verbose: bool):
    level = logging.DEBUG if verbose else logging.WARNING
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
    )


def format_result(result: ResultBundle, encoding: str = "utf-8") -> List[str]:
    """Render a result as output lines"""
    lines = []
    if result.has_rows:
        lines.append("\t".join(result.column_names))
        for row in result.decoded_rows(encoding):
            lines.append("\t".join("NULL" if v is None else v for v in row))
    if result.status:
        lines.append(result.status)
    return lines


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="pgwire_client",
        description="Run SQL statements over the wire protocol",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Single query
  python -m pgwire_client -d test -U postgres "select * from pg_class"

  # Statements in one explicit transaction
  python -m pgwire_client -d test -U postgres --no-autocommit \\
      "insert into t values (1)" "insert into t values (2)"
        """
    )
    parser.add_argument('--host', '-H', help='Backend host (PGWIRE_HOST)')
    parser.add_argument('--port', '-p', type=int, help='Backend port (PGWIRE_PORT)')
    parser.add_argument('--database', '-d', help='Database name (PGWIRE_DATABASE)')
    parser.add_argument('--user', '-U', help='User name (PGWIRE_USER)')
    parser.add_argument('--password', '-W', help='Password (PGWIRE_PASSWORD)')
    parser.add_argument(
        '--no-autocommit',
        action='store_true',
        help='Run all statements in one transaction, committed at the end'
    )
    parser.add_argument('--verbose', '-v', action='store_true', help='Debug logging to stderr')
    parser.add_argument('sql', nargs='+', help='SQL statements to execute')

    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    try:
        config = SessionConfig.from_env(
            host=args.host,
            port=args.port,
            database=args.database,
            user=args.user,
            password=args.password,
            autocommit=False if args.no_autocommit else None,
        )
    except ValueError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2

    try:
        with connect(config) as session:
            for statement in args.sql:
                result = session.execute_simple_query(statement)
                for line in format_result(result, config.encoding):
                    print(line)
            # 'end' commits without opening another transaction
            session.set_autocommit(True)
    except DatabaseError as e:
        print(f"{type(e).__name__}: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
