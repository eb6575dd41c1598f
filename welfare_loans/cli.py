"""Command-line interface for the welfare loan ledger.

Runs batch reconciliation, the fund summary or the interest report against
either PostgreSQL or a generated demo fund, and prints the result as JSON:

    welfare-loans reconcile --members 200 --seed 7
    welfare-loans summary --postgres
    welfare-loans report --start 2024-01-01 --end 2024-12-31 --postgres
"""

import argparse
import json
import logging
import sys
from datetime import date
from typing import Any

from welfare_loans.config import ReconciliationConfig, WelfareLoansConfig
from welfare_loans.exceptions import ConfigurationError, WelfareLoanError
from welfare_loans.ledger.reconciliation import ReconciliationEngine
from welfare_loans.ledger.reports import generate_interest_report
from welfare_loans.ledger.summary import AccountingSummaryAggregator
from welfare_loans.logging import setup_logging
from welfare_loans.scenarios import RepaymentScenario
from welfare_loans.sinks import JsonFileSink, KafkaSink
from welfare_loans.sinks.serialization import serialize_value
from welfare_loans.store.port import LoanRepository

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="welfare-loans",
        description="Reconcile and report on welfare fund loans",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        help="Log level (default: LOG_LEVEL or INFO)",
    )
    parser.add_argument(
        "--log-format",
        type=str,
        choices=["standard", "json"],
        default=None,
        help="Log format (default: LOG_FORMAT or standard)",
    )
    parser.add_argument(
        "--pretty",
        action="store_true",
        help="Indent JSON output",
    )

    source = parser.add_argument_group("data source")
    source.add_argument(
        "--postgres",
        action="store_true",
        help="Read the ledger from PostgreSQL instead of generating a demo fund",
    )
    source.add_argument(
        "--postgres-url",
        type=str,
        default=None,
        help="PostgreSQL connection string (default: from POSTGRES_* variables)",
    )
    source.add_argument(
        "--create-tables",
        action="store_true",
        help="Create the ledger tables if they do not exist",
    )
    source.add_argument(
        "--members",
        type=int,
        default=50,
        help="Members in the demo fund (default: 50)",
    )
    source.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Random seed for the demo fund (default: SEED or 42)",
    )
    source.add_argument(
        "--as-of",
        type=date.fromisoformat,
        default=None,
        help="Last day of demo fund history, YYYY-MM-DD (default: today)",
    )

    events = parser.add_argument_group("events")
    events.add_argument(
        "--events",
        choices=["none", "file", "kafka"],
        default="none",
        help="Where ledger events are published (default: none)",
    )
    events.add_argument(
        "--events-dir",
        type=str,
        default=None,
        help="Directory for JSON Lines event files (default: OUTPUT_DIR or output)",
    )
    events.add_argument(
        "--kafka-bootstrap",
        type=str,
        default=None,
        help="Kafka bootstrap servers (default: KAFKA_BOOTSTRAP_SERVERS)",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    reconcile = commands.add_parser("reconcile", help="Reconcile all active and completed loans")
    reconcile.add_argument("--actor", type=str, default=None, help="Actor in the audit log")
    reconcile.add_argument("--workers", type=int, default=None, help="Worker threads")
    reconcile.add_argument("--timeout", type=float, default=None, help="Per-loan timeout (s)")

    commands.add_parser("summary", help="Print the fund availability summary")

    report = commands.add_parser("report", help="Print interest collected over a period")
    report.add_argument("--start", type=date.fromisoformat, required=True, help="YYYY-MM-DD")
    report.add_argument("--end", type=date.fromisoformat, required=True, help="YYYY-MM-DD")

    return parser


def open_events(args: argparse.Namespace, config: WelfareLoansConfig) -> Any:
    """Create the event sink selected on the command line."""
    if args.events == "file":
        return JsonFileSink(
            args.events_dir or config.output.events_dir,
            pretty=config.output.pretty_json,
        )
    if args.events == "kafka":
        if args.kafka_bootstrap:
            config.kafka.bootstrap_servers = args.kafka_bootstrap
        return KafkaSink(config.kafka, topic_prefix=config.topic_prefix)
    return None


def open_store(
    args: argparse.Namespace,
    config: WelfareLoansConfig,
    events: Any,
) -> LoanRepository:
    """Connect to PostgreSQL or generate the demo fund."""
    if args.postgres:
        import psycopg

        from welfare_loans.store.postgres import PostgresLoanStore

        url = args.postgres_url or config.postgres.connection_string
        try:
            return PostgresLoanStore(url, autocreate=args.create_tables)
        except psycopg.OperationalError as exc:
            raise ConfigurationError(f"Cannot connect to PostgreSQL: {exc}") from exc

    seed = args.seed if args.seed is not None else (config.seed if config.seed is not None else 42)
    scenario = RepaymentScenario(
        num_members=args.members,
        as_of=args.as_of,
        seed=seed,
        events=events,
    )
    store = scenario.generate()
    logger.info("Demo fund: %s", scenario.get_summary())
    return store


def run_reconcile(
    args: argparse.Namespace,
    config: WelfareLoansConfig,
    store: LoanRepository,
    events: Any,
) -> dict[str, Any]:
    settings = config.reconciliation
    reconciliation = ReconciliationConfig(
        per_loan_timeout_seconds=(
            settings.per_loan_timeout_seconds if args.timeout is None else args.timeout
        ),
        max_workers=settings.max_workers if args.workers is None else args.workers,
        actor_id=args.actor or settings.actor_id,
    )
    batch = ReconciliationEngine(store, reconciliation, events=events).reconcile_all_loans()
    return {
        "loans": len(batch.results) + len(batch.failures),
        "reconciled": batch.reconciled_count,
        "discrepancies": batch.discrepancy_count,
        "failures": batch.failures,
        "records": batch.records,
        "results": batch.results,
    }


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    try:
        config = WelfareLoansConfig.from_env()
    except ConfigurationError as exc:
        print(f"welfare-loans: {exc}", file=sys.stderr)
        return 2

    # stdout carries the JSON result
    setup_logging(
        args.log_level or config.log_level,
        args.log_format or config.log_format,
        stream=sys.stderr,
    )

    events = None
    store = None
    try:
        events = open_events(args, config)
        store = open_store(args, config, events)

        if args.command == "reconcile":
            output: Any = run_reconcile(args, config, store, events)
        elif args.command == "summary":
            output = AccountingSummaryAggregator(store).generate_summary()
        else:
            output = generate_interest_report(store, args.start, args.end)
    except ConfigurationError as exc:
        logger.error("Invalid configuration: %s", exc)
        return 2
    except (WelfareLoanError, ValueError) as exc:
        logger.error("%s failed: %s", args.command, exc)
        return 1
    finally:
        if events is not None:
            events.close()
        if store is not None and hasattr(store, "close"):
            store.close()

    indent = 2 if args.pretty else None
    print(json.dumps(serialize_value(output), indent=indent, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    sys.exit(main())
