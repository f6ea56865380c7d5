#!/usr/bin/env python3
"""Run one loan through the full cooperative loan workflow.

Registers synthetic members, submits a Progress Plus application, collects
guarantor approvals, approves and activates the loan, then runs monthly
deductions. Audit events and records go to the selected sinks; the
installment schedule is exported as CSV.
"""

import argparse
import json
import logging
from datetime import datetime

from coop_loans.config import PortalConfig
from coop_loans.logging import setup_logging
from coop_loans.scenarios import LoanWalkthroughScenario
from coop_loans.sinks import ConsoleSink, JsonFileSink, KafkaSink
from coop_loans.store.postgres import PostgresDocumentStore

logger = logging.getLogger(__name__)


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Run the cooperative loan walkthrough")
    parser.add_argument(
        "--members",
        type=int,
        default=5,
        help="Number of members to register (default: 5)",
    )
    parser.add_argument(
        "--months",
        type=int,
        default=3,
        help="Monthly deduction runs after activation (default: 3)",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Random seed for reproducibility (default: SEED env var)",
    )
    parser.add_argument(
        "--start",
        type=datetime.fromisoformat,
        default=None,
        help="Simulated application date, ISO format (default: 2024-03-15T09:00)",
    )
    parser.add_argument(
        "--sink",
        choices=["console", "json", "kafka"],
        action="append",
        default=None,
        help="Output sink, may be repeated (default: json)",
    )
    parser.add_argument(
        "--store",
        choices=["memory", "postgres"],
        default="memory",
        help="Document store backend (default: memory)",
    )
    parser.add_argument(
        "--log-format",
        choices=["standard", "json"],
        default="standard",
        help="Log output format",
    )
    parser.add_argument(
        "--log-file",
        default=None,
        help="Also write logs to this file",
    )
    args = parser.parse_args()

    config = PortalConfig.from_env()
    setup_logging(config.log_level, args.log_format, log_file=args.log_file)
    seed = args.seed if args.seed is not None else config.seed

    sinks = []
    for name in args.sink or ["json"]:
        if name == "console":
            sinks.append(ConsoleSink(pretty=config.output.pretty_json))
        elif name == "json":
            sinks.append(JsonFileSink(config.output.output_dir))
        elif name == "kafka":
            sinks.append(KafkaSink(config.kafka))

    store = None
    if args.store == "postgres":
        store = PostgresDocumentStore(config.postgres.connection_string)
        logger.info("Using PostgreSQL at %s:%d", config.postgres.host, config.postgres.port)

    scenario = LoanWalkthroughScenario(
        num_members=args.members,
        months_to_run=args.months,
        seed=seed,
        start=args.start,
        config=config,
        store=store,
    )
    try:
        scenario.generate()
        scenario.export(sinks, output_dir=config.output.output_dir)
    finally:
        for sink in sinks:
            sink.close()
        if store is not None:
            store.close()

    print(json.dumps(scenario.get_summary(), indent=2, default=str))


if __name__ == "__main__":
    main()
