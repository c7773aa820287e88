#!/usr/bin/env python3
"""Run a callback storm against the reconciliation engine.

Initiates sandbox payments, then replays the provider traffic a flaky
gateway produces (duplicated, conflicting and orphan callbacks mixed with
client polls) from a thread pool, and prints a consistency report.

Events can be published to the console, a JSON Lines file and/or Kafka.
"""

import argparse
import json
import sys
from dataclasses import replace
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from pay_recon.config import PayReconConfig, SimulationConfig
from pay_recon.logging import setup_logging
from pay_recon.scenarios import CallbackStormScenario
from pay_recon.sinks import ConsoleSink, JsonFileSink, KafkaSink
from pay_recon.store import build_store


def build_sinks(args: argparse.Namespace, config: PayReconConfig) -> list:
    """Create the event sinks selected on the command line."""
    sinks: list = []
    if args.console:
        sinks.append(ConsoleSink(pretty=False, event_types=args.console_only or None))
    if args.output_dir:
        sinks.append(JsonFileSink(args.output_dir, pretty=config.output.pretty_json))
    if args.kafka:
        kafka_config = replace(
            config.kafka,
            bootstrap_servers=args.kafka_bootstrap or config.kafka.bootstrap_servers,
            schema_registry_url=args.schema_registry or config.kafka.schema_registry_url,
        )
        sinks.append(KafkaSink(kafka_config))
    return sinks


def main() -> None:
    """Run the callback storm."""
    config = PayReconConfig.from_env()

    parser = argparse.ArgumentParser(description="Simulate provider callback storms")
    parser.add_argument("--transactions", type=int, default=100, help="Transactions to initiate (default: 100)")
    parser.add_argument("--duplicate-rate", type=float, default=0.3, help="Share of callbacks delivered more than once")
    parser.add_argument("--conflict-rate", type=float, default=0.05, help="Share of transactions receiving a conflicting result")
    parser.add_argument("--orphan-rate", type=float, default=0.05, help="Orphan callbacks per transaction")
    parser.add_argument("--poll-rate", type=float, default=0.5, help="Share of transactions polled during the storm")
    parser.add_argument("--workers", type=int, default=8, help="Concurrent delivery threads (default: 8)")
    parser.add_argument("--orphan-grace", type=float, default=config.engine.orphan_grace_seconds, help="Seconds to buffer orphan callbacks (0 drops them)")
    parser.add_argument("--seed", type=int, default=config.seed if config.seed is not None else 42, help="Random seed")
    parser.add_argument("--console", action="store_true", help="Print events to stdout")
    parser.add_argument("--console-only", nargs="*", default=None, metavar="EVENT_TYPE", help="Print only these event types")
    parser.add_argument(
        "--output-dir",
        nargs="?",
        const=str(config.output.events_dir),
        default=None,
        help="Write events as JSON Lines to this directory (default when given without a value: OUTPUT_DIR)",
    )
    parser.add_argument("--kafka", action="store_true", help="Publish events to Kafka")
    parser.add_argument("--kafka-bootstrap", type=str, default=None, help="Kafka bootstrap servers")
    parser.add_argument("--schema-registry", type=str, default=None, help="Schema Registry URL (enables Avro)")
    parser.add_argument("--log-level", type=str, default=config.log_level, help="Log level")
    args = parser.parse_args()

    setup_logging(args.log_level, config.log_format)

    simulation = SimulationConfig(
        num_transactions=args.transactions,
        duplicate_rate=args.duplicate_rate,
        conflict_rate=args.conflict_rate,
        orphan_rate=args.orphan_rate,
        poll_rate=args.poll_rate,
        workers=args.workers,
    )
    engine_config = replace(config.engine, orphan_grace_seconds=args.orphan_grace)
    sinks = build_sinks(args, config)

    print("=" * 60)
    print(f"  pay-recon callback storm  |  transactions={args.transactions:,}  seed={args.seed}")
    print("=" * 60)

    scenario = CallbackStormScenario(
        simulation,
        seed=args.seed,
        sinks=sinks,
        engine_config=engine_config,
        store=build_store(config),
    )
    try:
        report = scenario.run()
        for sink in sinks:
            if isinstance(sink, JsonFileSink):
                sink.write_snapshot("payment_transactions", list(scenario.store.list()))
    finally:
        for sink in sinks:
            sink.close()

    print(json.dumps(report.to_dict(), indent=2))
    print("\n" + "=" * 60)
    print(f"  Consistent: {report.consistent}")
    print("=" * 60)
    sys.exit(0 if report.consistent else 1)


if __name__ == "__main__":
    main()
