#!/usr/bin/env python3
"""mysql-benchmark command line entry point."""

from __future__ import annotations

import argparse
import logging
import sys

from pydantic import ValidationError

from mysql_benchmark.config import Settings, settings
from mysql_benchmark.core.errors import ConfigurationError, TransportInitError
from mysql_benchmark.core.log_context import configure_logging, resolve_level
from mysql_benchmark.core.query_loader import load_queries_file
from mysql_benchmark.core.reporter import render_text, write_csv
from mysql_benchmark.core.supervisor import run_benchmark
from mysql_benchmark.models.run_config import DatabaseConfig, RunConfig

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_INTERRUPTED = 130


def _build_parser(defaults: Settings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mysql-benchmark",
        description="Run a weighted mix of parameterized queries against MySQL "
        "from parallel worker processes and report latency/throughput.",
    )
    parser.add_argument("--queries", required=True, help="YAML query definition file.")
    parser.add_argument(
        "--workers",
        type=int,
        default=defaults.BENCHMARK_WORKERS,
        help="Number of worker processes.",
    )
    parser.add_argument(
        "--runtime",
        type=float,
        default=defaults.BENCHMARK_RUNTIME_SECONDS,
        help="Benchmark duration in seconds.",
    )
    parser.add_argument(
        "--flush-interval",
        "--flush_interval",
        dest="flush_interval",
        type=float,
        default=defaults.FLUSH_INTERVAL_SECONDS,
        help="Seconds between worker statistics flushes.",
    )
    parser.add_argument(
        "--max-schedule-size",
        type=int,
        default=defaults.MAX_SCHEDULE_SIZE,
        help="Nominal schedule length the query weights are scaled to.",
    )
    parser.add_argument(
        "--seed", type=int, default=defaults.SCHEDULE_SEED, help="Random seed."
    )
    parser.add_argument(
        "--no-shuffle",
        dest="shuffle",
        action="store_false",
        default=defaults.SHUFFLE_SCHEDULE,
        help="Run every worker's schedule in definition order.",
    )
    parser.add_argument("--csv", help="Also write the report as CSV to this path.")

    db = parser.add_argument_group("Database")
    db.add_argument("--dbhost", default=defaults.MYSQL_HOST)
    db.add_argument("--dbport", type=int, default=defaults.MYSQL_PORT)
    db.add_argument("--dbschema", default=defaults.MYSQL_SCHEMA)
    db.add_argument("--dbuser", default=defaults.MYSQL_USER)
    db.add_argument("--dbpassword", default=defaults.MYSQL_PASSWORD)
    db.add_argument("--dbdefaults", default=defaults.MYSQL_DEFAULTS_FILE)

    parser.add_argument("--debug", action="store_true", help="Debug logging.")
    parser.add_argument("--verbose", action="store_true", help="Informational logging.")
    return parser


def build_run_config(args: argparse.Namespace, defaults: Settings) -> RunConfig:
    try:
        return RunConfig(
            workers=args.workers,
            runtime_seconds=args.runtime,
            flush_interval_seconds=args.flush_interval,
            max_schedule_size=args.max_schedule_size,
            shuffle_schedule=args.shuffle,
            seed=args.seed,
            database=DatabaseConfig(
                host=args.dbhost,
                port=args.dbport,
                schema_name=args.dbschema,
                user=args.dbuser,
                password=args.dbpassword,
                defaults_file=args.dbdefaults,
                connect_timeout=defaults.MYSQL_CONNECT_TIMEOUT,
            ),
            socket_dir=defaults.STATS_SOCKET_DIR,
            send_timeout_seconds=defaults.STATS_SEND_TIMEOUT_SECONDS,
            send_retry_limit=defaults.STATS_SEND_RETRY_LIMIT,
            send_retry_backoff_seconds=defaults.STATS_SEND_RETRY_BACKOFF_SECONDS,
            max_payload_bytes=defaults.STATS_MAX_PAYLOAD_BYTES,
            reconnect_delay_seconds=defaults.RECONNECT_DELAY_SECONDS,
            tick_seconds=defaults.SUPERVISOR_TICK_SECONDS,
            abort_wait_seconds=defaults.WORKER_ABORT_WAIT_SECONDS,
            log_level=defaults.LOG_LEVEL,
            debug=args.debug,
            verbose=args.verbose,
        )
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid run configuration: {exc}") from exc


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser(settings)
    args = parser.parse_args(argv)
    configure_logging(
        resolve_level(debug=args.debug, verbose=args.verbose), role="controller"
    )

    try:
        run_config = build_run_config(args, settings)
        queries = load_queries_file(args.queries)
        summary = run_benchmark(run_config, queries)
    except (ConfigurationError, TransportInitError) as exc:
        print(f"mysql-benchmark: {exc}", file=sys.stderr)
        return EXIT_ERROR
    except KeyboardInterrupt:
        print("[mysql-benchmark] interrupted", file=sys.stderr)
        return EXIT_INTERRUPTED

    print(render_text(summary))
    if args.csv:
        write_csv(summary, args.csv)
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
