#!/usr/bin/env python3
"""Run a single benchmark worker process.

The controller starts this module with ``python -m mysql_benchmark.run_worker``
and writes the worker's ``WorkerConfig`` as JSON to its stdin. A config file
can be given instead for running a worker by hand.
"""

from __future__ import annotations

import argparse
import logging
import sys

from pydantic import ValidationError

from mysql_benchmark.core.log_context import configure_logging, resolve_level
from mysql_benchmark.core.worker import BenchmarkWorker
from mysql_benchmark.models.run_config import WorkerConfig

logger = logging.getLogger(__name__)

EXIT_BAD_CONFIG = 1


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Run a benchmark worker (normally spawned by mysql-benchmark)."
    )
    parser.add_argument(
        "--config-file",
        help="Read the worker configuration JSON from this file instead of stdin.",
    )
    return parser


def _read_config(args: argparse.Namespace) -> str:
    if args.config_file:
        with open(args.config_file, "r", encoding="utf-8") as f:
            return f.read()
    return sys.stdin.read()


def load_worker_config(raw: str) -> WorkerConfig:
    return WorkerConfig.model_validate_json(raw)


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    try:
        config = load_worker_config(_read_config(args))
    except (OSError, ValidationError) as exc:
        configure_logging(logging.ERROR, role="worker")
        logger.error("Invalid worker configuration: %s", exc)
        return EXIT_BAD_CONFIG

    configure_logging(
        resolve_level(debug=config.debug, verbose=config.verbose, level=config.log_level),
        role=f"worker-{config.worker_index}",
    )
    return BenchmarkWorker(config).run()


if __name__ == "__main__":
    raise SystemExit(main())
