"""
Final report rendering.

Turns a ``RunSummary`` into a human-readable text report (tabulate) and,
optionally, a CSV file with one row per query id plus a TOTAL row.
"""

from __future__ import annotations

import csv
import logging
from pathlib import Path
from typing import Any, List, TextIO

from tabulate import tabulate

from mysql_benchmark.core.aggregator import RunSummary
from mysql_benchmark.models.stats import QueryCounters

logger = logging.getLogger(__name__)

TOTAL_ROW = "TOTAL"
COLUMNS = [
    "query_id",
    "runs",
    "run_time_s",
    "avg_latency_ms",
    "qps",
    "bytes_sent",
    "bytes_received",
]


def _row(label: str, counters: QueryCounters, elapsed_seconds: float) -> List[Any]:
    qps = counters.runs / elapsed_seconds if elapsed_seconds > 0 else 0.0
    return [
        label,
        counters.runs,
        round(counters.run_time, 6),
        round(counters.avg_latency_ms, 3),
        round(qps, 3),
        counters.bytes_sent,
        counters.bytes_received,
    ]


def build_rows(summary: RunSummary) -> List[List[Any]]:
    """Per-query rows sorted by query id, followed by the TOTAL row."""
    rows = [
        _row(query_id, counters, summary.elapsed_seconds)
        for query_id, counters in sorted(summary.stats.per_query.items())
    ]
    rows.append(_row(TOTAL_ROW, summary.stats.totals, summary.elapsed_seconds))
    return rows


def render_text(summary: RunSummary) -> str:
    header = [
        ["Start", summary.start_time.isoformat()],
        ["End", summary.end_time.isoformat()],
        ["Elapsed (s)", f"{summary.elapsed_seconds:.3f}"],
        ["Workers", summary.workers],
    ]
    if summary.dropped_messages:
        header.append(["Dropped messages", summary.dropped_messages])

    parts = [
        tabulate(header, tablefmt="plain"),
        "",
        tabulate(build_rows(summary), headers=COLUMNS, tablefmt="github"),
    ]
    return "\n".join(parts)


def write_csv(summary: RunSummary, path: str | Path) -> Path:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    with open(target, "w", newline="", encoding="utf-8") as f:
        _write_csv_rows(summary, f)
    logger.info("Wrote CSV report to %s", target)
    return target


def _write_csv_rows(summary: RunSummary, stream: TextIO) -> None:
    writer = csv.writer(stream)
    writer.writerow(["start_time", "end_time", "elapsed_s", "workers", *COLUMNS])
    prefix = [
        summary.start_time.isoformat(),
        summary.end_time.isoformat(),
        f"{summary.elapsed_seconds:.6f}",
        summary.workers,
    ]
    for row in build_rows(summary):
        writer.writerow(prefix + row)
