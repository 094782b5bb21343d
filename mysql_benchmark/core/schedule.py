"""
Weighted schedule generation.

Each query is replicated ``max(1, ceil(max_schedule_size * weight / total))``
times, so every query runs at least once per pass and heavier queries never
run less often than lighter ones. Workers get independently shuffled copies
of the same multiset so their passes are not phase-aligned.
"""

from __future__ import annotations

import logging
import random
from typing import Sequence

from mysql_benchmark.core.errors import ConfigurationError
from mysql_benchmark.models.query import QueryDefinition

logger = logging.getLogger(__name__)


def _ceil_div(numerator: int, denominator: int) -> int:
    return -(-numerator // denominator)


def replication_counts(
    queries: Sequence[QueryDefinition], max_schedule_size: int
) -> dict[str, int]:
    """
    Compute how many times each query appears in one schedule pass.

    Args:
        queries: Query definitions with their raw weights
        max_schedule_size: Nominal schedule length the weights are scaled to

    Returns:
        Mapping of query id to replication count (always >= 1)

    Raises:
        ConfigurationError: No queries, a non-positive size, or zero total weight
    """
    if not queries:
        raise ConfigurationError("No queries defined")
    if int(max_schedule_size) < 1:
        raise ConfigurationError(
            f"max schedule size must be >= 1 (got {max_schedule_size})"
        )

    total = sum(int(q.weight) for q in queries)
    if total <= 0:
        raise ConfigurationError("Total query weight is zero")

    counts: dict[str, int] = {}
    for query in queries:
        count = _ceil_div(int(max_schedule_size) * int(query.weight), total)
        counts[query.id] = max(1, count)
    return counts


def build_schedule(
    queries: Sequence[QueryDefinition], max_schedule_size: int
) -> list[str]:
    """Replicate query ids by weight, in definition order."""
    counts = replication_counts(queries, max_schedule_size)
    schedule: list[str] = []
    for query in queries:
        schedule.extend([query.id] * counts[query.id])
    logger.debug("Schedule counts=%s length=%d", counts, len(schedule))
    return schedule


def worker_schedules(
    queries: Sequence[QueryDefinition],
    *,
    max_schedule_size: int,
    workers: int,
    shuffle: bool = True,
    seed: int | None = None,
) -> list[list[str]]:
    """Build one schedule per worker, each an independent permutation of the base."""
    base = build_schedule(queries, max_schedule_size)
    rng = random.Random(seed)
    schedules: list[list[str]] = []
    for _ in range(max(0, int(workers))):
        copy = list(base)
        if shuffle:
            rng.shuffle(copy)
        schedules.append(copy)
    return schedules
