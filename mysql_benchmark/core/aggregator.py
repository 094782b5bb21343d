"""
Statistics aggregation.

``merge_message`` is a pure function: it adds every counter of a message into
both the global bucket and the per-query bucket and returns new totals.
Addition is commutative and associative, so the order in which worker
messages arrive does not change the result. Totals only ever grow.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable

from mysql_benchmark.core.errors import MalformedMessageError
from mysql_benchmark.core.stats_channel import decode_message
from mysql_benchmark.models.stats import GlobalStats, QueryCounters, StatsMessage

logger = logging.getLogger(__name__)


def merge_message(stats: GlobalStats, message: StatsMessage) -> GlobalStats:
    totals = stats.totals
    per_query = dict(stats.per_query)
    for query_id, counters in message.counters.items():
        totals = totals + counters
        per_query[query_id] = per_query.get(query_id, QueryCounters()) + counters
    return GlobalStats(
        totals=totals, per_query=per_query, messages=stats.messages + 1
    )


def merge_stats(left: GlobalStats, right: GlobalStats) -> GlobalStats:
    """Combine two partial aggregates (used to check grouping independence)."""
    per_query = dict(left.per_query)
    for query_id, counters in right.per_query.items():
        per_query[query_id] = per_query.get(query_id, QueryCounters()) + counters
    return GlobalStats(
        totals=left.totals + right.totals,
        per_query=per_query,
        messages=left.messages + right.messages,
    )


def merge_all(
    messages: Iterable[StatsMessage], initial: GlobalStats | None = None
) -> GlobalStats:
    stats = initial or GlobalStats()
    for message in messages:
        stats = merge_message(stats, message)
    return stats


class StatsAggregator:
    """Holds the controller's running totals.

    Each merge swaps in a new ``GlobalStats`` with a single assignment.
    """

    def __init__(self) -> None:
        self._stats = GlobalStats()
        self.dropped = 0

    @property
    def stats(self) -> GlobalStats:
        return self._stats

    def merge(self, message: StatsMessage) -> None:
        self._stats = merge_message(self._stats, message)

    def merge_payload(self, payload: bytes) -> bool:
        """Decode and merge a raw datagram. Malformed datagrams are dropped."""
        try:
            message = decode_message(payload)
        except MalformedMessageError as exc:
            self.dropped += 1
            logger.warning(
                "Dropping malformed statistics datagram (%d bytes): %s", len(payload), exc
            )
            return False
        self.merge(message)
        return True


@dataclass(frozen=True)
class RunSummary:
    """Everything the reporter needs about a finished run."""

    start_time: datetime
    end_time: datetime
    elapsed_seconds: float
    workers: int
    stats: GlobalStats
    dropped_messages: int = 0

    @property
    def queries_per_second(self) -> float:
        if self.elapsed_seconds <= 0:
            return 0.0
        return self.stats.totals.runs / self.elapsed_seconds
