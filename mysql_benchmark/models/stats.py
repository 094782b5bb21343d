"""
Statistics Models

Defines the wire schema exchanged between workers and the controller, the
worker-local accumulator, and the controller-side running totals.
"""

from __future__ import annotations

from typing import Dict, Mapping

from pydantic import BaseModel, ConfigDict, Field


class QueryCounters(BaseModel):
    """The four metrics tracked for every query id."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    runs: int = Field(0, ge=0, description="Accepted executions")
    run_time: float = Field(0.0, ge=0.0, description="Summed wall time in seconds")
    bytes_sent: int = Field(0, ge=0, description="Session Bytes_sent delta")
    bytes_received: int = Field(0, ge=0, description="Session Bytes_received delta")

    def __add__(self, other: "QueryCounters") -> "QueryCounters":
        if not isinstance(other, QueryCounters):
            return NotImplemented
        return QueryCounters(
            runs=self.runs + other.runs,
            run_time=self.run_time + other.run_time,
            bytes_sent=self.bytes_sent + other.bytes_sent,
            bytes_received=self.bytes_received + other.bytes_received,
        )

    @property
    def avg_latency_ms(self) -> float:
        if self.runs <= 0:
            return 0.0
        return (self.run_time / self.runs) * 1000.0


class StatsMessage(BaseModel):
    """
    One flush worth of statistics sent from a worker to the controller.

    ``timestamp`` is the epoch time at which the flushed interval started;
    ``source_id`` is the worker's process id.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    timestamp: float = Field(..., description="Interval start (epoch seconds)")
    source_id: int = Field(..., description="Sending worker pid")
    counters: Dict[str, QueryCounters] = Field(
        default_factory=dict, description="Per-query counters for the interval"
    )


class PartialStats:
    """Worker-local accumulator for the samples taken since the last flush."""

    def __init__(self) -> None:
        self._counters: dict[str, QueryCounters] = {}

    def __len__(self) -> int:
        return len(self._counters)

    def __bool__(self) -> bool:
        return bool(self._counters)

    def record(
        self, query_id: str, *, run_time: float, session_delta: Mapping[str, int]
    ) -> None:
        sample = QueryCounters(
            runs=1,
            run_time=max(0.0, float(run_time)),
            bytes_sent=int(session_delta.get("bytes_sent", 0)),
            bytes_received=int(session_delta.get("bytes_received", 0)),
        )
        current = self._counters.get(query_id)
        self._counters[query_id] = sample if current is None else current + sample

    def get(self, query_id: str) -> QueryCounters | None:
        return self._counters.get(query_id)

    def to_message(self, *, timestamp: float, source_id: int) -> StatsMessage:
        return StatsMessage(
            timestamp=timestamp, source_id=source_id, counters=dict(self._counters)
        )

    def clear(self) -> None:
        self._counters = {}


class GlobalStats(BaseModel):
    """Controller-side lifetime totals, globally and per query id."""

    model_config = ConfigDict(frozen=True)

    totals: QueryCounters = Field(default_factory=QueryCounters)
    per_query: Dict[str, QueryCounters] = Field(default_factory=dict)
    messages: int = Field(0, ge=0, description="Merged statistics messages")
