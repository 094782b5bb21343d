import logging

import pytest

from mysql_benchmark.core.aggregator import (
    StatsAggregator,
    merge_all,
    merge_message,
    merge_stats,
)
from mysql_benchmark.core.stats_channel import encode_message
from mysql_benchmark.models import GlobalStats, QueryCounters, StatsMessage


def _message(source_id, **per_query):
    return StatsMessage(
        timestamp=1700000000.0,
        source_id=source_id,
        counters={qid: QueryCounters(**values) for qid, values in per_query.items()},
    )


@pytest.fixture
def messages():
    return [
        _message(1, Q1={"runs": 2, "run_time": 0.5, "bytes_sent": 10}),
        _message(2, Q2={"runs": 1, "run_time": 2.0, "bytes_received": 300}),
        _message(
            3,
            Q1={"runs": 4, "run_time": 1.25, "bytes_sent": 40},
            Q2={"runs": 3, "run_time": 0.5, "bytes_received": 7},
        ),
    ]


def test_two_messages_for_one_query_add_up():
    stats = merge_all(
        [
            _message(1, Q1={"runs": 5, "run_time": 2.0}),
            _message(2, Q1={"runs": 5, "run_time": 2.0}),
        ]
    )

    assert stats.totals.runs == 10
    assert stats.totals.run_time == pytest.approx(4.0)
    assert stats.per_query["Q1"].runs == 10
    assert stats.messages == 2


def test_merge_updates_global_and_per_query_buckets(messages):
    stats = merge_all(messages)

    assert stats.totals == QueryCounters(
        runs=10, run_time=4.25, bytes_sent=50, bytes_received=307
    )
    assert stats.per_query["Q1"] == QueryCounters(runs=6, run_time=1.75, bytes_sent=50)
    assert stats.per_query["Q2"] == QueryCounters(
        runs=4, run_time=2.5, bytes_received=307
    )


def test_merge_order_does_not_matter(messages):
    forward = merge_all(messages)
    backward = merge_all(reversed(messages))

    assert forward == backward


def test_merge_grouping_does_not_matter(messages):
    a, b, c = messages
    left_first = merge_stats(merge_all([a, b]), merge_all([c]))
    right_first = merge_stats(merge_all([a]), merge_all([b, c]))

    assert left_first == right_first == merge_all(messages)


def test_merge_message_does_not_mutate_input():
    before = GlobalStats()

    after = merge_message(before, _message(1, Q1={"runs": 1, "run_time": 0.5}))

    assert before.totals.runs == 0
    assert before.per_query == {}
    assert after.totals.runs == 1


def test_aggregator_merges_encoded_payload():
    aggregator = StatsAggregator()

    accepted = aggregator.merge_payload(
        encode_message(_message(9, Q1={"runs": 3, "run_time": 0.5}))
    )

    assert accepted is True
    assert aggregator.stats.totals.runs == 3


def test_aggregator_drops_malformed_payload():
    aggregator = StatsAggregator()
    aggregator.merge(_message(1, Q1={"runs": 1, "run_time": 0.5}))
    before = aggregator.stats

    assert aggregator.merge_payload(b"garbage") is False
    assert aggregator.merge_payload(b'{"timestamp": 1, "source_id": 2, "x": 3}') is False

    assert aggregator.dropped == 2
    assert aggregator.stats == before


def test_dropped_payload_is_logged_as_warning(caplog):
    aggregator = StatsAggregator()

    with caplog.at_level(logging.WARNING, logger="mysql_benchmark.core.aggregator"):
        aggregator.merge_payload(b'{"timestamp": 1.0, "source_id": 3, "counters": {"Q1"')

    assert "Dropping malformed statistics datagram" in caplog.text
