import csv
from datetime import UTC, datetime, timedelta

import pytest

from mysql_benchmark.core.aggregator import RunSummary, merge_all
from mysql_benchmark.core.reporter import TOTAL_ROW, build_rows, render_text, write_csv
from mysql_benchmark.models import QueryCounters, StatsMessage


@pytest.fixture
def summary():
    start = datetime(2024, 5, 1, 12, 0, 0, tzinfo=UTC)
    stats = merge_all(
        [
            StatsMessage(
                timestamp=0.0,
                source_id=1,
                counters={
                    "Q2": QueryCounters(runs=8, run_time=2.0, bytes_sent=80, bytes_received=800),
                    "Q1": QueryCounters(runs=2, run_time=0.5, bytes_sent=20, bytes_received=200),
                },
            )
        ]
    )
    return RunSummary(
        start_time=start,
        end_time=start + timedelta(seconds=5),
        elapsed_seconds=5.0,
        workers=2,
        stats=stats,
    )


def test_rows_sorted_with_total_last(summary):
    rows = build_rows(summary)

    assert [row[0] for row in rows] == ["Q1", "Q2", TOTAL_ROW]
    q1 = rows[0]
    assert q1[1] == 2
    assert q1[3] == pytest.approx(250.0)
    assert q1[4] == pytest.approx(0.4)
    total = rows[-1]
    assert total[1] == 10
    assert total[4] == pytest.approx(2.0)
    assert total[5:] == [100, 1000]


def test_render_text(summary):
    text = render_text(summary)

    assert "2024-05-01T12:00:00+00:00" in text
    assert "avg_latency_ms" in text
    assert TOTAL_ROW in text
    assert "Dropped" not in text


def test_render_text_mentions_dropped_messages(summary):
    text = render_text(
        RunSummary(
            start_time=summary.start_time,
            end_time=summary.end_time,
            elapsed_seconds=summary.elapsed_seconds,
            workers=summary.workers,
            stats=summary.stats,
            dropped_messages=3,
        )
    )

    assert "Dropped messages" in text


def test_write_csv(summary, tmp_path):
    path = write_csv(summary, tmp_path / "out" / "report.csv")

    with open(path, newline="", encoding="utf-8") as f:
        rows = list(csv.DictReader(f))

    assert [row["query_id"] for row in rows] == ["Q1", "Q2", TOTAL_ROW]
    assert rows[-1]["runs"] == "10"
    assert rows[0]["workers"] == "2"
    assert rows[0]["elapsed_s"] == "5.000000"
