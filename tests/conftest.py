import pytest

from mysql_benchmark.models import DatabaseConfig, QueryDefinition, WorkerConfig


@pytest.fixture
def queries():
    return [
        QueryDefinition(id="Q1", sql="SELECT 1"),
        QueryDefinition(
            id="Q2",
            sql="SELECT * FROM t WHERE id = %s",
            weight=3,
            parameters=[{"type": "int", "min": 1, "max": 10}],
        ),
    ]


@pytest.fixture
def make_worker_config(queries):
    def _make(schedule=("Q1", "Q2", "Q2"), **overrides):
        values = dict(
            worker_index=0,
            database=DatabaseConfig(),
            queries=queries,
            schedule=list(schedule),
            flush_interval_seconds=10.0,
            socket_path="/tmp/unused.sock",
            seed=7,
        )
        values.update(overrides)
        return WorkerConfig(**values)

    return _make
