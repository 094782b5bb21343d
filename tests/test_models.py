#!/usr/bin/env python3
"""
Tests for the Pydantic models: query definitions, parameter generators,
statistics messages and run configuration.
"""

import random

import pytest
from mysql.connector.optionfiles import read_option_files
from pydantic import ValidationError

from mysql_benchmark.core.parameters import Query, build_generator
from mysql_benchmark.models import (
    DatabaseConfig,
    IntParameter,
    ListParameter,
    PartialStats,
    QueryCounters,
    QueryDefinition,
    RangeParameter,
    RunConfig,
    StatsMessage,
    StringParameter,
)


def test_query_definition_defaults():
    query = QueryDefinition(id="Q1", sql="SELECT 1")

    assert query.weight == 1
    assert query.parameters == []
    assert query.placeholder_count == 0


def test_query_definition_parses_parameter_specs():
    query = QueryDefinition(
        id="Q2",
        sql="SELECT * FROM t WHERE a = %s AND b LIKE %s",
        parameters=[
            {"type": "range", "start": 1, "stop": 3},
            {"type": "string", "length": 4},
        ],
    )

    assert isinstance(query.parameters[0], RangeParameter)
    assert isinstance(query.parameters[1], StringParameter)


def test_placeholder_count_must_match_parameters():
    with pytest.raises(ValidationError, match="placeholder"):
        QueryDefinition(id="Q1", sql="SELECT %s, %s", parameters=[{"type": "int", "max": 3}])


def test_escaped_percent_is_not_a_placeholder():
    query = QueryDefinition(id="Q1", sql="SELECT * FROM t WHERE name LIKE 'a%%s'")

    assert query.placeholder_count == 0


def test_negative_weight_rejected():
    with pytest.raises(ValidationError):
        QueryDefinition(id="Q1", sql="SELECT 1", weight=-1)


def test_unknown_parameter_type_rejected():
    with pytest.raises(ValidationError):
        QueryDefinition(id="Q1", sql="SELECT %s", parameters=[{"type": "uuid"}])


def test_int_parameter_bounds_validated():
    with pytest.raises(ValidationError):
        IntParameter(min=5, max=1)


def test_range_generator_wraps_around():
    gen = build_generator(RangeParameter(start=1, stop=5, step=2), random.Random(0))

    assert [gen() for _ in range(5)] == [1, 3, 5, 1, 3]


def test_int_and_list_generators_stay_in_bounds():
    rng = random.Random(42)
    ints = build_generator(IntParameter(min=3, max=4), rng)
    choices = build_generator(ListParameter(values=["a", "b"]), rng)

    assert {ints() for _ in range(50)} <= {3, 4}
    assert {choices() for _ in range(50)} <= {"a", "b"}


def test_query_produces_one_value_per_placeholder():
    definition = QueryDefinition(
        id="Q1",
        sql="SELECT %s, %s",
        parameters=[{"type": "int", "min": 1, "max": 1}, {"type": "string", "length": 6}],
    )

    params = Query.from_definition(definition, random.Random(1)).parameters()

    assert params[0] == 1
    assert len(params[1]) == 6


def test_stats_message_rejects_unknown_fields():
    with pytest.raises(ValidationError):
        StatsMessage(timestamp=0.0, source_id=1, counters={}, extra=True)


def test_stats_message_rejects_negative_counters():
    with pytest.raises(ValidationError):
        StatsMessage.model_validate(
            {"timestamp": 0.0, "source_id": 1, "counters": {"Q1": {"runs": -1}}}
        )


def test_counters_average_latency():
    assert QueryCounters(runs=4, run_time=0.5).avg_latency_ms == pytest.approx(125.0)
    assert QueryCounters().avg_latency_ms == 0.0


def test_partial_stats_accumulates_and_clears():
    partial = PartialStats()
    assert not partial

    partial.record("Q1", run_time=0.25, session_delta={"bytes_sent": 5, "bytes_received": 50})
    partial.record("Q1", run_time=0.25, session_delta={"bytes_sent": 5, "bytes_received": 50})
    partial.record("Q2", run_time=1.0, session_delta={"bytes_sent": 1, "bytes_received": 2})

    assert len(partial) == 2
    assert partial.get("Q1") == QueryCounters(
        runs=2, run_time=0.5, bytes_sent=10, bytes_received=100
    )

    message = partial.to_message(timestamp=12.0, source_id=99)
    assert message.source_id == 99
    assert set(message.counters) == {"Q1", "Q2"}

    partial.clear()
    assert len(partial) == 0
    assert message.counters["Q1"].runs == 2


def test_database_config_connect_kwargs_skip_unset_fields(tmp_path):
    config = DatabaseConfig(
        host="db.example", user="bench", defaults_file=str(tmp_path / "missing.cnf")
    )

    kwargs = config.connect_kwargs()

    assert kwargs["host"] == "db.example"
    assert kwargs["user"] == "bench"
    assert kwargs["autocommit"] is True
    assert "password" not in kwargs
    assert "port" not in kwargs
    assert "database" not in kwargs
    assert "option_files" not in kwargs


def test_database_config_uses_existing_defaults_file(tmp_path):
    cnf = tmp_path / "my.cnf"
    cnf.write_text("[client]\nuser=bench\n")

    kwargs = DatabaseConfig(defaults_file=str(cnf)).connect_kwargs()

    assert kwargs["option_files"] == str(cnf)


def test_option_file_supplies_port_when_none_given(tmp_path):
    cnf = tmp_path / "my.cnf"
    cnf.write_text("[client]\nhost=db.example\nport=3307\nuser=bench\n")

    merged = read_option_files(**DatabaseConfig(defaults_file=str(cnf)).connect_kwargs())

    assert int(merged["port"]) == 3307
    assert merged["host"] == "db.example"
    assert merged["user"] == "bench"


def test_explicit_port_overrides_option_file(tmp_path):
    cnf = tmp_path / "my.cnf"
    cnf.write_text("[client]\nport=3307\n")

    merged = read_option_files(
        **DatabaseConfig(port=3310, defaults_file=str(cnf)).connect_kwargs()
    )

    assert int(merged["port"]) == 3310


def test_worker_config_seed_derived_from_run_seed(queries):
    run = RunConfig(workers=2, seed=100)

    worker = run.worker_config(
        worker_index=1, queries=queries, schedule=["Q1", "Q2"], socket_path="/tmp/x.sock"
    )

    assert worker.seed == 101
    assert worker.flush_interval_seconds == run.flush_interval_seconds


def test_worker_config_rejects_unknown_schedule_ids(make_worker_config):
    with pytest.raises(ValidationError, match="Q9"):
        make_worker_config(schedule=["Q1", "Q9"])


def test_worker_config_round_trips_through_json(make_worker_config):
    config = make_worker_config()

    restored = type(config).model_validate_json(config.model_dump_json())

    assert restored == config
