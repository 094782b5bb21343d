import pytest

from mysql_benchmark.core.errors import ConfigurationError
from mysql_benchmark.core.query_loader import load_queries_file, parse_queries

QUERY_LIST = """\
- id: point_select
  sql: SELECT c FROM sbtest1 WHERE id = %s
  weight: 3
  parameters:
    - {type: int, min: 1, max: 1000}
- id: count
  sql: SELECT COUNT(*) FROM sbtest1
"""


def test_load_list_form(tmp_path):
    path = tmp_path / "queries.yaml"
    path.write_text(QUERY_LIST)

    queries = load_queries_file(path)

    assert [q.id for q in queries] == ["point_select", "count"]
    assert queries[0].weight == 3
    assert queries[1].weight == 1


def test_load_mapping_form(tmp_path):
    path = tmp_path / "queries.yml"
    path.write_text("queries:\n" + "".join(f"  {line}\n" for line in QUERY_LIST.splitlines()))

    queries = load_queries_file(str(path))

    assert len(queries) == 2


def test_missing_file(tmp_path):
    with pytest.raises(ConfigurationError, match="doesn't exist"):
        load_queries_file(tmp_path / "nope.yaml")


def test_no_file_given():
    with pytest.raises(ConfigurationError):
        load_queries_file(None)


def test_invalid_yaml(tmp_path):
    path = tmp_path / "broken.yaml"
    path.write_text("- id: [unclosed\n")

    with pytest.raises(ConfigurationError, match="Cannot parse"):
        load_queries_file(path)


def test_empty_definitions_rejected():
    with pytest.raises(ConfigurationError, match="non-empty"):
        parse_queries([])
    with pytest.raises(ConfigurationError):
        parse_queries({"queries": None})


def test_duplicate_ids_rejected():
    with pytest.raises(ConfigurationError, match="Duplicate"):
        parse_queries(
            [{"id": "Q1", "sql": "SELECT 1"}, {"id": "Q1", "sql": "SELECT 2"}]
        )


def test_invalid_definition_is_a_configuration_error():
    with pytest.raises(ConfigurationError, match="Invalid query definitions"):
        parse_queries([{"id": "Q1", "sql": "SELECT %s"}])
