"""
Query file loader.

Reads the YAML query definition file and validates it into
``QueryDefinition`` models. Accepts either a top-level list of definitions or
a mapping with a ``queries`` key:

    - id: point_select
      sql: SELECT * FROM sbtest1 WHERE id = %s
      weight: 3
      parameters:
        - {type: int, min: 1, max: 100000}
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import TypeAdapter, ValidationError

from mysql_benchmark.core.errors import ConfigurationError
from mysql_benchmark.models.query import QueryDefinition

logger = logging.getLogger(__name__)

_QUERY_LIST = TypeAdapter(list[QueryDefinition])


def parse_queries(data: Any) -> list[QueryDefinition]:
    """Validate already-parsed YAML/JSON data into query definitions."""
    if isinstance(data, dict):
        data = data.get("queries")
    if not isinstance(data, list) or not data:
        raise ConfigurationError("Query file must define a non-empty list of queries")

    try:
        queries = _QUERY_LIST.validate_python(data)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid query definitions: {exc}") from exc

    seen: set[str] = set()
    duplicates: list[str] = []
    for query in queries:
        if query.id in seen:
            duplicates.append(query.id)
        seen.add(query.id)
    if duplicates:
        raise ConfigurationError(f"Duplicate query ids: {sorted(set(duplicates))}")
    return queries


def load_queries_file(path: str | Path | None) -> list[QueryDefinition]:
    """Load and validate the query file at ``path``."""
    if not path:
        raise ConfigurationError("No query file given (use --queries)")
    file_path = Path(path)
    if not file_path.is_file():
        raise ConfigurationError(f'File "{file_path}" doesn\'t exist.')

    try:
        with open(file_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Cannot parse {file_path}: {exc}") from exc

    queries = parse_queries(data)
    logger.info("Loaded %d queries from %s", len(queries), file_path)
    return queries
