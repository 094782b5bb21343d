"""
Data Models Package

Pydantic models for query definitions, run/worker configuration and
benchmark statistics.
"""

from mysql_benchmark.models.query import (
    FloatParameter,
    IntParameter,
    ListParameter,
    ParameterSpec,
    QueryDefinition,
    RangeParameter,
    StringParameter,
)
from mysql_benchmark.models.run_config import DatabaseConfig, RunConfig, WorkerConfig
from mysql_benchmark.models.stats import (
    GlobalStats,
    PartialStats,
    QueryCounters,
    StatsMessage,
)

__all__ = [
    # Query definitions
    "QueryDefinition",
    "ParameterSpec",
    "IntParameter",
    "FloatParameter",
    "RangeParameter",
    "ListParameter",
    "StringParameter",
    # Configuration
    "DatabaseConfig",
    "RunConfig",
    "WorkerConfig",
    # Statistics
    "QueryCounters",
    "StatsMessage",
    "PartialStats",
    "GlobalStats",
]
