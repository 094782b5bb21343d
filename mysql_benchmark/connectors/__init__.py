"""Database connectors."""

from mysql_benchmark.connectors.mysql_session import COUNTER_KEYS, MySQLSession

__all__ = ["COUNTER_KEYS", "MySQLSession"]
