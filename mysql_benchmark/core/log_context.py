"""
Process-wide logging setup.

Every record is stamped with the id of the worker that produced it (or
``controller``) so that interleaved stderr output from many processes stays
attributable.
"""

from __future__ import annotations

import logging
import sys
from contextvars import ContextVar
from typing import Optional

from mysql_benchmark.config import settings

CURRENT_WORKER_ID: ContextVar[Optional[str]] = ContextVar(
    "CURRENT_WORKER_ID", default=None
)


class WorkerIdFilter(logging.Filter):
    """Adds a ``worker_id`` attribute to every record passing through."""

    def __init__(self, default: str = "controller") -> None:
        super().__init__()
        self._default = default

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "worker_id", None) is None:
            record.worker_id = CURRENT_WORKER_ID.get() or self._default
        return True


def resolve_level(*, debug: bool = False, verbose: bool = False, level: str | None = None) -> int:
    if debug:
        return logging.DEBUG
    if verbose:
        return logging.INFO
    name = str(level or settings.LOG_LEVEL).upper()
    return getattr(logging, name, logging.WARNING)


def configure_logging(level: int, *, role: str = "controller") -> None:
    """Install a single stderr handler on the root logger."""
    handler = logging.StreamHandler(sys.stderr)
    handler.addFilter(WorkerIdFilter(default=role))
    handler.setFormatter(logging.Formatter(settings.LOG_FORMAT))

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)

    # mysql.connector is chatty at DEBUG.
    logging.getLogger("mysql.connector").setLevel(max(level, logging.INFO))
