"""
MySQL Session

The single logical database connection owned by a worker process. Provides
lazy connect, a liveness probe with one transparent reconnect, parameterized
query execution, and sampling of the session-level byte counters.
"""

import errno
import logging
import time
from typing import Any, Callable, Dict, List, Optional, Sequence

import mysql.connector
from mysql.connector import errors as mysql_errors

from mysql_benchmark.core.errors import TransientQueryError, WorkerFatalError
from mysql_benchmark.models.run_config import DatabaseConfig

logger = logging.getLogger(__name__)

COUNTER_KEYS = ("bytes_sent", "bytes_received")
SESSION_STATUS_SQL = (
    "SHOW SESSION STATUS WHERE Variable_name IN ('Bytes_sent', 'Bytes_received')"
)

_DRIVER_ERRORS = (mysql_errors.Error, OSError)


def is_interrupted(exc: BaseException) -> bool:
    """True if ``exc`` (or what caused it) is an interrupted system call."""
    seen: set[int] = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, InterruptedError):
            return True
        if isinstance(current, OSError) and current.errno == errno.EINTR:
            return True
        current = current.__cause__ or current.__context__
    return False


def retry_interrupted(fn: Callable[[], Any]) -> Any:
    """Call ``fn`` until it completes without being interrupted by a signal."""
    while True:
        try:
            return fn()
        except _DRIVER_ERRORS as exc:
            if not is_interrupted(exc):
                raise
            logger.debug("Interrupted system call; retrying")


def _to_text(value: Any) -> str:
    if isinstance(value, (bytes, bytearray)):
        return value.decode("utf-8", "replace")
    return str(value)


def _to_number(value: Any) -> int:
    return int(float(_to_text(value)))


class MySQLSession:
    """
    One MySQL connection with liveness checks.

    ``execute`` failures are per-sample (TransientQueryError); failing to
    (re)connect or to read session counters is fatal for the worker
    (WorkerFatalError).
    """

    def __init__(
        self,
        config: DatabaseConfig,
        *,
        connect: Optional[Callable[..., Any]] = None,
        reconnect_delay: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config
        self.reconnect_delay = max(0.0, float(reconnect_delay))
        self._connect = connect or mysql.connector.connect
        self._sleep = sleep
        self._conn: Any = None
        self.reconnects = 0

    @property
    def connected(self) -> bool:
        return self._conn is not None

    def connect(self) -> None:
        kwargs = self.config.connect_kwargs()
        logger.debug("Connecting to %s", self.config.describe())
        try:
            self._conn = retry_interrupted(lambda: self._connect(**kwargs))
        except _DRIVER_ERRORS as exc:
            self._conn = None
            raise WorkerFatalError(f"mysql.connector.connect: {exc}") from exc

    def is_alive(self) -> bool:
        if self._conn is None:
            return False
        try:
            retry_interrupted(lambda: self._conn.ping(reconnect=False))
            return True
        except _DRIVER_ERRORS:
            return False

    def disconnect(self) -> None:
        conn, self._conn = self._conn, None
        if conn is None:
            return
        try:
            conn.close()
        except _DRIVER_ERRORS as exc:
            logger.debug("Ignoring error while closing connection: %s", exc)

    def handle(self) -> Any:
        """Return a live connection, connecting or reconnecting once if needed."""
        if self._conn is None:
            self.connect()
            return self._conn
        if not self.is_alive():
            logger.warning("Database connection lost; reconnecting")
            self.disconnect()
            if self.reconnect_delay:
                self._sleep(self.reconnect_delay)
            self.connect()
            self.reconnects += 1
        return self._conn

    def _run(self, sql: str, params: Sequence[Any] | None) -> List[Any]:
        conn = self.handle()
        cursor = conn.cursor()
        try:
            cursor.execute(sql, tuple(params) if params else None)
            return cursor.fetchall() if cursor.with_rows else []
        finally:
            cursor.close()

    def execute(self, sql: str, params: Sequence[Any] | None = None) -> List[Any]:
        """Run a benchmark statement and fetch its result set."""
        try:
            return retry_interrupted(lambda: self._run(sql, params))
        except WorkerFatalError:
            raise
        except _DRIVER_ERRORS as exc:
            raise TransientQueryError(str(exc)) from exc

    def session_counters(self) -> Dict[str, int]:
        """Snapshot of the session byte counters, keyed by lower-case name."""
        try:
            rows = retry_interrupted(lambda: self._run(SESSION_STATUS_SQL, None))
            return {_to_text(name).lower(): _to_number(value) for name, value in rows}
        except WorkerFatalError:
            raise
        except (*_DRIVER_ERRORS, ValueError, TypeError) as exc:
            raise WorkerFatalError(
                f"Session Information Data Collection Failed: {exc}"
            ) from exc

    def close(self) -> None:
        self.disconnect()

    def __enter__(self) -> "MySQLSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
