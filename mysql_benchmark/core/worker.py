"""
Worker benchmark loop.

A worker runs its schedule over and over against one MySQL session. For each
query it samples the session byte counters, executes the statement, samples
the counters again, and accumulates the sample into its partial statistics.
After every pass, once the flush interval has elapsed, the partial
statistics are sent to the controller and cleared whether or not the send
succeeded.

Cancellation is cooperative: SIGTERM/SIGINT only set a flag that is checked
between queries, so an in-flight query always completes. A stop never forces
a flush; unflushed samples from the last interval are discarded.
"""

from __future__ import annotations

import logging
import os
import random
import signal
import time
from typing import Any, Callable, Mapping, Optional, Sequence

from mysql_benchmark.connectors.mysql_session import COUNTER_KEYS, MySQLSession
from mysql_benchmark.core.errors import TransientQueryError, WorkerFatalError
from mysql_benchmark.core.log_context import CURRENT_WORKER_ID
from mysql_benchmark.core.parameters import Query
from mysql_benchmark.core.stats_channel import StatsClient, split_message
from mysql_benchmark.models.run_config import WorkerConfig
from mysql_benchmark.models.stats import PartialStats

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FATAL = 2


def session_delta(
    before: Optional[Mapping[str, int]],
    after: Optional[Mapping[str, int]],
    keys: Sequence[str] = COUNTER_KEYS,
) -> Optional[dict[str, int]]:
    """
    Per-counter difference between two session snapshots.

    Returns None when either snapshot is missing, a counter is absent, or any
    counter went backwards (e.g. the session was replaced by a reconnect).
    """
    if before is None or after is None:
        return None
    delta: dict[str, int] = {}
    for key in keys:
        if key not in before or key not in after:
            return None
        diff = int(after[key]) - int(before[key])
        if diff < 0:
            return None
        delta[key] = diff
    return delta


class BenchmarkWorker:
    """Executes one worker's schedule and reports partial statistics."""

    def __init__(
        self,
        config: WorkerConfig,
        *,
        session: Any = None,
        client: Any = None,
        clock: Callable[[], float] = time.monotonic,
        timer: Callable[[], float] = time.perf_counter,
        wall_clock: Callable[[], float] = time.time,
        pid: Optional[int] = None,
    ) -> None:
        self.config = config
        self.worker_id = f"worker-{config.worker_index}"
        self.pid = pid if pid is not None else os.getpid()

        rng = random.Random(config.seed)
        by_id = {d.id: Query.from_definition(d, rng) for d in config.queries}
        self.schedule: tuple[Query, ...] = tuple(by_id[qid] for qid in config.schedule)

        self.session = session or MySQLSession(
            config.database, reconnect_delay=config.reconnect_delay_seconds
        )
        self.client = client or StatsClient(
            config.socket_path,
            timeout=config.send_timeout_seconds,
            retry_limit=config.send_retry_limit,
            retry_backoff=config.send_retry_backoff_seconds,
            max_payload_bytes=config.max_payload_bytes,
        )

        self._clock = clock
        self._timer = timer
        self._wall_clock = wall_clock
        self.partial = PartialStats()
        self._stopped = False
        self._last_flush = self._clock()
        self._interval_start = self._wall_clock()

        self.flushes = 0
        self.samples_accepted = 0
        self.samples_discarded = 0

    # ------------------------------------------------------------------
    # Stop handling
    # ------------------------------------------------------------------

    def stop(self) -> None:
        self._stopped = True

    @property
    def is_stopped(self) -> bool:
        return self._stopped

    def handle_sigterm(self, signum: int, frame: Any) -> None:
        self.stop()

    def install_signal_handlers(self) -> None:
        signal.signal(signal.SIGTERM, self.handle_sigterm)
        signal.signal(signal.SIGINT, self.handle_sigterm)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def run(self) -> int:
        """Connect, loop until stopped, tear down. Returns the process exit code."""
        CURRENT_WORKER_ID.set(self.worker_id)
        self.install_signal_handlers()
        logger.info(
            "Starting: schedule=%d queries, flush_interval=%.1fs",
            len(self.schedule),
            self.config.flush_interval_seconds,
        )
        try:
            with self.client:
                try:
                    self.session.connect()
                    self.benchmark_loop()
                finally:
                    self.session.close()
        except WorkerFatalError as exc:
            logger.error("Worker stopping: %s", exc)
            return EXIT_FATAL
        logger.info(
            "Stopped: flushes=%d accepted=%d discarded=%d",
            self.flushes,
            self.samples_accepted,
            self.samples_discarded,
        )
        return EXIT_OK

    def benchmark_loop(self) -> None:
        self._last_flush = self._clock()
        self._interval_start = self._wall_clock()
        while not self.is_stopped:
            self.run_pass()
            # An abandoned pass never flushes, even with the interval elapsed.
            if not self.is_stopped:
                self.maybe_flush()

    def run_pass(self) -> int:
        """Run the schedule once; abandons the rest of the pass on stop."""
        executed = 0
        for query in self.schedule:
            if self.is_stopped:
                break
            self.measure(query)
            executed += 1
        return executed

    # ------------------------------------------------------------------
    # Measurement
    # ------------------------------------------------------------------

    def _counters(self) -> Optional[dict[str, int]]:
        try:
            return self.session.session_counters()
        except WorkerFatalError as exc:
            logger.error("%s", exc)
            self.stop()
            return None

    def measure(self, query: Query) -> bool:
        """Execute one query and record it. Returns True if the sample was kept."""
        before = self._counters()
        if before is None:
            self.samples_discarded += 1
            return False

        started = self._timer()
        try:
            self.session.execute(query.sql, query.parameters())
        except TransientQueryError as exc:
            logger.warning("Benchmark Query Error (%s): %s", query.id, exc)
            self.samples_discarded += 1
            return False
        except WorkerFatalError as exc:
            logger.error("%s", exc)
            self.stop()
            self.samples_discarded += 1
            return False
        elapsed = self._timer() - started

        after = self._counters()
        delta = session_delta(before, after)
        if delta is None:
            self.samples_discarded += 1
            return False

        self.partial.record(query.id, run_time=elapsed, session_delta=delta)
        self.samples_accepted += 1
        return True

    # ------------------------------------------------------------------
    # Flushing
    # ------------------------------------------------------------------

    def maybe_flush(self) -> bool:
        if self._clock() - self._last_flush < self.config.flush_interval_seconds:
            return False
        self.flush()
        return True

    def flush(self) -> bool:
        """Send the partial statistics and start a new interval."""
        sent = False
        if self.partial:
            message = self.partial.to_message(
                timestamp=self._interval_start, source_id=self.pid
            )
            parts = split_message(message, self.config.max_payload_bytes)
            results = [self.client.send_message(part) for part in parts]
            sent = all(results)
            logger.debug(
                "Flushed %d query ids in %d message(s) (delivered=%s)",
                len(message.counters),
                len(parts),
                sent,
            )
        self.partial.clear()
        self.flushes += 1
        self._last_flush = self._clock()
        self._interval_start = self._wall_clock()
        return sent
