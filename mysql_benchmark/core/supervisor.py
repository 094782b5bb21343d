"""
Controller-side supervision of benchmark workers.

The supervisor runs on a single asyncio event loop:

- SIGTERM/SIGINT are bridged onto the loop with ``add_signal_handler`` and
  only ever call ``request_stop``.
- Each worker process has a watcher task awaiting its exit, which removes
  the pid from the live set.
- The statistics socket is registered with the loop; arriving datagrams are
  queued by the reader callback, which also wakes the main loop.
- The main loop waits for a wake-up (datagram, stop request or worker exit)
  or the tick timeout, whichever comes first, then re-evaluates the run
  state. Waiting never consumes a datagram, so none is lost to a wake-up.

All RunState mutation therefore happens on the loop thread. Phases move
INIT -> RUNNING -> STOPPING -> DONE. Stopping sends SIGTERM to every live
worker exactly once; a running stop never waits for exits in place, and DONE
is reached when the last worker has been reaped. Only an aborted start (a
spawn failure) waits, bounded, for the workers it already started.
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys
import time
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Protocol, Sequence

from mysql_benchmark.core.aggregator import RunSummary, StatsAggregator
from mysql_benchmark.core.errors import TransportInitError
from mysql_benchmark.core.schedule import worker_schedules
from mysql_benchmark.core.stats_channel import StatsServer
from mysql_benchmark.models.query import QueryDefinition
from mysql_benchmark.models.run_config import RunConfig, WorkerConfig

logger = logging.getLogger(__name__)

WORKER_MODULE = "mysql_benchmark.run_worker"
STOP_SIGNALS = (signal.SIGTERM, signal.SIGINT)


class RunPhase(str, Enum):
    INIT = "INIT"
    RUNNING = "RUNNING"
    STOPPING = "STOPPING"
    DONE = "DONE"


class WorkerProcess(Protocol):
    pid: int
    returncode: Optional[int]

    def send_signal(self, sig: int) -> None: ...

    async def wait(self) -> int: ...


WorkerLauncher = Callable[[WorkerConfig], Awaitable[WorkerProcess]]


@dataclass
class RunState:
    """Controller-owned run state. ``stop_requested`` flips at most once."""

    phase: RunPhase = RunPhase.INIT
    start_time: datetime | None = None
    end_time: datetime | None = None
    stop_requested: bool = False
    stop_reason: str | None = None
    live_pids: tuple[int, ...] = ()

    def add_pid(self, pid: int) -> None:
        self.live_pids = self.live_pids + (pid,)

    def remove_pid(self, pid: int) -> None:
        # Rebinds to a new tuple; never edits the old one in place.
        self.live_pids = tuple(p for p in self.live_pids if p != pid)


async def spawn_worker_process(config: WorkerConfig) -> asyncio.subprocess.Process:
    """
    Start a worker subprocess and hand it its configuration on stdin.

    The worker shares stderr with the controller so its log lines show up
    interleaved with the controller's.
    """
    env = dict(os.environ)
    env["PYTHONUNBUFFERED"] = "1"
    proc = await asyncio.create_subprocess_exec(
        sys.executable,
        "-m",
        WORKER_MODULE,
        stdin=asyncio.subprocess.PIPE,
        env=env,
    )
    if proc.stdin is None:
        raise RuntimeError(f"Worker {proc.pid} has no stdin pipe")
    try:
        proc.stdin.write(config.model_dump_json().encode("utf-8"))
        await proc.stdin.drain()
        proc.stdin.close()
        await proc.stdin.wait_closed()
    except (BrokenPipeError, ConnectionResetError) as exc:
        # The exit watcher will observe the dead worker.
        logger.warning("Worker %d exited before reading its config: %s", proc.pid, exc)
    return proc


class Supervisor:
    """
    Spawns workers, merges their statistics, and manages the run lifecycle.

    Attributes:
        state: Current RunState
        aggregator: Running statistics totals
        signals_sent: Number of termination signals delivered to workers
    """

    def __init__(
        self,
        config: RunConfig,
        queries: Sequence[QueryDefinition],
        *,
        launcher: WorkerLauncher | None = None,
        server: StatsServer | None = None,
        handle_signals: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config
        self.queries = list(queries)
        self._launcher = launcher or spawn_worker_process
        self._server = server
        self._handle_signals = handle_signals
        self._clock = clock

        self.state = RunState()
        self.aggregator = StatsAggregator()
        self.signals_sent = 0
        self.exit_codes: dict[int, int] = {}

        self._procs: dict[int, WorkerProcess] = {}
        self._watchers: list[asyncio.Task[None]] = []
        self._installed_signals: list[int] = []
        self._wakeup: asyncio.Event | None = None
        self._start_monotonic: float | None = None
        self._end_monotonic: float | None = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def run(self) -> RunSummary:
        """Execute one benchmark run and return its summary.

        Raises:
            ConfigurationError: Invalid queries or schedule settings
            TransportInitError: Channel or worker process could not be created
        """
        schedules = worker_schedules(
            self.queries,
            max_schedule_size=self.config.max_schedule_size,
            workers=self.config.workers,
            shuffle=self.config.shuffle_schedule,
            seed=self.config.seed,
        )
        self._wakeup = asyncio.Event()
        server = self._server or StatsServer(
            directory=self.config.socket_dir, max_length=self.config.max_payload_bytes
        )

        with server:
            server.start_reading(self._wake)
            try:
                await self._spawn_workers(server.socket_path, schedules)
                self._install_signal_handlers()
                self._start()
                await self._supervision_loop(server)
                self._drain_pending(server)
            finally:
                self._remove_signal_handlers()
                if self.state.live_pids:
                    self.request_stop("controller exiting")
                await self._cancel_watchers()

        return self.summary()

    def request_stop(self, reason: str = "requested") -> None:
        """Begin a graceful stop. Repeated calls are no-ops."""
        if self.state.stop_requested:
            logger.debug("Stop already requested; ignoring (%s)", reason)
            return
        self.state.stop_requested = True
        self.state.stop_reason = reason
        if self.state.phase is not RunPhase.DONE:
            self.state.phase = RunPhase.STOPPING
        logger.info(
            "Stopping benchmark (%s); signalling %d worker(s)",
            reason,
            len(self.state.live_pids),
        )
        self._signal_live(signal.SIGTERM)
        self._wake()

    def summary(self) -> RunSummary:
        now = datetime.now(UTC)
        start = self.state.start_time or now
        end = self.state.end_time or now
        if self._start_monotonic is None:
            elapsed = 0.0
        else:
            end_mono = self._clock() if self._end_monotonic is None else self._end_monotonic
            elapsed = end_mono - self._start_monotonic
        return RunSummary(
            start_time=start,
            end_time=end,
            elapsed_seconds=max(0.0, elapsed),
            workers=self.config.workers,
            stats=self.aggregator.stats,
            dropped_messages=self.aggregator.dropped,
        )

    # ------------------------------------------------------------------
    # Worker processes
    # ------------------------------------------------------------------

    async def _spawn_workers(
        self, socket_path: str, schedules: Sequence[Sequence[str]]
    ) -> None:
        for index, schedule in enumerate(schedules):
            worker_config = self.config.worker_config(
                worker_index=index,
                queries=self.queries,
                schedule=list(schedule),
                socket_path=socket_path,
            )
            try:
                proc = await self._launcher(worker_config)
            except OSError as exc:
                logger.error("Cannot spawn worker %d: %s", index, exc)
                self.request_stop("worker spawn failed")
                await self._reap_started_workers()
                raise TransportInitError(f"Cannot fork: {exc}") from exc

            self._procs[proc.pid] = proc
            self.state.add_pid(proc.pid)
            self._watchers.append(asyncio.create_task(self._watch_worker(proc)))
            logger.info(
                "Spawned worker-%d (pid %d, schedule=%d)", index, proc.pid, len(schedule)
            )

        logger.info("Spawned %d workers", len(schedules))

    async def _watch_worker(self, proc: WorkerProcess) -> None:
        returncode = await proc.wait()
        self._on_worker_exit(proc.pid, returncode)

    def _on_worker_exit(self, pid: int, returncode: int | None) -> None:
        self.state.remove_pid(pid)
        self.exit_codes[pid] = returncode if returncode is not None else -1
        if returncode:
            logger.warning("Worker pid %d exited with status %s", pid, returncode)
        else:
            logger.info("Worker pid %d exited", pid)
        self._wake()

    def _signal_live(self, sig: int) -> None:
        for pid in self.state.live_pids:
            proc = self._procs.get(pid)
            if proc is None or proc.returncode is not None:
                continue
            try:
                proc.send_signal(sig)
                self.signals_sent += 1
            except ProcessLookupError:
                logger.debug("Worker pid %d already gone", pid)

    async def _reap_started_workers(self) -> None:
        """Wait, bounded, for workers signalled during an aborted start to exit."""
        pending = [task for task in self._watchers if not task.done()]
        if not pending:
            return
        timeout = self.config.abort_wait_seconds
        _, still_running = await asyncio.wait(pending, timeout=timeout)
        if still_running:
            logger.warning(
                "%d worker(s) still running %.1fs after stop: pids=%s",
                len(still_running),
                timeout,
                list(self.state.live_pids),
            )

    async def _cancel_watchers(self) -> None:
        pending = [task for task in self._watchers if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    # ------------------------------------------------------------------
    # Signals
    # ------------------------------------------------------------------

    def _install_signal_handlers(self) -> None:
        if not self._handle_signals:
            return
        loop = asyncio.get_running_loop()
        for sig in STOP_SIGNALS:
            try:
                loop.add_signal_handler(sig, self.request_stop, f"received {sig.name}")
                self._installed_signals.append(sig)
            except (NotImplementedError, RuntimeError) as exc:
                logger.warning("Cannot install %s handler: %s", sig.name, exc)

    def _remove_signal_handlers(self) -> None:
        if not self._installed_signals:
            return
        loop = asyncio.get_running_loop()
        for sig in self._installed_signals:
            loop.remove_signal_handler(sig)
        self._installed_signals = []

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def _start(self) -> None:
        self.state.start_time = datetime.now(UTC)
        self._start_monotonic = self._clock()
        if self.state.phase is RunPhase.INIT:
            self.state.phase = RunPhase.RUNNING
        logger.info(
            "Benchmark running: workers=%d runtime=%.1fs",
            len(self.state.live_pids),
            self.config.runtime_seconds,
        )

    def _wake(self) -> None:
        if self._wakeup is not None:
            self._wakeup.set()

    def _time_to_stop(self) -> str | None:
        if self._start_monotonic is not None:
            if self._clock() - self._start_monotonic >= self.config.runtime_seconds:
                return "runtime elapsed"
        if not self.state.live_pids:
            return "no live workers"
        return None

    def _advance(self) -> None:
        if self.state.phase is RunPhase.RUNNING:
            reason = self._time_to_stop()
            if reason is not None:
                self.request_stop(reason)
        if self.state.phase is RunPhase.STOPPING and not self.state.live_pids:
            self.state.phase = RunPhase.DONE
            self.state.end_time = datetime.now(UTC)
            self._end_monotonic = self._clock()
            logger.info("All workers exited")

    async def _next_datagram(self, server: StatsServer) -> bytes | None:
        """A datagram that has arrived, or None after a wake-up or the tick."""
        if self._wakeup is None:
            raise RuntimeError("Supervisor is not running")
        payload = server.receive_nowait()
        if payload is not None:
            return payload
        self._wakeup.clear()
        try:
            await asyncio.wait_for(self._wakeup.wait(), timeout=self.config.tick_seconds)
        except asyncio.TimeoutError:
            pass
        return server.receive_nowait()

    async def _supervision_loop(self, server: StatsServer) -> None:
        while True:
            self._advance()
            if self.state.phase is RunPhase.DONE:
                return
            payload = await self._next_datagram(server)
            if payload is not None:
                self.aggregator.merge_payload(payload)

    def _drain_pending(self, server: StatsServer) -> None:
        while True:
            payload = server.receive_nowait()
            if payload is None:
                return
            self.aggregator.merge_payload(payload)


def run_benchmark(
    config: RunConfig, queries: Sequence[QueryDefinition], **kwargs: Any
) -> RunSummary:
    """Synchronous entry point: run a full benchmark on a fresh event loop."""
    return asyncio.run(Supervisor(config, queries, **kwargs).run())
