"""
Statistics channel between workers and the controller.

A one-way, connectionless, best-effort transport built on a Unix datagram
socket. The controller binds a uniquely named endpoint before any worker is
spawned; workers connect to it and fire datagrams without acknowledgement.
A datagram lost after it left the worker is lost for good. Payloads larger
than ``max_length`` are truncated by the receiving side, so workers split a
flush into several messages by query id (``split_message``).
"""

from __future__ import annotations

import asyncio
import logging
import os
import socket
import tempfile
import time
from typing import Callable, Optional
from uuid import uuid4

from pydantic import ValidationError

from mysql_benchmark.core.errors import (
    MalformedMessageError,
    TransportInitError,
    WorkerFatalError,
)
from mysql_benchmark.models.stats import QueryCounters, StatsMessage

logger = logging.getLogger(__name__)

MAX_PAYLOAD_BYTES = 4096
SOCKET_PREFIX = "mysql-benchmark-"


def encode_message(message: StatsMessage) -> bytes:
    return message.model_dump_json().encode("utf-8")


def decode_message(payload: bytes) -> StatsMessage:
    """Decode and validate a datagram.

    Raises:
        MalformedMessageError: The payload is not a valid ``StatsMessage``
    """
    if not payload:
        raise MalformedMessageError("empty datagram")
    try:
        return StatsMessage.model_validate_json(payload)
    except (ValidationError, UnicodeDecodeError, ValueError) as exc:
        raise MalformedMessageError(str(exc)) from exc


def new_socket_path(directory: str | None = None) -> str:
    base = directory or tempfile.gettempdir()
    return os.path.join(base, f"{SOCKET_PREFIX}{uuid4().hex[:12]}.sock")


def split_message(
    message: StatsMessage, max_bytes: int = MAX_PAYLOAD_BYTES
) -> list[StatsMessage]:
    """
    Split ``message`` by query id so each part encodes to at most ``max_bytes``.

    Every part keeps the original timestamp and source id. A single query id
    that is too large on its own is still sent as one oversize part.
    """
    if len(message.counters) <= 1 or len(encode_message(message)) <= max_bytes:
        return [message]

    parts: list[StatsMessage] = []
    current: dict[str, QueryCounters] = {}
    for query_id, counters in message.counters.items():
        candidate = {**current, query_id: counters}
        if current and len(
            encode_message(message.model_copy(update={"counters": candidate}))
        ) > max_bytes:
            parts.append(message.model_copy(update={"counters": current}))
            candidate = {query_id: counters}
        current = candidate
    parts.append(message.model_copy(update={"counters": current}))
    return parts


class StatsServer:
    """
    Controller-side endpoint.

    Once reading starts, the socket is registered with the running event loop
    and every datagram is moved into an in-process queue as soon as it
    arrives. A waiter that gives up never takes a datagram with it.

    Usable as a context manager; the socket file is removed on close so the
    endpoint is released on every exit path.
    """

    def __init__(
        self,
        socket_path: str | None = None,
        *,
        directory: str | None = None,
        max_length: int = MAX_PAYLOAD_BYTES,
    ) -> None:
        self._socket_path = socket_path or new_socket_path(directory)
        self.max_length = int(max_length)
        self._sock: Optional[socket.socket] = None
        self._queue: Optional[asyncio.Queue[bytes]] = None
        self._reader_loop: Optional[asyncio.AbstractEventLoop] = None
        self._on_datagram: Optional[Callable[[], None]] = None

    @property
    def socket_path(self) -> str:
        return self._socket_path

    @property
    def is_open(self) -> bool:
        return self._sock is not None

    @property
    def is_reading(self) -> bool:
        return self._reader_loop is not None

    def open(self) -> "StatsServer":
        if self._sock is not None:
            return self
        sock: Optional[socket.socket] = None
        try:
            if os.path.lexists(self._socket_path):
                logger.debug("Removing stale endpoint %s", self._socket_path)
                os.unlink(self._socket_path)
            sock = socket.socket(socket.AF_UNIX, socket.SOCK_DGRAM)
            sock.bind(self._socket_path)
            sock.setblocking(False)
        except OSError as exc:
            if sock is not None:
                sock.close()
            raise TransportInitError(
                f"Cannot create socket {self._socket_path}: {exc}"
            ) from exc
        self._sock = sock
        logger.info("Statistics endpoint bound at %s", self._socket_path)
        return self

    def start_reading(self, on_datagram: Callable[[], None] | None = None) -> None:
        """
        Register the socket with the running loop.

        Args:
            on_datagram: Called on the loop thread after new datagrams were queued
        """
        if self._sock is None:
            raise RuntimeError("StatsServer is not open")
        if on_datagram is not None:
            self._on_datagram = on_datagram
        if self._reader_loop is not None:
            return
        loop = asyncio.get_running_loop()
        if self._queue is None:
            self._queue = asyncio.Queue()
        loop.add_reader(self._sock.fileno(), self._read_ready)
        self._reader_loop = loop

    def _recv_ready(self) -> bytes | None:
        if self._sock is None:
            return None
        try:
            return self._sock.recv(self.max_length)
        except (BlockingIOError, InterruptedError):
            return None

    def _read_ready(self) -> None:
        received = 0
        while True:
            try:
                payload = self._recv_ready()
            except OSError as exc:
                logger.warning("Statistics receive failed: %s", exc)
                break
            if payload is None:
                break
            self._queue.put_nowait(payload)
            received += 1
        if received and self._on_datagram is not None:
            self._on_datagram()

    async def receive(self, timeout: float | None = None) -> bytes | None:
        """Wait for one datagram; returns None if ``timeout`` elapses first."""
        self.start_reading()
        try:
            return await asyncio.wait_for(self._queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None

    def receive_nowait(self) -> bytes | None:
        """Return a datagram that has already arrived, if any."""
        if self._queue is not None and not self._queue.empty():
            return self._queue.get_nowait()
        return self._recv_ready()

    def _stop_reading(self) -> None:
        loop, self._reader_loop = self._reader_loop, None
        if loop is None or self._sock is None or loop.is_closed():
            return
        loop.remove_reader(self._sock.fileno())

    def close(self) -> None:
        self._stop_reading()
        if self._sock is not None:
            self._sock.close()
            self._sock = None
        try:
            os.unlink(self._socket_path)
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning("Failed to remove endpoint %s: %s", self._socket_path, exc)

    def __enter__(self) -> "StatsServer":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class StatsClient:
    """
    Worker-side sender.

    ``send`` never waits for delivery. Local transmit failures are retried
    with a fixed back-off up to ``retry_limit`` times, after which the payload
    is abandoned.
    """

    def __init__(
        self,
        socket_path: str,
        *,
        timeout: float = 5.0,
        retry_limit: int = 5,
        retry_backoff: float = 1.0,
        max_payload_bytes: int = MAX_PAYLOAD_BYTES,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if not socket_path:
            raise ValueError("Cannot communicate without a socket path")
        self.socket_path = socket_path
        self.timeout = float(timeout)
        self.retry_limit = max(0, int(retry_limit))
        self.retry_backoff = max(0.0, float(retry_backoff))
        self.max_payload_bytes = int(max_payload_bytes)
        self._sleep = sleep
        self._sock: Optional[socket.socket] = None

    def connect(self) -> None:
        if self._sock is not None:
            return
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_DGRAM)
        sock.settimeout(self.timeout)
        try:
            sock.connect(self.socket_path)
        except OSError as exc:
            sock.close()
            raise WorkerFatalError(
                f"Cannot initialise IPC communication socket: {exc}"
            ) from exc
        self._sock = sock

    def send(self, payload: bytes) -> bool:
        """Transmit one datagram. Returns False if it never left this process."""
        if len(payload) > self.max_payload_bytes:
            logger.warning(
                "Statistics payload is %d bytes (limit %d); it will be truncated",
                len(payload),
                self.max_payload_bytes,
            )

        failures = 0
        while True:
            try:
                if self._sock is None:
                    self.connect()
                self._sock.send(payload)
                return True
            except InterruptedError:
                continue
            except (OSError, WorkerFatalError) as exc:
                failures += 1
                if failures > self.retry_limit:
                    logger.warning(
                        "Message sending operation failed %d time(s); dropping: %s",
                        failures,
                        exc,
                    )
                    return False
                logger.warning(
                    "Message sending operation failed (%s). Retrying (%d/%d).",
                    exc,
                    failures,
                    self.retry_limit,
                )
                self._sleep(self.retry_backoff)

    def send_message(self, message: StatsMessage) -> bool:
        return self.send(encode_message(message))

    def close(self) -> None:
        if self._sock is not None:
            try:
                self._sock.close()
            finally:
                self._sock = None

    def __enter__(self) -> "StatsClient":
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
