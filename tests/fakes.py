"""Test doubles for the worker, channel and supervisor tests."""

import asyncio


class FakeSession:
    """In-memory stand-in for MySQLSession.

    ``counters`` is a list of snapshots returned in order by
    ``session_counters``; each executed statement is appended to ``executed``.
    """

    def __init__(self, *, counters=None, on_execute=None, execute_error=None):
        self._counters = list(counters or [])
        self._auto = {"bytes_sent": 0, "bytes_received": 0}
        self.on_execute = on_execute
        self.execute_error = execute_error
        self.executed: list[tuple[str, tuple]] = []
        self.connected = False
        self.closed = False

    def connect(self):
        self.connected = True

    def close(self):
        self.closed = True

    def session_counters(self):
        if self._counters:
            item = self._counters.pop(0)
            if isinstance(item, BaseException):
                raise item
            return item
        self._auto = {
            "bytes_sent": self._auto["bytes_sent"] + 10,
            "bytes_received": self._auto["bytes_received"] + 100,
        }
        return dict(self._auto)

    def execute(self, sql, params=None):
        self.executed.append((sql, tuple(params or ())))
        if self.on_execute is not None:
            self.on_execute(sql)
        if self.execute_error is not None:
            raise self.execute_error
        return []


class FakeClient:
    def __init__(self, *, deliver=True):
        self.deliver = deliver
        self.messages = []
        self.opened = False
        self.closed = False

    def send_message(self, message):
        self.messages.append(message)
        return self.deliver

    def __enter__(self):
        self.opened = True
        return self

    def __exit__(self, exc_type, exc, tb):
        self.closed = True


class StepClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start=0.0):
        self.now = float(start)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += float(seconds)


class FakeProcess:
    """Worker process double that exits when signalled (unless told not to)."""

    def __init__(self, pid, *, exit_on_signal=True):
        self.pid = pid
        self.returncode = None
        self.exit_on_signal = exit_on_signal
        self.signals = []
        self._exited = asyncio.Event()

    def send_signal(self, sig):
        self.signals.append(sig)
        if self.exit_on_signal:
            self.exit(0)

    def exit(self, code=0):
        if self.returncode is None:
            self.returncode = code
            self._exited.set()

    async def wait(self):
        await self._exited.wait()
        return self.returncode


class FakeLauncher:
    def __init__(self, *, exit_on_signal=True, fail_at=None, first_pid=1000):
        self.exit_on_signal = exit_on_signal
        self.fail_at = fail_at
        self.configs = []
        self.processes = []
        self._next_pid = first_pid

    async def __call__(self, config):
        if self.fail_at is not None and len(self.configs) == self.fail_at:
            raise OSError("fork failed")
        self.configs.append(config)
        proc = FakeProcess(self._next_pid, exit_on_signal=self.exit_on_signal)
        self._next_pid += 1
        self.processes.append(proc)
        return proc
