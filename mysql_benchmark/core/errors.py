"""Exception types shared by the controller and worker processes."""

from __future__ import annotations


class BenchmarkError(Exception):
    """Base class for every error raised by mysql_benchmark."""


class ConfigurationError(BenchmarkError):
    """Invalid or missing query definitions or run settings.

    Raised before any worker is spawned.
    """


class TransportInitError(BenchmarkError):
    """The statistics channel could not be created or a worker could not be spawned."""


class WorkerFatalError(BenchmarkError):
    """A worker cannot continue (no database connection, failed status probe)."""


class TransientQueryError(BenchmarkError):
    """A single benchmark query failed; the sample is discarded."""


class MalformedMessageError(BenchmarkError):
    """A statistics datagram could not be decoded."""
