"""Custom MySQL benchmarks: weighted query mixes run by parallel worker processes."""

__version__ = "1.0.0"
