"""Benchmark bulk-add versus individual writes into a Kubo daemon's MFS."""

__version__ = "0.1.0"
