"""Resilient fetch gateway: endpoint rotation, circuit breaking, rate limiting and scheduled transfers."""

__version__ = "1.0.0"
