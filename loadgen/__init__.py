"""Synthetic SQL workload driver for database observability testing."""

__version__ = "0.1.0"
