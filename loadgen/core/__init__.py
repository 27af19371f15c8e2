"""Workload driver core: schedule, statements, metrics, thresholds and the VU loop."""
