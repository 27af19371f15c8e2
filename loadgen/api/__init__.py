"""Live status API for a running workload."""
