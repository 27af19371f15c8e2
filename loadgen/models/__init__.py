"""
Data models for the workload driver.
"""

from loadgen.models.result import RunStatus, RunSummary, ThresholdResult
from loadgen.models.workload import (
    MetricRecord,
    ParamsFactory,
    Stage,
    StatementClass,
    StatementPattern,
)

__all__ = [
    "MetricRecord",
    "ParamsFactory",
    "RunStatus",
    "RunSummary",
    "Stage",
    "StatementClass",
    "StatementPattern",
    "ThresholdResult",
]
