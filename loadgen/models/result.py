"""
Run Result Models

Defines Pydantic models for threshold verdicts and the end-of-run summary.
"""

from enum import Enum
from typing import Optional, Dict, Any, List
from datetime import datetime

from pydantic import BaseModel, Field


class RunStatus(str, Enum):
    """Run lifecycle status."""

    PENDING = "pending"
    RUNNING = "running"
    STOPPING = "stopping"
    COMPLETED = "completed"
    FAILED = "failed"


class ThresholdResult(BaseModel):
    """Verdict for one threshold expression."""

    metric: str = Field(..., description="Fully qualified metric name")
    expression: str = Field(..., description="Threshold expression, e.g. p(95)<500")
    observed: Optional[float] = Field(
        None, description="Observed aggregate (None when the metric has no samples)"
    )
    passed: bool = Field(..., description="Threshold satisfied")


class RunSummary(BaseModel):
    """
    Summary of a completed run.

    The verdict is informational; thresholds never stop a run early.
    """

    status: RunStatus = Field(..., description="Final status")
    started_at: datetime = Field(..., description="Setup timestamp")
    ended_at: datetime = Field(..., description="Teardown timestamp")
    duration_seconds: float = Field(0.0, description="Elapsed wall time")

    total_iterations: int = Field(0, description="Iterations completed by all VUs")
    max_vus: int = Field(0, description="Peak scheduled VU count")
    connections_opened: int = Field(0, description="VU connections opened")

    thresholds: List[ThresholdResult] = Field(default_factory=list)
    metrics: Dict[str, Any] = Field(default_factory=dict)

    cloud: Dict[str, Any] = Field(default_factory=dict)
    tags: Dict[str, str] = Field(default_factory=dict)

    @property
    def thresholds_passed(self) -> bool:
        return all(t.passed for t in self.thresholds)
