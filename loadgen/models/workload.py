"""
Workload Models

Defines the schedule, statement and metric record types used by the driver:
- Stages (duration and target VU count)
- Statement patterns (named SQL templates with parameter generators)
- Metric records (one per statement attempt)
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Callable, Optional

from pydantic import BaseModel, ConfigDict, Field


class StatementClass(str, Enum):
    """Statement classes used for weighting and metric labels."""

    SELECT = "select"
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


class Stage(BaseModel):
    """
    One entry of the ramping schedule.

    The active VU count moves linearly from the previous stage's target to
    this stage's target over `duration_seconds`.
    """

    model_config = ConfigDict(frozen=True)

    duration_seconds: float = Field(..., gt=0, description="Stage duration")
    target: int = Field(..., ge=0, description="Target VU count at stage end")


ParamsFactory = Callable[[random.Random], tuple[Any, ...]]


@dataclass(frozen=True)
class StatementPattern:
    """A named SQL template with `?` placeholders."""

    name: str
    sql: str
    statement_class: StatementClass
    params: Optional[ParamsFactory] = None
    # Statements aimed at objects that do not exist, used to exercise the
    # error path of downstream observability.
    expected_error: bool = False

    def build_params(self, rng: random.Random) -> tuple[Any, ...]:
        if self.params is None:
            return ()
        return tuple(self.params(rng))


@dataclass(frozen=True)
class MetricRecord:
    """Outcome of a single statement attempt."""

    query_type: str
    query_name: str
    duration_ms: float
    success: bool
    error: Optional[str] = None
    expected_error: bool = False
    vu_id: Optional[int] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
