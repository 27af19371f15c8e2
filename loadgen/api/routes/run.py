"""
API routes exposing the state of the workload running in this process.
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, HTTPException, Request, status
from pydantic import BaseModel

from loadgen.core.thresholds import evaluate_thresholds
from loadgen.models import ThresholdResult

router = APIRouter()


class HealthResponse(BaseModel):
    status: str


class ThresholdsResponse(BaseModel):
    passed: bool
    thresholds: list[ThresholdResult]


def _driver(request: Request):
    driver: Optional[Any] = getattr(request.app.state, "driver", None)
    if driver is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="No workload attached",
        )
    return driver


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse(status="ok")


@router.get("/api/run")
async def get_run(request: Request) -> dict[str, Any]:
    """
    Configuration and progress of the current run.
    """
    driver = _driver(request)
    snapshot = driver.status_snapshot()
    snapshot["elapsed_seconds"] = driver.elapsed_seconds()
    return snapshot


@router.get("/api/metrics")
async def get_metrics(request: Request) -> dict[str, Any]:
    """
    Aggregated metrics recorded so far.
    """
    return _driver(request).sink.snapshot()


@router.get("/api/thresholds", response_model=ThresholdsResponse)
async def get_thresholds(request: Request) -> ThresholdsResponse:
    """
    Live threshold evaluation; the final verdict is computed at run end.
    """
    driver = _driver(request)
    results = evaluate_thresholds(driver.sink, driver.config.thresholds)
    return ThresholdsResponse(
        passed=all(r.passed for r in results), thresholds=results
    )
