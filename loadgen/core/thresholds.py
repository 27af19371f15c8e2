"""
Threshold evaluation.

Thresholds are declarative pass/fail conditions over aggregated metrics,
written the way k6 writes them ("p(95)<500", "rate>0.95", "count<100").
They are evaluated when a run ends (or on demand for the status API) and
never stop a run early.
"""

from __future__ import annotations

import logging
import operator
import re
from dataclasses import dataclass
from typing import Callable, Optional

from loadgen.core.metrics import (
    QUERY_DURATION,
    QUERY_ERRORS,
    QUERY_SUCCESS,
    Counter,
    MetricSink,
    Rate,
    Trend,
)
from loadgen.models import ThresholdResult

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLDS: dict[str, tuple[str, ...]] = {
    QUERY_DURATION: ("p(95)<500", "p(99)<1000"),
    QUERY_SUCCESS: ("rate>0.95",),
    QUERY_ERRORS: ("count<100",),
}

_THRESHOLD_RE = re.compile(
    r"^\s*(?P<agg>p\(\s*(?P<pct>\d+(?:\.\d+)?)\s*\)|avg|min|max|med|count|rate)"
    r"\s*(?P<op><=|>=|==|!=|<|>)\s*(?P<value>-?\d+(?:\.\d+)?)\s*$"
)

_OPERATORS: dict[str, Callable[[float, float], bool]] = {
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "==": operator.eq,
    "!=": operator.ne,
}


@dataclass(frozen=True)
class Threshold:
    expression: str
    aggregation: str
    percentile: Optional[float]
    op: str
    value: float

    def compare(self, observed: float) -> bool:
        return _OPERATORS[self.op](observed, self.value)


def parse_threshold(expression: str) -> Threshold:
    """
    Parse a threshold expression.

    Raises:
        ValueError: if the expression is not understood
    """
    m = _THRESHOLD_RE.match(str(expression or ""))
    if not m:
        raise ValueError(f"Unsupported threshold expression: {expression!r}")
    pct = m.group("pct")
    agg = "p" if pct is not None else m.group("agg")
    return Threshold(
        expression=" ".join(str(expression).split()),
        aggregation=agg,
        percentile=float(pct) if pct is not None else None,
        op=m.group("op"),
        value=float(m.group("value")),
    )


def _observe(metric, threshold: Threshold) -> Optional[float]:
    agg = threshold.aggregation
    if isinstance(metric, Trend):
        if agg == "p":
            return metric.percentile(threshold.percentile or 0.0)
        stats = metric.aggregate()
        if not stats.get("count"):
            return None
        if agg in ("avg", "min", "max", "med"):
            return float(stats[agg])
        if agg == "count":
            return float(stats["count"])
    elif isinstance(metric, Counter):
        if agg == "count":
            return metric.total()
    elif isinstance(metric, Rate):
        if agg == "rate":
            return metric.rate()
    raise ValueError(
        f"Aggregation {threshold.expression!r} does not apply to {metric.kind} "
        f"metric {metric.name!r}"
    )


def evaluate_thresholds(
    sink: MetricSink, thresholds: dict[str, tuple[str, ...]]
) -> list[ThresholdResult]:
    """
    Evaluate every threshold against the sink.

    A counter with no samples counts as zero. Trends and rates with no samples
    report `observed=None` and pass, since there was nothing to judge.
    """
    results: list[ThresholdResult] = []
    for metric_name, expressions in thresholds.items():
        metric = sink.get(metric_name)
        for expression in expressions:
            threshold = parse_threshold(expression)
            observed = _observe(metric, threshold)
            passed = True if observed is None else threshold.compare(observed)
            logger.debug(
                "Threshold %s %s: observed=%s passed=%s",
                metric.name,
                threshold.expression,
                observed,
                passed,
            )
            results.append(
                ThresholdResult(
                    metric=metric.name,
                    expression=threshold.expression,
                    observed=observed,
                    passed=passed,
                )
            )
    return results


def validate_thresholds(
    sink: MetricSink, thresholds: dict[str, tuple[str, ...]]
) -> None:
    """Fail fast on unknown metrics or malformed expressions before a run starts."""
    for metric_name, expressions in thresholds.items():
        metric = sink.get(metric_name)
        for expression in expressions:
            threshold = parse_threshold(expression)
            if isinstance(metric, Trend) and threshold.aggregation == "rate":
                raise ValueError(f"{expression!r} does not apply to trend {metric.name}")
            if isinstance(metric, Counter) and threshold.aggregation != "count":
                raise ValueError(f"{expression!r} does not apply to counter {metric.name}")
            if isinstance(metric, Rate) and threshold.aggregation != "rate":
                raise ValueError(f"{expression!r} does not apply to rate {metric.name}")
