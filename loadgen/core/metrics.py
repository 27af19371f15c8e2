"""
In-process metric sink.

Holds the trend, counter and rate metrics the driver emits. All writes are
append-only and guarded by a lock so VUs (and executor threads) can record
concurrently.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from loadgen.models import MetricRecord, StatementClass

# Metric name suffixes; the full name is "<prefix>_<suffix>".
QUERY_DURATION = "query_duration"
QUERY_ERRORS = "query_errors"
QUERY_SUCCESS = "query_success"
CHECKS = "checks"
OPERATION_COUNTERS: dict[str, str] = {
    StatementClass.INSERT.value: "inserts",
    StatementClass.SELECT.value: "selects",
    StatementClass.UPDATE.value: "updates",
    StatementClass.DELETE.value: "deletes",
}

Tags = dict[str, str]


def _matches(tags: Tags, where: Optional[Tags]) -> bool:
    if not where:
        return True
    return all(tags.get(k) == v for k, v in where.items())


def percentile(values: list[float], p: float) -> float:
    """Sample at index round(p/100 * (n-1)) of the sorted values (0.0 when empty)."""
    if not values:
        return 0.0
    xs = sorted(values)
    if len(xs) == 1:
        return float(xs[0])
    k = int(round((p / 100.0) * (len(xs) - 1)))
    k = max(0, min(k, len(xs) - 1))
    return float(xs[k])


@dataclass
class _Sample:
    value: float
    tags: Tags


class _Metric:
    kind = "metric"

    def __init__(self, name: str, lock: threading.Lock):
        self.name = name
        self._lock = lock
        self._samples: list[_Sample] = []

    def add(self, value: float, tags: Optional[Tags] = None) -> None:
        with self._lock:
            self._samples.append(_Sample(float(value), dict(tags or {})))

    def values(self, where: Optional[Tags] = None) -> list[float]:
        with self._lock:
            return [s.value for s in self._samples if _matches(s.tags, where)]

    def samples(self) -> list[_Sample]:
        with self._lock:
            return list(self._samples)


class Trend(_Metric):
    kind = "trend"

    def percentile(self, p: float, where: Optional[Tags] = None) -> Optional[float]:
        values = self.values(where)
        if not values:
            return None
        return percentile(values, p)

    def aggregate(self, where: Optional[Tags] = None) -> dict[str, Any]:
        values = self.values(where)
        if not values:
            return {"count": 0}
        return {
            "count": len(values),
            "avg": sum(values) / len(values),
            "min": min(values),
            "med": percentile(values, 50),
            "max": max(values),
            "p90": percentile(values, 90),
            "p95": percentile(values, 95),
            "p99": percentile(values, 99),
        }


class Counter(_Metric):
    kind = "counter"

    def total(self, where: Optional[Tags] = None) -> float:
        return float(sum(self.values(where)))

    def breakdown(self, *keys: str) -> dict[tuple[str, ...], float]:
        out: dict[tuple[str, ...], float] = {}
        for s in self.samples():
            label = tuple(s.tags.get(k, "") for k in keys)
            out[label] = out.get(label, 0.0) + s.value
        return out


class Rate(_Metric):
    kind = "rate"

    def rate(self, where: Optional[Tags] = None) -> Optional[float]:
        values = self.values(where)
        if not values:
            return None
        return sum(1 for v in values if v) / len(values)

    def counts(self, where: Optional[Tags] = None) -> tuple[int, int]:
        values = self.values(where)
        passes = sum(1 for v in values if v)
        return passes, len(values) - passes


class MetricSink:
    """
    Named metric registry for one run.

    Trend `<prefix>_query_duration` is tagged {query_type, query_name};
    counter `<prefix>_query_errors` is tagged {query_type, query_name, error,
    expected}; rate `<prefix>_query_success` has one sample per statement.
    """

    def __init__(self, prefix: str = "mysql"):
        self.prefix = str(prefix or "").strip("_")
        self._metrics: dict[str, _Metric] = {}

        self.query_duration = self._register(Trend, QUERY_DURATION)
        self.query_errors = self._register(Counter, QUERY_ERRORS)
        self.query_success = self._register(Rate, QUERY_SUCCESS)
        self.checks = self._register(Rate, CHECKS, prefixed=False)
        self.operation_counters: dict[str, Counter] = {
            query_type: self._register(Counter, suffix)
            for query_type, suffix in OPERATION_COUNTERS.items()
        }

    def _register(self, cls, suffix: str, *, prefixed: bool = True):
        name = self.metric_name(suffix) if prefixed else suffix
        metric = cls(name, threading.Lock())
        self._metrics[name] = metric
        return metric

    def metric_name(self, suffix: str) -> str:
        if not self.prefix:
            return suffix
        return f"{self.prefix}_{suffix}"

    def get(self, name: str) -> _Metric:
        """Look up a metric by full name or by suffix."""
        metric = self._metrics.get(name) or self._metrics.get(self.metric_name(name))
        if metric is None:
            raise KeyError(name)
        return metric

    def names(self) -> list[str]:
        return list(self._metrics)

    def record(self, record: MetricRecord) -> None:
        """Fan one statement outcome out to the metrics it feeds."""
        self.query_duration.add(
            record.duration_ms,
            {"query_type": record.query_type, "query_name": record.query_name},
        )
        if record.success:
            counter = self.operation_counters.get(record.query_type)
            if counter is not None:
                counter.add(1)
            self.query_success.add(1)
        else:
            self.query_errors.add(
                1,
                {
                    "query_type": record.query_type,
                    "query_name": record.query_name,
                    "error": str(record.error or ""),
                    "expected": "true" if record.expected_error else "false",
                },
            )
            self.query_success.add(0)

    def record_many(self, records: Iterable[MetricRecord]) -> None:
        for r in records:
            self.record(r)

    def check(self, name: str, passed: bool) -> None:
        self.checks.add(1 if passed else 0, {"check": name})

    def error_count(self, *, expected: Optional[bool] = None) -> float:
        if expected is None:
            return self.query_errors.total()
        return self.query_errors.total({"expected": "true" if expected else "false"})

    def snapshot(self) -> dict[str, Any]:
        """Plain-dict view of every metric, suitable for JSON export."""
        out: dict[str, Any] = {}
        duration = self.query_duration
        by_type: dict[str, Any] = {}
        for query_type in OPERATION_COUNTERS:
            agg = duration.aggregate({"query_type": query_type})
            if agg.get("count"):
                by_type[query_type] = agg
        out[duration.name] = {
            "type": duration.kind,
            "values": duration.aggregate(),
            "by_query_type": by_type,
        }

        errors = self.query_errors
        out[errors.name] = {
            "type": errors.kind,
            "count": errors.total(),
            "expected": self.error_count(expected=True),
            "unexpected": self.error_count(expected=False),
            "by_label": [
                {
                    "query_type": qt,
                    "query_name": qn,
                    "error": err,
                    "expected": exp == "true",
                    "count": count,
                }
                for (qt, qn, err, exp), count in sorted(
                    errors.breakdown("query_type", "query_name", "error", "expected").items()
                )
            ],
        }

        for rate in (self.query_success, self.checks):
            passes, fails = rate.counts()
            out[rate.name] = {
                "type": rate.kind,
                "rate": rate.rate(),
                "passes": passes,
                "fails": fails,
            }

        for counter in self.operation_counters.values():
            out[counter.name] = {"type": counter.kind, "count": counter.total()}
        return out
