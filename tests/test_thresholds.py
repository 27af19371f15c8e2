#!/usr/bin/env python3
"""
Tests for threshold parsing and evaluation.
"""

import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest

from loadgen.core.metrics import MetricSink
from loadgen.core.thresholds import (
    DEFAULT_THRESHOLDS,
    evaluate_thresholds,
    parse_threshold,
    validate_thresholds,
)
from loadgen.models import MetricRecord


def _ok(ms, query_type="select"):
    return MetricRecord(query_type=query_type, query_name="q", duration_ms=ms, success=True)


def _fail(query_type="insert"):
    return MetricRecord(
        query_type=query_type,
        query_name="q",
        duration_ms=1.0,
        success=False,
        error="boom",
    )


def test_parse_threshold():
    t = parse_threshold("p(95)<500")
    assert t.aggregation == "p"
    assert t.percentile == 95
    assert t.op == "<"
    assert t.value == 500

    t = parse_threshold(" rate > 0.95 ")
    assert t.aggregation == "rate"
    assert t.op == ">"
    assert t.value == pytest.approx(0.95)
    assert t.expression == "rate > 0.95"

    assert parse_threshold("p(99.9)<=1000").percentile == pytest.approx(99.9)
    assert parse_threshold("count<100").aggregation == "count"


@pytest.mark.parametrize("expr", ["", "p95<500", "rate ~ 1", "count<abc", "sum<1"])
def test_parse_threshold_rejects_unknown(expr):
    with pytest.raises(ValueError):
        parse_threshold(expr)


def test_default_thresholds():
    assert DEFAULT_THRESHOLDS["query_duration"] == ("p(95)<500", "p(99)<1000")
    assert DEFAULT_THRESHOLDS["query_success"] == ("rate>0.95",)
    assert DEFAULT_THRESHOLDS["query_errors"] == ("count<100",)


def test_all_pass_on_empty_sink():
    sink = MetricSink("mysql")
    results = evaluate_thresholds(sink, DEFAULT_THRESHOLDS)
    assert len(results) == 4
    assert all(r.passed for r in results)
    errors = next(r for r in results if r.metric == "mysql_query_errors")
    assert errors.observed == 0


def test_fast_successful_run_passes():
    sink = MetricSink("mysql")
    sink.record_many(_ok(float(ms)) for ms in range(1, 101))
    results = evaluate_thresholds(sink, DEFAULT_THRESHOLDS)
    assert all(r.passed for r in results)


def test_slow_statements_fail_latency_thresholds():
    sink = MetricSink("mysql")
    sink.record_many(_ok(10.0) for _ in range(90))
    sink.record_many(_ok(800.0) for _ in range(10))
    results = {r.expression: r for r in evaluate_thresholds(sink, DEFAULT_THRESHOLDS)}
    assert results["p(95)<500"].passed is False
    assert results["p(95)<500"].observed == 800.0
    assert results["p(99)<1000"].passed is True


def test_error_budget_and_success_rate():
    sink = MetricSink("mysql")
    sink.record_many(_ok(5.0) for _ in range(50))
    sink.record_many(_fail() for _ in range(100))
    results = {r.metric: r for r in evaluate_thresholds(sink, {
        "query_success": ("rate>0.95",),
        "query_errors": ("count<100",),
    })}
    assert results["mysql_query_success"].passed is False
    assert results["mysql_query_success"].observed == pytest.approx(50 / 150)
    assert results["mysql_query_errors"].passed is False
    assert results["mysql_query_errors"].observed == 100


def test_validate_thresholds():
    sink = MetricSink("mysql")
    validate_thresholds(sink, DEFAULT_THRESHOLDS)
    with pytest.raises(KeyError):
        validate_thresholds(sink, {"http_req_duration": ("p(95)<2000",)})
    with pytest.raises(ValueError):
        validate_thresholds(sink, {"query_errors": ("rate>0.5",)})
    with pytest.raises(ValueError):
        validate_thresholds(sink, {"query_success": ("p(95)<1",)})
