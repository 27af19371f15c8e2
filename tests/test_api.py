#!/usr/bin/env python3
"""
Tests for the live status API routes.
"""

import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest
from fastapi import HTTPException
from starlette.requests import Request

from loadgen.api.app import create_app
from loadgen.api.routes import run as run_routes
from loadgen.config import RunConfig
from loadgen.core.driver import WorkloadDriver
from loadgen.models import MetricRecord, Stage


def _make_request(app, path: str) -> Request:
    scope = {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": "GET",
        "scheme": "http",
        "path": path,
        "raw_path": path.encode("utf-8"),
        "query_string": b"",
        "root_path": "",
        "headers": [],
        "client": ("testclient", 123),
        "server": ("testserver", 80),
        "app": app,
    }
    return Request(scope)


def _driver():
    config = RunConfig(
        host="mysql",
        port=3306,
        user="k6user",
        password="k6userpass",
        database="super_awesome_application",
        stages=(Stage(duration_seconds=10, target=1),),
        thresholds={"query_errors": ("count<100",)},
    )
    return WorkloadDriver(config, connection_factory=lambda name: None)


def test_routes_registered():
    app = create_app()
    paths = {route.path for route in app.routes}
    assert {"/health", "/api/run", "/api/metrics", "/api/thresholds"} <= paths


@pytest.mark.asyncio
async def test_health():
    resp = await run_routes.health()
    assert resp.status == "ok"


@pytest.mark.asyncio
async def test_no_driver_attached_is_503():
    app = create_app()
    with pytest.raises(HTTPException) as exc_info:
        await run_routes.get_run(_make_request(app, "/api/run"))
    assert exc_info.value.status_code == 503


@pytest.mark.asyncio
async def test_run_status():
    app = create_app(_driver())
    body = await run_routes.get_run(_make_request(app, "/api/run"))

    assert body["status"] == "pending"
    assert body["elapsed_seconds"] == 0.0
    assert body["connection_string"] == "k6user:********@tcp(mysql:3306)/super_awesome_application"


@pytest.mark.asyncio
async def test_metrics_and_thresholds():
    driver = _driver()
    driver.sink.record(
        MetricRecord(
            query_type="insert",
            query_name="insert_competitor",
            duration_ms=2.0,
            success=False,
            error="Table doesn't exist",
            expected_error=True,
        )
    )
    app = create_app(driver)

    metrics = await run_routes.get_metrics(_make_request(app, "/api/metrics"))
    assert metrics["mysql_query_errors"]["count"] == 1
    assert metrics["mysql_query_errors"]["expected"] == 1

    verdict = await run_routes.get_thresholds(_make_request(app, "/api/thresholds"))
    assert verdict.passed is True
    assert verdict.thresholds[0].metric == "mysql_query_errors"
    assert verdict.thresholds[0].observed == 1
