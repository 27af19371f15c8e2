#!/usr/bin/env python3
"""
Tests for stage parsing and the ramping VU schedule.
"""

import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest
from pydantic import ValidationError

from loadgen.core.schedule import (
    DEFAULT_STAGES,
    Schedule,
    format_duration,
    parse_duration,
    parse_stage,
)
from loadgen.models import Stage


@pytest.mark.parametrize(
    "text, seconds",
    [
        ("5m", 300.0),
        ("20m", 1200.0),
        ("10s", 10.0),
        ("1h", 3600.0),
        ("1h30m", 5400.0),
        ("2m30s", 150.0),
        ("500ms", 0.5),
        ("1.5s", 1.5),
        ("45", 45.0),
        (30, 30.0),
    ],
)
def test_parse_duration(text, seconds):
    assert parse_duration(text) == pytest.approx(seconds)


@pytest.mark.parametrize("text", ["", "abc", "5x", "m5", "5m junk"])
def test_parse_duration_rejects_garbage(text):
    with pytest.raises(ValueError):
        parse_duration(text)


def test_format_duration():
    assert format_duration(3600) == "1h"
    assert format_duration(300) == "5m"
    assert format_duration(90) == "1m30s"
    assert format_duration(0) == "0s"
    assert format_duration(0.25) == "250ms"


def test_parse_stage():
    stage = parse_stage("5m:10")
    assert stage.duration_seconds == 300
    assert stage.target == 10

    with pytest.raises(ValueError):
        parse_stage("5m")
    with pytest.raises(ValueError):
        parse_stage("5m:ten")


def test_stage_invariants():
    with pytest.raises(ValidationError):
        Stage(duration_seconds=0, target=1)
    with pytest.raises(ValidationError):
        Stage(duration_seconds=10, target=-1)
    with pytest.raises(ValueError):
        parse_stage("0s:5")


def test_default_schedule_shape():
    schedule = Schedule(DEFAULT_STAGES)
    assert len(DEFAULT_STAGES) == 8
    assert schedule.total_duration_seconds == 3600
    assert schedule.max_vus == 50
    assert [s.target for s in DEFAULT_STAGES] == [10, 10, 30, 30, 50, 50, 10, 10]


def test_default_schedule_targets():
    schedule = Schedule(DEFAULT_STAGES)
    assert schedule.target_at(0) == 0
    # Half way through the 5 minute warm-up
    assert schedule.target_at(150) == 5
    # Steady load
    assert schedule.target_at(300) == 10
    assert schedule.target_at(1000) == 10
    # Ramp to 30 between 25m and 30m
    assert schedule.target_at(25 * 60 + 150) == 20
    # Peak
    assert schedule.target_at(40 * 60) == 30
    # Spike sustained
    assert schedule.target_at(48 * 60) == 50
    # Cool down half way (50 -> 10)
    assert schedule.target_at(50 * 60 + 150) == 30
    # Final steady
    assert schedule.target_at(58 * 60) == 10
    # Exhausted
    assert schedule.target_at(3600) is None


def test_ramp_rounds_toward_destination():
    schedule = Schedule([Stage(duration_seconds=10, target=1)])
    assert schedule.target_at(0) == 0
    assert schedule.target_at(0.01) == 1
    assert schedule.target_at(9.99) == 1
    assert schedule.target_at(10) is None

    down = Schedule(
        [Stage(duration_seconds=1, target=5), Stage(duration_seconds=10, target=0)]
    )
    assert down.target_at(1.5) == 4
    assert down.target_at(10.99) == 0


def test_position_reports_stage_index():
    schedule = Schedule(DEFAULT_STAGES)
    pos = schedule.position(301)
    assert pos is not None
    assert pos.index == 1
    assert pos.elapsed_in_stage == pytest.approx(1)
    assert schedule.position(3600) is None


def test_schedule_requires_stages():
    with pytest.raises(ValueError):
        Schedule([])


def test_describe():
    schedule = Schedule([Stage(duration_seconds=300, target=10)])
    assert schedule.describe() == ["5m -> 10 VUs"]
