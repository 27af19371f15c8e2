#!/usr/bin/env python3
"""
Tests for the VU pool: scaling up, retiring the newest VUs, and stopping.
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest

from loadgen.core.worker_pool import WorkerPool


def _factory(log):
    async def vu(vu_id, stop_signal):
        log.append(("start", vu_id))
        try:
            await stop_signal.wait()
        finally:
            log.append(("stop", vu_id))

    return vu


@pytest.mark.asyncio
async def test_scale_up_spawns_sequential_ids():
    log = []
    pool = WorkerPool(worker_factory=_factory(log), max_workers=10)

    await pool.scale_to(3)
    await asyncio.sleep(0)

    assert sorted(pool.running_worker_ids()) == [1, 2, 3]
    assert pool.count == 3
    assert pool.target == 3
    assert pool.spawned_total == 3
    await pool.stop_all(timeout_seconds=1.0)


@pytest.mark.asyncio
async def test_scale_down_retires_newest_first():
    log = []
    pool = WorkerPool(worker_factory=_factory(log), max_workers=10)
    await pool.scale_to(4)
    await asyncio.sleep(0)

    await pool.scale_to(2)
    assert sorted(pool.running_worker_ids()) == [1, 2]

    await asyncio.sleep(0.01)
    assert ("stop", 4) in log
    assert ("stop", 3) in log
    assert ("stop", 1) not in log
    await pool.stop_all(timeout_seconds=1.0)


@pytest.mark.asyncio
async def test_scale_is_clamped_to_max_workers():
    pool = WorkerPool(worker_factory=_factory([]), max_workers=2)
    await pool.scale_to(5)
    assert pool.count == 2
    await pool.stop_all(timeout_seconds=1.0)


@pytest.mark.asyncio
async def test_scale_up_after_retire_does_not_exceed_target():
    log = []
    pool = WorkerPool(worker_factory=_factory(log), max_workers=10)
    await pool.scale_to(2)
    await pool.scale_to(0)
    # Retired VUs hold their slot until they exit.
    await asyncio.sleep(0.01)
    await pool.scale_to(2)
    await asyncio.sleep(0)

    assert len(pool.running_worker_ids()) == 2
    assert pool.spawned_total == 4
    await pool.stop_all(timeout_seconds=1.0)


@pytest.mark.asyncio
async def test_stop_all_cancels_stuck_vus():
    cancelled = []

    async def stubborn(vu_id, stop_signal):
        try:
            await asyncio.sleep(60)
        except asyncio.CancelledError:
            cancelled.append(vu_id)
            raise

    pool = WorkerPool(worker_factory=stubborn, max_workers=3)
    await pool.scale_to(2)
    await asyncio.sleep(0)

    await pool.stop_all(timeout_seconds=0.05)

    assert sorted(cancelled) == [1, 2]
    assert pool.count == 0
    assert pool.live_worker_ids() == []


@pytest.mark.asyncio
async def test_failed_vu_is_pruned():
    async def broken(vu_id, stop_signal):
        raise RuntimeError("boom")

    pool = WorkerPool(worker_factory=broken, max_workers=2)
    await pool.scale_to(1)
    await asyncio.sleep(0.01)

    pool.prune_completed()
    assert pool.count == 0
    await pool.stop_all(timeout_seconds=0.1)
