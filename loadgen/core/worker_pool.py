"""VU pool with dynamic scaling.

Each VU is an asyncio task paired with its own stop signal. Scaling down
signals the most recently spawned VUs; they finish their current iteration and
exit on their own.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Coroutine

logger = logging.getLogger(__name__)

VUFactory = Callable[[int, asyncio.Event], Coroutine[Any, Any, None]]


class WorkerPool:
    """Keeps the number of running VUs at a target.

    Attributes:
        max_workers: Hard cap on live VUs, retiring ones included
    """

    def __init__(
        self,
        *,
        worker_factory: VUFactory,
        max_workers: int = 100,
        use_lock: bool = False,
    ) -> None:
        """Initialize the pool.

        Args:
            worker_factory: Coroutine function running one VU,
                called as (vu_id, stop_signal)
            max_workers: Hard cap on live VUs
            use_lock: Serialize scale_to/stop_all with an asyncio.Lock
        """
        self._worker_factory = worker_factory
        self.max_workers = max(0, max_workers)
        self._scale_lock = asyncio.Lock() if use_lock else None

        self._vus: dict[int, tuple[asyncio.Task[None], asyncio.Event]] = {}
        self._next_vu_id = 1
        self._target = 0

    @property
    def count(self) -> int:
        """VUs whose task has not finished, retiring ones included."""
        return len(self.live_worker_ids())

    @property
    def target(self) -> int:
        return self._target

    @property
    def spawned_total(self) -> int:
        return self._next_vu_id - 1

    def running_worker_ids(self) -> list[int]:
        """VUs still iterating (not finished and not told to stop)."""
        return [
            vu_id
            for vu_id, (task, stop_signal) in self._vus.items()
            if not task.done() and not stop_signal.is_set()
        ]

    def live_worker_ids(self) -> list[int]:
        return [vu_id for vu_id, (task, _) in self._vus.items() if not task.done()]

    def prune_completed(self) -> None:
        """Forget finished VUs, logging any that died with an exception."""
        for vu_id, (task, _) in list(self._vus.items()):
            if not task.done():
                continue
            del self._vus[vu_id]
            if not task.cancelled() and task.exception() is not None:
                logger.error("VU %d exited with error: %s", vu_id, task.exception())

    def _spawn(self) -> int:
        vu_id = self._next_vu_id
        self._next_vu_id += 1
        stop_signal = asyncio.Event()
        task = asyncio.create_task(
            self._worker_factory(vu_id, stop_signal), name=f"vu-{vu_id}"
        )
        self._vus[vu_id] = (task, stop_signal)
        return vu_id

    async def scale_to(self, target: int) -> None:
        if self._scale_lock is None:
            self._rescale(target)
            return
        async with self._scale_lock:
            self._rescale(target)

    def _rescale(self, target: int) -> None:
        self.prune_completed()
        target = max(0, min(self.max_workers, int(target)))
        changed = target != self._target
        self._target = target

        running = sorted(self.running_worker_ids())
        live = len(self.live_worker_ids())

        if len(running) < target:
            # Retiring VUs still count against the target until they exit.
            spawn_n = min(target - len(running), max(0, target - live))
            if changed:
                logger.debug(
                    "Scale up: running=%d target=%d spawning=%d",
                    len(running), target, spawn_n,
                )
            for _ in range(spawn_n):
                self._spawn()
        elif len(running) > target:
            retire = running[target:]
            logger.debug(
                "Scale down: running=%d target=%d retiring=%s",
                len(running), target, retire,
            )
            for vu_id in retire:
                self._vus[vu_id][1].set()

    async def stop_all(self, *, timeout_seconds: float = 2.0) -> None:
        """Signal every VU, wait up to `timeout_seconds`, then cancel the rest.

        A cancelled VU abandons its in-flight statement.
        """
        if self._scale_lock is None:
            await self._stop_all(timeout_seconds)
            return
        async with self._scale_lock:
            await self._stop_all(timeout_seconds)

    async def _stop_all(self, timeout_seconds: float) -> None:
        self.prune_completed()
        self._target = 0
        for _, stop_signal in self._vus.values():
            stop_signal.set()

        tasks = [task for task, _ in self._vus.values()]
        if tasks:
            _, pending = await asyncio.wait(tasks, timeout=max(0.0, timeout_seconds))
            if pending:
                logger.warning(
                    "%d VU(s) still running after %.1fs; cancelling",
                    len(pending), timeout_seconds,
                )
                for task in pending:
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)
            self.prune_completed()
        self._vus.clear()
