"""
Workload Driver

Generates a mixed, time-varying SQL workload against one database and records
per-statement latency and outcome metrics.

Manages:
- Pre-flight connectivity check
- Stage schedule and VU pool scaling
- Per-VU iteration loop (statement choice, execution, think time)
- Teardown banner and threshold verdict
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Callable, Optional

from loadgen.config import ConfigurationError, RunConfig
from loadgen.connectors import DatabaseConnection, create_connection
from loadgen.core.log_context import CURRENT_VU_ID
from loadgen.core.metrics import MetricSink
from loadgen.core.schedule import Schedule, format_duration
from loadgen.core.schema import ensure_schema
from loadgen.core.statements import choose_statement_class, plan_iteration
from loadgen.core.thresholds import evaluate_thresholds, validate_thresholds
from loadgen.core.worker_pool import WorkerPool
from loadgen.models import (
    MetricRecord,
    RunStatus,
    RunSummary,
    StatementClass,
    StatementPattern,
)

logger = logging.getLogger(__name__)

BANNER_WIDTH = 60

ConnectionFactory = Callable[[str], DatabaseConnection]

_DIALECT_LABELS = {"mysql": "MySQL", "postgresql": "PostgreSQL"}


class PreflightError(Exception):
    """Raised when the database is unreachable before the schedule starts."""


@dataclass
class VUContext:
    """State owned by one VU for its whole lifetime."""

    vu_id: int
    rng: random.Random
    connection: Optional[DatabaseConnection] = None
    iterations: int = 0


class WorkloadDriver:
    """
    Runs the weighted statement mix across the configured stage schedule.
    """

    def __init__(
        self,
        config: RunConfig,
        *,
        sink: Optional[MetricSink] = None,
        connection_factory: Optional[ConnectionFactory] = None,
    ):
        """
        Initialize the driver.

        Args:
            config: Immutable run configuration
            sink: Metric sink (a fresh one is created when omitted)
            connection_factory: Builds an unopened connection from a name;
                defaults to the connector for `config.dialect`
        """
        self.config = config
        self.sink = sink or MetricSink(config.metric_prefix)
        self.schedule = Schedule(config.stages)

        try:
            validate_thresholds(self.sink, config.thresholds)
        except (KeyError, ValueError) as e:
            raise ConfigurationError(f"Invalid threshold configuration: {e}") from e

        self.status = RunStatus.PENDING
        self.started_at: Optional[datetime] = None
        self.ended_at: Optional[datetime] = None
        self.current_stage_index: Optional[int] = None
        self.current_target: int = 0

        self.iterations = 0
        self.connections_opened = 0

        self._connection_factory = connection_factory or self._default_connection
        self._executor: Optional[ThreadPoolExecutor] = None
        self._pool: Optional[WorkerPool] = None
        self._schedule_started: Optional[float] = None

    # ------------------------------------------------------------------
    # Connections
    # ------------------------------------------------------------------

    def _default_connection(self, name: str) -> DatabaseConnection:
        return create_connection(self.config, executor=self._executor, name=name)

    def _create_executor(self) -> Optional[ThreadPoolExecutor]:
        if self.config.dialect != "mysql":
            return None
        # One thread per VU plus the pre-flight probe.
        return ThreadPoolExecutor(
            max_workers=max(1, self.schedule.max_vus) + 1,
            thread_name_prefix="loadgen-db",
        )

    def _rng_for(self, vu_id: int) -> random.Random:
        if self.config.seed is None:
            return random.Random()
        return random.Random(f"{self.config.seed}:{vu_id}")

    # ------------------------------------------------------------------
    # Setup / teardown
    # ------------------------------------------------------------------

    def log_banner(self) -> None:
        cfg = self.config
        label = _DIALECT_LABELS.get(cfg.dialect, cfg.dialect)
        cloud = (
            f"{cfg.cloud.project_id} ({cfg.cloud.load_zone})"
            if cfg.cloud.enabled
            else "disabled"
        )
        masked = not cfg.log_unmasked_connection_string
        logger.info("=" * BANNER_WIDTH)
        logger.info(f"{label} Load Test Configuration")
        logger.info("=" * BANNER_WIDTH)
        logger.info(f"Host: {cfg.host}:{cfg.port}")
        logger.info(f"Database: {cfg.database}")
        logger.info(f"User: {cfg.user}")
        logger.info(f"Connection String: {cfg.connection_string(masked=masked)}")
        logger.info(f"Test Duration: {format_duration(cfg.total_duration_seconds)}")
        logger.info(f"Max VUs: {self.schedule.max_vus}")
        logger.info(f"Stages: {', '.join(self.schedule.describe())}")
        logger.info(f"Cloud Project: {cloud}")
        logger.info("=" * BANNER_WIDTH)

    async def preflight(self) -> None:
        """
        Open and release one probe connection.

        Raises:
            PreflightError: if the database cannot be reached
        """
        probe = self._connection_factory("preflight")
        try:
            await probe.connect()
        except Exception as e:
            logger.error(f"✗ Database connection failed: {type(e).__name__}: {e}")
            raise PreflightError(f"Database connection failed: {e}") from e
        try:
            logger.info("✓ Database connection successful")
        finally:
            await probe.close()

    async def setup(self) -> datetime:
        """Print the configuration banner and run the pre-flight check."""
        self.log_banner()
        await self.preflight()
        self.started_at = datetime.now(UTC)
        return self.started_at

    def teardown(self, started_at: datetime) -> datetime:
        ended_at = max(datetime.now(UTC), started_at)
        self.ended_at = ended_at
        logger.info("=" * BANNER_WIDTH)
        logger.info("Test Completed")
        logger.info(f"Started: {started_at.isoformat()}")
        logger.info(f"Ended: {ended_at.isoformat()}")
        logger.info("=" * BANNER_WIDTH)
        return ended_at

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    async def prepare_schema(self) -> dict[str, int]:
        """
        Create and seed the sample tables over a dedicated connection.

        Raises:
            PreflightError: if the connection or the DDL fails
        """
        conn = self._connection_factory("schema")
        try:
            await conn.connect()
            return await ensure_schema(conn, self.config.dialect)
        except Exception as e:
            logger.error(f"✗ Schema setup failed: {type(e).__name__}: {e}")
            raise PreflightError(f"Schema setup failed: {e}") from e
        finally:
            await conn.close()

    async def run(self, *, init_schema: bool = False) -> RunSummary:
        """
        Execute the full schedule.

        Args:
            init_schema: Create and seed the sample tables after the
                pre-flight check, before the first stage

        Raises:
            PreflightError: if the database is unreachable at startup
        """
        self._executor = self._create_executor()
        try:
            started_at = await self.setup()
            if init_schema:
                await self.prepare_schema()
            self.status = RunStatus.RUNNING
            self._pool = WorkerPool(
                worker_factory=self._vu,
                max_workers=max(1, self.schedule.max_vus),
                use_lock=True,
            )
            try:
                await self._run_schedule()
            finally:
                self.status = RunStatus.STOPPING
                await self._pool.stop_all(
                    timeout_seconds=self.config.graceful_stop_seconds
                )
        except PreflightError:
            self.status = RunStatus.FAILED
            raise
        finally:
            if self._executor is not None:
                self._executor.shutdown(wait=False, cancel_futures=True)
                self._executor = None

        ended_at = self.teardown(started_at)
        self.status = RunStatus.COMPLETED
        summary = self.build_summary(started_at, ended_at)
        self.log_summary(summary)
        return summary

    def elapsed_seconds(self) -> float:
        if self._schedule_started is None:
            return 0.0
        return asyncio.get_running_loop().time() - self._schedule_started

    async def _run_schedule(self) -> None:
        assert self._pool is not None
        loop = asyncio.get_running_loop()
        self._schedule_started = loop.time()
        total = self.schedule.total_duration_seconds
        stage_count = len(self.schedule.stages)

        while True:
            elapsed = loop.time() - self._schedule_started
            pos = self.schedule.position(elapsed)
            target = self.schedule.target_at(elapsed)
            if pos is None or target is None:
                break

            if pos.index != self.current_stage_index:
                self.current_stage_index = pos.index
                logger.info(
                    "Stage %d/%d: %s -> %d VUs",
                    pos.index + 1,
                    stage_count,
                    format_duration(pos.stage.duration_seconds),
                    pos.stage.target,
                )

            if target != self.current_target:
                logger.debug("Target VUs: %d -> %d", self.current_target, target)
            self.current_target = target
            await self._pool.scale_to(target)

            remaining = total - elapsed
            await asyncio.sleep(
                max(0.0, min(self.config.scheduler_tick_seconds, remaining))
            )

        self.current_stage_index = None
        self.current_target = 0
        logger.info("Schedule complete after %s", format_duration(total))

    # ------------------------------------------------------------------
    # VU loop
    # ------------------------------------------------------------------

    async def _vu(self, vu_id: int, stop_signal: asyncio.Event) -> None:
        CURRENT_VU_ID.set(vu_id)
        ctx = VUContext(vu_id=vu_id, rng=self._rng_for(vu_id))
        logger.debug("VU %d started", vu_id)
        try:
            while not stop_signal.is_set():
                await self.run_iteration(ctx)
                # A retired VU exits after its current iteration, skipping think time.
                if stop_signal.is_set():
                    break
                await self._think(ctx, stop_signal)
        finally:
            # After a cancel the abandoned statement may still hold the
            # connection on an executor thread; the close races it, and the
            # in-flight result is discarded either way.
            if ctx.connection is not None:
                try:
                    await ctx.connection.close()
                except Exception as e:
                    logger.warning("VU %d failed to close connection: %s", vu_id, e)
                ctx.connection = None
            logger.debug("VU %d stopped after %d iterations", vu_id, ctx.iterations)

    def think_time(self, rng: random.Random) -> float:
        """Uniform draw in [think_time_min_seconds, think_time_max_seconds)."""
        lo = self.config.think_time_min_seconds
        hi = self.config.think_time_max_seconds
        return lo + rng.random() * (hi - lo)

    async def _think(self, ctx: VUContext, stop_signal: asyncio.Event) -> None:
        delay = self.think_time(ctx.rng)
        waiter = asyncio.ensure_future(stop_signal.wait())
        try:
            await asyncio.wait({waiter}, timeout=delay)
        finally:
            waiter.cancel()

    async def _ensure_connection(self, ctx: VUContext) -> Optional[DatabaseConnection]:
        if ctx.connection is not None:
            return ctx.connection
        conn = self._connection_factory(f"vu-{ctx.vu_id}")
        started = datetime.now(UTC)
        start_perf = time.perf_counter()
        try:
            await conn.connect()
        except Exception as e:
            message = str(e) or type(e).__name__
            logger.error("VU %d could not open connection: %s", ctx.vu_id, message)
            # Counts against the success rate like any failed statement.
            self.sink.record(
                MetricRecord(
                    query_type="connect",
                    query_name="connect",
                    duration_ms=(time.perf_counter() - start_perf) * 1000.0,
                    success=False,
                    error=message,
                    vu_id=ctx.vu_id,
                    timestamp=started,
                )
            )
            return None
        ctx.connection = conn
        self.connections_opened += 1
        return conn

    async def run_iteration(
        self,
        ctx: VUContext,
        statement_class: Optional[StatementClass] = None,
    ) -> list[MetricRecord]:
        """
        Run one iteration for a VU.

        Args:
            ctx: The VU's execution context
            statement_class: Force a class instead of drawing one

        Returns:
            One MetricRecord per statement attempted
        """
        conn = await self._ensure_connection(ctx)
        if conn is None:
            return []

        chosen = statement_class or choose_statement_class(ctx.rng)
        records = [
            await self.execute_statement(ctx, conn, pattern)
            for pattern in plan_iteration(chosen, ctx.rng)
        ]
        ctx.iterations += 1
        self.iterations += 1
        return records

    async def execute_statement(
        self,
        ctx: VUContext,
        conn: DatabaseConnection,
        pattern: StatementPattern,
    ) -> MetricRecord:
        """Execute one statement, record its outcome, and never raise for SQL errors."""
        params = pattern.build_params(ctx.rng)
        query_type = pattern.statement_class.value
        started = datetime.now(UTC)
        start_perf = time.perf_counter()
        try:
            if pattern.statement_class == StatementClass.SELECT:
                result = await conn.query(pattern.sql, params)
                self.sink.check(f"{pattern.name} succeeded", result is not None)
            else:
                await conn.execute(pattern.sql, params)
        except Exception as e:
            duration_ms = (time.perf_counter() - start_perf) * 1000.0
            message = str(e) or type(e).__name__
            record = MetricRecord(
                query_type=query_type,
                query_name=pattern.name,
                duration_ms=duration_ms,
                success=False,
                error=message,
                expected_error=pattern.expected_error,
                vu_id=ctx.vu_id,
                timestamp=started,
            )
            self.sink.record(record)
            if pattern.expected_error:
                logger.warning(
                    "%s query failed as expected (%s): %s",
                    query_type.upper(),
                    pattern.name,
                    message,
                )
            else:
                logger.error(
                    "%s query failed (%s): %s", query_type.upper(), pattern.name, message
                )
            return record

        duration_ms = (time.perf_counter() - start_perf) * 1000.0
        record = MetricRecord(
            query_type=query_type,
            query_name=pattern.name,
            duration_ms=duration_ms,
            success=True,
            expected_error=pattern.expected_error,
            vu_id=ctx.vu_id,
            timestamp=started,
        )
        self.sink.record(record)
        return record

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def build_summary(self, started_at: datetime, ended_at: datetime) -> RunSummary:
        cfg = self.config
        return RunSummary(
            status=RunStatus.COMPLETED,
            started_at=started_at,
            ended_at=ended_at,
            duration_seconds=(ended_at - started_at).total_seconds(),
            total_iterations=self.iterations,
            max_vus=self.schedule.max_vus,
            connections_opened=self.connections_opened,
            thresholds=evaluate_thresholds(self.sink, cfg.thresholds),
            metrics=self.sink.snapshot(),
            cloud={
                "enabled": cfg.cloud.enabled,
                "project_id": cfg.cloud.project_id,
                "name": cfg.cloud.name,
                "load_zone": cfg.cloud.load_zone,
            },
            tags=dict(cfg.tags),
        )

    def log_summary(self, summary: RunSummary) -> None:
        errors = self.sink.error_count()
        expected = self.sink.error_count(expected=True)
        logger.info(
            "Iterations: %d, connections opened: %d, errors: %d (%d expected)",
            summary.total_iterations,
            summary.connections_opened,
            int(errors),
            int(expected),
        )
        for t in summary.thresholds:
            mark = "✓" if t.passed else "✗"
            observed = "n/a" if t.observed is None else f"{t.observed:.4g}"
            logger.info(f"{mark} {t.metric}: {t.expression} (observed={observed})")
        if summary.thresholds_passed:
            logger.info("All thresholds passed")
        else:
            logger.warning("One or more thresholds failed")

    def status_snapshot(self) -> dict[str, Any]:
        """Current run state for the status API."""
        cfg = self.config
        stage = None
        if self.current_stage_index is not None:
            s = self.schedule.stages[self.current_stage_index]
            stage = {
                "index": self.current_stage_index,
                "duration_seconds": s.duration_seconds,
                "target": s.target,
            }
        return {
            "status": self.status.value,
            "dialect": cfg.dialect,
            "host": cfg.host,
            "port": cfg.port,
            "database": cfg.database,
            "user": cfg.user,
            "connection_string": cfg.connection_string(masked=True),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "total_duration_seconds": cfg.total_duration_seconds,
            "max_vus": self.schedule.max_vus,
            "stage": stage,
            "target_vus": self.current_target,
            "active_vus": self._pool.count if self._pool is not None else 0,
            "iterations": self.iterations,
            "connections_opened": self.connections_opened,
        }
