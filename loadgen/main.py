#!/usr/bin/env python3
"""Run the synthetic SQL workload against a MySQL or PostgreSQL database."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

from uvicorn.logging import DefaultFormatter

from loadgen.config import ConfigurationError, RunConfig, load_run_config, settings
from loadgen.core.driver import PreflightError, WorkloadDriver
from loadgen.core.log_context import VuContextFilter
from loadgen.core.schedule import parse_stage
from loadgen.models import RunSummary

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_SETUP_FAILED = 1
EXIT_THRESHOLDS_FAILED = 99
EXIT_INTERRUPTED = 130


def configure_logging(level: str) -> None:
    # Use uvicorn's colored "LEVEL:" prefix for every logger.
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(
        DefaultFormatter(fmt=settings.LOG_FORMAT, use_colors=sys.stderr.isatty())
    )
    console_handler.addFilter(VuContextFilter())

    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        handlers=[console_handler],
        force=True,
    )
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="loadgen",
        description="Generate a weighted SELECT/INSERT/UPDATE/DELETE workload "
        "against a database and report latency and error metrics.",
    )
    parser.add_argument(
        "--log-level", default=None, help=f"Log level (default: {settings.LOG_LEVEL})."
    )
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run the stage schedule.")
    run.add_argument(
        "--stage",
        action="append",
        default=[],
        metavar="DURATION:TARGET",
        help="Stage such as 5m:10 (repeatable). Defaults to the 60 minute reference schedule.",
    )
    run.add_argument("--seed", type=int, default=None, help="Seed for VU random generators.")
    run.add_argument(
        "--init-schema",
        action="store_true",
        help="Create and seed the company/employee tables before running.",
    )
    run.add_argument(
        "--serve",
        action="store_true",
        help="Serve the live status API while the run is in progress.",
    )
    run.add_argument(
        "--port", type=int, default=None, help=f"Status API port (default: {settings.API_PORT})."
    )
    run.add_argument(
        "--summary-export",
        type=Path,
        default=None,
        metavar="PATH",
        help="Write the end-of-run summary as JSON.",
    )

    sub.add_parser("check", help="Validate configuration and database connectivity only.")
    return parser


def _load_config(args: argparse.Namespace) -> RunConfig:
    try:
        stages = [parse_stage(s) for s in (getattr(args, "stage", None) or [])]
    except ValueError as e:
        raise ConfigurationError(str(e)) from e
    return load_run_config(stages=stages or None, seed=getattr(args, "seed", None))


def export_summary(summary: RunSummary, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(summary.model_dump_json(indent=2), encoding="utf-8")
    logger.info("Summary written to %s", path)


async def _check(args: argparse.Namespace) -> int:
    config = _load_config(args)
    driver = WorkloadDriver(config)
    try:
        await driver.setup()
    except PreflightError:
        return EXIT_SETUP_FAILED
    return EXIT_OK


async def _run(args: argparse.Namespace) -> int:
    config = _load_config(args)
    driver = WorkloadDriver(config)

    server = None
    if args.serve:
        from loadgen.api.app import StatusServer, create_app

        server = StatusServer(
            create_app(driver),
            host=settings.API_HOST,
            port=args.port or settings.API_PORT,
            log_level=settings.LOG_LEVEL,
        )
        await server.start()

    try:
        summary = await driver.run(init_schema=args.init_schema)
    except PreflightError as e:
        logger.error("Aborting before the first stage: %s", e)
        return EXIT_SETUP_FAILED
    finally:
        if server is not None:
            await server.stop()

    if args.summary_export is not None:
        export_summary(summary, args.summary_export)

    return EXIT_OK if summary.thresholds_passed else EXIT_THRESHOLDS_FAILED


async def _dispatch(args: argparse.Namespace) -> int:
    if args.command == "check":
        return await _check(args)
    return await _run(args)


def main(argv: Optional[list[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level or settings.LOG_LEVEL)
    try:
        return asyncio.run(_dispatch(args))
    except ConfigurationError as e:
        logger.error("%s", e)
        return EXIT_SETUP_FAILED
    except KeyboardInterrupt:
        print("[loadgen] interrupted", file=sys.stderr)
        return EXIT_INTERRUPTED


if __name__ == "__main__":
    raise SystemExit(main())
