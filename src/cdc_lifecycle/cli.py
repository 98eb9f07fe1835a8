"""Command line interface for driving the capture service by hand."""

from __future__ import annotations

import argparse
import logging
import signal
from typing import Callable, Optional

from .capture.waiting import WaitOutcome
from .config import load_settings
from .errors import CaptureHarnessError
from .harness import CaptureHarness, build_harness

logger = logging.getLogger(__name__)

_TABLE_COMMANDS = ("enable-table", "disable-table", "activate", "deactivate", "cdc-table")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Db2 ASN capture lifecycle harness")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("start", help="Start capture and wait until it is running")
    stop_parser = subparsers.add_parser("stop", help="Stop the capture service")
    stop_parser.add_argument(
        "--wait",
        action="store_true",
        help="Poll until the service reports itself stopped",
    )
    subparsers.add_parser("status", help="Print the capture service state")
    subparsers.add_parser("refresh", help="Reinitialise capture and wait for propagation")
    subparsers.add_parser(
        "wait-snapshot", help="Wait for the connector snapshot to complete"
    )

    for name in _TABLE_COMMANDS:
        table_parser = subparsers.add_parser(name, help=f"{name} for a source table")
        table_parser.add_argument("table", help="Source table name")
        table_parser.add_argument(
            "--schema", default=None, help="Source schema (defaults to DB2_SCHEMA)"
        )

    return parser


def _run(harness: CaptureHarness, args: argparse.Namespace) -> int:
    command = args.command
    if command == "start":
        result = harness.start_capture()
        print(f"capture service {result.outcome.value} after {result.attempts} check(s)")
        return 0 if result.converged else 1
    if command == "stop":
        result = harness.stop_capture(wait=args.wait)
        if result is None:
            print("stop command issued")
            return 0
        print(f"capture service stop {result.outcome.value}")
        return 0 if result.converged else 1
    if command == "status":
        print(harness.capture_status().value)
        return 0
    if command == "refresh":
        return _report_outcome("refresh", harness.refresh_and_wait())
    if command == "wait-snapshot":
        result = harness.wait_for_snapshot_completed()
        print(f"snapshot {result.outcome.value} after {result.attempts} check(s)")
        return 0 if result.converged else 1
    if command == "enable-table":
        registration = harness.enable_table(args.table, args.schema)
        print(f"capture enabled for {registration.qualified_name}")
        return _report_outcome("propagation", harness.wait_for_propagation())
    if command == "disable-table":
        registration = harness.disable_table(args.table, args.schema)
        print(f"capture disabled for {registration.qualified_name}")
        return _report_outcome("propagation", harness.wait_for_propagation())
    if command == "activate":
        return _report_outcome("activate", harness.activate_table(args.table, args.schema))
    if command == "deactivate":
        return _report_outcome(
            "deactivate", harness.deactivate_table(args.table, args.schema)
        )
    if command == "cdc-table":
        name = harness.cdc_table_name(args.table, args.schema)
        if name is None:
            print(f"{args.table} is not registered for capture")
            return 1
        print(name)
        return 0
    raise ValueError(f"unknown command {command}")


def _report_outcome(label: str, outcome: WaitOutcome) -> int:
    print(f"{label} {outcome.value}")
    return 0 if outcome is WaitOutcome.ELAPSED else 1


def main(
    argv: Optional[list[str]] = None,
    *,
    harness_factory: Callable[..., CaptureHarness] = build_harness,
) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )

    try:
        harness = harness_factory(load_settings())
    except ValueError as exc:
        logger.error("invalid configuration: %s", exc)
        return 2
    previous = signal.getsignal(signal.SIGTERM)
    signal.signal(signal.SIGTERM, lambda *_args: harness.cancel())
    try:
        with harness:
            return _run(harness, args)
    except CaptureHarnessError as exc:
        logger.error("%s failed: %s", args.command, exc)
        return 1
    finally:
        signal.signal(signal.SIGTERM, previous)
