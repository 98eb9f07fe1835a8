"""Test-facing facade bringing the capture subsystem into a known state."""

from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Histogram

from .capture.commands import CaptureCommands
from .capture.registration import (
    TableRegistration,
    TableRegistrationManager,
    validate_identifier,
)
from .capture.service import CaptureServiceController, CaptureServiceState
from .capture.waiting import (
    ConvergenceWaiter,
    FixedDelayWaiter,
    Metronome,
    RetryBudget,
    WaitOutcome,
    WaitResult,
)
from .config import Settings
from .db import ServiceProxy, proxy_from_settings
from .errors import ConvergenceError, ConvergenceTimeout
from .metrics import MetricsEndpoint, PrometheusHttpEndpoint, RegistryMetricsEndpoint

logger = logging.getLogger(__name__)


class HarnessMetrics:
    """Counts control commands and wait outcomes on a private registry."""

    def __init__(
        self,
        namespace: str = "cdc_lifecycle",
        registry: Optional[CollectorRegistry] = None,
    ) -> None:
        self.registry = registry or CollectorRegistry()
        self._namespace = namespace
        self._commands = Counter(
            f"{namespace}_commands_total",
            "Capture control commands issued",
            ["command"],
            registry=self.registry,
        )
        self._waits = Counter(
            f"{namespace}_waits_total",
            "Capture waits by kind and outcome",
            ["kind", "outcome"],
            registry=self.registry,
        )
        self._wait_seconds = Histogram(
            f"{namespace}_wait_seconds",
            "Time spent in capture waits",
            ["kind"],
            registry=self.registry,
            buckets=(1.0, 5.0, 15.0, 30.0, 60.0, 120.0),
        )

    def inc_command(self, command: str) -> None:
        self._commands.labels(command=command).inc()

    def record_wait(self, kind: str, outcome: str, elapsed: Optional[float] = None) -> None:
        self._waits.labels(kind=kind, outcome=outcome).inc()
        if elapsed is not None:
            self._wait_seconds.labels(kind=kind).observe(elapsed)

    def command_count(self, command: str) -> float:
        value = self.registry.get_sample_value(
            f"{self._namespace}_commands_total", {"command": command}
        )
        return value or 0.0

    def wait_count(self, kind: str, outcome: str) -> float:
        value = self.registry.get_sample_value(
            f"{self._namespace}_waits_total", {"kind": kind, "outcome": outcome}
        )
        return value or 0.0

    def snapshot(self) -> Dict[str, float]:
        snapshot: Dict[str, float] = {}
        for family in self.registry.collect():
            for sample in family.samples:
                if not sample.name.endswith("_total"):
                    continue
                suffix = ".".join(sample.labels[key] for key in sorted(sample.labels))
                key = sample.name[len(self._namespace) + 1 :]
                snapshot[f"{key}.{suffix}" if suffix else key] = sample.value
        return snapshot


class CaptureHarness:
    """Drives the capture service and waits for each change to be observable.

    Table operations default to the configured source schema when ``schema``
    is omitted.
    """

    def __init__(
        self,
        *,
        proxy: ServiceProxy,
        controller: CaptureServiceController,
        registrations: TableRegistrationManager,
        propagation: FixedDelayWaiter,
        snapshot_waiter: ConvergenceWaiter,
        metrics_endpoint: MetricsEndpoint,
        metronome: Metronome,
        default_schema: str = "DB2INST1",
        snapshot_endpoint: str = "",
        snapshot_attribute: str = "SnapshotCompleted",
        metrics: Optional[HarnessMetrics] = None,
    ) -> None:
        self._proxy = proxy
        self._controller = controller
        self._registrations = registrations
        self._propagation = propagation
        self._snapshot_waiter = snapshot_waiter
        self._metrics_endpoint = metrics_endpoint
        self._metronome = metronome
        self._default_schema = default_schema
        self._snapshot_endpoint = snapshot_endpoint
        self._snapshot_attribute = snapshot_attribute
        self._metrics = metrics or HarnessMetrics()

    @property
    def metrics(self) -> HarnessMetrics:
        return self._metrics

    @property
    def controller(self) -> CaptureServiceController:
        return self._controller

    @property
    def registrations(self) -> TableRegistrationManager:
        return self._registrations

    # ------------------------------------------------------------------ Capture service
    def start_capture(self) -> WaitResult:
        self._metrics.inc_command("start")
        return self._observe("service_start", self._controller.start)

    def stop_capture(self, *, wait: bool = False) -> Optional[WaitResult]:
        self._metrics.inc_command("stop")
        self._controller.stop()
        if not wait:
            return None
        return self._observe("service_stop", self._controller.wait_until_stopped)

    def capture_status(self) -> CaptureServiceState:
        return self._controller.status()

    def refresh_and_wait(self) -> WaitOutcome:
        self._metrics.inc_command("reinit")
        self._controller.refresh()
        return self.wait_for_propagation()

    # ------------------------------------------------------------------ Tables
    def enable_table(self, table: str, schema: Optional[str] = None) -> TableRegistration:
        self._metrics.inc_command("add_table")
        return self._registrations.enable_table(self._schema(schema), table)

    def disable_table(self, table: str, schema: Optional[str] = None) -> TableRegistration:
        self._metrics.inc_command("remove_table")
        return self._registrations.disable_table(self._schema(schema), table)

    def activate_table(self, table: str, schema: Optional[str] = None) -> WaitOutcome:
        self._metrics.inc_command("activate")
        outcome = self._registrations.set_table_active(
            self._schema(schema), table, True
        )
        self._metrics.record_wait("propagation", outcome.value)
        return outcome

    def deactivate_table(self, table: str, schema: Optional[str] = None) -> WaitOutcome:
        self._metrics.inc_command("deactivate")
        outcome = self._registrations.set_table_active(
            self._schema(schema), table, False
        )
        self._metrics.record_wait("propagation", outcome.value)
        return outcome

    def cdc_table_name(self, table: str, schema: Optional[str] = None) -> Optional[str]:
        return self._registrations.cdc_table_name(self._schema(schema), table)

    def drop_all_tables(self, schema: Optional[str] = None) -> List[str]:
        """Disable capture for, then drop, every base table in ``schema``.

        Tables are dropped only once the removals have propagated; an
        interrupted propagation wait leaves every table in place and returns
        an empty list.
        """
        owner = validate_identifier("schema", self._schema(schema))
        logger.info("Attempting to drop all tables in %s (if exists)", owner)
        tables = self._proxy.query(
            self._controller.commands.list_tables,
            lambda rows: [str(row[0]).strip() for row in rows],
            (owner,),
        )
        if not tables:
            return []
        registrations = []
        for table in tables:
            logger.info("Disabling capture for table %s.%s", owner, table)
            registrations.append(self.disable_table(table, owner))
        if self.wait_for_propagation() is not WaitOutcome.ELAPSED:
            logger.warning("Not dropping tables in %s: propagation wait interrupted", owner)
            return []
        for registration in registrations:
            logger.warning("Dropping table %s", registration.qualified_name)
            self._proxy.execute(
                self._controller.commands.drop_table(registration.schema, registration.table)
            )
        return tables

    def _schema(self, schema: Optional[str]) -> str:
        return self._default_schema if schema is None else schema

    # ------------------------------------------------------------------ Waits
    def wait_for_propagation(self) -> WaitOutcome:
        outcome = self._propagation.wait()
        self._metrics.record_wait("propagation", outcome.value)
        return outcome

    def wait_for_snapshot_completed(self) -> WaitResult:
        return self._observe(
            "snapshot",
            lambda: self._snapshot_waiter.wait(
                lambda: self._metrics_endpoint.get_boolean_attribute(
                    self._snapshot_endpoint, self._snapshot_attribute
                ),
                description="snapshot completion",
            ),
        )

    def cancel(self) -> None:
        """Interrupt the current and any later wait until :meth:`reset` is called."""
        self._metronome.cancel()

    def reset(self) -> None:
        self._metronome.reset()

    def close(self) -> None:
        closer = getattr(self._metrics_endpoint, "close", None)
        if callable(closer):
            closer()

    def __enter__(self) -> "CaptureHarness":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _observe(self, kind: str, wait: Callable[[], WaitResult]) -> WaitResult:
        try:
            result = wait()
        except ConvergenceTimeout:
            self._metrics.record_wait(kind, "timeout")
            raise
        except ConvergenceError:
            self._metrics.record_wait(kind, "error")
            raise
        self._metrics.record_wait(kind, result.outcome.value, result.elapsed)
        return result


def build_harness(
    settings: Settings,
    *,
    proxy: Optional[ServiceProxy] = None,
    metrics_endpoint: Optional[MetricsEndpoint] = None,
    metronome: Optional[Metronome] = None,
    metrics: Optional[HarnessMetrics] = None,
) -> CaptureHarness:
    """Construct a capture harness using application settings."""

    metronome = metronome or Metronome()
    if proxy is None:
        proxy = proxy_from_settings(settings)
    if metrics_endpoint is None:
        if settings.metrics_url:
            metrics_endpoint = PrometheusHttpEndpoint(
                settings.metrics_url, timeout_seconds=settings.metrics_timeout_seconds
            )
        else:
            metrics_endpoint = RegistryMetricsEndpoint(REGISTRY)

    commands = CaptureCommands(
        capture_schema=settings.capture_schema,
        capture_server=settings.capture_server,
    )
    controller = CaptureServiceController(
        proxy,
        commands=commands,
        running_markers=settings.running_markers,
        poll_interval=settings.start_poll_interval_seconds,
        max_attempts=settings.start_max_attempts,
        metronome=metronome,
    )
    propagation = FixedDelayWaiter(settings.propagation_delay_seconds, metronome)
    snapshot_waiter = ConvergenceWaiter(
        interval=settings.snapshot_poll_interval_seconds,
        budget=RetryBudget(max_attempts=settings.snapshot_max_attempts),
        metronome=metronome,
        description="snapshot completion",
    )
    return CaptureHarness(
        proxy=proxy,
        controller=controller,
        registrations=TableRegistrationManager(proxy, controller, propagation),
        propagation=propagation,
        snapshot_waiter=snapshot_waiter,
        metrics_endpoint=metrics_endpoint,
        metronome=metronome,
        default_schema=settings.db_schema,
        snapshot_endpoint=settings.snapshot_endpoint,
        snapshot_attribute=settings.snapshot_attribute,
        metrics=metrics,
    )


__all__ = ["CaptureHarness", "HarnessMetrics", "build_harness"]
