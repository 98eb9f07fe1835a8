"""Controller for the database-wide ASN capture service."""

from __future__ import annotations

import enum
import logging
from typing import Iterable, Optional, Sequence

from ..db import Row, ServiceProxy
from ..errors import (
    CommandError,
    ConvergenceError,
    ConvergenceTimeout,
    ServiceStartTimeout,
)
from .commands import CaptureCommands
from .waiting import ConvergenceWaiter, Metronome, RetryBudget, WaitResult

logger = logging.getLogger(__name__)

_STOPPED_HINTS = ("not running", "not started", "stopped", "is not active")
_STARTING_HINTS = ("start", "initializ")


class CaptureServiceState(str, enum.Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    UNKNOWN = "unknown"


def first_value(rows: Sequence[Row]) -> Optional[str]:
    """Return the first column of the first row as text (CLOBs included)."""
    if not rows:
        return None
    value = rows[0][0]
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")
    return str(value)


def classify_status(text: Optional[str], running_markers: Iterable[str]) -> CaptureServiceState:
    if text is None or not text.strip():
        return CaptureServiceState.STARTING
    lowered = text.lower()
    if any(marker.lower() in lowered for marker in running_markers):
        return CaptureServiceState.RUNNING
    if any(hint in lowered for hint in _STOPPED_HINTS):
        return CaptureServiceState.STOPPED
    if any(hint in lowered for hint in _STARTING_HINTS):
        return CaptureServiceState.STARTING
    return CaptureServiceState.UNKNOWN


class CaptureServiceController:
    """Starts, stops, refreshes and inspects the capture service.

    ``start`` blocks until the service reports itself running; ``stop`` and
    ``refresh`` only issue their command and leave waiting to the caller.
    """

    def __init__(
        self,
        proxy: ServiceProxy,
        *,
        commands: Optional[CaptureCommands] = None,
        running_markers: Iterable[str] = ("is actively running", "is doing work"),
        poll_interval: float = 1.0,
        max_attempts: int = 30,
        metronome: Optional[Metronome] = None,
    ) -> None:
        self._proxy = proxy
        self._commands = commands or CaptureCommands()
        self._running_markers = tuple(running_markers)
        if not self._running_markers:
            raise ValueError("at least one running marker is required")
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._metronome = metronome or Metronome()
        self._poll_interval = poll_interval
        self._max_attempts = max_attempts

    @property
    def commands(self) -> CaptureCommands:
        return self._commands

    def _waiter(self, description: str) -> ConvergenceWaiter:
        return ConvergenceWaiter(
            interval=self._poll_interval,
            budget=RetryBudget(max_attempts=self._max_attempts),
            metronome=self._metronome,
            transient=(),
            description=description,
        )

    def status_text(self) -> Optional[str]:
        return self._proxy.query(self._commands.status, first_value)

    def status(self) -> CaptureServiceState:
        text = self.status_text()
        state = classify_status(text, self._running_markers)
        logger.debug("Checking capture service status, got %r (%s)", text, state.value)
        return state

    def start(self) -> WaitResult:
        logger.info("starting capture service %s", self._commands.capture_server)
        try:
            self._proxy.execute(self._commands.start)
        except CommandError as exc:
            raise ServiceStartTimeout(
                "capture service start", attempts=0, elapsed=0.0
            ) from exc
        try:
            result = self._waiter("capture service start").wait(
                lambda: self.status() is CaptureServiceState.RUNNING
            )
        except (ConvergenceTimeout, ConvergenceError) as exc:
            raise ServiceStartTimeout(
                "capture service start", attempts=exc.attempts, elapsed=exc.elapsed
            ) from exc
        if result.converged:
            logger.info(
                "capture service %s running after %d status check(s)",
                self._commands.capture_server,
                result.attempts,
            )
        return result

    def stop(self) -> None:
        logger.info("stopping capture service %s", self._commands.capture_server)
        self._proxy.execute(self._commands.stop)

    def wait_until_stopped(self) -> WaitResult:
        return self._waiter("capture service stop").wait(
            lambda: self.status() is CaptureServiceState.STOPPED
        )

    def refresh(self) -> None:
        logger.debug("reinitialising capture service %s", self._commands.capture_server)
        self._proxy.execute(self._commands.reinit)


__all__ = [
    "CaptureServiceController",
    "CaptureServiceState",
    "classify_status",
    "first_value",
]
