"""Bounded polling and fixed-delay waits used after capture control changes.

Every wait sleeps through a :class:`Metronome` so a test runner can cancel it
from another thread.  Tests swap the metronome for one driven by a manual
clock, which keeps the polling discipline deterministic.
"""

from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass
from threading import Event
from typing import Callable, Optional, Tuple, Type

from ..errors import ConvergenceError, ConvergenceTimeout
from ..metrics import EndpointNotFound

logger = logging.getLogger(__name__)

ConvergenceCondition = Callable[[], object]


class WaitOutcome(str, enum.Enum):
    """How a wait ended when it did not raise."""

    CONVERGED = "converged"
    ELAPSED = "elapsed"
    INTERRUPTED = "interrupted"


@dataclass(frozen=True)
class WaitResult:
    outcome: WaitOutcome
    attempts: int
    elapsed: float

    @property
    def converged(self) -> bool:
        return self.outcome is WaitOutcome.CONVERGED


class Metronome:
    """Steady, interruptible pause primitive shared by all waits."""

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        event: Optional[Event] = None,
    ) -> None:
        self._clock = clock
        self._event = event or Event()

    def now(self) -> float:
        return self._clock()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def pause(self, seconds: float) -> bool:
        """Sleep for ``seconds``; return ``False`` if cancelled instead."""
        if seconds <= 0:
            return not self._event.is_set()
        return not self._event.wait(seconds)

    def cancel(self) -> None:
        self._event.set()

    def reset(self) -> None:
        self._event.clear()


class RetryBudget:
    """Attempt counter bounded by a maximum attempt count and/or duration."""

    def __init__(
        self,
        max_attempts: Optional[int] = None,
        max_duration: Optional[float] = None,
    ) -> None:
        if max_attempts is None and max_duration is None:
            raise ValueError("a retry budget needs max_attempts or max_duration")
        if max_attempts is not None and max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if max_duration is not None and max_duration <= 0:
            raise ValueError("max_duration must be positive")
        self.max_attempts = max_attempts
        self.max_duration = max_duration
        self._attempts = 0
        self._started_at = 0.0

    @property
    def attempts(self) -> int:
        return self._attempts

    def start(self, now: float) -> None:
        self._attempts = 0
        self._started_at = now

    def consume(self) -> int:
        self._attempts += 1
        return self._attempts

    def elapsed(self, now: float) -> float:
        return max(0.0, now - self._started_at)

    def remaining(self, now: float) -> Optional[float]:
        """Seconds left before the duration bound, or ``None`` if unbounded."""
        if self.max_duration is None:
            return None
        return max(0.0, self.max_duration - self.elapsed(now))

    def exhausted(self, now: float) -> bool:
        if self.max_attempts is not None and self._attempts >= self.max_attempts:
            return True
        if self.max_duration is not None and self.elapsed(now) >= self.max_duration:
            return True
        return False


class ConvergenceWaiter:
    """Polls a condition until it holds, the budget runs out, or it errors."""

    def __init__(
        self,
        *,
        interval: float,
        budget: RetryBudget,
        metronome: Optional[Metronome] = None,
        transient: Tuple[Type[BaseException], ...] = (EndpointNotFound,),
        description: str = "condition",
    ) -> None:
        if interval < 0:
            raise ValueError("interval must not be negative")
        self.interval = interval
        self.budget = budget
        self.metronome = metronome or Metronome()
        self._transient = transient
        self._description = description

    def wait(
        self,
        condition: ConvergenceCondition,
        *,
        description: Optional[str] = None,
    ) -> WaitResult:
        label = description or self._description
        budget = self.budget
        started = self.metronome.now()
        budget.start(started)
        while True:
            if self.metronome.cancelled:
                return self._interrupted(label, started)
            attempt = budget.consume()
            try:
                converged = bool(condition())
            except self._transient as exc:
                logger.debug("%s not observable yet (attempt %d): %s", label, attempt, exc)
                converged = False
            except Exception as exc:
                raise ConvergenceError(
                    label, attempts=attempt, elapsed=budget.elapsed(self.metronome.now())
                ) from exc
            now = self.metronome.now()
            if converged:
                logger.debug("%s converged after %d attempt(s)", label, attempt)
                return WaitResult(
                    outcome=WaitOutcome.CONVERGED,
                    attempts=attempt,
                    elapsed=budget.elapsed(now),
                )
            if budget.exhausted(now):
                logger.warning(
                    "%s still not converged after %d attempt(s)", label, attempt
                )
                raise ConvergenceTimeout(
                    label, attempts=attempt, elapsed=budget.elapsed(now)
                )
            pause = self.interval
            remaining = budget.remaining(now)
            if remaining is not None:
                pause = min(pause, remaining)
            if not self.metronome.pause(pause):
                return self._interrupted(label, started)

    def _interrupted(self, label: str, started: float) -> WaitResult:
        logger.info("wait for %s interrupted", label)
        return WaitResult(
            outcome=WaitOutcome.INTERRUPTED,
            attempts=self.budget.attempts,
            elapsed=max(0.0, self.metronome.now() - started),
        )


class FixedDelayWaiter:
    """Unconditional pause used where no completion signal can be queried."""

    def __init__(self, delay_seconds: float, metronome: Optional[Metronome] = None) -> None:
        if delay_seconds < 0:
            raise ValueError("delay_seconds must not be negative")
        self.delay_seconds = delay_seconds
        self.metronome = metronome or Metronome()

    def wait(self) -> WaitOutcome:
        logger.debug("waiting %.1fs for capture changes to propagate", self.delay_seconds)
        if self.metronome.pause(self.delay_seconds):
            return WaitOutcome.ELAPSED
        logger.info("propagation wait interrupted; capture state is indeterminate")
        return WaitOutcome.INTERRUPTED


__all__ = [
    "ConvergenceCondition",
    "ConvergenceWaiter",
    "FixedDelayWaiter",
    "Metronome",
    "RetryBudget",
    "WaitOutcome",
    "WaitResult",
]
