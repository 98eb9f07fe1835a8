"""Error taxonomy shared by the capture lifecycle controllers."""

from __future__ import annotations

from typing import Optional


class CaptureHarnessError(RuntimeError):
    """Base class for every failure surfaced by the harness."""


class CommandError(CaptureHarnessError):
    """Raised when the database rejects or fails to run a control statement."""

    def __init__(self, message: str, *, command: Optional[str] = None) -> None:
        super().__init__(message)
        self.command = command


class InvalidIdentifier(CaptureHarnessError, ValueError):
    """Raised when a schema or table name cannot be substituted into a command."""

    def __init__(self, kind: str, value: object) -> None:
        super().__init__(f"invalid {kind} identifier: {value!r}")
        self.kind = kind
        self.value = value


class ConvergenceError(CaptureHarnessError):
    """Raised when a condition evaluator fails for a non-transient reason."""

    def __init__(self, description: str, *, attempts: int, elapsed: float) -> None:
        super().__init__(
            f"{description} failed after {attempts} attempt(s) in {elapsed:.2f}s"
        )
        self.description = description
        self.attempts = attempts
        self.elapsed = elapsed


class ConvergenceTimeout(CaptureHarnessError):
    """Raised when a condition never became true within its retry budget."""

    def __init__(self, description: str, *, attempts: int, elapsed: float) -> None:
        super().__init__(
            f"{description} did not converge after {attempts} attempt(s) "
            f"in {elapsed:.2f}s"
        )
        self.description = description
        self.attempts = attempts
        self.elapsed = elapsed


class ServiceStartTimeout(ConvergenceTimeout):
    """Raised when the capture service does not report itself running in time."""


__all__ = [
    "CaptureHarnessError",
    "CommandError",
    "ConvergenceError",
    "ConvergenceTimeout",
    "InvalidIdentifier",
    "ServiceStartTimeout",
]
