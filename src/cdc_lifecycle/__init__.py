"""Lifecycle harness for the Db2 ASN change-data-capture service."""

from .capture import (
    ActivationState,
    CaptureServiceController,
    CaptureServiceState,
    ConvergenceWaiter,
    FixedDelayWaiter,
    Metronome,
    RetryBudget,
    TableRegistration,
    TableRegistrationManager,
    WaitOutcome,
    WaitResult,
)
from .errors import (
    CaptureHarnessError,
    CommandError,
    ConvergenceError,
    ConvergenceTimeout,
    InvalidIdentifier,
    ServiceStartTimeout,
)
from .metrics import EndpointNotFound


def main() -> None:
    """Entrypoint proxy that defers importing the CLI until needed."""

    import sys

    from .cli import main as _cli_main

    sys.exit(_cli_main())


__all__ = [
    "ActivationState",
    "CaptureHarnessError",
    "CaptureServiceController",
    "CaptureServiceState",
    "CommandError",
    "ConvergenceError",
    "ConvergenceTimeout",
    "ConvergenceWaiter",
    "EndpointNotFound",
    "FixedDelayWaiter",
    "InvalidIdentifier",
    "Metronome",
    "RetryBudget",
    "ServiceStartTimeout",
    "TableRegistration",
    "TableRegistrationManager",
    "WaitOutcome",
    "WaitResult",
    "main",
]
