"""Capture service control, table registration, and convergence waits."""

from .commands import CaptureCommands
from .registration import (
    ActivationState,
    TableRegistration,
    TableRegistrationManager,
    validate_identifier,
)
from .service import CaptureServiceController, CaptureServiceState, classify_status
from .waiting import (
    ConvergenceWaiter,
    FixedDelayWaiter,
    Metronome,
    RetryBudget,
    WaitOutcome,
    WaitResult,
)

__all__ = [
    "ActivationState",
    "CaptureCommands",
    "CaptureServiceController",
    "CaptureServiceState",
    "ConvergenceWaiter",
    "FixedDelayWaiter",
    "Metronome",
    "RetryBudget",
    "TableRegistration",
    "TableRegistrationManager",
    "WaitOutcome",
    "WaitResult",
    "classify_status",
    "validate_identifier",
]
