"""Exception types raised by the load flow engine.

Only malformed input is raised. A solve that fails to converge is a
normal result value and never surfaces here.
"""

from __future__ import annotations

from enum import Enum


class ValidationErrorKind(str, Enum):
    INSUFFICIENT_BUSES = "InsufficientBuses"
    SLACK_BUS_COUNT = "SlackBusCount"
    UNKNOWN_BUS = "UnknownBus"
    INVALID_IMPEDANCE = "InvalidImpedance"
    NETWORK_SPLIT = "NetworkSplit"
    DUPLICATE_BUS = "DuplicateBus"
    DUPLICATE_BRANCH = "DuplicateBranch"
    INVALID_BRANCH = "InvalidBranch"
    MISSING_GENERATION = "MissingGeneration"
    INVALID_SYSTEM_DATA = "InvalidSystemData"
    INVALID_LOAD_MODEL = "InvalidLoadModel"
    INVALID_CONVERGENCE_CRITERIA = "InvalidConvergenceCriteria"


class LoadFlowError(Exception):
    """Base class for load flow engine errors."""


class NetworkValidationError(LoadFlowError, ValueError):
    """Input network rejected before any computation.

    Attributes:
        kind: which validation rule failed
    """

    def __init__(self, kind: ValidationErrorKind, message: str) -> None:
        super().__init__(f"{kind.value}: {message}")
        self.kind = kind
        self.message = message


class NetworkSplitError(NetworkValidationError):
    """Admittance matrix is singular because part of the network is islanded."""

    def __init__(self, isolated_buses: list[str]) -> None:
        names = ", ".join(isolated_buses)
        super().__init__(
            ValidationErrorKind.NETWORK_SPLIT,
            f"buses not connected to the slack bus: {names}",
        )
        self.isolated_buses = isolated_buses


class CalculationCancelled(LoadFlowError):
    """Raised when a caller-supplied cancel check asks a sweep to stop."""
