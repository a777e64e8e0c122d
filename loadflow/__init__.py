"""Gauss-Seidel load flow and N-1 contingency engine."""

from .calculator import calculate
from .core.errors import (
    CalculationCancelled,
    LoadFlowError,
    NetworkSplitError,
    NetworkValidationError,
    ValidationErrorKind,
)
from .schemas.load_flow import LoadFlowRequest, LoadFlowResponse

__all__ = [
    "calculate",
    "LoadFlowRequest",
    "LoadFlowResponse",
    "LoadFlowError",
    "NetworkValidationError",
    "NetworkSplitError",
    "CalculationCancelled",
    "ValidationErrorKind",
]
