"""Voltage-dependent (ZIP) load model.

Splits each PQ bus load into constant-power, constant-current and
constant-impedance shares. With V in per-unit of nominal:

    S(V) = S0 × (f_P + f_I·V + f_Z·V²)
"""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np

from loadflow.core.errors import NetworkValidationError, ValidationErrorKind

_SUM_TOLERANCE = 1e-6


@dataclass(frozen=True)
class LoadModelMix:
    """Load composition as fractions of 1.0."""
    constant_power: float = 1.0
    constant_current: float = 0.0
    constant_impedance: float = 0.0

    @classmethod
    def from_percentages(
        cls,
        constant_power: float,
        constant_current: float,
        constant_impedance: float,
    ) -> LoadModelMix:
        """Build a mix from percentages that must sum to 100."""
        shares = (constant_power, constant_current, constant_impedance)
        if any(s < 0 or not math.isfinite(s) for s in shares):
            raise NetworkValidationError(
                ValidationErrorKind.INVALID_LOAD_MODEL,
                "load model percentages must be non-negative",
            )
        total = sum(shares)
        if abs(total - 100.0) > _SUM_TOLERANCE:
            raise NetworkValidationError(
                ValidationErrorKind.INVALID_LOAD_MODEL,
                f"load model percentages must sum to 100, got {total:g}",
            )
        return cls(
            constant_power=constant_power / 100.0,
            constant_current=constant_current / 100.0,
            constant_impedance=constant_impedance / 100.0,
        )

    def factor(self, v_pu: float) -> float:
        """Multiplier applied to the nominal load at voltage v_pu.

        Evaluated in numpy float64 so a runaway estimate overflows to inf
        instead of raising.
        """
        v = np.float64(v_pu)
        return self.constant_power + v * (self.constant_current + self.constant_impedance * v)

    def scale(self, s_nominal: complex, v_pu: float) -> complex:
        return s_nominal * self.factor(v_pu)


CONSTANT_POWER = LoadModelMix()
