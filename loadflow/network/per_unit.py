"""Per-unit base for a single-voltage-level network.

The whole network shares one base taken from the study input:

  V_base = systemVoltage / 1000       (kV, line-to-line)
  S_base = baseKVA / 1000             (MVA, three-phase)
  Z_base = V_base² / S_base           (Ω)
  I_base = 1000·S_base / (√3·V_base)  (A)

Powers enter and leave the engine in kW / kvar, impedances in Ω,
susceptances in S and currents in A.
"""

from __future__ import annotations

import math
from dataclasses import dataclass


@dataclass(frozen=True)
class PerUnitBase:
    v_base_kv: float
    s_base_mva: float

    @classmethod
    def from_study(cls, system_voltage_v: float, base_kva: float) -> PerUnitBase:
        return cls(v_base_kv=system_voltage_v / 1000.0, s_base_mva=base_kva / 1000.0)

    @property
    def z_base_ohm(self) -> float:
        return self.v_base_kv ** 2 / self.s_base_mva

    @property
    def i_base_a(self) -> float:
        return self.s_base_mva * 1000.0 / (math.sqrt(3) * self.v_base_kv)

    @property
    def s_base_kva(self) -> float:
        return self.s_base_mva * 1000.0

    def impedance(self, z_ohm: complex) -> complex:
        return z_ohm / self.z_base_ohm

    def susceptance(self, b_siemens: float) -> float:
        return b_siemens * self.z_base_ohm

    def power(self, p_kw: float, q_kvar: float) -> complex:
        """kW + j·kvar to per-unit."""
        return complex(p_kw, q_kvar) / self.s_base_kva

    def power_kw(self, s_pu: complex) -> complex:
        """Per-unit to kW + j·kvar."""
        return complex(s_pu) * self.s_base_kva

    def current_a(self, i_pu: float) -> float:
        return i_pu * self.i_base_a

    def voltage_v(self, v_pu: float) -> float:
        return v_pu * self.v_base_kv * 1000.0
