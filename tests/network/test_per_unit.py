"""Tests for the PerUnitBase system base."""

from __future__ import annotations

import math

import pytest

from loadflow.network.per_unit import PerUnitBase


LV = PerUnitBase.from_study(system_voltage_v=400.0, base_kva=1000.0)
MV = PerUnitBase.from_study(system_voltage_v=11000.0, base_kva=10000.0)


class TestBases:

    def test_from_study_units(self):
        assert LV.v_base_kv == pytest.approx(0.4)
        assert LV.s_base_mva == pytest.approx(1.0)
        assert LV.s_base_kva == pytest.approx(1000.0)

    def test_z_base_lv(self):
        """400 V on a 1 MVA base gives 0.16 Ω."""
        assert LV.z_base_ohm == pytest.approx(0.16)

    def test_z_base_mv(self):
        assert MV.z_base_ohm == pytest.approx(12.1)

    def test_i_base_amps(self):
        assert MV.i_base_a == pytest.approx(10000.0 / (math.sqrt(3) * 11.0))


class TestConversions:

    def test_impedance(self):
        assert LV.impedance(complex(0.1, 0.15)) == pytest.approx(complex(0.625, 0.9375))

    def test_susceptance_scales_with_z_base(self):
        assert LV.susceptance(0.001) == pytest.approx(0.00016)

    def test_power_in_kw(self):
        """80 kW + j40 kvar on 1 MVA is 0.08 + j0.04 pu."""
        s = LV.power(80.0, 40.0)
        assert s == pytest.approx(complex(0.08, 0.04))
        assert LV.power_kw(s) == pytest.approx(complex(80.0, 40.0))

    def test_one_pu_current_in_amps(self):
        """1 pu on 400 V / 1 MVA is about 1443 A."""
        assert LV.current_a(1.0) == pytest.approx(1443.376, rel=1e-5)

    def test_voltage_in_volts(self):
        assert MV.voltage_v(0.95) == pytest.approx(10450.0)

    def test_network_exposes_its_base(self, radial_network):
        assert radial_network.per_unit == LV
