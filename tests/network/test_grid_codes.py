"""Tests for voltage/thermal compliance profiles."""

from __future__ import annotations

import pytest

from loadflow.network.grid_codes import (
    ESQCR_UK,
    IEC_60038,
    IEEE_1547,
    PROFILES,
    VoltageLimits,
    build_custom_profile,
    get_profile,
    list_profiles,
    profile_from_band,
)


class TestGridCodes:
    """Tests for grid code compliance profiles."""

    def test_iec_default_band(self):
        """IEC 60038 default is ±10 % in both normal and contingency states."""
        assert IEC_60038.voltage.normal_min == 0.90
        assert IEC_60038.voltage.normal_max == 1.10
        assert IEC_60038.voltage.contingency_min == 0.90

    def test_esqcr_asymmetric_band(self):
        assert ESQCR_UK.voltage.normal_min == 0.94
        assert ESQCR_UK.voltage.normal_max == 1.10

    def test_ieee_1547_contingency_wider_than_normal(self):
        v = IEEE_1547.voltage
        assert v.contingency_min < v.normal_min
        assert v.contingency_max > v.normal_max

    def test_voltage_check_normal_pass(self):
        """Voltage on the limit is compliant."""
        vl = VoltageLimits(normal_min=0.95, normal_max=1.05)
        assert vl.check_normal(1.00) is None
        assert vl.check_normal(0.95) is None
        assert vl.check_normal(1.05) is None

    def test_voltage_check_normal_fail(self):
        vl = VoltageLimits(normal_min=0.95, normal_max=1.05)
        assert vl.check_normal(0.90) == "low"
        assert vl.check_normal(1.10) == "high"

    def test_contingency_band(self):
        vl = IEEE_1547.voltage
        assert vl.check_normal(0.90) == "low"
        assert vl.check_contingency(0.90) is None
        assert vl.limit_for("low", contingency=True) == 0.88
        assert vl.limit_for("high") == 1.05

    def test_get_profile(self):
        assert get_profile("esqcr_uk") is ESQCR_UK

    def test_get_profile_invalid(self):
        """Unknown profile name raises KeyError."""
        with pytest.raises(KeyError, match="Unknown grid code profile"):
            get_profile("nonexistent")

    def test_list_profiles(self):
        keys = [p["key"] for p in list_profiles()]
        assert keys == list(PROFILES)
        assert "iec_60038" in keys

    def test_profile_from_band(self):
        profile = profile_from_band(5)
        assert profile.voltage.normal_min == pytest.approx(0.95)
        assert profile.voltage.normal_max == pytest.approx(1.05)
        assert profile.voltage.contingency_min == pytest.approx(0.95)

    def test_profile_from_band_rejects_zero(self):
        with pytest.raises(ValueError, match="positive"):
            profile_from_band(0)

    def test_build_custom_profile(self):
        profile = build_custom_profile({
            "name": "Site",
            "voltage_limits": {"normal": [0.94, 1.06]},
            "thermal_limit_pct": 90,
        })
        assert profile.name == "Site"
        # Contingency band falls back to the normal band
        assert profile.voltage.contingency_min == 0.94
        assert profile.thermal_limit_pct == 90

    def test_to_dict(self):
        data = IEC_60038.to_dict()
        assert data["voltage_limits"]["normal"] == [0.90, 1.10]
        assert data["thermal_limit_pct"] == 100.0
