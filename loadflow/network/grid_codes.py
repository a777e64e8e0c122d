"""Voltage and thermal compliance profiles.

A profile pairs two voltage bands with a branch thermal limit. The base
case is judged against the normal band; N-1 contingency cases against the
(usually wider) contingency band and the thermal limit.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

Band = tuple[float, float]


def _classify(v_pu: float, band: Band) -> str | None:
    low, high = band
    if v_pu < low:
        return "low"
    if v_pu > high:
        return "high"
    return None


@dataclass(frozen=True)
class VoltageLimits:
    """Per-unit voltage bands, limits inclusive."""
    normal_min: float = 0.90
    normal_max: float = 1.10
    contingency_min: float = 0.90
    contingency_max: float = 1.10

    @property
    def normal_band(self) -> Band:
        return (self.normal_min, self.normal_max)

    @property
    def contingency_band(self) -> Band:
        return (self.contingency_min, self.contingency_max)

    def check_normal(self, v_pu: float) -> str | None:
        """Violation ("low"/"high") against the normal band, else None."""
        return _classify(v_pu, self.normal_band)

    def check_contingency(self, v_pu: float) -> str | None:
        """Violation ("low"/"high") against the post-outage band, else None."""
        return _classify(v_pu, self.contingency_band)

    def limit_for(self, violation: str, contingency: bool = False) -> float:
        low, high = self.contingency_band if contingency else self.normal_band
        return low if violation == "low" else high


@dataclass(frozen=True)
class GridCodeProfile:
    """Compliance profile applied to load flow and N-1 results.

    Attributes:
        name: short label reported with contingency results
        standard: the document the limits come from
        voltage: normal and contingency voltage bands
        thermal_limit_pct: branch loading above this % of rating is a violation
        metadata: free-form notes, excluded from equality
    """
    name: str
    standard: str
    voltage: VoltageLimits = field(default_factory=VoltageLimits)
    thermal_limit_pct: float = 100.0
    metadata: dict[str, Any] = field(default_factory=dict, hash=False, compare=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "standard": self.standard,
            "voltage_limits": {
                "normal": list(self.voltage.normal_band),
                "contingency": list(self.voltage.contingency_band),
            },
            "thermal_limit_pct": self.thermal_limit_pct,
            "metadata": dict(self.metadata),
        }


def _band_limits(normal: Band, contingency: Band | None = None) -> VoltageLimits:
    contingency = contingency or normal
    return VoltageLimits(
        normal_min=normal[0],
        normal_max=normal[1],
        contingency_min=contingency[0],
        contingency_max=contingency[1],
    )


# ======================================================================
# Built-in profiles
# ======================================================================

# ±10 % of nominal in every state; the default for calculate()
IEC_60038 = GridCodeProfile(
    name="IEC 60038",
    standard="IEC 60038 Standard Voltages",
    voltage=_band_limits((0.90, 1.10)),
)

# LV supply 230 V +10 % / -6 %, ±10 % tolerated after an outage
ESQCR_UK = GridCodeProfile(
    name="ESQCR (UK)",
    standard="Electricity Safety, Quality and Continuity Regulations 2002",
    voltage=_band_limits((0.94, 1.10), (0.90, 1.10)),
    metadata={"region": "Great Britain"},
)

# Range A service voltage, widened to the DER ride-through band post-outage
IEEE_1547 = GridCodeProfile(
    name="IEEE 1547",
    standard="IEEE 1547-2018 / ANSI C84.1 Range A",
    voltage=_band_limits((0.95, 1.05), (0.88, 1.10)),
    metadata={"region": "North America", "category": "II"},
)

PROFILES: dict[str, GridCodeProfile] = {
    "iec_60038": IEC_60038,
    "esqcr_uk": ESQCR_UK,
    "ieee_1547": IEEE_1547,
}


def get_profile(key: str) -> GridCodeProfile:
    """Look up a built-in profile.

    Raises:
        KeyError: for an unknown key, listing the valid ones
    """
    try:
        return PROFILES[key]
    except KeyError:
        known = ", ".join(sorted(PROFILES))
        raise KeyError(f"Unknown grid code profile '{key}'. Available: {known}") from None


def list_profiles() -> list[dict[str, Any]]:
    return [{"key": key, **profile.to_dict()} for key, profile in PROFILES.items()]


def profile_from_band(band_pct: float, thermal_limit_pct: float = 100.0) -> GridCodeProfile:
    """Symmetric ±band_pct profile used for both normal and contingency checks."""
    if band_pct <= 0:
        raise ValueError("Compliance band must be positive")
    spread = band_pct / 100.0
    return GridCodeProfile(
        name=f"±{band_pct:g}%",
        standard="Custom band",
        voltage=_band_limits((1.0 - spread, 1.0 + spread)),
        thermal_limit_pct=thermal_limit_pct,
    )


def build_custom_profile(config: dict[str, Any]) -> GridCodeProfile:
    """Build a profile from a dict.

    Recognised keys: ``name``, ``standard``, ``voltage_limits`` with
    ``normal``/``contingency`` as [min, max] pairs, ``thermal_limit_pct``
    and ``metadata``. Missing voltage bands fall back to IEC 60038; a
    missing contingency band repeats the normal one.
    """
    limits = config.get("voltage_limits") or {}
    normal = tuple(limits.get("normal", IEC_60038.voltage.normal_band))
    contingency = limits.get("contingency")
    return GridCodeProfile(
        name=config.get("name", "Custom"),
        standard=config.get("standard", "Custom"),
        voltage=_band_limits(normal, tuple(contingency) if contingency else None),
        thermal_limit_pct=float(config.get("thermal_limit_pct", 100.0)),
        metadata=dict(config.get("metadata") or {}),
    )
