"""Network topology model and input validation.

Holds the bus/branch graph in per-unit on a single system base and
rejects malformed input before any numerical work is attempted. A
NetworkModel is immutable once built; contingency variants are derived
copies.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from enum import Enum
from functools import cached_property
from typing import Any

from loadflow.core.errors import NetworkValidationError, ValidationErrorKind
from loadflow.network.per_unit import PerUnitBase


class BusType(str, Enum):
    SLACK = "slack"
    PV = "pv"
    PQ = "pq"


@dataclass(frozen=True)
class BusData:
    """Single bus definition."""
    index: int
    bus_id: str
    bus_type: BusType
    # Initial estimate (PQ) or set-point (PV, slack), per-unit on system base
    v_setpoint_pu: float = 1.0
    theta_deg: float = 0.0
    # Scheduled powers, per-unit on system base
    p_gen_pu: float = 0.0
    q_gen_pu: float = 0.0
    p_load_pu: float = 0.0
    q_load_pu: float = 0.0
    has_generation: bool = False

    @property
    def s_gen_pu(self) -> complex:
        return complex(self.p_gen_pu, self.q_gen_pu)

    @property
    def s_load_pu(self) -> complex:
        return complex(self.p_load_pu, self.q_load_pu)


@dataclass(frozen=True)
class BranchData:
    """Single branch (line, cable or transformer)."""
    index: int
    branch_id: str
    from_bus: int  # bus index
    to_bus: int    # bus index
    z_pu: complex
    # Total charging susceptance, split half to each end
    b_pu: float = 0.0
    # Off-nominal tap at the from-end, including phase shift
    tap: complex = 1.0 + 0j
    rating_mva: float | None = None
    in_service: bool = True


@dataclass(frozen=True)
class NetworkModel:
    """Validated network on a single voltage/power base."""
    buses: tuple[BusData, ...]
    branches: tuple[BranchData, ...]
    base_kv: float
    s_base_mva: float
    frequency_hz: float = 50.0
    system_type: str = "radial"

    @property
    def n_bus(self) -> int:
        return len(self.buses)

    @property
    def per_unit(self) -> PerUnitBase:
        return PerUnitBase(v_base_kv=self.base_kv, s_base_mva=self.s_base_mva)

    @cached_property
    def slack_bus(self) -> int:
        """Index of the slack bus."""
        for bus in self.buses:
            if bus.bus_type == BusType.SLACK:
                return bus.index
        raise ValueError("No slack bus defined in network")

    @property
    def pv_buses(self) -> list[int]:
        return [b.index for b in self.buses if b.bus_type == BusType.PV]

    @property
    def pq_buses(self) -> list[int]:
        return [b.index for b in self.buses if b.bus_type == BusType.PQ]

    @property
    def in_service_branches(self) -> list[BranchData]:
        return [br for br in self.branches if br.in_service]

    @cached_property
    def _bus_lookup(self) -> dict[str, int]:
        return {bus.bus_id: bus.index for bus in self.buses}

    def bus_index(self, bus_id: str) -> int:
        try:
            return self._bus_lookup[bus_id]
        except KeyError:
            raise ValueError(f"Bus '{bus_id}' not found") from None

    def get_branch(self, branch_id: str) -> BranchData:
        for br in self.branches:
            if br.branch_id == branch_id:
                return br
        raise ValueError(f"Branch '{branch_id}' not found")

    def without_branch(self, branch_id: str) -> NetworkModel:
        """Copy of the network with one branch taken out of service.

        Bus and branch indices are unchanged, so solutions of the base
        case can warm-start the reduced case directly.
        """
        target = self.get_branch(branch_id)
        branches = tuple(
            replace(br, in_service=False) if br.index == target.index else br
            for br in self.branches
        )
        return replace(self, branches=branches)


def _fail(kind: ValidationErrorKind, message: str) -> NetworkValidationError:
    return NetworkValidationError(kind, message)


def _power_pair(cfg: dict[str, Any] | None) -> tuple[float, float]:
    if not cfg:
        return 0.0, 0.0
    p = cfg.get("p", cfg.get("P", 0.0)) or 0.0
    q = cfg.get("q", cfg.get("Q", 0.0)) or 0.0
    return float(p), float(q)


def _parse_bus_type(value: Any, bus_id: str) -> BusType:
    raw = value.value if isinstance(value, BusType) else str(value).lower()
    try:
        return BusType(raw)
    except ValueError:
        raise _fail(
            ValidationErrorKind.INVALID_SYSTEM_DATA,
            f"bus '{bus_id}' has unknown type '{value}'",
        ) from None


def build_network_from_config(
    buses_config: list[dict[str, Any]],
    branches_config: list[dict[str, Any]],
    system_voltage_v: float,
    base_kva: float,
    frequency_hz: float = 50.0,
    system_type: str = "radial",
) -> NetworkModel:
    """Validate raw bus/branch dicts and build a NetworkModel.

    Args:
        buses_config: list of bus dicts with keys:
            bus_id, bus_type, voltage (V), angle (deg),
            power_generation / power_load ({p: kW, q: kvar}, optional)
        branches_config: list of branch dicts with keys:
            branch_id, from_bus, to_bus, resistance (Ω), reactance (Ω),
            susceptance (S, optional), rating_mva (optional, 0 = unrated),
            tap_ratio, phase_shift (deg), in_service (optional)
        system_voltage_v: nominal line voltage, used as the voltage base
        base_kva: system base power

    Raises:
        NetworkValidationError: with the kind of the first rule violated.
            Nothing is returned for invalid input.
    """
    if len(buses_config) < 2:
        raise _fail(
            ValidationErrorKind.INSUFFICIENT_BUSES,
            f"at least 2 buses required, got {len(buses_config)}",
        )

    seen: set[str] = set()
    for bc in buses_config:
        bus_id = str(bc["bus_id"])
        if bus_id in seen:
            raise _fail(ValidationErrorKind.DUPLICATE_BUS, f"bus id '{bus_id}' is repeated")
        seen.add(bus_id)

    bus_types = [_parse_bus_type(bc["bus_type"], str(bc["bus_id"])) for bc in buses_config]
    slack_count = sum(1 for t in bus_types if t == BusType.SLACK)
    if slack_count != 1:
        raise _fail(
            ValidationErrorKind.SLACK_BUS_COUNT,
            f"exactly one slack bus required, found {slack_count}",
        )

    if not (system_voltage_v > 0 and math.isfinite(system_voltage_v)):
        raise _fail(ValidationErrorKind.INVALID_SYSTEM_DATA, "system voltage must be positive")
    if not (base_kva > 0 and math.isfinite(base_kva)):
        raise _fail(ValidationErrorKind.INVALID_SYSTEM_DATA, "base kVA must be positive")

    base = PerUnitBase.from_study(system_voltage_v, base_kva)

    buses: list[BusData] = []
    for i, (bc, bus_type) in enumerate(zip(buses_config, bus_types)):
        bus_id = str(bc["bus_id"])
        generation = bc.get("power_generation")
        if bus_type == BusType.PV and generation is None:
            raise _fail(
                ValidationErrorKind.MISSING_GENERATION,
                f"PV bus '{bus_id}' requires scheduled generation",
            )
        voltage_v = float(bc.get("voltage") or 0.0)
        if bus_type != BusType.PQ and voltage_v <= 0:
            raise _fail(
                ValidationErrorKind.INVALID_SYSTEM_DATA,
                f"{bus_type.value} bus '{bus_id}' needs a positive voltage set-point",
            )

        s_gen = base.power(*_power_pair(generation))
        s_load = base.power(*_power_pair(bc.get("power_load")))
        buses.append(BusData(
            index=i,
            bus_id=bus_id,
            bus_type=bus_type,
            v_setpoint_pu=voltage_v / system_voltage_v,
            theta_deg=float(bc.get("angle") or 0.0),
            p_gen_pu=s_gen.real,
            q_gen_pu=s_gen.imag,
            p_load_pu=s_load.real,
            q_load_pu=s_load.imag,
            has_generation=generation is not None,
        ))

    index_of = {bus.bus_id: bus.index for bus in buses}
    branch_ids: set[str] = set()
    branches: list[BranchData] = []
    for i, brc in enumerate(branches_config):
        branch_id = str(brc["branch_id"])
        if branch_id in branch_ids:
            raise _fail(
                ValidationErrorKind.DUPLICATE_BRANCH, f"branch id '{branch_id}' is repeated"
            )
        branch_ids.add(branch_id)

        from_id, to_id = str(brc["from_bus"]), str(brc["to_bus"])
        for end in (from_id, to_id):
            if end not in index_of:
                raise _fail(
                    ValidationErrorKind.UNKNOWN_BUS,
                    f"branch '{branch_id}' references unknown bus '{end}'",
                )
        if from_id == to_id:
            raise _fail(
                ValidationErrorKind.INVALID_BRANCH,
                f"branch '{branch_id}' connects bus '{from_id}' to itself",
            )

        z_ohm = complex(float(brc["resistance"]), float(brc["reactance"]))
        if not (abs(z_ohm) > 0 and math.isfinite(abs(z_ohm))):
            raise _fail(
                ValidationErrorKind.INVALID_IMPEDANCE,
                f"branch '{branch_id}' impedance magnitude must be > 0",
            )

        tap_raw = brc.get("tap_ratio")
        tap_ratio = 1.0 if tap_raw is None else float(tap_raw)
        if tap_ratio <= 0:
            raise _fail(
                ValidationErrorKind.INVALID_BRANCH,
                f"branch '{branch_id}' tap ratio must be positive",
            )
        shift_rad = math.radians(float(brc.get("phase_shift") or 0.0))
        rating = float(brc.get("rating_mva") or 0.0)
        if not (rating >= 0 and math.isfinite(rating)):
            raise _fail(
                ValidationErrorKind.INVALID_BRANCH,
                f"branch '{branch_id}' rating must not be negative",
            )

        branches.append(BranchData(
            index=i,
            branch_id=branch_id,
            from_bus=index_of[from_id],
            to_bus=index_of[to_id],
            z_pu=base.impedance(z_ohm),
            b_pu=base.susceptance(float(brc.get("susceptance") or 0.0)),
            tap=complex(tap_ratio * math.cos(shift_rad), tap_ratio * math.sin(shift_rad)),
            rating_mva=rating or None,
            in_service=bool(brc.get("in_service", True)),
        ))

    return NetworkModel(
        buses=tuple(buses),
        branches=tuple(branches),
        base_kv=base.v_base_kv,
        s_base_mva=base.s_base_mva,
        frequency_hz=frequency_hz,
        system_type=system_type,
    )
