"""Load flow result assembly.

Derives bus, branch and system quantities from a solved voltage vector.
Results are produced for non-converged solves too, as a best-effort
snapshot flagged ``converged=False``; compliance read from such a
snapshot is not reliable.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import numpy as np

from loadflow.network.admittance import build_admittance_matrix
from loadflow.network.grid_codes import GridCodeProfile, IEC_60038
from loadflow.network.load_model import CONSTANT_POWER, LoadModelMix
from loadflow.network.network_model import BranchData, BusType, NetworkModel
from loadflow.network.power_flow import ConvergenceCriteria, SolutionState

logger = logging.getLogger(__name__)


@dataclass
class BusResult:
    """Solved state of a single bus in engineering units."""
    bus_id: str
    bus_type: BusType
    voltage_pu: float
    voltage_v: float
    angle_deg: float
    # (V_nom − V) / V_nom × 100
    drop_from_nominal_pct: float
    compliant: bool
    violation: str | None = None  # "low" or "high"
    p_inject_kw: float = 0.0
    q_inject_kvar: float = 0.0


@dataclass
class BranchFlowResult:
    """Power flow through a single branch."""
    branch_id: str
    from_bus_id: str
    to_bus_id: str
    in_service: bool
    current_a: float
    from_p_kw: float
    from_q_kvar: float
    to_p_kw: float
    to_q_kvar: float
    loss_p_kw: float
    loss_q_kvar: float
    loading_pct: float  # % of thermal rating, 0 when unrated
    flow_direction: str  # "forward", "reverse" or "none"
    voltage_regulation_pct: float

    @property
    def from_s_kva(self) -> float:
        return float(np.hypot(self.from_p_kw, self.from_q_kvar))

    @property
    def to_s_kva(self) -> float:
        return float(np.hypot(self.to_p_kw, self.to_q_kvar))


@dataclass
class SystemSummary:
    """System totals in kW + j·kvar."""
    total_generation: complex
    total_load: complex
    total_losses: complex
    min_voltage_bus: str
    min_voltage_pu: float
    max_voltage_bus: str
    max_voltage_pu: float
    overloaded_branches: list[str] = field(default_factory=list)
    voltage_limit_violations: list[str] = field(default_factory=list)
    # generation − load − losses
    balance_error: complex = 0j
    balance_check_passed: bool = True


@dataclass
class LoadFlowResults:
    """Assembled results of one load flow solve."""
    converged: bool
    iterations: int
    max_mismatch: float
    diagnostics: str
    bus_results: list[BusResult]
    branch_results: list[BranchFlowResult]
    summary: SystemSummary
    profile: GridCodeProfile

    @property
    def reliable(self) -> bool:
        """Compliance conclusions only hold for a converged solve."""
        return self.converged


def _branch_end_currents(br: BranchData, v: np.ndarray) -> tuple[complex, complex, complex]:
    """Series current and terminal currents (pu) of a branch.

    I_series = y·(V_i/t − V_j)
    I_ij = y/|t|²·V_i − y/t*·V_j + jB/2·V_i
    I_ji = y·V_j − y/t·V_i + jB/2·V_j
    """
    y = 1.0 / br.z_pu
    t = br.tap
    vi = v[br.from_bus]
    vj = v[br.to_bus]
    half_b = 1j * br.b_pu / 2

    i_series = y * (vi / t - vj)
    i_ij = y / (abs(t) ** 2) * vi - y / np.conj(t) * vj + half_b * vi
    i_ji = y * vj - y / t * vi + half_b * vj
    return i_series, i_ij, i_ji


def compute_branch_flows(
    network: NetworkModel,
    voltages: np.ndarray,
) -> list[BranchFlowResult]:
    """Branch currents, end flows, losses and loading for every branch."""
    base = network.per_unit
    flows: list[BranchFlowResult] = []

    for br in network.branches:
        from_id = network.buses[br.from_bus].bus_id
        to_id = network.buses[br.to_bus].bus_id
        if not br.in_service:
            flows.append(BranchFlowResult(
                branch_id=br.branch_id, from_bus_id=from_id, to_bus_id=to_id,
                in_service=False, current_a=0.0,
                from_p_kw=0.0, from_q_kvar=0.0, to_p_kw=0.0, to_q_kvar=0.0,
                loss_p_kw=0.0, loss_q_kvar=0.0, loading_pct=0.0,
                flow_direction="none", voltage_regulation_pct=0.0,
            ))
            continue

        i_series, i_ij, i_ji = _branch_end_currents(br, voltages)
        s_ij = voltages[br.from_bus] * np.conj(i_ij)
        s_ji = voltages[br.to_bus] * np.conj(i_ji)
        loss = s_ij + s_ji

        loading = 0.0
        if br.rating_mva:
            max_flow_mva = max(abs(s_ij), abs(s_ji)) * base.s_base_mva
            loading = max_flow_mva / br.rating_mva * 100.0

        v_from = abs(voltages[br.from_bus])
        v_to = abs(voltages[br.to_bus])
        regulation = (v_from - v_to) / v_from * 100.0 if v_from > 0 else 0.0

        s_ij_kw = base.power_kw(s_ij)
        s_ji_kw = base.power_kw(s_ji)
        loss_kw = base.power_kw(loss)

        flows.append(BranchFlowResult(
            branch_id=br.branch_id,
            from_bus_id=from_id,
            to_bus_id=to_id,
            in_service=True,
            current_a=base.current_a(float(abs(i_series))),
            from_p_kw=s_ij_kw.real,
            from_q_kvar=s_ij_kw.imag,
            # Power delivered at the to-end, positive in the from→to direction
            to_p_kw=-s_ji_kw.real,
            to_q_kvar=-s_ji_kw.imag,
            loss_p_kw=loss_kw.real,
            loss_q_kvar=loss_kw.imag,
            loading_pct=float(loading),
            flow_direction="forward" if s_ij.real >= 0 else "reverse",
            voltage_regulation_pct=float(regulation),
        ))

    return flows


def _bus_power_balance(
    network: NetworkModel,
    voltages: np.ndarray,
    s_calc: np.ndarray,
    load_mix: LoadModelMix,
) -> tuple[complex, complex]:
    """Total generation and total load in per-unit.

    Slack generation is its solved injection plus local load; PV reactive
    output likewise. Elsewhere generation is as scheduled.
    """
    total_gen = 0j
    total_load = 0j
    for bus in network.buses:
        i = bus.index
        if bus.bus_type == BusType.PQ:
            load = load_mix.scale(bus.s_load_pu, float(abs(voltages[i])))
            gen = bus.s_gen_pu
        elif bus.bus_type == BusType.PV:
            load = bus.s_load_pu
            gen = complex(bus.p_gen_pu, s_calc[i].imag + load.imag)
        else:
            load = bus.s_load_pu
            gen = complex(s_calc[i]) + load
        total_gen += gen
        total_load += load
    return total_gen, total_load


def assemble_results(
    network: NetworkModel,
    state: SolutionState,
    criteria: ConvergenceCriteria,
    load_mix: LoadModelMix = CONSTANT_POWER,
    profile: GridCodeProfile = IEC_60038,
    y_bus: np.ndarray | None = None,
) -> LoadFlowResults:
    """Build bus/branch/system results from a solution state.

    Also runs the conservation self-check: for a converged solve the
    real-power balance error (generation − load − losses) must stay
    below ``tolerance × n_bus`` per-unit.
    """
    v = state.voltages
    base = network.per_unit
    if y_bus is None:
        y_bus = build_admittance_matrix(network).y_bus
    s_calc = v * np.conj(y_bus @ v)

    bus_results: list[BusResult] = []
    for bus, solution in zip(network.buses, state.bus_solutions(network)):
        v_pu = solution.voltage_pu
        violation = profile.voltage.check_normal(v_pu)
        s_kw = base.power_kw(s_calc[bus.index])
        bus_results.append(BusResult(
            bus_id=bus.bus_id,
            bus_type=bus.bus_type,
            voltage_pu=v_pu,
            voltage_v=base.voltage_v(v_pu),
            angle_deg=solution.angle_deg,
            drop_from_nominal_pct=(1.0 - v_pu) * 100.0,
            compliant=violation is None,
            violation=violation,
            p_inject_kw=s_kw.real,
            q_inject_kvar=s_kw.imag,
        ))

    branch_results = compute_branch_flows(network, v)

    gen_pu, load_pu = _bus_power_balance(network, v, s_calc, load_mix)
    losses_kw = sum((complex(bf.loss_p_kw, bf.loss_q_kvar) for bf in branch_results), 0j)
    gen_kw = base.power_kw(gen_pu)
    load_kw = base.power_kw(load_pu)
    balance_error = gen_kw - load_kw - losses_kw

    balance_limit_kw = criteria.tolerance * network.n_bus * base.s_base_kva
    balance_ok = abs(balance_error.real) < balance_limit_kw
    if state.converged and not balance_ok:
        logger.warning(
            "Power balance self-check failed: generation - load - losses = %.6g kW "
            "(limit %.3g kW)",
            balance_error.real,
            balance_limit_kw,
        )

    min_bus = min(bus_results, key=lambda b: b.voltage_pu)
    max_bus = max(bus_results, key=lambda b: b.voltage_pu)

    summary = SystemSummary(
        total_generation=gen_kw,
        total_load=load_kw,
        total_losses=losses_kw,
        min_voltage_bus=min_bus.bus_id,
        min_voltage_pu=min_bus.voltage_pu,
        max_voltage_bus=max_bus.bus_id,
        max_voltage_pu=max_bus.voltage_pu,
        overloaded_branches=[
            bf.branch_id for bf in branch_results
            if bf.loading_pct > profile.thermal_limit_pct
        ],
        voltage_limit_violations=[b.bus_id for b in bus_results if not b.compliant],
        balance_error=balance_error,
        balance_check_passed=bool(balance_ok),
    )

    return LoadFlowResults(
        converged=state.converged,
        iterations=state.iterations,
        max_mismatch=state.max_mismatch,
        diagnostics=state.describe(),
        bus_results=bus_results,
        branch_results=branch_results,
        summary=summary,
        profile=profile,
    )
