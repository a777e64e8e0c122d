"""Gauss-Seidel AC Load Flow Solver.

Solves the balanced positive-sequence load flow on a Y-bus. Supports
slack, PV and PQ bus types with a voltage-dependent (ZIP) load model at
PQ buses.

Each sweep visits the buses in network input order and updates one
voltage at a time from its own admittance row and the latest estimates
of its neighbours. Convergence is judged on the power mismatch, never on
the voltage change between sweeps.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Callable

import numpy as np

from loadflow.core.errors import NetworkValidationError, ValidationErrorKind
from loadflow.network.admittance import AdmittanceMatrix
from loadflow.network.load_model import CONSTANT_POWER, LoadModelMix
from loadflow.network.network_model import BusData, BusType, NetworkModel

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConvergenceCriteria:
    """Iteration limit and per-unit power-mismatch threshold."""
    max_iterations: int = 100
    tolerance: float = 1e-6

    def __post_init__(self) -> None:
        if int(self.max_iterations) != self.max_iterations or self.max_iterations <= 0:
            raise NetworkValidationError(
                ValidationErrorKind.INVALID_CONVERGENCE_CRITERIA,
                "max_iterations must be a positive integer",
            )
        if not (self.tolerance > 0 and math.isfinite(self.tolerance)):
            raise NetworkValidationError(
                ValidationErrorKind.INVALID_CONVERGENCE_CRITERIA,
                "tolerance must be positive",
            )


@dataclass
class BusSolution:
    """Solved state of a single bus."""
    bus_id: str
    voltage_pu: float
    angle_deg: float
    mismatch_p_pu: float
    mismatch_q_pu: float


@dataclass
class SolutionState:
    """Outcome of one solve call. Never shared between calls."""
    voltages: np.ndarray         # complex V per bus index, per-unit
    converged: bool
    iterations: int
    max_mismatch: float          # largest |ΔP| or |ΔQ| after the last sweep
    mismatch_p: np.ndarray
    mismatch_q: np.ndarray
    # Diagnostic only: largest |V_k − V_{k−1}| in the last sweep
    max_voltage_delta: float
    diverged: bool = False

    @property
    def voltage_pu(self) -> np.ndarray:
        return np.abs(self.voltages)

    @property
    def voltage_angle_deg(self) -> np.ndarray:
        return np.degrees(np.angle(self.voltages))

    def bus_solutions(self, network: NetworkModel) -> list[BusSolution]:
        return [
            BusSolution(
                bus_id=bus.bus_id,
                voltage_pu=float(abs(self.voltages[bus.index])),
                angle_deg=float(np.degrees(np.angle(self.voltages[bus.index]))),
                mismatch_p_pu=float(self.mismatch_p[bus.index]),
                mismatch_q_pu=float(self.mismatch_q[bus.index]),
            )
            for bus in network.buses
        ]

    def describe(self) -> str:
        """Explain the outcome in terms a caller can report."""
        if self.converged:
            return (
                f"converged in {self.iterations} iterations, "
                f"largest mismatch {self.max_mismatch:.3g} pu"
            )
        if self.diverged:
            return (
                f"diverged within {self.iterations} iterations "
                f"(voltage estimates or their injections left float range), "
                f"last finite mismatch {self.max_mismatch:.3g} pu"
            )
        return (
            f"did not converge after {self.iterations} iterations, "
            f"largest mismatch {self.max_mismatch:.3g} pu"
        )


def scheduled_injection(bus: BusData, v_mag: float, load_mix: LoadModelMix) -> complex:
    """Net scheduled injection (generation − load) in per-unit.

    Load at PQ buses follows the voltage-dependent mix; elsewhere the
    voltage is held, so the load is taken at its nominal value.
    """
    if bus.bus_type == BusType.PQ:
        return bus.s_gen_pu - load_mix.scale(bus.s_load_pu, v_mag)
    return bus.s_gen_pu - bus.s_load_pu


def _gauss_seidel_step(i: int, y_bus: np.ndarray, v: np.ndarray, s: complex) -> complex:
    """V_i = (S_i*/V_i* − Σ_{j≠i} Y_ij·V_j) / Y_ii"""
    row = y_bus[i]
    others = row @ v - row[i] * v[i]
    return (np.conj(s) / np.conj(v[i]) - others) / row[i]


def _update_slack(bus: BusData, y_bus: np.ndarray, v: np.ndarray, load_mix: LoadModelMix) -> complex:
    return v[bus.index]


def _update_pv(bus: BusData, y_bus: np.ndarray, v: np.ndarray, load_mix: LoadModelMix) -> complex:
    i = bus.index
    # Reactive output implied by the latest estimates; no limit enforcement
    q_calc = float(np.imag(v[i] * np.conj(y_bus[i] @ v)))
    s = complex(bus.p_gen_pu - bus.p_load_pu, q_calc)
    v_new = _gauss_seidel_step(i, y_bus, v, s)
    return bus.v_setpoint_pu * np.exp(1j * np.angle(v_new))


def _update_pq(bus: BusData, y_bus: np.ndarray, v: np.ndarray, load_mix: LoadModelMix) -> complex:
    i = bus.index
    s = scheduled_injection(bus, float(abs(v[i])), load_mix)
    return _gauss_seidel_step(i, y_bus, v, s)


_UpdateRule = Callable[[BusData, np.ndarray, np.ndarray, LoadModelMix], complex]

_UPDATE_RULES: dict[BusType, _UpdateRule] = {
    BusType.SLACK: _update_slack,
    BusType.PV: _update_pv,
    BusType.PQ: _update_pq,
}


def _sweep(
    network: NetworkModel,
    y_bus: np.ndarray,
    previous: np.ndarray,
    load_mix: LoadModelMix,
) -> np.ndarray:
    """One Gauss-Seidel sweep. Returns a new voltage vector."""
    v = previous.copy()
    for bus in network.buses:
        v[bus.index] = _UPDATE_RULES[bus.bus_type](bus, y_bus, v, load_mix)
    return v


def compute_mismatch(
    network: NetworkModel,
    y_bus: np.ndarray,
    voltages: np.ndarray,
    load_mix: LoadModelMix = CONSTANT_POWER,
) -> tuple[np.ndarray, np.ndarray]:
    """Scheduled minus calculated injection.

    ΔP is evaluated at every non-slack bus, ΔQ at PQ buses only; other
    entries are zero.
    """
    s_calc = voltages * np.conj(y_bus @ voltages)
    dp = np.zeros(network.n_bus)
    dq = np.zeros(network.n_bus)
    for bus in network.buses:
        if bus.bus_type == BusType.SLACK:
            continue
        i = bus.index
        ds = scheduled_injection(bus, float(abs(voltages[i])), load_mix) - s_calc[i]
        dp[i] = ds.real
        if bus.bus_type == BusType.PQ:
            dq[i] = ds.imag
    return dp, dq


def _largest_mismatch(dp: np.ndarray, dq: np.ndarray) -> float:
    """max(|ΔP|, |ΔQ|); NaN propagates."""
    return float(np.max(np.abs(np.concatenate((dp, dq)))))


def initial_voltages(network: NetworkModel) -> np.ndarray:
    """Start from each bus's input voltage and angle."""
    v = np.empty(network.n_bus, dtype=complex)
    for bus in network.buses:
        mag = bus.v_setpoint_pu
        if bus.bus_type == BusType.PQ and mag <= 0:
            mag = 1.0
        v[bus.index] = mag * np.exp(1j * np.radians(bus.theta_deg))
    return v


def _warm_start(network: NetworkModel, voltages: np.ndarray) -> np.ndarray:
    """Copy a previous solution, re-imposing slack and PV set-points."""
    v = np.array(voltages, dtype=complex, copy=True)
    for bus in network.buses:
        i = bus.index
        if bus.bus_type == BusType.SLACK:
            v[i] = bus.v_setpoint_pu * np.exp(1j * np.radians(bus.theta_deg))
        elif bus.bus_type == BusType.PV:
            v[i] = bus.v_setpoint_pu * np.exp(1j * np.angle(v[i]))
        elif not np.isfinite(v[i]) or abs(v[i]) == 0:
            v[i] = 1.0 + 0j
    return v


def solve_power_flow(
    network: NetworkModel,
    admittance: AdmittanceMatrix,
    criteria: ConvergenceCriteria,
    load_mix: LoadModelMix = CONSTANT_POWER,
    initial: np.ndarray | None = None,
) -> SolutionState:
    """Solve AC load flow using the Gauss-Seidel method.

    Algorithm:
    1. Reject a topologically singular Y-bus (NetworkSplitError)
    2. Start from the input voltages, or from ``initial`` when warm-starting
    3. Sweep the buses in input order, applying the slack/PV/PQ rule
    4. After each sweep compute max(|ΔP|,|ΔQ|) over non-slack buses
    5. Stop when it falls below tolerance or the iteration limit is reached

    Non-convergence is returned as ``converged=False`` with
    ``iterations == criteria.max_iterations``; it is never raised.

    Args:
        network: validated NetworkModel
        admittance: Y-bus matching the network's in-service branches
        criteria: iteration limit and mismatch tolerance
        load_mix: ZIP composition applied to PQ-bus loads
        initial: optional complex voltages to warm-start from
    """
    admittance.ensure_connected(network.slack_bus)
    y_bus = admittance.y_bus

    v = initial_voltages(network) if initial is None else _warm_start(network, initial)

    converged = False
    diverged = False
    iterations = criteria.max_iterations
    max_delta = 0.0

    with np.errstate(over="ignore", invalid="ignore", divide="ignore"):
        dp, dq = compute_mismatch(network, y_bus, v, load_mix)
        max_mismatch = _largest_mismatch(dp, dq)

        for sweep in range(1, criteria.max_iterations + 1):
            v_next = _sweep(network, y_bus, v, load_mix)
            if not np.all(np.isfinite(v_next)):
                diverged = True
                break
            dp_next, dq_next = compute_mismatch(network, y_bus, v_next, load_mix)
            mismatch_next = _largest_mismatch(dp_next, dq_next)
            # Finite voltages whose injections overflow are just as unusable
            if not math.isfinite(mismatch_next):
                diverged = True
                break

            max_delta = float(np.max(np.abs(v_next - v)))
            v, dp, dq, max_mismatch = v_next, dp_next, dq_next, mismatch_next

            if max_mismatch < criteria.tolerance:
                converged = True
                iterations = sweep
                break

    state = SolutionState(
        voltages=v,
        converged=converged,
        iterations=iterations,
        max_mismatch=max_mismatch,
        mismatch_p=dp,
        mismatch_q=dq,
        max_voltage_delta=max_delta,
        diverged=diverged,
    )
    if converged:
        logger.debug("Load flow %s", state.describe())
    else:
        logger.warning("Load flow %s", state.describe())
    return state
