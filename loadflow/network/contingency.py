"""Single-branch (N-1) outage screening.

For each in-service branch, removes it, re-runs the load flow from the
pre-contingency solution, and checks for voltage and thermal violations
against the profile's contingency limits.

Each case derives its Y-bus from the base matrix by subtracting the
removed branch's stamp, so the base network is validated and stamped
once. Cases are independent: each owns its matrix copy and solution
state, so they may run on a worker pool.

Outages are ranked by severity: loss of connectivity first, then
divergence, then converged cases with limit violations.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from loadflow.core.errors import CalculationCancelled, NetworkSplitError
from loadflow.network.admittance import AdmittanceMatrix
from loadflow.network.grid_codes import GridCodeProfile, IEC_60038
from loadflow.network.load_model import CONSTANT_POWER, LoadModelMix
from loadflow.network.network_model import BranchData, NetworkModel
from loadflow.network.power_flow import ConvergenceCriteria, SolutionState, solve_power_flow
from loadflow.network.results import compute_branch_flows

logger = logging.getLogger(__name__)


class ContingencyOutcome(str, Enum):
    CONVERGED_COMPLIANT = "converged-compliant"
    CONVERGED_VIOLATING = "converged-violating"
    DIVERGED = "diverged"
    NETWORK_SPLIT = "network-split"


# Lower rank sorts first in the critical outage list
_SEVERITY_RANK = {
    ContingencyOutcome.NETWORK_SPLIT: 0,
    ContingencyOutcome.DIVERGED: 1,
    ContingencyOutcome.CONVERGED_VIOLATING: 2,
    ContingencyOutcome.CONVERGED_COMPLIANT: 3,
}


@dataclass
class VoltageViolationDetail:
    """Bus outside the contingency voltage band after an outage."""
    bus_id: str
    bus_index: int
    voltage_pu: float
    limit_type: str  # low | high
    limit_value: float


@dataclass
class ThermalViolationDetail:
    """Branch loaded beyond the thermal limit after an outage."""
    branch_id: str
    branch_index: int
    loading_pct: float
    rating_mva: float
    limit_pct: float  # the thermal limit from the profile


@dataclass
class ContingencyCase:
    """Outcome of solving the network with one branch out of service."""
    removed_branch_id: str
    removed_branch_index: int
    outcome: ContingencyOutcome
    state: SolutionState | None = None
    iterations: int = 0
    max_mismatch: float = 0.0
    voltage_violations: list[VoltageViolationDetail] = field(default_factory=list)
    thermal_violations: list[ThermalViolationDetail] = field(default_factory=list)
    isolated_buses: list[str] = field(default_factory=list)
    min_voltage_pu: float = 0.0
    max_voltage_pu: float = 0.0
    max_loading_pct: float = 0.0

    @property
    def critical(self) -> bool:
        return self.outcome != ContingencyOutcome.CONVERGED_COMPLIANT

    @property
    def worst_voltage_deviation(self) -> float:
        return max((abs(1.0 - v.voltage_pu) for v in self.voltage_violations), default=0.0)

    def severity_key(self) -> tuple[int, float, float, int]:
        """Sort key: outcome class, then worst deviation/overload, then input order."""
        return (
            _SEVERITY_RANK[self.outcome],
            -self.worst_voltage_deviation,
            -max((t.loading_pct for t in self.thermal_violations), default=0.0),
            self.removed_branch_index,
        )


@dataclass
class ContingencyAnalysisResult:
    """All outage cases of one N-1 run, in branch input order."""
    grid_code: str
    cases: list[ContingencyCase] = field(default_factory=list)

    @property
    def critical_outages(self) -> list[str]:
        """Removed branch ids of every non-compliant case, most severe first."""
        critical = sorted((c for c in self.cases if c.critical), key=ContingencyCase.severity_key)
        return [c.removed_branch_id for c in critical]

    def count(self, outcome: ContingencyOutcome) -> int:
        return sum(1 for c in self.cases if c.outcome == outcome)

    @property
    def n1_secure(self) -> bool:
        return not any(c.critical for c in self.cases)

    def to_dict(self) -> dict[str, Any]:
        """Plain dict form with a per-outcome summary."""
        return {
            "grid_code": self.grid_code,
            "summary": {
                "total_contingencies": len(self.cases),
                "compliant": self.count(ContingencyOutcome.CONVERGED_COMPLIANT),
                "violating": self.count(ContingencyOutcome.CONVERGED_VIOLATING),
                "diverged": self.count(ContingencyOutcome.DIVERGED),
                "network_split": self.count(ContingencyOutcome.NETWORK_SPLIT),
                "n1_secure": self.n1_secure,
            },
            "critical_outages": self.critical_outages,
            "contingencies": [
                {
                    "branch_id": c.removed_branch_id,
                    "outcome": c.outcome.value,
                    "iterations": c.iterations,
                    "max_mismatch": c.max_mismatch,
                    "isolated_buses": list(c.isolated_buses),
                    "min_voltage_pu": round(c.min_voltage_pu, 4),
                    "max_voltage_pu": round(c.max_voltage_pu, 4),
                    "max_loading_pct": round(c.max_loading_pct, 1),
                    "voltage_violations": [
                        {
                            "bus_id": v.bus_id,
                            "voltage_pu": round(v.voltage_pu, 4),
                            "limit_type": v.limit_type,
                            "limit_value": v.limit_value,
                        }
                        for v in c.voltage_violations
                    ],
                    "thermal_violations": [
                        {
                            "branch_id": t.branch_id,
                            "loading_pct": round(t.loading_pct, 1),
                            "rating_mva": t.rating_mva,
                            "limit_pct": t.limit_pct,
                        }
                        for t in c.thermal_violations
                    ],
                }
                for c in self.cases
            ],
        }


def evaluate_contingency(
    network: NetworkModel,
    base_admittance: AdmittanceMatrix,
    base_state: SolutionState,
    branch: BranchData,
    criteria: ConvergenceCriteria,
    load_mix: LoadModelMix = CONSTANT_POWER,
    grid_code: GridCodeProfile = IEC_60038,
) -> ContingencyCase:
    """Solve the network with ``branch`` out of service and classify it."""
    reduced = network.without_branch(branch.branch_id)
    admittance = base_admittance.without_branch(branch.branch_id)

    try:
        state = solve_power_flow(
            reduced, admittance, criteria, load_mix, initial=base_state.voltages,
        )
    except NetworkSplitError as exc:
        return ContingencyCase(
            removed_branch_id=branch.branch_id,
            removed_branch_index=branch.index,
            outcome=ContingencyOutcome.NETWORK_SPLIT,
            isolated_buses=exc.isolated_buses,
        )

    if not state.converged:
        return ContingencyCase(
            removed_branch_id=branch.branch_id,
            removed_branch_index=branch.index,
            outcome=ContingencyOutcome.DIVERGED,
            state=state,
            iterations=state.iterations,
            max_mismatch=state.max_mismatch,
        )

    voltage_violations: list[VoltageViolationDetail] = []
    voltages_pu = state.voltage_pu
    for bus in reduced.buses:
        v = float(voltages_pu[bus.index])
        violation = grid_code.voltage.check_contingency(v)
        if violation is not None:
            voltage_violations.append(VoltageViolationDetail(
                bus_id=bus.bus_id,
                bus_index=bus.index,
                voltage_pu=v,
                limit_type=violation,
                limit_value=grid_code.voltage.limit_for(violation, contingency=True),
            ))

    thermal_limit = grid_code.thermal_limit_pct
    thermal_violations: list[ThermalViolationDetail] = []
    flows = compute_branch_flows(reduced, state.voltages)
    for bf, br in zip(flows, reduced.branches):
        if bf.loading_pct > thermal_limit:
            thermal_violations.append(ThermalViolationDetail(
                branch_id=bf.branch_id,
                branch_index=br.index,
                loading_pct=bf.loading_pct,
                rating_mva=br.rating_mva or 0.0,
                limit_pct=thermal_limit,
            ))

    violating = bool(voltage_violations or thermal_violations)
    return ContingencyCase(
        removed_branch_id=branch.branch_id,
        removed_branch_index=branch.index,
        outcome=(
            ContingencyOutcome.CONVERGED_VIOLATING if violating
            else ContingencyOutcome.CONVERGED_COMPLIANT
        ),
        state=state,
        iterations=state.iterations,
        max_mismatch=state.max_mismatch,
        voltage_violations=voltage_violations,
        thermal_violations=thermal_violations,
        min_voltage_pu=float(voltages_pu.min()),
        max_voltage_pu=float(voltages_pu.max()),
        max_loading_pct=max((bf.loading_pct for bf in flows), default=0.0),
    )


def run_contingency_analysis(
    network: NetworkModel,
    base_admittance: AdmittanceMatrix,
    base_state: SolutionState,
    criteria: ConvergenceCriteria,
    load_mix: LoadModelMix = CONSTANT_POWER,
    grid_code: GridCodeProfile | None = None,
    workers: int | None = None,
    progress_callback: Callable[[float], None] | None = None,
    cancel_check: Callable[[], bool] | None = None,
) -> ContingencyAnalysisResult:
    """Solve every single-branch outage of a converged base case.

    For each in-service branch:
    1. Subtract its stamp from the base Y-bus
    2. Classify a disconnected remainder as network-split
    3. Re-solve, warm-started from the pre-contingency voltages
    4. Compare voltages and loadings with the contingency band and thermal limit

    Args:
        network: the validated base network
        base_admittance: Y-bus of the base network
        base_state: solved pre-contingency state used to warm-start
        criteria: convergence criteria for each re-solve
        load_mix: ZIP composition applied to PQ-bus loads
        grid_code: limits for violations. Defaults to IEC 60038.
        workers: run cases on a thread pool when > 1
        progress_callback: called with progress 0.0~1.0 after each case
        cancel_check: polled once per case; returning True raises
            CalculationCancelled

    Returns:
        ContingencyAnalysisResult with cases in branch input order
    """
    if grid_code is None:
        grid_code = IEC_60038

    branches = network.in_service_branches
    n_cases = len(branches)

    def _evaluate(branch: BranchData) -> ContingencyCase:
        case = evaluate_contingency(
            network, base_admittance, base_state, branch, criteria, load_mix, grid_code,
        )
        logger.debug(
            "Outage of %s: %s",
            branch.branch_id,
            case.outcome.value,
            extra={"outage": branch.branch_id, "iterations": case.iterations},
        )
        return case

    def _check_cancel() -> None:
        if cancel_check is not None and cancel_check():
            logger.info("Contingency analysis cancelled")
            raise CalculationCancelled("contingency analysis cancelled")

    cases: list[ContingencyCase] = []
    if workers is not None and workers > 1 and n_cases > 1:
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = []
            for branch in branches:
                _check_cancel()
                futures.append(pool.submit(_evaluate, branch))
            try:
                for step, future in enumerate(futures, start=1):
                    _check_cancel()
                    cases.append(future.result())
                    if progress_callback:
                        progress_callback(step / n_cases)
            except CalculationCancelled:
                for future in futures:
                    future.cancel()
                raise
    else:
        for step, branch in enumerate(branches, start=1):
            _check_cancel()
            cases.append(_evaluate(branch))
            if progress_callback:
                progress_callback(step / n_cases)

    result = ContingencyAnalysisResult(grid_code=grid_code.name, cases=cases)
    logger.info(
        "N-1 analysis: %d cases, %d split, %d diverged, %d violating",
        n_cases,
        result.count(ContingencyOutcome.NETWORK_SPLIT),
        result.count(ContingencyOutcome.DIVERGED),
        result.count(ContingencyOutcome.CONVERGED_VIOLATING),
    )
    return result
