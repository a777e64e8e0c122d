"""Load flow calculation entry point.

``calculate`` is a pure function of its input: it validates the network,
solves the base case with Gauss-Seidel, assembles bus/branch/system
results and, when the base case converged, runs the N-1 contingency
analysis. Nothing is retained between calls.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from loadflow.config import settings
from loadflow.core.logging import calculation_context
from loadflow.network.admittance import build_admittance_matrix
from loadflow.network.contingency import (
    ContingencyAnalysisResult,
    ContingencyOutcome,
    run_contingency_analysis,
)
from loadflow.network.grid_codes import GridCodeProfile, get_profile, profile_from_band
from loadflow.network.load_model import LoadModelMix
from loadflow.network.network_advisor import generate_recommendations
from loadflow.network.network_model import NetworkModel, build_network_from_config
from loadflow.network.power_flow import ConvergenceCriteria, solve_power_flow
from loadflow.network.results import LoadFlowResults, assemble_results
from loadflow.schemas.load_flow import (
    ApparentPower,
    BranchPowerFlow,
    BranchResultItem,
    BusResultItem,
    ContingencyAnalysisItem,
    ContingencyCaseItem,
    LoadFlowRequest,
    LoadFlowResponse,
    OutageBusViolation,
    OutageThermalViolation,
    OutageVoltageViolations,
    PowerPair,
    SystemSummaryItem,
    VoltageExtreme,
    VoltagePhasor,
)

logger = logging.getLogger(__name__)


def build_network_from_request(request: LoadFlowRequest) -> NetworkModel:
    """Validate the request's buses and branches into a NetworkModel."""
    system = request.system_data
    return build_network_from_config(
        buses_config=[bus.model_dump() for bus in request.buses],
        branches_config=[br.model_dump() for br in request.branches],
        system_voltage_v=system.system_voltage,
        base_kva=system.base_kva,
        frequency_hz=system.frequency,
        system_type=system.system_type,
    )


def _resolve_profile(
    grid_code: str | GridCodeProfile | None,
    compliance_band_pct: float | None,
) -> GridCodeProfile:
    if compliance_band_pct is not None:
        return profile_from_band(compliance_band_pct)
    if isinstance(grid_code, GridCodeProfile):
        return grid_code
    return get_profile(grid_code or settings.grid_code)


def calculate(
    data: LoadFlowRequest | dict[str, Any],
    *,
    grid_code: str | GridCodeProfile | None = None,
    compliance_band_pct: float | None = None,
    run_contingency: bool | None = None,
    workers: int | None = None,
    progress_callback: Callable[[float], None] | None = None,
    cancel_check: Callable[[], bool] | None = None,
) -> LoadFlowResponse:
    """Run a load flow study.

    Args:
        data: LoadFlowRequest or its camelCase dict form
        grid_code: compliance profile key or instance (default from settings)
        compliance_band_pct: symmetric ±% voltage band; overrides grid_code
        run_contingency: run N-1 analysis (default from settings)
        workers: thread pool size for contingency cases (default from settings)
        progress_callback: called with N-1 progress 0.0~1.0
        cancel_check: polled once per contingency case

    Raises:
        pydantic.ValidationError: structurally malformed input
        NetworkValidationError: invalid network (specific ``kind``)
        CalculationCancelled: cancel_check returned True
    """
    request = data if isinstance(data, LoadFlowRequest) else LoadFlowRequest.model_validate(data)

    with calculation_context(n_bus=len(request.buses), n_branch=len(request.branches)):
        network = build_network_from_request(request)
        models = request.load_models
        load_mix = LoadModelMix.from_percentages(
            models.constant_power, models.constant_current, models.constant_impedance,
        )
        criteria = ConvergenceCriteria(
            max_iterations=request.convergence_criteria.max_iterations,
            tolerance=request.convergence_criteria.tolerance,
        )
        profile = _resolve_profile(grid_code, compliance_band_pct)

        admittance = build_admittance_matrix(network)
        state = solve_power_flow(network, admittance, criteria, load_mix)
        logger.info(
            "Base case %s",
            state.describe(),
            extra={"converged": state.converged, "iterations": state.iterations},
        )
        results = assemble_results(
            network, state, criteria, load_mix, profile, y_bus=admittance.y_bus,
        )

        contingency: ContingencyAnalysisResult | None = None
        note: str | None = None
        if run_contingency is None:
            run_contingency = settings.run_contingency
        if run_contingency:
            if not state.converged:
                note = "N-1 contingency analysis skipped: the base case did not converge"
            elif not network.in_service_branches:
                note = "N-1 contingency analysis skipped: no in-service branches"
            else:
                contingency = run_contingency_analysis(
                    network,
                    admittance,
                    state,
                    criteria,
                    load_mix,
                    grid_code=profile,
                    workers=workers if workers is not None else settings.contingency_workers,
                    progress_callback=progress_callback,
                    cancel_check=cancel_check,
                )
            if note:
                logger.info(note)

        recommendations = generate_recommendations(results, contingency, note)
        return _to_response(network, results, contingency, recommendations)


def _to_response(
    network: NetworkModel,
    results: LoadFlowResults,
    contingency: ContingencyAnalysisResult | None,
    recommendations: list[str],
) -> LoadFlowResponse:
    summary = results.summary
    base = network.per_unit

    return LoadFlowResponse(
        converged=results.converged,
        iterations=results.iterations,
        mismatch=results.max_mismatch,
        reliable=results.reliable,
        diagnostics=results.diagnostics,
        bus_results=[
            BusResultItem(
                bus_id=b.bus_id,
                bus_type=b.bus_type.value,
                voltage=VoltagePhasor(
                    magnitude=b.voltage_v, angle=b.angle_deg, per_unit=b.voltage_pu,
                ),
                voltage_drop_from_nominal=b.drop_from_nominal_pct,
                compliance=b.compliant,
                power=PowerPair(p=b.p_inject_kw, q=b.q_inject_kvar),
            )
            for b in results.bus_results
        ],
        branch_results=[
            BranchResultItem(
                branch_id=bf.branch_id,
                from_bus=bf.from_bus_id,
                to_bus=bf.to_bus_id,
                in_service=bf.in_service,
                current=bf.current_a,
                loading=bf.loading_pct,
                power_flow=BranchPowerFlow(
                    from_bus=ApparentPower(p=bf.from_p_kw, q=bf.from_q_kvar, s=bf.from_s_kva),
                    to_bus=ApparentPower(p=bf.to_p_kw, q=bf.to_q_kvar, s=bf.to_s_kva),
                ),
                losses=PowerPair(p=bf.loss_p_kw, q=bf.loss_q_kvar),
                flow_direction=bf.flow_direction,
                voltage_regulation=bf.voltage_regulation_pct,
            )
            for bf in results.branch_results
        ],
        system_summary=SystemSummaryItem(
            total_generation=_pair(summary.total_generation),
            total_load=_pair(summary.total_load),
            total_losses=_pair(summary.total_losses),
            min_voltage=VoltageExtreme(
                bus=summary.min_voltage_bus, magnitude=base.voltage_v(summary.min_voltage_pu),
            ),
            max_voltage=VoltageExtreme(
                bus=summary.max_voltage_bus, magnitude=base.voltage_v(summary.max_voltage_pu),
            ),
            overloaded_branches=summary.overloaded_branches,
            voltage_limit_violations=summary.voltage_limit_violations,
            power_balance_error=_pair(summary.balance_error),
            balance_check_passed=summary.balance_check_passed,
        ),
        contingency_analysis=_contingency_item(contingency) if contingency else None,
        recommendations=recommendations,
    )


def _pair(value: complex) -> PowerPair:
    return PowerPair(p=value.real, q=value.imag)


def _contingency_item(result: ContingencyAnalysisResult) -> ContingencyAnalysisItem:
    cases: list[ContingencyCaseItem] = []
    by_outage: list[OutageVoltageViolations] = []

    for case in result.cases:
        solved = case.outcome in (
            ContingencyOutcome.CONVERGED_COMPLIANT, ContingencyOutcome.CONVERGED_VIOLATING,
        )
        violations = [
            OutageBusViolation(bus_id=v.bus_id, voltage=v.voltage_pu, limit_type=v.limit_type)
            for v in case.voltage_violations
        ]
        cases.append(ContingencyCaseItem(
            branch_id=case.removed_branch_id,
            outcome=case.outcome.value,
            iterations=case.iterations,
            mismatch=case.max_mismatch if case.state is not None else None,
            min_voltage=case.min_voltage_pu if solved else None,
            max_loading=case.max_loading_pct if solved else None,
            isolated_buses=case.isolated_buses,
            voltage_violations=violations,
            thermal_violations=[
                OutageThermalViolation(branch_id=t.branch_id, loading=t.loading_pct)
                for t in case.thermal_violations
            ],
        ))
        if violations:
            by_outage.append(OutageVoltageViolations(
                outage=case.removed_branch_id, violations=violations,
            ))

    return ContingencyAnalysisItem(
        critical_outages=result.critical_outages,
        cases=cases,
        voltage_limit_violations=by_outage,
        n1_secure=result.n1_secure,
    )
