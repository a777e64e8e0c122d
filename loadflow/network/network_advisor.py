"""Network advisor: turn load flow results into recommendations.

Pure module (no I/O). Takes assembled results and, when available, the
N-1 analysis, and returns human-readable recommendation strings.
"""

from __future__ import annotations

from loadflow.network.contingency import ContingencyAnalysisResult, ContingencyOutcome
from loadflow.network.results import LoadFlowResults

STANDING_ADVICE = (
    "Regular load flow studies recommended for system optimization",
    "Monitor voltage profiles during peak load conditions",
    "Consider voltage regulation equipment for system improvements",
    "Verify protection coordination with updated fault currents",
)


def generate_recommendations(
    results: LoadFlowResults,
    contingency: ContingencyAnalysisResult | None = None,
    contingency_note: str | None = None,
) -> list[str]:
    """Analyze load flow results and return recommendations.

    Args:
        results: assembled base-case results
        contingency: N-1 analysis, if it was run
        contingency_note: reason the N-1 analysis was skipped, if any

    Returns:
        list of recommendation strings, most urgent first
    """
    recommendations: list[str] = []

    if not results.converged:
        recommendations.append(
            f"Load flow {results.diagnostics}; voltage and compliance figures are a "
            "best-effort snapshot and are not reliable. Check network data, increase "
            "the iteration limit, or relax the tolerance."
        )

    limits = results.profile.voltage
    for bus in results.bus_results:
        if bus.violation == "low":
            recommendations.append(
                f"Bus '{bus.bus_id}' voltage {bus.voltage_pu * 100:.1f}% is below the "
                f"{limits.normal_min * 100:.0f}% limit: upgrade the feeder or add local "
                "reactive compensation"
            )
        elif bus.violation == "high":
            recommendations.append(
                f"Bus '{bus.bus_id}' voltage {bus.voltage_pu * 100:.1f}% exceeds the "
                f"{limits.normal_max * 100:.0f}% limit: review tap settings and "
                "generation set-points"
            )

    loading_by_id = {bf.branch_id: bf.loading_pct for bf in results.branch_results}
    for branch_id in results.summary.overloaded_branches:
        recommendations.append(
            f"Branch '{branch_id}' loaded to {loading_by_id[branch_id]:.1f}% of rating: "
            "uprate the circuit or redistribute load"
        )

    if results.converged and not results.summary.balance_check_passed:
        recommendations.append(
            "Power balance self-check failed (generation - load - losses = "
            f"{results.summary.balance_error.real:.4g} kW): treat results with caution"
        )

    if contingency is not None:
        outcome_by_id = {c.removed_branch_id: c for c in contingency.cases}
        for branch_id in contingency.critical_outages:
            case = outcome_by_id[branch_id]
            if case.outcome == ContingencyOutcome.NETWORK_SPLIT:
                isolated = ", ".join(case.isolated_buses)
                recommendations.append(
                    f"Loss of branch '{branch_id}' islands bus(es) {isolated}: "
                    "consider an alternative supply path"
                )
            elif case.outcome == ContingencyOutcome.DIVERGED:
                recommendations.append(
                    f"Loss of branch '{branch_id}' leaves no solvable operating point "
                    "(load flow diverged): the network may be at risk of voltage collapse"
                )
            else:
                recommendations.append(
                    f"Loss of branch '{branch_id}' causes "
                    f"{len(case.voltage_violations)} voltage and "
                    f"{len(case.thermal_violations)} thermal violation(s)"
                )
    elif contingency_note:
        recommendations.append(contingency_note)

    recommendations.extend(STANDING_ADVICE)
    return recommendations
