"""Tests for load flow recommendations."""

from __future__ import annotations

from loadflow.network.admittance import build_admittance_matrix
from loadflow.network.contingency import run_contingency_analysis
from loadflow.network.grid_codes import profile_from_band
from loadflow.network.network_advisor import STANDING_ADVICE, generate_recommendations
from loadflow.network.power_flow import ConvergenceCriteria, solve_power_flow
from loadflow.network.results import assemble_results


def _solve(network, criteria, profile=None):
    admittance = build_admittance_matrix(network)
    state = solve_power_flow(network, admittance, criteria)
    kwargs = {"profile": profile} if profile else {}
    results = assemble_results(network, state, criteria, y_bus=admittance.y_bus, **kwargs)
    return admittance, state, results


class TestRecommendations:

    def test_standing_advice_always_present(self, mesh_network, tight_criteria):
        _, _, results = _solve(mesh_network, tight_criteria)
        recommendations = generate_recommendations(results)
        assert recommendations == list(STANDING_ADVICE)
        assert "Regular load flow studies recommended for system optimization" in recommendations

    def test_low_voltage_bus(self, radial_network, tight_criteria):
        _, _, results = _solve(radial_network, tight_criteria, profile_from_band(5))
        recommendations = generate_recommendations(results)
        assert any("Bus 'Bus2'" in r and "below the 95% limit" in r for r in recommendations)

    def test_overloaded_branch(self, radial_network, tight_criteria):
        _, _, results = _solve(
            radial_network, tight_criteria, profile_from_band(10, thermal_limit_pct=0.5),
        )
        assert any(r.startswith("Branch 'L1' loaded to") for r in generate_recommendations(results))

    def test_non_convergence_first(self, radial_network):
        criteria = ConvergenceCriteria(max_iterations=2, tolerance=1e-12)
        _, _, results = _solve(radial_network, criteria)
        recommendations = generate_recommendations(results)
        assert recommendations[0].startswith("Load flow did not converge after 2 iterations")
        assert "not reliable" in recommendations[0]

    def test_islanding_outage(self, radial_network, tight_criteria):
        admittance, state, results = _solve(radial_network, tight_criteria)
        contingency = run_contingency_analysis(radial_network, admittance, state, tight_criteria)
        recommendations = generate_recommendations(results, contingency)
        assert any("Loss of branch 'L1' islands bus(es) Bus2" in r for r in recommendations)
        assert recommendations[-len(STANDING_ADVICE):] == list(STANDING_ADVICE)

    def test_skipped_contingency_note(self, mesh_network, tight_criteria):
        _, _, results = _solve(mesh_network, tight_criteria)
        note = "N-1 contingency analysis skipped: the base case did not converge"
        assert note in generate_recommendations(results, contingency_note=note)
