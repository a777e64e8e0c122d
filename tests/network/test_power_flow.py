"""Tests for the Gauss-Seidel power flow solver."""

from __future__ import annotations

import math

import numpy as np
import pytest

from loadflow.core.errors import NetworkSplitError, NetworkValidationError, ValidationErrorKind
from loadflow.network.admittance import build_admittance_matrix
from loadflow.network.load_model import LoadModelMix
from loadflow.network.network_model import NetworkModel, build_network_from_config
from loadflow.network.power_flow import (
    ConvergenceCriteria,
    compute_mismatch,
    initial_voltages,
    solve_power_flow,
)


# ======================================================================
# Helper: build simple test networks
# ======================================================================


def _two_bus_network(
    p_load_kw: float = 80.0, q_load_kvar: float = 40.0, load_voltage: float = 400.0,
) -> NetworkModel:
    """400 V slack + PQ load over a 0.1 + j0.15 Ω cable."""
    return build_network_from_config(
        [
            {"bus_id": "Source", "bus_type": "slack", "voltage": 400},
            {"bus_id": "Load", "bus_type": "pq", "voltage": load_voltage,
             "power_load": {"p": p_load_kw, "q": q_load_kvar}},
        ],
        [{"branch_id": "Cable1", "from_bus": "Source", "to_bus": "Load",
          "resistance": 0.1, "reactance": 0.15}],
        400, 1000,
    )


def _three_bus_pv_network() -> NetworkModel:
    """11 kV chain: slack -> PV generator bus -> PQ load."""
    return build_network_from_config(
        [
            {"bus_id": "Grid", "bus_type": "slack", "voltage": 11000},
            {"bus_id": "Gen", "bus_type": "pv", "voltage": 11000,
             "power_generation": {"p": 100, "q": 0}},
            {"bus_id": "Load", "bus_type": "pq", "voltage": 11000,
             "power_load": {"p": 200, "q": 80}},
        ],
        [
            {"branch_id": "L1", "from_bus": "Grid", "to_bus": "Gen",
             "resistance": 2.0, "reactance": 4.0},
            {"branch_id": "L2", "from_bus": "Gen", "to_bus": "Load",
             "resistance": 2.0, "reactance": 4.0},
        ],
        11000, 1000,
    )


def _solve(network: NetworkModel, criteria: ConvergenceCriteria | None = None, **kwargs):
    criteria = criteria or ConvergenceCriteria(max_iterations=500, tolerance=1e-8)
    return solve_power_flow(network, build_admittance_matrix(network), criteria, **kwargs)


# ======================================================================
# Convergence criteria
# ======================================================================


class TestConvergenceCriteria:

    def test_defaults(self):
        criteria = ConvergenceCriteria()
        assert criteria.max_iterations == 100
        assert criteria.tolerance == 1e-6

    @pytest.mark.parametrize("kwargs", [
        {"max_iterations": 0},
        {"max_iterations": -5},
        {"tolerance": 0.0},
        {"tolerance": -1e-3},
        {"tolerance": float("nan")},
    ])
    def test_rejects_non_positive(self, kwargs):
        with pytest.raises(NetworkValidationError) as excinfo:
            ConvergenceCriteria(**kwargs)
        assert excinfo.value.kind == ValidationErrorKind.INVALID_CONVERGENCE_CRITERIA


# ======================================================================
# Power flow solver
# ======================================================================


class TestPowerFlow:
    """Tests for the Gauss-Seidel AC power flow solver."""

    def test_two_bus_converges(self):
        state = _solve(_two_bus_network())
        assert state.converged
        assert not state.diverged
        assert state.max_mismatch < 1e-8
        assert 0 < state.iterations <= 500

    def test_two_bus_voltage_drop(self):
        """Load bus voltage should be < 1.0 pu (voltage drop across cable)."""
        state = _solve(_two_bus_network())
        v_load = state.voltage_pu[1]
        assert 0.85 < v_load < 1.0, f"Load bus voltage {v_load:.4f}"
        # Power flows towards the load, so its angle lags the source
        assert state.voltage_angle_deg[1] < 0

    def test_slack_voltage_held(self):
        state = _solve(_two_bus_network())
        assert state.voltages[0] == 1.0 + 0j

    def test_voltage_drop_proportional_to_load(self):
        light = _solve(_two_bus_network(p_load_kw=20, q_load_kvar=10))
        heavy = _solve(_two_bus_network(p_load_kw=80, q_load_kvar=40))
        assert 1.0 - heavy.voltage_pu[1] > 1.0 - light.voltage_pu[1]

    def test_mismatch_below_tolerance_at_solution(self):
        network = _two_bus_network()
        state = _solve(network)
        dp, dq = compute_mismatch(network, build_admittance_matrix(network).y_bus, state.voltages)
        assert dp[0] == 0.0 and dq[0] == 0.0
        assert max(abs(dp[1]), abs(dq[1])) < 1e-8

    def test_pv_bus_holds_magnitude(self):
        state = _solve(_three_bus_pv_network())
        assert state.converged
        assert state.voltage_pu[1] == pytest.approx(1.0, abs=1e-12)
        assert state.mismatch_q[1] == 0.0

    def test_constant_impedance_load_drops_less(self):
        """At V < 1 pu a constant-impedance load draws less than a constant-power one."""
        network = _two_bus_network()
        v_p = _solve(network).voltage_pu[1]
        v_z = _solve(network, load_mix=LoadModelMix.from_percentages(0, 0, 100)).voltage_pu[1]
        assert v_z > v_p

    def test_deterministic(self):
        network = _two_bus_network()
        first = _solve(network)
        second = _solve(network)
        np.testing.assert_array_equal(first.voltages, second.voltages)
        assert first.iterations == second.iterations

    def test_warm_start_from_solution(self):
        network = _two_bus_network()
        solved = _solve(network)
        warm = _solve(network, initial=solved.voltages)
        assert warm.converged
        assert warm.iterations == 1

    def test_initial_voltages_from_input(self):
        network = _three_bus_pv_network()
        np.testing.assert_allclose(initial_voltages(network), [1.0, 1.0, 1.0])

    def test_per_bus_solution_view(self):
        network = _two_bus_network()
        state = _solve(network)
        source, load = state.bus_solutions(network)
        assert (source.bus_id, load.bus_id) == ("Source", "Load")
        assert source.voltage_pu == pytest.approx(1.0)
        assert source.angle_deg == pytest.approx(0.0)
        assert source.mismatch_p_pu == 0.0 and source.mismatch_q_pu == 0.0
        assert load.voltage_pu == pytest.approx(float(abs(state.voltages[1])))
        assert load.angle_deg < 0
        assert abs(load.mismatch_p_pu) < 1e-8
        assert abs(load.mismatch_q_pu) < 1e-8


class TestNonConvergence:

    def test_collapsed_start_diverges_without_raising(self):
        """A near-zero starting voltage blows the first sweep up past float range."""
        network = _two_bus_network(load_voltage=1e-300)
        criteria = ConvergenceCriteria(max_iterations=20, tolerance=1e-6)
        state = _solve(network, criteria)
        assert not state.converged
        assert state.diverged
        assert state.iterations == 20
        assert np.all(np.isfinite(state.voltages))
        assert math.isfinite(state.max_mismatch)
        assert "diverged within 20 iterations" in state.describe()

    def test_overloaded_zip_load_does_not_raise(self):
        mix = LoadModelMix.from_percentages(50, 0, 50)
        criteria = ConvergenceCriteria(max_iterations=100, tolerance=1e-6)
        state = _solve(_two_bus_network(p_load_kw=5e6, q_load_kvar=2.5e6), criteria, load_mix=mix)
        assert not state.converged
        assert state.iterations == 100
        assert np.all(np.isfinite(state.voltages))
        assert math.isfinite(state.max_mismatch)

    def test_iteration_limit_is_a_result(self):
        """A solve that runs out of iterations is reported, not raised."""
        state = _solve(_two_bus_network(), ConvergenceCriteria(max_iterations=3, tolerance=1e-12))
        assert not state.converged
        assert state.iterations == 3
        assert state.max_mismatch > 1e-12
        assert "did not converge after 3 iterations" in state.describe()

    def test_infeasible_load_does_not_raise(self):
        """A load far beyond the transfer limit never converges."""
        criteria = ConvergenceCriteria(max_iterations=50, tolerance=1e-6)
        state = _solve(_two_bus_network(p_load_kw=5000, q_load_kvar=3000), criteria)
        assert not state.converged
        assert state.iterations == 50
        assert np.all(np.isfinite(state.voltages))

    def test_split_network_rejected(self):
        network = build_network_from_config(
            [
                {"bus_id": "A", "bus_type": "slack", "voltage": 400},
                {"bus_id": "B", "bus_type": "pq", "voltage": 400},
                {"bus_id": "C", "bus_type": "pq", "voltage": 400},
            ],
            [{"branch_id": "L", "from_bus": "A", "to_bus": "B",
              "resistance": 0.1, "reactance": 0.1}],
            400, 1000,
        )
        with pytest.raises(NetworkSplitError) as excinfo:
            _solve(network)
        assert excinfo.value.isolated_buses == ["C"]
