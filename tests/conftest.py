"""Shared test fixtures for the load flow engine."""

from __future__ import annotations

from typing import Any

import pytest

from loadflow.calculator import build_network_from_request
from loadflow.network.admittance import build_admittance_matrix
from loadflow.network.network_model import NetworkModel
from loadflow.network.power_flow import ConvergenceCriteria, solve_power_flow
from loadflow.schemas.load_flow import LoadFlowRequest


# ======================================================================
# Request payloads (camelCase, as sent by the calling application)
# ======================================================================


@pytest.fixture
def radial_request() -> dict[str, Any]:
    """400 V two-bus feeder: slack source and one ZIP load 80 kW / 40 kvar."""
    return {
        "systemData": {
            "systemVoltage": 400,
            "frequency": 50,
            "systemType": "radial",
            "baseKVA": 1000,
        },
        "buses": [
            {"busId": "Bus1", "voltage": 400, "angle": 0, "busType": "slack"},
            {
                "busId": "Bus2",
                "voltage": 400,
                "angle": 0,
                "busType": "PQ",
                "powerLoad": {"P": 80, "Q": 40},
            },
        ],
        "branches": [
            {
                "branchId": "L1",
                "fromBus": "Bus1",
                "toBus": "Bus2",
                "resistance": 0.1,
                "reactance": 0.15,
                "susceptance": 0.001,
                "ratingMVA": 10,
            },
        ],
        "loadModels": {"constantPower": 70, "constantCurrent": 20, "constantImpedance": 10},
        "convergenceCriteria": {"maxIterations": 20, "tolerance": 0.001},
    }


@pytest.fixture
def mesh_request() -> dict[str, Any]:
    """11 kV three-bus ring with two PQ loads; every single outage is survivable."""
    line = {"resistance": 0.5, "reactance": 1.0, "ratingMVA": 5}
    return {
        "systemData": {
            "systemVoltage": 11000,
            "frequency": 50,
            "systemType": "mesh",
            "baseKVA": 10000,
        },
        "buses": [
            {"busId": "Bus1", "voltage": 11000, "angle": 0, "busType": "slack"},
            {
                "busId": "Bus2",
                "voltage": 11000,
                "angle": 0,
                "busType": "PQ",
                "powerLoad": {"P": 500, "Q": 200},
            },
            {
                "busId": "Bus3",
                "voltage": 11000,
                "angle": 0,
                "busType": "PQ",
                "powerLoad": {"P": 300, "Q": 100},
            },
        ],
        "branches": [
            {"branchId": "L12", "fromBus": "Bus1", "toBus": "Bus2", **line},
            {"branchId": "L23", "fromBus": "Bus2", "toBus": "Bus3", **line},
            {"branchId": "L13", "fromBus": "Bus1", "toBus": "Bus3", **line},
        ],
        "convergenceCriteria": {"maxIterations": 200, "tolerance": 1e-6},
    }


@pytest.fixture
def weak_tie_request() -> dict[str, Any]:
    """11 kV four-bus network mixing every contingency outcome class.

    Bus3 is normally fed through the strong branch B. Losing B pushes its
    load over the weak tie C and drags Bus3/Bus4 below 0.90 pu. Bus4 hangs
    off a single spur D, so losing D islands it.
    """
    def branch(branch_id: str, from_bus: str, to_bus: str, r: float, x: float) -> dict[str, Any]:
        return {
            "branchId": branch_id, "fromBus": from_bus, "toBus": to_bus,
            "resistance": r, "reactance": x,
        }

    return {
        "systemData": {"systemVoltage": 11000, "baseKVA": 1000},
        "buses": [
            {"busId": "Bus1", "voltage": 11000, "busType": "slack"},
            {"busId": "Bus2", "voltage": 11000, "busType": "PQ",
             "powerLoad": {"P": 50, "Q": 20}},
            {"busId": "Bus3", "voltage": 11000, "busType": "PQ",
             "powerLoad": {"P": 300, "Q": 100}},
            {"busId": "Bus4", "voltage": 11000, "busType": "PQ",
             "powerLoad": {"P": 100, "Q": 30}},
        ],
        "branches": [
            branch("A", "Bus1", "Bus2", 1.0, 2.0),
            branch("B", "Bus1", "Bus3", 1.0, 2.0),
            branch("C", "Bus2", "Bus3", 20.0, 40.0),
            branch("D", "Bus3", "Bus4", 5.0, 10.0),
        ],
        "convergenceCriteria": {"maxIterations": 2000, "tolerance": 1e-6},
    }


# ======================================================================
# Engine-level fixtures
# ======================================================================


def network_from(payload: dict[str, Any]) -> NetworkModel:
    return build_network_from_request(LoadFlowRequest.model_validate(payload))


@pytest.fixture
def radial_network(radial_request: dict[str, Any]) -> NetworkModel:
    return network_from(radial_request)


@pytest.fixture
def mesh_network(mesh_request: dict[str, Any]) -> NetworkModel:
    return network_from(mesh_request)


@pytest.fixture
def weak_tie_network(weak_tie_request: dict[str, Any]) -> NetworkModel:
    return network_from(weak_tie_request)


@pytest.fixture
def tight_criteria() -> ConvergenceCriteria:
    return ConvergenceCriteria(max_iterations=2000, tolerance=1e-8)


@pytest.fixture
def solved_mesh(mesh_network: NetworkModel, tight_criteria: ConvergenceCriteria):
    """(network, admittance, state) for the converged mesh base case."""
    admittance = build_admittance_matrix(mesh_network)
    state = solve_power_flow(mesh_network, admittance, tight_criteria)
    assert state.converged
    return mesh_network, admittance, state
